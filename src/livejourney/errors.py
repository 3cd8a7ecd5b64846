"""Error types raised by the live arrival and alert clients."""

from typing import Optional


class AcquisitionError(Exception):
    """Base class for failures while fetching live data."""


class InvalidURLError(AcquisitionError):
    """The URL provided was invalid."""

    def __init__(self, url: str):
        super().__init__(f"The URL provided was invalid: {url}")
        self.url = url


class NoStationIdFoundError(AcquisitionError):
    """The provider has no station identifier for the given name."""

    def __init__(self, station_name: str):
        super().__init__(f"Could not find station ID for '{station_name}'")
        self.station_name = station_name


class InvalidDateFormatError(AcquisitionError):
    """A departure timestamp could not be parsed."""

    def __init__(self, value: str):
        super().__init__(f"Invalid date format in arrival data: {value!r}")
        self.value = value


class DecodingError(AcquisitionError):
    """A response body did not have the expected shape."""

    def __init__(self, inner: Exception, endpoint: str = ""):
        super().__init__(f"Failed to decode the response from {endpoint or 'endpoint'}: {inner}")
        self.inner = inner
        self.endpoint = endpoint


class NetworkError(AcquisitionError):
    """Transport failure, timeout or non-200 response."""

    def __init__(self, inner: Optional[Exception] = None, status_code: Optional[int] = None, endpoint: str = ""):
        if status_code is not None:
            message = f"HTTP {status_code} from {endpoint or 'endpoint'}"
        else:
            message = f"A network error occurred calling {endpoint or 'endpoint'}: {inner}"
        super().__init__(message)
        self.inner = inner
        self.status_code = status_code
        self.endpoint = endpoint


class OperationCancelledError(Exception):
    """The caller cancelled the request before it completed."""
