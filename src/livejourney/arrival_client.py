"""Live arrival fetcher with a fallback provider and destination refinement."""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from .cancellation import CancellationToken, ensure_token
from .config import FALLBACK_QUERY, FALLBACK_STOP_FIELD, ServiceConfig
from .errors import (
    AcquisitionError,
    DecodingError,
    InvalidDateFormatError,
    NoStationIdFoundError,
)
from .models import ArrivalResponse, LiveArrival, RawArrival, SegmentKind, StationMatch
from .normalize import is_metro_line, strip_station_suffix
from .transport import JsonTransport

logger = logging.getLogger(__name__)

PRIMARY_ENDPOINTS = {
    SegmentKind.METRO: "metro_arrivals",
    SegmentKind.BUS: "bus_arrivals",
}

FALLBACK_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
    "Accept": "application/json, text/javascript, */*; q=0.01",
    "X-Requested-With": "XMLHttpRequest",
}

# Departure timestamps come with or without fractional seconds
_ISO_FORMATS = ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_departure_time(value: str) -> datetime:
    """
    Parse an ISO-8601 departure timestamp.

    Raises:
        InvalidDateFormatError: If neither the fractional nor the plain format parses.
    """
    for fmt in _ISO_FORMATS:
        try:
            parsed = datetime.strptime(value.strip(), fmt)
        except (ValueError, AttributeError):
            continue
        return parsed
    raise InvalidDateFormatError(value)


def minutes_until(departure: str, now: datetime) -> int:
    """Whole minutes from ``now`` until ``departure``, never negative."""
    delta = parse_departure_time(departure) - now
    return max(0, math.floor(delta.total_seconds() / 60))


class LiveArrivalClient:
    """Fetches live arrivals for a station, falling back to the provider portal."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        transport: Optional[JsonTransport] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the client.

        Args:
            config: Endpoints and timeout; defaults to ``ServiceConfig()``.
            transport: HTTP transport; built from the config timeout if omitted.
            clock: Returns the current aware datetime, used for fallback minute offsets.
        """
        self.config = config or ServiceConfig()
        self.transport = transport or JsonTransport(timeout=self.config.timeout)
        self._clock = clock

    def fetch_arrivals(
        self,
        station_name: str,
        mode: SegmentKind,
        language: str = "en",
        cancel_token: Optional[CancellationToken] = None,
    ) -> ArrivalResponse:
        """
        Get live arrivals for a station.

        Args:
            station_name: Station display name; ``(Bus)``/``(Metro)`` tags are ignored.
            mode: SegmentKind.BUS or SegmentKind.METRO.
            language: "en" or "ar".
            cancel_token: Cooperative cancellation for every call made.

        Returns:
            ArrivalResponse with refined destinations.

        Raises:
            AcquisitionError: If both the primary feed and the fallback chain fail.
            OperationCancelledError: If the token is cancelled.
        """
        if mode not in PRIMARY_ENDPOINTS:
            raise ValueError(f"Live arrivals are only available for bus and metro, not {mode}")

        token = ensure_token(cancel_token)
        clean_name = strip_station_suffix(station_name)

        try:
            response = self._fetch_primary(clean_name, mode, language, token)
        except AcquisitionError as e:
            logger.warning(f"Primary API failed for '{clean_name}': {e}. Attempting fallback...")
            return self._fetch_fallback(clean_name, mode, language, token)

        if not response.arrivals:
            logger.info(f"Primary API returned empty arrivals for '{clean_name}'. Attempting fallback...")
            return self._fetch_fallback(clean_name, mode, language, token)

        arrivals = self._refine_all(response.arrivals, mode, language, token)
        return ArrivalResponse(station_name=response.station_name, arrivals=arrivals)

    def _fetch_primary(self, station_name: str, mode: SegmentKind, language: str, token: CancellationToken) -> ArrivalResponse:
        url = self.config.endpoint(PRIMARY_ENDPOINTS[mode], language)
        payload = self.transport.post_json(url, {"station_name": station_name}, cancel_token=token)
        return self._decode_arrival_response(payload, station_name, url)

    def _fetch_fallback(self, station_name: str, mode: SegmentKind, language: str, token: CancellationToken) -> ArrivalResponse:
        try:
            matches = self.get_station_matches(station_name, language, token)
            if not matches:
                raise NoStationIdFoundError(station_name)

            raw_arrivals = self.get_raw_arrivals(matches[0].station_id, language, token)
            now = self._clock()
            arrivals = [
                LiveArrival(
                    line=raw.number,
                    destination=raw.destination,
                    minutes_until=minutes_until(raw.actual_departure_time_planned or raw.departure_time_planned, now),
                )
                for raw in raw_arrivals
            ]
        except AcquisitionError as e:
            logger.error(f"Fallback failed for '{station_name}': {e}")
            raise

        return ArrivalResponse(
            station_name=station_name,
            arrivals=self._refine_all(arrivals, mode, language, token),
        )

    def get_station_matches(self, station_name: str, language: str = "en", cancel_token: Optional[CancellationToken] = None) -> List[StationMatch]:
        """Look up provider station identifiers for a station name."""
        url = self.config.endpoint("giveMeId", language)
        payload = self.transport.post_json(url, {"station_name": station_name}, cancel_token=cancel_token)
        try:
            return [
                StationMatch(
                    full_station_name=str(item["full_station_name"]),
                    station_id=str(item["station_id"]),
                    type=str(item.get("type", "")),
                )
                for item in payload["matches"]
            ]
        except (KeyError, TypeError) as e:
            raise DecodingError(e, endpoint=url) from e

    def get_raw_arrivals(self, station_id: str, language: str = "en", cancel_token: Optional[CancellationToken] = None) -> List[RawArrival]:
        """Fetch departure records from the provider portal."""
        url = self.config.fallback_endpoint(language)
        logger.debug(f"Fallback request for station id {station_id}")
        payload = self.transport.request(
            "POST",
            url,
            params=FALLBACK_QUERY,
            data={FALLBACK_STOP_FIELD: station_id},
            headers=FALLBACK_HEADERS,
            cancel_token=cancel_token,
        )
        try:
            return [
                RawArrival(
                    number=str(item["number"]),
                    name=str(item.get("name", "")),
                    destination=str(item["destination"]),
                    actual_departure_time_planned=str(item.get("actualDepartureTimePlanned") or ""),
                    departure_time_planned=str(item.get("departureTimePlanned") or ""),
                )
                for item in payload
            ]
        except (KeyError, TypeError) as e:
            raise DecodingError(e, endpoint=url) from e

    def refine_terminus(
        self,
        line_number: str,
        api_destination: str,
        language: str = "en",
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """Return the refined terminus for a bus arrival, or ``api_destination`` on failure."""
        if is_metro_line(line_number):
            return api_destination

        url = self.config.endpoint("refineTerminus", language)
        try:
            payload = self.transport.post_json(
                url,
                {"line_number": line_number, "api_destination": api_destination},
                cancel_token=cancel_token,
            )
            refined = payload["refined_terminus"]
        except (AcquisitionError, KeyError, TypeError) as e:
            logger.debug(f"Keeping raw destination '{api_destination}' for line {line_number}: {e}")
            return api_destination

        return str(refined) if refined else api_destination

    def _refine_all(
        self,
        arrivals: List[LiveArrival],
        mode: SegmentKind,
        language: str,
        token: CancellationToken,
    ) -> List[LiveArrival]:
        """Refine every arrival's destination concurrently and wait for all of them."""
        if mode is SegmentKind.METRO or not arrivals:
            token.raise_if_cancelled()
            return list(arrivals)

        def refine(arrival: LiveArrival) -> LiveArrival:
            destination = self.refine_terminus(arrival.line, arrival.destination, language, token)
            return LiveArrival(line=arrival.line, destination=destination, minutes_until=arrival.minutes_until)

        with ThreadPoolExecutor(max_workers=len(arrivals)) as pool:
            futures = [pool.submit(refine, arrival) for arrival in arrivals]
            try:
                refined = [future.result() for future in futures]
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

        token.raise_if_cancelled()
        return refined

    @staticmethod
    def _decode_arrival_response(payload: Any, station_name: str, url: str) -> ArrivalResponse:
        try:
            arrivals = [
                LiveArrival(
                    line=str(item["line"]),
                    destination=str(item["destination"]),
                    minutes_until=max(0, int(item["minutes_until"])),
                )
                for item in payload["arrivals"]
            ]
            name = str(payload.get("station_name") or station_name)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DecodingError(e, endpoint=url) from e
        return ArrivalResponse(station_name=name, arrivals=arrivals)

    def close(self) -> None:
        self.transport.close()
