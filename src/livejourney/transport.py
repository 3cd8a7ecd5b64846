"""HTTP transport shared by the live data clients."""

import logging
import threading
from typing import Any, Dict, Optional

import requests

from .cancellation import CancellationToken
from .config import REQUEST_TIMEOUT_SECONDS
from .errors import DecodingError, InvalidURLError, NetworkError

logger = logging.getLogger(__name__)


class JsonTransport:
    """
    Sends requests with a bounded timeout and maps failures onto AcquisitionError.

    Destination refinement calls the transport from several worker threads.
    Unless a session is passed in, each thread gets its own requests.Session;
    a session passed in is shared by every thread and must tolerate that.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = REQUEST_TIMEOUT_SECONDS):
        self._shared_session = session
        self._local = threading.local()
        self._owned_sessions = []
        self._lock = threading.Lock()
        self.timeout = timeout

    @property
    def session(self) -> requests.Session:
        """Session for the calling thread."""
        if self._shared_session is not None:
            return self._shared_session

        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._lock:
                self._release_finished_threads()
                self._owned_sessions.append((threading.current_thread(), session))
        return session

    def _release_finished_threads(self) -> None:
        """Close sessions of worker threads that have exited. Caller holds the lock."""
        alive = []
        for thread, session in self._owned_sessions:
            if thread.is_alive():
                alive.append((thread, session))
            else:
                session.close()
        self._owned_sessions = alive

    def post_json(self, url: str, payload: Dict[str, Any], cancel_token: Optional[CancellationToken] = None) -> Any:
        return self.request("POST", url, json=payload, cancel_token=cancel_token)

    def get_json(self, url: str, headers: Optional[Dict[str, str]] = None, cancel_token: Optional[CancellationToken] = None) -> Any:
        return self.request("GET", url, headers=headers, cancel_token=cancel_token)

    def request(self, method: str, url: str, cancel_token: Optional[CancellationToken] = None, **kwargs) -> Any:
        """
        Perform one request and decode its JSON body.

        Args:
            method: HTTP method.
            url: Absolute URL.
            cancel_token: Checked before sending and after the response arrives.
            **kwargs: Passed through to ``requests.Session.request``.

        Returns:
            Decoded JSON value.

        Raises:
            InvalidURLError, NetworkError, DecodingError, OperationCancelledError
        """
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        logger.debug(f"Sending {method} request to {url}")
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.exceptions.MissingSchema, requests.exceptions.InvalidSchema, requests.exceptions.InvalidURL) as e:
            raise InvalidURLError(url) from e
        except requests.exceptions.RequestException as e:
            raise NetworkError(e, endpoint=url) from e

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        if response.status_code != 200:
            logger.warning(f"Received HTTP {response.status_code} from {url}")
            raise NetworkError(status_code=response.status_code, endpoint=url)

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Failed to decode response from {url}: {response.text[:300]}")
            raise DecodingError(e, endpoint=url) from e

    def close(self) -> None:
        if self._shared_session is not None:
            self._shared_session.close()
            return

        with self._lock:
            sessions, self._owned_sessions = self._owned_sessions, []
        for _, session in sessions:
            session.close()
        self._local = threading.local()
