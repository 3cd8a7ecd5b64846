"""Line and station list loader backed by the transit backend."""

import logging
from typing import Any, List, Optional

from .cache import TTLCache
from .cancellation import CancellationToken
from .config import LINE_CACHE_TTL_SECONDS, ServiceConfig
from .errors import DecodingError
from .models import Line
from .transport import JsonTransport

logger = logging.getLogger(__name__)

METRO_LINES_KEY = "cachedMetroLines"
BUS_LINES_KEY = "cachedBusLines"
LINE_STATIONS_PREFIX = "station_cache_line_"


class LineDirectory:
    """Loads and caches the metro and bus line lists with their stations."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        transport: Optional[JsonTransport] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.config = config or ServiceConfig()
        self.transport = transport or JsonTransport(timeout=self.config.timeout)
        self.cache = cache or TTLCache(ttl=LINE_CACHE_TTL_SECONDS)

    def get_metro_line_ids(self, language: str = "en", cancel_token: Optional[CancellationToken] = None) -> List[str]:
        """Metro line identifiers, e.g. ``["1", "2", ...]``."""
        return self.cache.get_or_load(
            METRO_LINES_KEY,
            lambda: self._load_line_ids("mtrlines", language, cancel_token),
            language,
        )

    def get_bus_line_ids(self, language: str = "en", cancel_token: Optional[CancellationToken] = None) -> List[str]:
        """Bus route codes, e.g. ``["7", "150", "BRT1"]``."""
        return self.cache.get_or_load(
            BUS_LINES_KEY,
            lambda: self._load_line_ids("buslines", language, cancel_token),
            language,
        )

    def get_line(
        self,
        line_id: str,
        is_metro: bool,
        language: str = "en",
        cancel_token: Optional[CancellationToken] = None,
    ) -> Line:
        """
        Get a line with its stations, from cache or the network.

        Args:
            line_id: Metro line number or bus route code.
            is_metro: Selects the metro or bus station endpoint.
            language: "en" or "ar".
            cancel_token: Optional cancellation for the network call.

        Returns:
            Line whose ``stations_by_direction`` is ``{"main": [...]}`` for metro
            lines and ``{terminus: [...]}`` for bus lines.
        """
        kind = "metro" if is_metro else "bus"
        cache_key = f"{LINE_STATIONS_PREFIX}{kind}_{line_id}"

        cached = self.cache.get(cache_key, language)
        if cached is not None:
            logger.debug(f"Cache HIT for {kind} line {line_id}")
            return cached

        logger.debug(f"Cache MISS for {kind} line {line_id}. Fetching from network...")
        url = self.config.endpoint(f"{kind}_stations", language)
        payload = self.transport.post_json(url, {"line": line_id}, cancel_token=cancel_token)

        try:
            if is_metro:
                stations_by_direction = {"main": [str(s) for s in payload["stations"]]}
            else:
                stations_by_direction = {
                    str(direction): [str(s) for s in stations]
                    for direction, stations in payload["directions"].items()
                }
        except (KeyError, TypeError, AttributeError) as e:
            raise DecodingError(e, endpoint=url) from e

        line = Line(id=line_id, type=kind, name=line_id, stations_by_direction=stations_by_direction)
        self.cache.set(cache_key, line, language)
        logger.info(f"Loaded {kind} line {line_id} with {len(stations_by_direction)} direction(s)")
        return line

    def get_all_lines(self, language: str = "en", cancel_token: Optional[CancellationToken] = None) -> List[Line]:
        """Every line with its stations: metro lines first, then buses (BRT first, then numeric)."""
        metro = [self.get_line(i, True, language, cancel_token) for i in self.get_metro_line_ids(language, cancel_token)]
        bus = [self.get_line(i, False, language, cancel_token) for i in self.get_bus_line_ids(language, cancel_token)]

        metro.sort(key=lambda line: line.id)
        bus.sort(key=self._bus_sort_key)
        return metro + bus

    @staticmethod
    def _bus_sort_key(line: Line):
        code = line.id.upper()
        if code.startswith("BRT"):
            return (0, 0, code)
        if code.isdigit():
            return (1, int(code), code)
        return (2, 0, code)

    def _load_line_ids(self, path: str, language: str, cancel_token: Optional[CancellationToken]) -> List[str]:
        url = self.config.endpoint(path, language)
        payload: Any = self.transport.get_json(url, cancel_token=cancel_token)
        try:
            raw = payload["lines"]
        except (KeyError, TypeError) as e:
            raise DecodingError(e, endpoint=url) from e

        if isinstance(raw, list):
            ids = [str(item).strip() for item in raw]
        else:
            ids = [item.strip() for item in str(raw).split(",")]
        ids = [i for i in ids if i]
        logger.info(f"Loaded {len(ids)} line ids from {path}")
        return ids

    def clear(self) -> None:
        """Drop every cached line list and station list."""
        self.cache.clear()
        logger.info("Cleared line directory cache")
