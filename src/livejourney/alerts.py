"""Service alert fetcher for transit lines."""

import logging
from typing import Iterable, List, Optional

from .cache import TTLCache
from .config import ALERT_CACHE_TTL_SECONDS, ALERTS_COLLECTIONS, ALERTS_DATABASE_ID, ServiceConfig, check_language
from .errors import DecodingError
from .models import LineAlert, Plan
from .normalize import canonical_line
from .transport import JsonTransport

logger = logging.getLogger(__name__)

ALERTS_KEY = "lineAlerts"


class LineAlertClient:
    """Fetches published line alerts and filters them by line."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        transport: Optional[JsonTransport] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.config = config or ServiceConfig()
        self.transport = transport or JsonTransport(timeout=self.config.timeout)
        self.cache = cache or TTLCache(ttl=ALERT_CACHE_TTL_SECONDS)

    def fetch_alerts(self, language: str = "en", force_refresh: bool = False) -> List[LineAlert]:
        """
        Get all alerts for a language, using the cached copy while it is fresh.

        Raises:
            AcquisitionError: If the alerts service cannot be reached or decoded.
        """
        language = check_language(language)
        if not force_refresh:
            cached = self.cache.get(ALERTS_KEY, language)
            if cached is not None:
                return cached

        url = (
            f"{self.config.alerts_url.rstrip('/')}/databases/{ALERTS_DATABASE_ID}"
            f"/collections/{ALERTS_COLLECTIONS[language]}/documents"
        )
        headers = {"Content-Type": "application/json", "X-Appwrite-Project": self.config.alerts_project}
        payload = self.transport.get_json(url, headers=headers)

        try:
            alerts = [
                LineAlert(
                    id=str(doc["$id"]),
                    title=str(doc.get("title") or ""),
                    message=str(doc.get("message") or ""),
                    created_at=str(doc.get("$createdAt") or ""),
                )
                for doc in payload["documents"]
            ]
        except (KeyError, TypeError) as e:
            raise DecodingError(e, endpoint=url) from e

        self.cache.set(ALERTS_KEY, alerts, language)
        logger.debug(f"Fetched {len(alerts)} alerts ({language})")
        return alerts

    def general_alerts(self, language: str = "en") -> List[LineAlert]:
        return [a for a in self.fetch_alerts(language) if a.is_general]

    def alerts_for_line(self, line: str, language: str = "en") -> List[LineAlert]:
        return self.alerts_for_lines([line], language)

    def alerts_for_lines(self, lines: Iterable[str], language: str = "en") -> List[LineAlert]:
        """Alerts whose ``[number]`` prefix names one of ``lines``."""
        keys = {canonical_line(line) for line in lines} - {None}
        return [
            a for a in self.fetch_alerts(language)
            if not a.is_general and canonical_line(a.affected_line_number) in keys
        ]

    def alerts_for_plan(self, plan: Plan, language: str = "en") -> List[LineAlert]:
        """General alerts plus alerts for every transit line the plan rides."""
        keys = {canonical_line(line) for line in plan.transit_lines} - {None}
        return [
            a for a in self.fetch_alerts(language)
            if a.is_general or canonical_line(a.affected_line_number) in keys
        ]

    def clear_cache(self) -> None:
        self.cache.clear_all_languages(ALERTS_KEY)
