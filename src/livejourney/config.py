"""Service endpoints and tuning defaults."""

import os
from dataclasses import dataclass
from typing import Optional

# Backend serving live arrivals, station lookup, terminus refinement and lines
DEFAULT_BASE_URL = "https://mainserver.inirl.net:5002/"

# Fallback provider portal ({language} is "en" or "ar")
DEFAULT_FALLBACK_URL = "https://www.rpt.sa/{language}/web/guest/stationdetails"
FALLBACK_PORTLET_ID = "com_rcrc_stations_RcrcStationDetailsPortlet_INSTANCE_53WVbOYPfpUF"
FALLBACK_QUERY = {
    "p_p_id": FALLBACK_PORTLET_ID,
    "p_p_lifecycle": "2",
    "p_p_state": "normal",
    "p_p_mode": "view",
    "p_p_resource_id": "/departure-monitor",
    "p_p_cacheability": "cacheLevelPage",
}
FALLBACK_STOP_FIELD = f"_{FALLBACK_PORTLET_ID}_busStopId"

# Public service alerts (AppWrite documents collection)
DEFAULT_ALERTS_URL = "https://fra.cloud.appwrite.io/v1"
DEFAULT_ALERTS_PROJECT = "68f141dd000f83849c21"
ALERTS_DATABASE_ID = "68f146de0013ba3e183a"
ALERTS_COLLECTIONS = {"en": "emptt", "ar": "arabic"}

REQUEST_TIMEOUT_SECONDS = 15.0
MAX_WAIT_MINUTES = 45
LIVE_THRESHOLD_MINUTES = 59  # Arrivals this far out are shown as scheduled
MAX_UPCOMING_ARRIVALS = 3

LINE_CACHE_TTL_SECONDS = 7 * 24 * 3600
ALERT_CACHE_TTL_SECONDS = 300

SUPPORTED_LANGUAGES = ("en", "ar")
DEFAULT_LANGUAGE = "en"


def check_language(language: Optional[str]) -> str:
    """Return a supported language code, raising ValueError otherwise."""
    code = (language or DEFAULT_LANGUAGE).strip().lower()
    if code not in SUPPORTED_LANGUAGES:
        raise ValueError(f"Unsupported language {language!r}; expected one of {', '.join(SUPPORTED_LANGUAGES)}")
    return code


@dataclass
class ServiceConfig:
    """Endpoints and limits shared by the clients and the reconciler."""
    base_url: str = DEFAULT_BASE_URL
    fallback_url: str = DEFAULT_FALLBACK_URL
    alerts_url: str = DEFAULT_ALERTS_URL
    alerts_project: str = DEFAULT_ALERTS_PROJECT
    timeout: float = REQUEST_TIMEOUT_SECONDS
    max_wait_minutes: int = MAX_WAIT_MINUTES
    live_threshold_minutes: int = LIVE_THRESHOLD_MINUTES
    max_upcoming_arrivals: int = MAX_UPCOMING_ARRIVALS

    def endpoint(self, path: str, language: str = DEFAULT_LANGUAGE) -> str:
        """Backend URL for ``path``; Arabic responses live under ``ar/``."""
        base = self.base_url if self.base_url.endswith("/") else self.base_url + "/"
        prefix = "ar/" if check_language(language) == "ar" else ""
        return f"{base}{prefix}{path.lstrip('/')}"

    def fallback_endpoint(self, language: str = DEFAULT_LANGUAGE) -> str:
        return self.fallback_url.format(language=check_language(language))

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Build a config, overriding defaults from the environment.

        Recognised variables:
        * ``LIVEJOURNEY_BASE_URL`` - backend root URL
        * ``LIVEJOURNEY_FALLBACK_URL`` - provider portal, with a ``{language}`` placeholder
        * ``LIVEJOURNEY_TIMEOUT`` - per-request timeout in seconds
        * ``LIVEJOURNEY_MAX_WAIT_MINUTES`` - wait budget before a connection counts as missed
        * ``LIVEJOURNEY_ALERTS_URL`` / ``LIVEJOURNEY_ALERTS_PROJECT`` - AppWrite endpoint and project
        """
        config = cls()
        config.base_url = (os.getenv("LIVEJOURNEY_BASE_URL") or "").strip() or config.base_url
        config.fallback_url = (os.getenv("LIVEJOURNEY_FALLBACK_URL") or "").strip() or config.fallback_url
        config.alerts_url = (os.getenv("LIVEJOURNEY_ALERTS_URL") or "").strip() or config.alerts_url
        config.alerts_project = (os.getenv("LIVEJOURNEY_ALERTS_PROJECT") or "").strip() or config.alerts_project

        timeout = (os.getenv("LIVEJOURNEY_TIMEOUT") or "").strip()
        if timeout:
            try:
                config.timeout = float(timeout)
            except ValueError:
                raise ValueError(f"LIVEJOURNEY_TIMEOUT must be a number, got {timeout!r}") from None

        max_wait = (os.getenv("LIVEJOURNEY_MAX_WAIT_MINUTES") or "").strip()
        if max_wait:
            try:
                config.max_wait_minutes = int(max_wait)
            except ValueError:
                raise ValueError(f"LIVEJOURNEY_MAX_WAIT_MINUTES must be an integer, got {max_wait!r}") from None

        return config
