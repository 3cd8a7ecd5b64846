"""Resolve the terminus a transit segment is travelling towards."""

import logging
from typing import List, Optional

from .cancellation import CancellationToken
from .errors import AcquisitionError
from .line_directory import LineDirectory
from .models import Line, Segment
from .normalize import canonical_line, normalize_label

logger = logging.getLogger(__name__)


def _index_of(stations: List[str], name: str) -> Optional[int]:
    target = normalize_label(name)
    for i, station in enumerate(stations):
        if normalize_label(station) == target:
            return i
    return None


class TerminusResolver:
    """
    Determines a segment's terminus from the full station list of its line.

    Metro lines have one ordered station list, so the direction of travel
    follows from the boarding and alighting positions. Bus lines list their
    stations per direction, keyed by terminus name.
    """

    def __init__(self, directory: Optional[LineDirectory] = None):
        self.directory = directory or LineDirectory()

    def resolve_terminus(
        self,
        segment: Segment,
        language: str = "en",
        cancel_token: Optional[CancellationToken] = None,
    ) -> Optional[str]:
        """
        Get the terminus name for a bus or metro segment.

        Args:
            segment: Transit segment with a line and at least two stations.
            language: "en" or "ar".
            cancel_token: Optional cancellation for the station list fetch.

        Returns:
            Terminus display name, or None if it cannot be determined.
        """
        key = canonical_line(segment.line)
        if key is None or not segment.is_transit:
            return None

        line_id = key.split(":", 1)[1] if key.startswith("metro:") else key
        logger.debug(f"Resolving terminus for line {line_id}")

        try:
            line = self.directory.get_line(line_id, segment.is_metro, language, cancel_token)
        except AcquisitionError as e:
            logger.warning(f"Failed to resolve terminus for line {line_id}: {e}")
            return None

        if segment.is_metro:
            return self._metro_terminus(segment, line)
        return self._bus_terminus(segment, line)

    @staticmethod
    def _metro_terminus(segment: Segment, line: Line) -> Optional[str]:
        stations = line.stations_by_direction.get("main") or []
        if not stations or not segment.stations:
            logger.debug("Metro: missing station data for segment")
            return None

        start = _index_of(stations, segment.boarding_station)
        end = _index_of(stations, segment.alighting_station)
        if start is None or end is None:
            logger.debug(
                f"Metro: could not find '{segment.boarding_station}' or "
                f"'{segment.alighting_station}' on line {line.id}"
            )
            return None

        if start > end:
            return stations[0]
        if start < end:
            return stations[-1]

        logger.debug("Metro: boarding and alighting at the same station, direction unknown")
        return None

    @staticmethod
    def _bus_terminus(segment: Segment, line: Line) -> Optional[str]:
        if not segment.stations:
            return None

        for direction, stations in line.stations_by_direction.items():
            if _index_of(stations, segment.alighting_station) is not None:
                return direction

        logger.debug(f"Bus: '{segment.alighting_station}' not found in any direction of line {line.id}")
        return None
