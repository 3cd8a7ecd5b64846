"""Data models for the live journey reconciliation engine."""

import math
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SegmentKind(str, Enum):
    """Travel mode of a journey segment."""
    WALK = "walk"
    BUS = "bus"
    METRO = "metro"

    @classmethod
    def parse(cls, value: Any) -> "SegmentKind":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown segment type {value!r}") from None


class ArrivalStatus(str, Enum):
    """Live status shown for a transit segment."""
    CHECKING = "checking"
    LIVE = "live"
    NORMAL = "normal"
    HIDDEN = "hidden"


@dataclass
class Segment:
    """One leg of a journey plan."""
    kind: SegmentKind
    line: Optional[str] = None  # Planner line identifier, absent for walks
    stations: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    distance_meters: float = 0.0

    # Runtime annotations, written only by the reconciler
    wait_minutes: Optional[int] = None
    status: Optional[ArrivalStatus] = None
    refined_terminus: Optional[str] = None
    next_arrival_minutes: Optional[int] = None
    upcoming_arrivals: List[int] = field(default_factory=list)

    @property
    def is_walking(self) -> bool:
        return self.kind is SegmentKind.WALK

    @property
    def is_metro(self) -> bool:
        return self.kind is SegmentKind.METRO

    @property
    def is_bus(self) -> bool:
        return self.kind is SegmentKind.BUS

    @property
    def is_transit(self) -> bool:
        return self.kind in (SegmentKind.BUS, SegmentKind.METRO)

    @property
    def boarding_station(self) -> Optional[str]:
        return self.stations[0] if self.stations else None

    @property
    def alighting_station(self) -> Optional[str]:
        return self.stations[-1] if self.stations else None

    @property
    def duration_minutes(self) -> float:
        return self.duration_seconds / 60.0

    def without_live_data(self) -> "Segment":
        """Return a copy of the planned segment with every annotation cleared."""
        return replace(
            self,
            stations=list(self.stations),
            wait_minutes=None,
            status=None,
            refined_terminus=None,
            next_arrival_minutes=None,
            upcoming_arrivals=[],
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Segment":
        """Build a planned segment from the route planner's JSON."""
        kind = SegmentKind.parse(data.get("type"))
        line = data.get("line")
        stations = data.get("stations") or []
        if not isinstance(stations, list):
            raise ValueError(f"Segment stations must be a list, got {type(stations).__name__}")

        duration = float(data.get("duration") or 0.0)
        distance = float(data.get("distance") or 0.0)
        if duration < 0 or distance < 0:
            raise ValueError("Segment duration and distance must be non-negative")

        return cls(
            kind=kind,
            line=str(line) if line is not None and kind is not SegmentKind.WALK else None,
            stations=[str(s) for s in stations],
            duration_seconds=duration,
            distance_meters=distance,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "type": self.kind.value,
            "line": self.line,
            "stations": list(self.stations),
            "duration": self.duration_seconds,
            "distance": self.distance_meters,
            "wait_minutes": self.wait_minutes,
            "arrival_status": self.status.value if self.status else None,
            "refined_terminus": self.refined_terminus,
            "next_arrival_minutes": self.next_arrival_minutes,
            "upcoming_arrivals": list(self.upcoming_arrivals),
        }


@dataclass
class Plan:
    """An ordered journey plan as produced by the route planner."""
    segments: List[Segment]
    total_seconds: float  # Planned (or reconciled) total duration

    @property
    def total_minutes(self) -> int:
        return int(math.ceil(self.total_seconds / 60.0))

    @property
    def transit_lines(self) -> List[str]:
        """Line identifiers of the transit segments, in travel order."""
        return [s.line for s in self.segments if s.is_transit and s.line]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        segments = [Segment.from_dict(item) for item in data.get("segments") or []]
        total = data.get("total_time")
        if total is None:
            total = sum(s.duration_seconds for s in segments)
        return cls(segments=segments, total_seconds=float(total))

    @classmethod
    def from_planner_response(cls, data: Dict[str, Any]) -> "Plan":
        """Decode the planner's ``{"routes": [...]}`` wrapper, keeping the first route."""
        routes = data.get("routes") or []
        if not routes:
            raise ValueError("A route could not be found between these locations.")
        return cls.from_dict(routes[0])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segments": [s.to_dict() for s in self.segments],
            "total_time": self.total_seconds,
        }


@dataclass
class LiveArrival:
    """A real-time vehicle arrival at a station."""
    line: str
    destination: str
    minutes_until: int  # Never negative


@dataclass
class ArrivalResponse:
    """Arrivals returned for one station."""
    station_name: str
    arrivals: List[LiveArrival]


@dataclass
class StationMatch:
    """A provider station identifier returned by the name lookup."""
    full_station_name: str
    station_id: str
    type: str


@dataclass
class RawArrival:
    """A departure record from the fallback provider."""
    number: str  # Line number
    name: str
    destination: str
    actual_departure_time_planned: str  # ISO-8601
    departure_time_planned: str  # ISO-8601


@dataclass
class Line:
    """A transit line with its stations grouped by direction."""
    id: str
    type: str  # "metro" or "bus"
    name: Optional[str] = None
    stations_by_direction: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def is_metro(self) -> bool:
        return self.type == "metro"

    @property
    def route_summary(self) -> str:
        if self.is_metro:
            stations = self.stations_by_direction.get("main", [])
            if not stations:
                return ""
            return f"{stations[0]} - {stations[-1]}"
        return " - ".join(sorted(self.stations_by_direction))


_ALERT_LINE_PREFIX = re.compile(r"^\[(\d+)\]\s*")


@dataclass
class LineAlert:
    """A published service alert."""
    id: str
    title: str
    message: str
    created_at: str

    @property
    def affected_line_number(self) -> Optional[str]:
        """Line number from a ``[150]`` style title prefix, None for general alerts."""
        match = _ALERT_LINE_PREFIX.match(self.title)
        return match.group(1) if match else None

    @property
    def display_title(self) -> str:
        return _ALERT_LINE_PREFIX.sub("", self.title, count=1)

    @property
    def is_general(self) -> bool:
        return self.affected_line_number is None


@dataclass
class ReconciliationResult:
    """Reconciled plan and its new total duration."""
    plan: Plan
    new_total_minutes: int


@dataclass
class JourneyUpdate:
    """Complete live data for a journey."""
    plan: Plan
    new_total_minutes: int
    alerts: List[LineAlert]
    last_updated: datetime
