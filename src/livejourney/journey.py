"""Reconcile a planned journey against live arrival feeds."""

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from .alerts import LineAlertClient
from .arrival_client import LiveArrivalClient
from .cancellation import CancellationToken, ensure_token
from .config import ServiceConfig, check_language
from .errors import AcquisitionError, OperationCancelledError
from .models import (
    ArrivalStatus,
    JourneyUpdate,
    LiveArrival,
    Plan,
    ReconciliationResult,
    Segment,
)
from .normalize import canonical_line, labels_match, normalize_label
from .terminus import TerminusResolver

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, Segment], None]


def _ceil_minutes(seconds: float) -> int:
    # Drop float noise from fractional-second durations before rounding up
    return int(math.ceil(round(seconds / 60.0, 6)))


def _matching_target(segment: Segment, terminus: Optional[str]) -> Optional[str]:
    if terminus and normalize_label(terminus):
        return terminus
    return segment.alighting_station


def _matching_arrivals(arrivals: Sequence[LiveArrival], segment: Segment, terminus: Optional[str]) -> List[LiveArrival]:
    """Arrivals on the segment's line heading towards its terminus."""
    line_key = canonical_line(segment.line)
    if line_key is None:
        return []

    target = _matching_target(segment, terminus)
    return [
        a for a in arrivals
        if canonical_line(a.line) == line_key and labels_match(a.destination, target)
    ]


def find_candidate(
    arrivals: Sequence[LiveArrival],
    segment: Segment,
    cumulative_travel_minutes: float,
    terminus: Optional[str] = None,
) -> Optional[LiveArrival]:
    """
    Pick the arrival the rider would board for a segment.

    Args:
        arrivals: Live arrivals at the boarding station.
        segment: The transit segment being matched.
        cumulative_travel_minutes: Travel time before reaching the boarding station.
        terminus: Resolved terminus; the alighting station is used when missing.

    Returns:
        The earliest reachable arrival on the same line towards the same
        terminus, or None.
    """
    # Tolerate float noise in travel times summed by callers
    earliest = round(cumulative_travel_minutes, 6)
    reachable = [
        a for a in _matching_arrivals(arrivals, segment, terminus)
        if a.minutes_until >= earliest
    ]
    if not reachable:
        return None
    return min(reachable, key=lambda a: a.minutes_until)


def upcoming_arrivals(
    arrivals: Sequence[LiveArrival],
    segment: Segment,
    current: LiveArrival,
    terminus: Optional[str] = None,
    limit: int = 3,
) -> List[int]:
    """Minutes until the next matching departures after ``current``, ascending and distinct."""
    later = {
        a.minutes_until for a in _matching_arrivals(arrivals, segment, terminus)
        if a.minutes_until > current.minutes_until
    }
    return sorted(later)[:limit]


@dataclass(frozen=True)
class JourneyProgress:
    """
    Accumulator threaded through the segments of one reconciliation pass.

    Kept in seconds: planner durations are whole seconds and live arrivals
    whole minutes, so sums and budget comparisons stay exact.
    """
    cumulative_travel_seconds: float = 0.0  # Walking and riding, no waits
    total_journey_seconds: float = 0.0  # Travel plus waits
    connection_missed: bool = False  # Latches once a connection is unreachable

    @property
    def cumulative_travel_minutes(self) -> float:
        return self.cumulative_travel_seconds / 60.0

    def travel(self, seconds: float, wait_seconds: float = 0.0) -> "JourneyProgress":
        return replace(
            self,
            cumulative_travel_seconds=self.cumulative_travel_seconds + seconds,
            total_journey_seconds=self.total_journey_seconds + wait_seconds + seconds,
        )

    def missed(self) -> "JourneyProgress":
        return replace(self, connection_missed=True)


class JourneyReconciler:
    """
    Updates a journey plan with live arrival data.

    Segments are processed in order. Each transit leg is matched against the
    live arrivals at its boarding station, taking into account the time the
    rider needs to get there. Once a connection turns out to be unreachable,
    every later transit leg falls back to its planned timing.
    """

    def __init__(
        self,
        arrival_client: Optional[LiveArrivalClient] = None,
        terminus_resolver: Optional[TerminusResolver] = None,
        alert_client: Optional[LineAlertClient] = None,
        config: Optional[ServiceConfig] = None,
    ):
        """
        Initialize the reconciler.

        Args:
            arrival_client: Live arrival source; built from ``config`` if omitted.
            terminus_resolver: Any object with ``resolve_terminus(segment, language, cancel_token)``.
            alert_client: Alert source used by get_journey_update().
            config: Wait budget and live threshold.
        """
        self.config = config or ServiceConfig()
        self.arrival_client = arrival_client or LiveArrivalClient(self.config)
        self.terminus_resolver = terminus_resolver or TerminusResolver()
        self.alert_client = alert_client or LineAlertClient(self.config)

    def reconcile(
        self,
        plan: Plan,
        language: str = "en",
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ReconciliationResult:
        """
        Produce an updated plan with live waits and a new total duration.

        The input plan is not modified. Every pass starts from the planned
        segments, so repeated calls with the same feed data give equal results.

        Args:
            plan: Plan from the route planner.
            language: "en" or "ar", forwarded to every live data call.
            cancel_token: Cancels the pass; nothing is returned in that case.
            on_progress: Called with (index, segment) when a segment starts
                checking and when its final state is known.

        Returns:
            ReconciliationResult with the annotated plan and total minutes.

        Raises:
            OperationCancelledError: If the token is cancelled mid-pass.
            ValueError: If the language is not supported.
        """
        language = check_language(language)
        token = ensure_token(cancel_token)
        progress = JourneyProgress()
        segments: List[Segment] = []

        for index, planned in enumerate(plan.segments):
            token.raise_if_cancelled()
            segment, progress = self._reconcile_segment(
                index, planned.without_live_data(), progress, language, token, on_progress
            )
            segments.append(segment)
            if on_progress is not None:
                on_progress(index, segment)

        total = progress.total_journey_seconds
        logger.debug(f"Reconciled {len(segments)} segments, total {total / 60.0:.1f} min")
        return ReconciliationResult(
            plan=Plan(segments=segments, total_seconds=total),
            new_total_minutes=_ceil_minutes(total),
        )

    def _reconcile_segment(
        self,
        index: int,
        segment: Segment,
        progress: JourneyProgress,
        language: str,
        token: CancellationToken,
        on_progress: Optional[ProgressCallback],
    ) -> Tuple[Segment, JourneyProgress]:
        ride = segment.duration_seconds

        if not segment.is_transit:
            return segment, progress.travel(ride)

        hidden = replace(segment, status=ArrivalStatus.HIDDEN)

        # Downstream of a missed connection the itinerary no longer holds
        if progress.connection_missed:
            return hidden, progress.travel(ride)

        station = segment.boarding_station
        if not station:
            return hidden, progress.travel(ride)

        if on_progress is not None:
            on_progress(index, replace(segment, status=ArrivalStatus.CHECKING))

        terminus = self._resolve_terminus(segment, language, token)

        try:
            response = self.arrival_client.fetch_arrivals(station, segment.kind, language, token)
        except AcquisitionError as e:
            logger.warning(f"Error fetching live data for {station}: {e}")
            return hidden, progress.travel(ride)

        candidate = find_candidate(response.arrivals, segment, progress.cumulative_travel_minutes, terminus)
        if candidate is None:
            logger.info(f"No reachable arrival for line {segment.line} at {station}; connection missed")
            return hidden, progress.missed().travel(ride)

        wait = candidate.minutes_until * 60 - progress.cumulative_travel_seconds
        if wait > self.config.max_wait_minutes * 60:
            logger.info(
                f"Line {segment.line} at {station}: wait {wait / 60.0:.1f} min exceeds "
                f"{self.config.max_wait_minutes} min; connection missed"
            )
            return hidden, progress.missed().travel(ride)

        if candidate.minutes_until < self.config.live_threshold_minutes:
            status = ArrivalStatus.LIVE
        else:
            status = ArrivalStatus.NORMAL

        annotated = replace(
            segment,
            status=status,
            wait_minutes=_ceil_minutes(wait),
            next_arrival_minutes=candidate.minutes_until,
            refined_terminus=candidate.destination,
            upcoming_arrivals=upcoming_arrivals(
                response.arrivals, segment, candidate, terminus, self.config.max_upcoming_arrivals
            ),
        )
        return annotated, progress.travel(ride, wait_seconds=wait)

    def _resolve_terminus(self, segment: Segment, language: str, token: CancellationToken) -> Optional[str]:
        try:
            return self.terminus_resolver.resolve_terminus(segment, language, token)
        except OperationCancelledError:
            raise
        except Exception as e:
            logger.warning(f"Terminus resolution failed for line {segment.line}: {e}")
            return None

    def get_journey_update(
        self,
        plan: Plan,
        language: str = "en",
        cancel_token: Optional[CancellationToken] = None,
    ) -> JourneyUpdate:
        """
        Reconcile a plan and collect the alerts for the lines it uses.

        Args:
            plan: Plan from the route planner.
            language: "en" or "ar".
            cancel_token: Cancels the reconciliation.

        Returns:
            JourneyUpdate with the reconciled plan, new total, alerts and timestamp.
        """
        result = self.reconcile(plan, language, cancel_token)

        try:
            alerts = self.alert_client.alerts_for_plan(plan, language)
        except AcquisitionError as e:
            logger.warning(f"Failed to fetch alerts: {e}")
            alerts = []

        return JourneyUpdate(
            plan=result.plan,
            new_total_minutes=result.new_total_minutes,
            alerts=alerts,
            last_updated=datetime.now(),
        )
