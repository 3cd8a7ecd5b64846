"""livejourney - Keep planned transit journeys in step with live arrival feeds."""

__version__ = "0.1.0"

from .models import (
    ArrivalResponse,
    ArrivalStatus,
    JourneyUpdate,
    Line,
    LineAlert,
    LiveArrival,
    Plan,
    ReconciliationResult,
    Segment,
    SegmentKind,
)
from .errors import (
    AcquisitionError,
    DecodingError,
    InvalidDateFormatError,
    InvalidURLError,
    NetworkError,
    NoStationIdFoundError,
    OperationCancelledError,
)
from .config import ServiceConfig
from .cancellation import CancellationToken
from .normalize import canonical_line, normalize_label
from .arrival_client import LiveArrivalClient
from .line_directory import LineDirectory
from .terminus import TerminusResolver
from .alerts import LineAlertClient
from .journey import JourneyReconciler, find_candidate

__all__ = [
    "JourneyReconciler",
    "LiveArrivalClient",
    "LineDirectory",
    "TerminusResolver",
    "LineAlertClient",
    "ServiceConfig",
    "CancellationToken",
    "canonical_line",
    "normalize_label",
    "find_candidate",
    "Plan",
    "Segment",
    "SegmentKind",
    "ArrivalStatus",
    "LiveArrival",
    "ArrivalResponse",
    "Line",
    "LineAlert",
    "ReconciliationResult",
    "JourneyUpdate",
    "AcquisitionError",
    "InvalidURLError",
    "NoStationIdFoundError",
    "InvalidDateFormatError",
    "DecodingError",
    "NetworkError",
    "OperationCancelledError",
]
