"""
Structured telemetry for the rate limiter and source fetches.

This module provides structured logging capabilities for understanding:
- Request volume per poller and source
- Throttling events imposed by the shared rate limiter
- Fetch outcomes (success, rejected status, transport fault)
- Per-attempt latency
"""
import json
import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_EVENTS = 1000


class TelemetryLevel(Enum):
    """Telemetry verbosity levels."""
    INFO = "info"
    DEBUG = "debug"


class TelemetryDecision(Enum):
    """Event types recorded by the poller."""
    ALLOW = "allow"                  # Request passed the rate limiter immediately
    THROTTLE = "throttle"            # Request waited for the sliding window
    FETCH_SUCCESS = "fetch_success"  # Fetch produced a success result
    FETCH_ERROR = "fetch_error"      # Fetch produced an error result
    FETCH_FAULT = "fetch_fault"      # Fetch raised and the poller synthesized an error


@dataclass
class TelemetryEvent:
    """
    A single telemetry event capturing rate limiter or fetch activity.

    Attributes:
        timestamp: ISO 8601 timestamp of event
        poller: Name of the poller that emitted the event
        source_id: Source the event relates to ("" for limiter-wide events)
        endpoint: URL being accessed
        status: HTTP status code (None if no response was received)
        elapsed_ms: Attempt duration in milliseconds
        decision: Event type (allow, throttle, fetch_success, ...)
        sleep_s: Time slept due to rate limiting
        iteration: Source iteration the attempt belongs to
        error: Error message for failed attempts
    """
    timestamp: str
    poller: str
    source_id: str
    endpoint: str
    status: Optional[int]
    elapsed_ms: float
    decision: str
    sleep_s: float = 0.0
    iteration: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for logging."""
        return {k: v for k, v in asdict(self).items() if v is not None or k == "status"}

    def to_json(self) -> str:
        """Convert event to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def to_keyvalue(self) -> str:
        """Convert event to key=value format."""
        return " ".join(f"{key}={value}" for key, value in self.to_dict().items())


@dataclass
class TelemetryStats:
    """
    Aggregated statistics for telemetry analysis.

    Useful for tests and runtime monitoring.
    """
    total_events: int = 0
    total_sleeps: int = 0
    total_sleep_time: float = 0.0
    total_elapsed_time: float = 0.0
    decisions_by_type: Dict[str, int] = field(default_factory=dict)
    status_codes: Dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        fetches = sum(
            self.decisions_by_type.get(decision.value, 0)
            for decision in (
                TelemetryDecision.FETCH_SUCCESS,
                TelemetryDecision.FETCH_ERROR,
                TelemetryDecision.FETCH_FAULT,
            )
        )
        avg_latency = self.total_elapsed_time / fetches if fetches > 0 else 0.0

        return {
            "total_events": self.total_events,
            "total_sleeps": self.total_sleeps,
            "total_sleep_time": self.total_sleep_time,
            "avg_latency_ms": round(avg_latency, 2),
            "decisions_by_type": self.decisions_by_type,
            "status_codes": self.status_codes,
        }


class TelemetryRecorder:
    """
    Records and emits structured telemetry for poller operations.

    Features:
    - Structured logging in JSON or key=value format
    - Configurable verbosity (info/debug)
    - Optional in-memory statistics and bounded event history
    - Thread-safe operation
    """

    def __init__(
        self,
        level: TelemetryLevel = TelemetryLevel.INFO,
        format_json: bool = True,
        collect_stats: bool = False,
        max_events: Optional[int] = DEFAULT_MAX_EVENTS,
    ):
        """
        Initialize telemetry recorder.

        Args:
            level: Logging verbosity level
            format_json: If True, log as JSON; otherwise use key=value
            collect_stats: If True, collect in-memory statistics and keep
                recent events for get_events()
            max_events: Number of most recent events kept for get_events();
                None keeps everything
        """
        self.level = level
        self.format_json = format_json
        self.collect_stats = collect_stats

        self._stats = TelemetryStats()
        self._stats_lock = threading.Lock()

        # Event history (for testing)
        self._events: Deque[TelemetryEvent] = deque(maxlen=max_events)
        self._events_lock = threading.Lock()

    def record(self, event: TelemetryEvent) -> None:
        """
        Record a telemetry event.

        Args:
            event: Event to record
        """
        if self.format_json:
            log_message = f"telemetry {event.to_json()}"
        else:
            log_message = f"telemetry {event.to_keyvalue()}"

        if self.level == TelemetryLevel.DEBUG:
            logger.debug(log_message)
        elif event.decision in (
            TelemetryDecision.THROTTLE.value,
            TelemetryDecision.FETCH_ERROR.value,
            TelemetryDecision.FETCH_FAULT.value,
        ):
            # Only throttling and failures are worth INFO
            logger.info(log_message)
        else:
            logger.debug(log_message)

        if self.collect_stats:
            with self._stats_lock:
                self._stats.total_events += 1
                self._stats.total_elapsed_time += event.elapsed_ms

                if event.sleep_s > 0:
                    self._stats.total_sleeps += 1
                    self._stats.total_sleep_time += event.sleep_s

                decision_key = event.decision
                self._stats.decisions_by_type[decision_key] = (
                    self._stats.decisions_by_type.get(decision_key, 0) + 1
                )

                if event.status:
                    self._stats.status_codes[event.status] = (
                        self._stats.status_codes.get(event.status, 0) + 1
                    )

            with self._events_lock:
                self._events.append(event)

    def get_stats(self) -> TelemetryStats:
        """Get current statistics snapshot."""
        with self._stats_lock:
            return TelemetryStats(
                total_events=self._stats.total_events,
                total_sleeps=self._stats.total_sleeps,
                total_sleep_time=self._stats.total_sleep_time,
                total_elapsed_time=self._stats.total_elapsed_time,
                decisions_by_type=self._stats.decisions_by_type.copy(),
                status_codes=self._stats.status_codes.copy(),
            )

    def reset_stats(self) -> None:
        """Reset statistics."""
        with self._stats_lock:
            self._stats = TelemetryStats()

    def get_events(self) -> List[TelemetryEvent]:
        """Get all recorded events (for testing)."""
        with self._events_lock:
            return list(self._events)

    def clear_events(self) -> None:
        """Clear event history."""
        with self._events_lock:
            self._events.clear()


_global_recorder: Optional[TelemetryRecorder] = None
_recorder_lock = threading.Lock()


def get_recorder() -> TelemetryRecorder:
    """
    Get the global telemetry recorder instance.

    Creates a default recorder if none exists.
    """
    global _global_recorder

    if _global_recorder is None:
        with _recorder_lock:
            if _global_recorder is None:
                _global_recorder = TelemetryRecorder()

    return _global_recorder


def set_recorder(recorder: TelemetryRecorder) -> None:
    """
    Set the global telemetry recorder instance.

    Args:
        recorder: Recorder instance to use globally
    """
    global _global_recorder

    with _recorder_lock:
        _global_recorder = recorder


def create_event(
    decision: TelemetryDecision,
    endpoint: str = "",
    poller: str = "",
    source_id: str = "",
    status: Optional[int] = None,
    elapsed_ms: float = 0.0,
    sleep_s: float = 0.0,
    iteration: int = 0,
    error: Optional[str] = None,
) -> TelemetryEvent:
    """
    Helper to create a telemetry event with current timestamp.

    Args:
        decision: Event type
        endpoint: URL being accessed
        poller: Poller name
        source_id: Source identifier
        status: HTTP status code
        elapsed_ms: Attempt duration in milliseconds
        sleep_s: Time slept due to rate limiting
        iteration: Source iteration number
        error: Error message, if any

    Returns:
        TelemetryEvent ready for recording
    """
    return TelemetryEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        poller=poller,
        source_id=source_id,
        endpoint=endpoint,
        status=status,
        elapsed_ms=elapsed_ms,
        decision=decision.value,
        sleep_s=sleep_s,
        iteration=iteration,
        error=error,
    )
