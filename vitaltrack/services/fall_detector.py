"""
Fall detection over per-resident accelerometer streams.

A fall is an impact (magnitude spike) followed by prolonged stillness.
Each resident has a small state machine:

    IDLE --impact--> IMPACT_PENDING --still long enough--> fall event, IDLE
                          |--movement soon after impact--> IDLE
                          |--pending too long-----------> IDLE

Callers must feed one resident's readings in order and never concurrently;
the ingest coordinator guarantees this with a per-resident lock.
"""

import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

import structlog
from cachetools import TTLCache

from vitaltrack.config import FallDetectionConfig
from vitaltrack.domain.models import AccelerometerReading, FallEvent

logger = structlog.get_logger(__name__)


class FallPhase(str, Enum):
    IDLE = "idle"
    IMPACT_PENDING = "impact_pending"


@dataclass
class FallDetectionState:
    """Mutable detection state for one resident. Never persisted."""

    resident_id: str
    impact_detected: bool = False
    impact_time: int | None = None
    impact_magnitude: float | None = None
    inactivity_start_time: int | None = None
    recent_buffer: deque[tuple[float, int]] = field(default_factory=deque)

    @property
    def phase(self) -> FallPhase:
        return FallPhase.IMPACT_PENDING if self.impact_detected else FallPhase.IDLE

    def record(self, magnitude: float, now_ms: int, window_ms: int) -> None:
        """Append to the rolling buffer and drop entries older than the window."""
        self.recent_buffer.append((magnitude, now_ms))
        cutoff = now_ms - window_ms
        while self.recent_buffer and self.recent_buffer[0][1] <= cutoff:
            self.recent_buffer.popleft()

    def begin_impact(self, magnitude: float, now_ms: int) -> None:
        self.impact_detected = True
        self.impact_time = now_ms
        self.impact_magnitude = magnitude
        self.inactivity_start_time = None

    def reset(self) -> None:
        self.impact_detected = False
        self.impact_time = None
        self.impact_magnitude = None
        self.inactivity_start_time = None


class _StateCache(TTLCache):
    """TTLCache that reports capacity evictions; those can drop a pending impact."""

    def popitem(self) -> tuple[str, FallDetectionState]:
        resident_id, state = super().popitem()
        logger.warning(
            "fall_state_capacity_evicted",
            resident_id=resident_id,
            impact_pending=state.impact_detected,
            maxsize=self.maxsize,
        )
        return resident_id, state


class FallStateStore:
    """
    Per-resident fall state with an idle TTL.

    Entries are created on first use and refreshed on every reading, so a
    resident whose wearable goes quiet for longer than the TTL loses their
    (necessarily stale) state instead of holding memory forever.
    Beyond ``maxsize`` residents the least recently used entry is dropped
    and logged.
    """

    def __init__(
        self,
        idle_ttl_seconds: float = 24 * 60 * 60,
        maxsize: int = 10_000,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._states: TTLCache[str, FallDetectionState] = _StateCache(
            maxsize=maxsize, ttl=idle_ttl_seconds, timer=timer
        )

    def get_or_create(self, resident_id: str) -> FallDetectionState:
        state = self._states.get(resident_id)
        if state is None:
            state = FallDetectionState(resident_id=resident_id)
        # Re-inserting refreshes the entry's expiry
        self._states[resident_id] = state
        return state

    def get(self, resident_id: str) -> FallDetectionState | None:
        return self._states.get(resident_id)

    def evict(self, resident_id: str) -> bool:
        """Drop a resident's state, e.g. when the resident is deactivated."""
        return self._states.pop(resident_id, None) is not None

    def expire(self) -> int:
        """Remove idle entries now and return how many were dropped."""
        return len(self._states.expire())

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, resident_id: object) -> bool:
        return resident_id in self._states


class FallDetector:
    """Runs the fall state machine for every resident through a shared store."""

    def __init__(
        self, config: FallDetectionConfig | None = None, store: FallStateStore | None = None
    ) -> None:
        self.config = config or FallDetectionConfig()
        if store is None:
            store = FallStateStore(
                idle_ttl_seconds=self.config.state_idle_ttl_seconds,
                maxsize=self.config.state_max_entries,
            )
        self.store = store
        self.logger = logger.bind(component="fall_detector")

    def process(
        self,
        resident_id: str,
        reading: AccelerometerReading,
        now_ms: int,
        location: str | None = None,
    ) -> FallEvent | None:
        """
        Feed one reading for a resident.

        Args:
            resident_id: Resident the wearable belongs to
            reading: Accelerometer frame in g
            now_ms: Evaluation time in epoch milliseconds
            location: Last known location, copied onto a fall event

        Returns:
            A FallEvent when this reading confirms a fall, otherwise None.
        """
        if not reading.is_complete:
            self.logger.debug("incomplete_accelerometer_reading", resident_id=resident_id)
            return None

        cfg = self.config
        magnitude = reading.magnitude
        state = self.store.get_or_create(resident_id)
        state.record(magnitude, now_ms, cfg.buffer_window_ms)

        if not state.impact_detected:
            if magnitude > cfg.impact_threshold_g:
                state.begin_impact(magnitude, now_ms)
                self.logger.warning(
                    "fall_impact_detected",
                    resident_id=resident_id,
                    magnitude=round(magnitude, 3),
                    threshold=cfg.impact_threshold_g,
                )
            return None

        impact_time = state.impact_time
        if impact_time is None:
            # Pending without an impact timestamp cannot be timed; start over
            state.reset()
            return None

        event: FallEvent | None = None

        if magnitude < cfg.inactivity_threshold_g:
            if state.inactivity_start_time is None:
                state.inactivity_start_time = now_ms

            inactive_for = now_ms - state.inactivity_start_time
            if inactive_for >= cfg.inactivity_duration_ms:
                event = FallEvent(
                    resident_id=resident_id,
                    impact_magnitude=state.impact_magnitude or magnitude,
                    impact_time=impact_time,
                    inactivity_duration_ms=inactive_for,
                    detected_at=now_ms,
                    location=location or "Unknown",
                )
                state.reset()
                self.logger.warning(
                    "fall_confirmed",
                    resident_id=resident_id,
                    impact_magnitude=round(event.impact_magnitude, 3),
                    inactivity_duration_ms=inactive_for,
                )
        else:
            state.inactivity_start_time = None
            if now_ms - impact_time < cfg.false_positive_window_ms:
                state.reset()
                self.logger.info(
                    "fall_impact_dismissed",
                    resident_id=resident_id,
                    reason="movement_resumed",
                )

        if state.impact_detected and now_ms - impact_time > cfg.pending_timeout_ms:
            state.reset()
            self.logger.info(
                "fall_impact_dismissed",
                resident_id=resident_id,
                reason="pending_timeout",
            )

        return event

    def forget(self, resident_id: str) -> bool:
        """Evict a resident's state (deactivation, transfer, discharge)."""
        evicted = self.store.evict(resident_id)
        if evicted:
            self.logger.info("fall_state_evicted", resident_id=resident_id)
        return evicted
