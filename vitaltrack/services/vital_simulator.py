"""
Synthetic wearable data for local runs and demos.

Vitals follow a bounded random walk from each resident's previous value, so
readings drift realistically and occasionally leave the normal band.
Accelerometer frames show ordinary movement, with rare scripted falls: one
impact frame followed by stillness long enough to confirm a fall.
"""

import asyncio
import random
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from vitaltrack.domain.models import AccelerometerReading, VitalSample
from vitaltrack.services.ingest_coordinator import VitalIngestCoordinator

logger = structlog.get_logger(__name__)

LOCATIONS = ("Room", "Dining Hall", "Garden", "Common Area", "Therapy Room")


@dataclass(frozen=True)
class VitalRange:
    low: float
    high: float
    floor: float
    ceiling: float


# Typical resting ranges; the walk may overshoot each band by a few units
VITAL_RANGES: dict[str, VitalRange] = {
    "heart_rate": VitalRange(low=55, high=100, floor=35, ceiling=180),
    "spo2": VitalRange(low=94, high=99, floor=80, ceiling=100),
    "respiration_rate": VitalRange(low=12, high=20, floor=6, ceiling=40),
    "stress_level": VitalRange(low=10, high=60, floor=0, ceiling=100),
}

WALK_VARIANCE = 0.1  # fraction of the band width per step
OVERSHOOT = 5


def next_value(rng: random.Random, vital_range: VitalRange, previous: float | None) -> float:
    """One random-walk step, clamped to the band plus overshoot."""
    if previous is None:
        return round(rng.uniform(vital_range.low, vital_range.high), 1)

    variance = (vital_range.high - vital_range.low) * WALK_VARIANCE
    value = previous + (rng.random() - 0.5) * variance * 2
    value = min(vital_range.high + OVERSHOOT, max(vital_range.low - OVERSHOOT, value))
    value = min(vital_range.ceiling, max(vital_range.floor, value))
    return round(value, 1)


@dataclass
class _ResidentTrack:
    previous: dict[str, float] = field(default_factory=dict)
    location: str = "Room"
    fall_started_ms: int | None = None


class SyntheticVitalSource:
    """
    Produces one sample per resident per tick.

    Args:
        resident_ids: Residents to simulate
        fall_probability: Chance per resident per tick that a fall begins
        fall_stillness_ms: How long the wearer stays still after a fall;
            run_simulation lengthens it to suit its tick interval
        include_accelerometer: Attach accelerometer frames to samples
        rng: Random source (seed it for reproducible runs)
    """

    def __init__(
        self,
        resident_ids: Iterable[str] = (),
        *,
        fall_probability: float = 0.002,
        fall_stillness_ms: int = 15_000,
        include_accelerometer: bool = True,
        rng: random.Random | None = None,
    ) -> None:
        if not 0.0 <= fall_probability <= 1.0:
            raise ValueError("fall_probability must be between 0 and 1")
        self.fall_probability = fall_probability
        self.fall_stillness_ms = fall_stillness_ms
        self.include_accelerometer = include_accelerometer
        self.rng = rng or random.Random()
        self._tracks: dict[str, _ResidentTrack] = {}
        self._pending_falls: set[str] = set()
        for resident_id in resident_ids:
            self.add_resident(resident_id)

    @property
    def resident_ids(self) -> list[str]:
        return list(self._tracks)

    def add_resident(self, resident_id: str) -> None:
        self._tracks.setdefault(resident_id, _ResidentTrack(location=self.rng.choice(LOCATIONS)))

    def remove_resident(self, resident_id: str) -> None:
        self._tracks.pop(resident_id, None)
        self._pending_falls.discard(resident_id)

    def trigger_fall(self, resident_id: str) -> None:
        """Force a fall to begin on the resident's next sample."""
        if resident_id not in self._tracks:
            raise KeyError(resident_id)
        self._pending_falls.add(resident_id)

    def cover_fall_confirmation(
        self, inactivity_duration_ms: int, interval_seconds: float
    ) -> None:
        """
        Stretch simulated stillness so a fall can be confirmed at this tick rate.

        The first still sample arrives one tick after the impact and the
        inactivity timer needs ``inactivity_duration_ms`` more, so stillness
        must outlast both plus one tick of slack.
        """
        required = inactivity_duration_ms + 2 * int(interval_seconds * 1000)
        if self.fall_stillness_ms < required:
            logger.debug(
                "simulated_stillness_extended",
                previous_ms=self.fall_stillness_ms,
                stillness_ms=required,
            )
            self.fall_stillness_ms = required

    def next_sample(self, resident_id: str, now: datetime | None = None) -> VitalSample:
        now = now or datetime.now(UTC)
        track = self._tracks[resident_id]

        values = {
            name: next_value(self.rng, vital_range, track.previous.get(name))
            for name, vital_range in VITAL_RANGES.items()
        }
        track.previous.update(values)

        if self.rng.random() < 0.1:
            track.location = self.rng.choice(LOCATIONS)

        return VitalSample(
            resident_id=resident_id,
            timestamp=now,
            heart_rate=round(values["heart_rate"]),
            spo2=round(values["spo2"]),
            respiration_rate=round(values["respiration_rate"]),
            stress_level=round(values["stress_level"]),
            accelerometer=self._accelerometer(resident_id, track, now)
            if self.include_accelerometer
            else None,
            location=track.location,
        )

    def next_batch(self, now: datetime | None = None) -> list[VitalSample]:
        """One tick for every resident, all stamped with the same time."""
        now = now or datetime.now(UTC)
        return [self.next_sample(resident_id, now) for resident_id in self._tracks]

    def _accelerometer(
        self, resident_id: str, track: _ResidentTrack, now: datetime
    ) -> AccelerometerReading:
        now_ms = int(now.timestamp() * 1000)

        if track.fall_started_ms is not None:
            if now_ms - track.fall_started_ms <= self.fall_stillness_ms:
                return AccelerometerReading(
                    x=self.rng.uniform(-0.05, 0.05),
                    y=self.rng.uniform(-0.05, 0.05),
                    z=self.rng.uniform(0.1, 0.2),
                    timestamp=now_ms,
                )
            track.fall_started_ms = None

        starts_fall = resident_id in self._pending_falls or (
            self.rng.random() < self.fall_probability
        )
        if starts_fall:
            self._pending_falls.discard(resident_id)
            track.fall_started_ms = now_ms
            logger.info("simulated_fall_started", resident_id=resident_id)
            return AccelerometerReading(
                x=self.rng.uniform(2.0, 2.4),
                y=self.rng.uniform(1.6, 2.0),
                z=self.rng.uniform(0.9, 1.4),
                timestamp=now_ms,
            )

        # Ordinary movement hovers around 1 g
        return AccelerometerReading(
            x=self.rng.gauss(0.0, 0.1),
            y=self.rng.gauss(0.0, 0.1),
            z=self.rng.gauss(1.0, 0.1),
            timestamp=now_ms,
        )


@dataclass
class SimulationStats:
    cycles: int = 0
    samples: int = 0
    failures: int = 0
    alerts_created: int = 0
    alerts_suppressed: int = 0
    falls_detected: int = 0
    notifications_sent: int = 0


async def run_simulation(
    coordinator: VitalIngestCoordinator,
    source: SyntheticVitalSource,
    interval_seconds: float = 30.0,
    cycles: int | None = None,
    clock: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> SimulationStats:
    """
    Feed synthetic batches through the coordinator every ``interval_seconds``.

    Runs forever when ``cycles`` is None; cancel the task to stop it.
    """
    stats = SimulationStats()
    log = logger.bind(component="vital_simulator")
    log.info("simulation_started", residents=len(source.resident_ids), interval=interval_seconds)
    source.cover_fall_confirmation(
        coordinator.config.fall_detection.inactivity_duration_ms, interval_seconds
    )

    while cycles is None or stats.cycles < cycles:
        results = await coordinator.process_batch(source.next_batch(clock()))
        stats.cycles += 1
        stats.samples += len(results)

        for result in results:
            if result.is_err():
                stats.failures += 1
                continue
            outcome = result.unwrap()
            stats.alerts_created += len(outcome.alerts_created)
            stats.alerts_suppressed += len(outcome.alerts_suppressed)
            stats.notifications_sent += outcome.notifications_sent
            if outcome.fall_event is not None:
                stats.falls_detected += 1

        coordinator.expire_idle_state()

        if cycles is None or stats.cycles < cycles:
            await asyncio.sleep(interval_seconds)

    log.info(
        "simulation_finished",
        cycles=stats.cycles,
        samples=stats.samples,
        alerts_created=stats.alerts_created,
        falls_detected=stats.falls_detected,
    )
    return stats
