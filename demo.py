"""
End-to-end walkthrough of the alerting pipeline.

This script exercises:
1. Configuration loading and validation
2. Threshold evaluation and alert creation
3. Duplicate suppression
4. Fall detection from an accelerometer stream
5. Alert lifecycle (acknowledge, escalate, resolve)
6. A short synthetic simulation across a facility

Run with: uv run python demo.py
"""

import asyncio
import random
from datetime import UTC, datetime, timedelta

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adapters.memory import InMemoryEngine, build_in_memory_engine
from vitaltrack.config import get_config, print_config_summary
from vitaltrack.domain.errors import InvalidStateTransition
from vitaltrack.domain.models import AccelerometerReading, VitalSample
from vitaltrack.observability import configure_logging
from vitaltrack.services.vital_simulator import SyntheticVitalSource, run_simulation

console = Console()

FACILITY_ID = "facility-sunrise"


class StepClock:
    """Clock that only moves when told to, so timed behavior is reproducible."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


def _engine(clock: StepClock) -> InMemoryEngine:
    engine = build_in_memory_engine(get_config(), clock=clock)
    engine.residents.add("r-ada", FACILITY_ID, "Ada Lovelace")
    engine.residents.add("r-grace", FACILITY_ID, "Grace Hopper")
    engine.residents.add("r-alan", FACILITY_ID, "Alan Turing")
    return engine


async def demo_configuration() -> bool:
    console.print(Panel("Configuration", style="blue"))
    try:
        get_config()
        print_config_summary()
        console.print("Configuration loaded", style="green")
        return True
    except Exception as e:
        console.print(f"Configuration failed: {e}", style="red")
        return False


async def demo_thresholds_and_dedup(engine: InMemoryEngine, clock: StepClock) -> bool:
    console.print(Panel("Threshold Evaluation & Deduplication", style="blue"))

    dashboard = engine.broadcaster.subscribe_facility(FACILITY_ID)

    first = await engine.coordinator.on_sample(
        VitalSample(resident_id="r-ada", timestamp=clock(), heart_rate=145, spo2=88)
    )
    clock.advance(60)
    repeat = await engine.coordinator.on_sample(
        VitalSample(resident_id="r-ada", timestamp=clock(), heart_rate=150, spo2=88)
    )

    if first.is_err() or repeat.is_err():
        console.print("Sample processing failed", style="red")
        return False

    table = Table(title="Alerts raised for Ada Lovelace")
    table.add_column("Category", style="cyan")
    table.add_column("Severity", style="magenta")
    table.add_column("Message", style="white")
    for alert in first.unwrap().alerts_created:
        table.add_row(alert.category.value, alert.severity.value, alert.message)
    console.print(table)

    suppressed = len(repeat.unwrap().alerts_suppressed)
    events = dashboard.drain()
    engine.broadcaster.unsubscribe(dashboard)

    console.print(f"Repeat sample 60s later: {suppressed} duplicate(s) suppressed")
    console.print(f"Dashboard received {len(events)} events")
    return suppressed == 2 and len(first.unwrap().alerts_created) == 2


async def demo_fall_detection(engine: InMemoryEngine, clock: StepClock) -> bool:
    console.print(Panel("Fall Detection", style="blue"))

    # An impact, then a reading per second of lying still
    frames = [(2.0, 1.5, 1.0)] + [(0.1, 0.1, 0.15)] * 11

    fall_outcome = None
    for x, y, z in frames:
        device_ms = int(clock().timestamp() * 1000)
        sample = VitalSample(
            resident_id="r-grace",
            timestamp=clock(),
            accelerometer=AccelerometerReading(x=x, y=y, z=z, timestamp=device_ms),
            location="Garden",
        )
        result = await engine.coordinator.on_sample(sample)
        if result.is_ok() and result.unwrap().fall_event is not None:
            fall_outcome = result.unwrap()
            break
        clock.advance(1)

    if fall_outcome is None or fall_outcome.fall_event is None:
        console.print("No fall detected", style="red")
        return False

    event = fall_outcome.fall_event
    console.print(
        f"Fall confirmed after {event.inactivity_duration_ms} ms of stillness "
        f"(impact {event.impact_magnitude:.2f} g, location {event.location})",
        style="green",
    )
    console.print(f"Staff notifications sent: {fall_outcome.notifications_sent}")
    return True


async def demo_lifecycle(engine: InMemoryEngine, clock: StepClock) -> bool:
    console.print(Panel("Alert Lifecycle", style="blue"))

    open_alerts = await engine.alerts.list_open(FACILITY_ID)
    if len(open_alerts) < 2:
        console.print("Not enough open alerts to demonstrate", style="red")
        return False

    acknowledged, escalated = open_alerts[0], open_alerts[1]

    clock.advance(45)
    await engine.lifecycle.acknowledge(acknowledged.id, "nurse-jo", FACILITY_ID)
    try:
        await engine.lifecycle.acknowledge(acknowledged.id, "nurse-jo", FACILITY_ID)
        console.print("Second acknowledge unexpectedly succeeded", style="red")
        return False
    except InvalidStateTransition as e:
        console.print(f"Rejected as expected: {e}", style="yellow")

    await engine.lifecycle.escalate(escalated.id, FACILITY_ID)
    clock.advance(120)
    resolved = await engine.lifecycle.resolve(
        escalated.id, "dr-kim", FACILITY_ID, notes="Checked on resident, vitals stable"
    )

    console.print(f"Resolved escalated alert in {resolved.resolution_time}", style="green")
    return True


async def demo_simulation(engine: InMemoryEngine, clock: StepClock) -> bool:
    console.print(Panel("Synthetic Facility Simulation", style="blue"))

    source = SyntheticVitalSource(
        ["r-ada", "r-grace", "r-alan"], fall_probability=0.0, rng=random.Random(7)
    )
    source.trigger_fall("r-alan")

    # One cycle per call so the clock can step 5s between device ticks
    for _ in range(6):
        await run_simulation(engine.coordinator, source, interval_seconds=0, cycles=1, clock=clock)
        clock.advance(5)

    table = Table(title="Open alerts after simulation")
    table.add_column("Resident", style="cyan")
    table.add_column("Category", style="magenta")
    table.add_column("Severity", style="yellow")
    table.add_column("Status", style="green")
    for alert in await engine.alerts.list_open(FACILITY_ID):
        table.add_row(
            alert.resident_id, alert.category.value, alert.severity.value, alert.status.value
        )
    console.print(table)

    console.print(f"Samples stored: {len(engine.vitals)}")
    return True


async def main() -> None:
    configure_logging(get_config().logging)
    clock = StepClock(datetime(2024, 1, 1, 9, 0, tzinfo=UTC))
    engine = _engine(clock)

    results = {
        "configuration": await demo_configuration(),
        "thresholds": await demo_thresholds_and_dedup(engine, clock),
        "fall_detection": await demo_fall_detection(engine, clock),
        "lifecycle": await demo_lifecycle(engine, clock),
        "simulation": await demo_simulation(engine, clock),
    }

    table = Table(title="Demo Summary")
    table.add_column("Step", style="cyan")
    table.add_column("Result", style="white")
    for step, passed in results.items():
        table.add_row(step, "[green]passed[/green]" if passed else "[red]failed[/red]")
    console.print(table)


if __name__ == "__main__":
    asyncio.run(main())
