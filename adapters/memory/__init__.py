"""In-process storage adapters for local runs and tests."""

from .engine import InMemoryEngine, build_in_memory_engine
from .repositories import (
    InMemoryAlertRepository,
    InMemoryResidentRepository,
    InMemoryVitalRepository,
)

__all__ = [
    "InMemoryAlertRepository",
    "InMemoryResidentRepository",
    "InMemoryVitalRepository",
    "InMemoryEngine",
    "build_in_memory_engine",
]
