"""Tests for structured logging setup."""

import logging
from collections.abc import Iterator

import pytest
import structlog

from vitaltrack.config import LoggingConfig
from vitaltrack.observability import configure_logging


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    root = logging.getLogger()
    level = root.level
    yield
    structlog.reset_defaults()
    # Drop the handler basicConfig installed; pytest's own handlers are subclasses
    for handler in root.handlers[:]:
        if type(handler) is logging.StreamHandler:
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.mark.parametrize(
    ("fmt", "renderer"),
    [("json", structlog.processors.JSONRenderer), ("console", structlog.dev.ConsoleRenderer)],
)
def test_renderer_follows_format(fmt: str, renderer: type) -> None:
    configure_logging(LoggingConfig(format=fmt, level="DEBUG"))  # type: ignore[arg-type]

    processors = structlog.get_config()["processors"]
    assert isinstance(processors[-1], renderer)
    assert logging.getLogger().level == logging.DEBUG


def test_json_output_is_structured(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(LoggingConfig(format="json", level="INFO"))

    structlog.get_logger("vitaltrack.test").info("alert_created", alert_id="a-1")

    out = capsys.readouterr().out
    assert '"event": "alert_created"' in out
    assert '"alert_id": "a-1"' in out
