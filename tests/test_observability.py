"""Tests for structlog configuration."""

import json

import pytest
import structlog

from workpack_budget.observability import configure_logging, get_logger
from workpack_budget.settings import Settings


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


def test_json_logging(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(Settings(log_json=True, log_level="INFO"))

    get_logger("workpack_budget.test").info("work_pack_budget_generated", work_pack_id="wp-001")

    line = capsys.readouterr().out.strip().splitlines()[-1]
    event = json.loads(line)
    assert event["event"] == "work_pack_budget_generated"
    assert event["work_pack_id"] == "wp-001"
    assert event["level"] == "info"
    assert "timestamp" in event


def test_level_filters_debug(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(Settings(log_json=True, log_level="WARNING"))

    get_logger("workpack_budget.test").info("hidden_event")

    assert "hidden_event" not in capsys.readouterr().out
