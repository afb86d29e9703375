import json
import sys

import pytest
from loguru import logger

from parking.log import SERVICE_NAME, setup_logging
from parking.settings import load_settings


@pytest.fixture
def restore_logger():
    yield
    logger.remove()
    logger.add(sys.stderr)


def test_json_logging_carries_service_and_bound_fields(capsys, restore_logger) -> None:
    setup_logging(load_settings({"LOG_JSON": "true", "LOG_LEVEL": "info"}))

    logger.bind(count=3).info("Loaded facilities metadata")

    lines = [line for line in capsys.readouterr().out.splitlines() if line]
    record = json.loads(lines[-1])["record"]
    assert record["message"] == "Loaded facilities metadata"
    assert record["extra"]["service"] == SERVICE_NAME
    assert record["extra"]["count"] == 3


def test_level_filters_debug_records(capsys, restore_logger) -> None:
    setup_logging(load_settings({"LOG_JSON": "false", "LOG_LEVEL": "INFO"}))

    logger.debug("hidden")
    logger.info("shown")

    out = capsys.readouterr().out
    assert "hidden" not in out
    assert "shown" in out
