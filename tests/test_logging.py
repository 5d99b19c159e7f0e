import json
import logging

import pytest
import structlog

from app.logging import SERVICE_NAME, setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    httpx_level = logging.getLogger("httpx").level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("httpx").setLevel(httpx_level)
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


def test_json_lines_carry_bound_source(settings, capsys, restore_logging) -> None:
    setup_logging(settings.model_copy(update={"log_format": "json", "log_level": "debug"}))

    logger = structlog.stdlib.get_logger("tests.logging")
    with structlog.contextvars.bound_contextvars(source_id="cccs"):
        logger.info("source_processed", records=2)
    logger.info("after_source")

    lines = [json.loads(line) for line in capsys.readouterr().err.splitlines() if line]
    first, second = lines[-2:]
    assert first["event"] == "source_processed"
    assert first["source_id"] == "cccs"
    assert first["records"] == 2
    assert first["level"] == "info"
    assert first["service"] == SERVICE_NAME
    assert first["timestamp"].endswith("Z")
    assert "source_id" not in second


def test_http_client_loggers_stay_at_warning(settings, restore_logging) -> None:
    setup_logging(settings.model_copy(update={"log_level": "DEBUG"}))
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING


def test_unknown_level_falls_back_to_info(settings, restore_logging) -> None:
    setup_logging(settings.model_copy(update={"log_level": "chatty"}))
    assert logging.getLogger().level == logging.INFO
