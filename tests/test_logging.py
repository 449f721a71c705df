"""Tests for the structured logging configuration."""

from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest
import structlog

from tuneout.logging import SQL_LOGGER, setup_logging


@pytest.fixture(autouse=True)
def _reset_logging():
    """Reset logging state between tests."""
    yield
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    logging.getLogger(SQL_LOGGER).setLevel(logging.NOTSET)
    structlog.reset_defaults()


# -- File creation ----------------------------------------------------------


def test_setup_creates_log_dir_and_files(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="info", log_dir=log_dir)

    structlog.get_logger("tuneout.test").info("hello")

    assert log_dir.exists()
    assert (log_dir / "tuneout.log").exists()
    assert (log_dir / "storage.log").exists()


# -- tuneout.log format -----------------------------------------------------


def test_main_log_human_readable(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="info", log_dir=log_dir)

    structlog.get_logger("tuneout.cli").info("test_event", key="value")

    content = (log_dir / "tuneout.log").read_text()
    assert "test_event" in content
    assert "key=value" in content


def test_main_log_not_json(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="info", log_dir=log_dir)

    structlog.get_logger("tuneout.cli").info("check_format")

    content = (log_dir / "tuneout.log").read_text().strip()
    with pytest.raises(json.JSONDecodeError):
        json.loads(content)


# -- storage.log format -----------------------------------------------------


def test_storage_log_json(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="info", log_dir=log_dir)

    structlog.get_logger("tuneout.storage.schema").info("schema_migrated", version=4, elapsed_ms=1.5)

    data = json.loads((log_dir / "storage.log").read_text().strip())
    assert data["event"] == "schema_migrated"
    assert data["version"] == 4
    assert data["elapsed_ms"] == 1.5
    assert data["level"] == "info"
    assert "timestamp" in data


# -- Filtering --------------------------------------------------------------


def test_storage_log_excludes_other_events(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="info", log_dir=log_dir)

    structlog.get_logger("tuneout.playback.controller").info("playback_event")
    structlog.get_logger("tuneout.storage.collections").info("storage_event")

    storage_content = (log_dir / "storage.log").read_text()
    assert "storage_event" in storage_content
    assert "playback_event" not in storage_content


def test_main_log_contains_all_events(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="info", log_dir=log_dir)

    structlog.get_logger("tuneout.playback.controller").info("from_playback")
    structlog.get_logger("tuneout.storage.collections").info("from_storage")

    content = (log_dir / "tuneout.log").read_text()
    assert "from_playback" in content
    assert "from_storage" in content


# -- Log level filtering ----------------------------------------------------


def test_level_filtering_suppresses_lower(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="warning", log_dir=log_dir)

    log = structlog.get_logger("tuneout.test")
    log.info("should_not_appear")
    log.warning("should_appear")

    content = (log_dir / "tuneout.log").read_text()
    assert "should_not_appear" not in content
    assert "should_appear" in content


def test_debug_level_includes_debug(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="debug", log_dir=log_dir)

    structlog.get_logger("tuneout.test").debug("debug_msg")

    assert "debug_msg" in (log_dir / "tuneout.log").read_text()


def test_noisy_libraries_quieted(tmp_path: Path):
    setup_logging(log_level="debug", log_dir=tmp_path / "logs")

    assert logging.getLogger("aiosqlite").level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING


# -- SQL tracing ------------------------------------------------------------


def test_sql_trace_passes_debug_at_info_level(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="info", log_dir=log_dir, sql_trace=True)

    structlog.get_logger(SQL_LOGGER).debug("sql", statement="SELECT 1")
    structlog.get_logger("tuneout.storage.collections").debug("other_debug")

    content = (log_dir / "storage.log").read_text()
    assert "SELECT 1" in content
    assert "other_debug" not in content


def test_sql_trace_off_by_default(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="info", log_dir=log_dir)

    structlog.get_logger(SQL_LOGGER).debug("sql", statement="SELECT 1")

    assert logging.getLogger(SQL_LOGGER).level == logging.NOTSET
    assert "SELECT 1" not in (log_dir / "storage.log").read_text()


# -- RotatingFileHandler config --------------------------------------------


def test_rotation_parameters(tmp_path: Path):
    setup_logging(log_level="info", log_dir=tmp_path / "logs")

    root = logging.getLogger()
    rotating = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
    assert len(rotating) == 2

    for handler in rotating:
        assert handler.maxBytes == 10 * 1024 * 1024
        assert handler.backupCount == 5


# -- No log_dir (no file handlers) -----------------------------------------


def test_no_log_dir_no_handlers():
    setup_logging(log_level="info", log_dir=None)

    assert len(logging.getLogger().handlers) == 0


# -- Context variables -----------------------------------------------------


def test_context_variables_in_storage_log(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="info", log_dir=log_dir)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(command="collection move")

    structlog.get_logger("tuneout.storage.collections").info("with_context")

    structlog.contextvars.clear_contextvars()

    data = json.loads((log_dir / "storage.log").read_text().strip())
    assert data["command"] == "collection move"
