"""Structured logging configuration for Tune Out.

Sets up two log streams via ``RotatingFileHandler``:

- ``tuneout.log``: human-readable, all log events
- ``storage.log``: JSON-formatted, only ``tuneout.storage.*`` events

Both handlers rotate at 10 MB with 5 backup files. SQL statement tracing
(``library.log_sql``) logs to :data:`SQL_LOGGER` at debug level, which is
opened up independently of the configured level so traces land in
``storage.log`` even when the rest of the app logs at ``info``.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

SQL_LOGGER = "tuneout.storage.sql"

_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
_BACKUP_COUNT = 5
_NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite")

# Processors applied to structlog events and to stdlib "foreign" records alike.
_shared_processors: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.ExtraAdder(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def _rotating_handler(path: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_level: str = "info", log_dir: Path | None = None, *, sql_trace: bool = False) -> None:
    """Configure structlog and stdlib logging.

    Parameters
    ----------
    log_level:
        Python log-level name (``debug``, ``info``, ``warning``, etc.).
    log_dir:
        Directory for log files.  When *None* no file handlers are created
        (useful for testing).
    sql_trace:
        Let debug-level SQL traces through :data:`SQL_LOGGER` whatever
        *log_level* is.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    # -- structlog pipeline (structlog to stdlib bridge) --------------------
    structlog.configure(
        processors=[
            *_shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # -- formatters --------------------------------------------------------
    human_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(colors=False),
        foreign_pre_chain=_shared_processors,
    )
    json_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=_shared_processors,
    )

    # -- root logger -------------------------------------------------------
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)

        # tuneout.log: everything, human-readable
        root.addHandler(_rotating_handler(log_dir / "tuneout.log", human_formatter))

        # storage.log: store events and SQL traces, JSON
        storage_handler = _rotating_handler(log_dir / "storage.log", json_formatter)
        storage_handler.addFilter(logging.Filter("tuneout.storage"))
        root.addHandler(storage_handler)

    # -- SQL tracing -------------------------------------------------------
    logging.getLogger(SQL_LOGGER).setLevel(logging.DEBUG if sql_trace else logging.NOTSET)

    # -- suppress noisy third-party loggers --------------------------------
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    # -- catch unhandled exceptions ----------------------------------------
    def _excepthook(
        exc_type: type[BaseException],
        exc_value: BaseException,
        exc_tb: object,
    ) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)  # type: ignore[arg-type]
            return
        logging.getLogger("tuneout").critical(
            "Unhandled exception",
            exc_info=(exc_type, exc_value, exc_tb),
        )

    sys.excepthook = _excepthook  # type: ignore[assignment]
