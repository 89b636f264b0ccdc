"""
Logging Configuration Module

One JSON object per log line for engine events: calculations, write-backs,
extensions, batch runs and data-integrity warnings. Loan context travels on
the record as attributes set through ``log_action``.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Record attributes copied into the JSON line when present
CONTEXT_FIELDS = ("loan_id", "plan_id", "action", "correlation_id", "extra")

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

HANDLER_NAME = "loan_engine"


class JSONFormatter(logging.Formatter):
    """Render a record and its loan context as a single JSON line"""

    def format(self, record):
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # Dates and Decimals in extra are written as strings
        return json.dumps(entry, default=str)


def setup_logging(
    level: Optional[str] = None,
    logger_name: str = "loan_engine",
    log_format: Optional[str] = None
) -> logging.Logger:
    """
    Attach a single stream handler to the engine's logger

    Args:
        level: Level name; defaults to the configured log_level
        logger_name: Logger to configure, "loan_engine" covers every module
        log_format: "json" or "text"; defaults to the configured log_format

    Returns:
        The configured logger
    """
    if level is None or log_format is None:
        from .config import get_config
        settings = get_config()
        level = level or settings.log_level
        log_format = log_format or settings.log_format

    logger = logging.getLogger(logger_name)
    # Replace our own handler only; handlers attached by the host stay
    for existing in list(logger.handlers):
        if existing.get_name() == HANDLER_NAME:
            logger.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.set_name(HANDLER_NAME)
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    logger.addHandler(handler)
    logger.setLevel(level.upper())
    # Engine logs do not also reach the root logger
    logger.propagate = False
    return logger


def get_logger(name: str = "loan_engine") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               loan_id: Optional[str] = None, action: Optional[str] = None,
               correlation_id: Optional[str] = None,
               extra: Optional[dict] = None,
               plan_id: Optional[str] = None):
    """
    Log an engine event with loan context

    Args:
        logger: Module logger
        level: "debug", "info", "warning", "error" or "critical"
        message: Human-readable message
        loan_id: Loan the event concerns
        action: Engine operation, e.g. "write_back", "extension", "portfolio_job"
        correlation_id: Caller's request id
        extra: Structured payload (due dates, amounts, stats)
        plan_id: Plan the event concerns
    """
    context = {
        "loan_id": loan_id,
        "plan_id": plan_id,
        "action": action,
        "correlation_id": correlation_id,
        "extra": extra,
    }
    logger.log(
        logging.getLevelName(level.upper()),
        message,
        extra={key: value for key, value in context.items() if value}
    )
