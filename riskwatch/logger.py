"""
Structured logging for RiskWatch.

Every module logs through ``get_logger(__name__)`` with an event name as the
first argument and keyword context (subject_id, scan_id, counts):

    logger = get_logger(__name__)
    logger.info("scan_persisted", subject_id="ACC-1", scan_id=42, risk_score=95)

LOG_FORMAT=json (default) renders one JSON object per line, LOG_FORMAT=console
renders human-readable output for local runs.
"""

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_VALUE = getattr(logging, LOG_LEVEL, logging.INFO)
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()


def _add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _rename_event(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def configure_structlog() -> None:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_timestamp,
        _rename_event,
    ]
    if LOG_FORMAT == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVEL_VALUE),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str):
    return structlog.get_logger(name).bind(logger=name)
