from __future__ import annotations

import json
import logging
import sys
from logging import Logger

ROOT_LOGGER_NAME = "cashflow_insights"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        # Structured context passed as extra={"fields": {...}}
        extra_fields = getattr(record, "fields", None)
        if isinstance(extra_fields, dict):
            payload.update(extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def get_logger(name: str = ROOT_LOGGER_NAME) -> Logger:
    """Return a package logger; children propagate to the configured root."""
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def configure_logging(json_output: bool = True, level: str = "INFO") -> Logger:
    """Attach the stdout handler to the package root logger.

    Safe to call on every Streamlit rerun: the existing handler is reused and
    only its formatter and the level are updated.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if not logger.handlers:
        logger.addHandler(logging.StreamHandler(stream=sys.stdout))
        logger.propagate = False

    handler = logger.handlers[0]
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    logger.setLevel(level)
    return logger
