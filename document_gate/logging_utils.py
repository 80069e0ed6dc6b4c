"""
Structured JSON logging utilities.

Hosted deployments usually ship stdout to a log collector that expects
one JSON object per line. Visitor emails are personal data, so the
formatter can mask them before they leave the process.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# LogRecord attributes that are not user-supplied context
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
}

EMAIL_FIELDS = ("email",)


def mask_email(email: str) -> str:
    """Keep the first character of the local part and the whole domain.

    >>> mask_email("visitor@example.com")
    'v***@example.com'
    """
    local, sep, domain = email.partition("@")
    if not sep or not local:
        return "***"
    return f"{local[0]}***@{domain}"


class StructuredJsonFormatter(logging.Formatter):
    """
    Render each record as a single-line JSON object.

    Fields: timestamp (UTC ISO 8601), level, logger, message, exception
    (when present) and every ``extra`` key. With ``redact_emails`` the
    ``email`` context field is masked.
    """

    def __init__(self, redact_emails: bool = False):
        super().__init__()
        self.redact_emails = redact_emails

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            if self.redact_emails and key in EMAIL_FIELDS and isinstance(value, str):
                value = mask_email(value)
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = str(value)
            entry[key] = value

        return json.dumps(entry, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = "document_gate",
    redact_emails: bool = False,
) -> logging.Logger:
    """
    Send a logger's output to stdout as JSON lines.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the package logger)
        redact_emails: Mask visitor emails in the ``email`` field

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter(redact_emails=redact_emails))
    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


def get_gate_logger(name: str) -> logging.Logger:
    """Logger named ``document_gate.{name}``."""
    return logging.getLogger(f"document_gate.{name}")


class GateLoggerAdapter(logging.LoggerAdapter):
    """
    Attaches gate context (visitor email, document id) to every record.

    Context can be extended after construction with ``bind`` as the
    session learns more about the visitor.
    """

    def __init__(self, logger: logging.Logger, extra: dict[str, Any] | None = None):
        super().__init__(logger, dict(extra or {}))

    def bind(self, **context: Any) -> None:
        """Add or replace context fields."""
        self.extra.update(context)

    def process(self, msg: str, kwargs: Any) -> tuple[str, Any]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs
