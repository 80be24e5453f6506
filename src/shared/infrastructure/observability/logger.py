"""
Structured Logging Configuration
Centralized logger with team_id, conversation_id, message_id context
"""
from __future__ import annotations

import logging
import re
import sys
from typing import Any

import structlog


class PIIRedactionProcessor:
    """
    Structlog processor that masks driver phone numbers, message bodies and tokens.

    - Keys named like tokens/secrets: fully redacted.
    - Keys holding message text (content, body, caption...): replaced by their length.
    - Keys holding a phone number: keep first two chars and last 4.
    - Free text: standalone MSISDN-shaped runs (11..15 digits, optional +) are
      masked; digits glued to ids (wamid.447...) are left alone, and
      id/timestamp keys are never scanned.
    """
    P_MSISDN = re.compile(r"(?<![\w.:/-])\+?[1-9]\d{10,14}(?![\w.:/-])")
    SECRET_KEYS = {"access_token", "token", "authorization", "app_secret", "secret"}
    BODY_KEYS = {"content", "body", "text", "caption", "override_content"}
    PHONE_KEYS = {"phone", "phone_number", "from_phone", "participant_phone", "wa_id", "to", "recipient_phone"}
    VERBATIM_SUFFIXES = ("_id", "_at", "timestamp", "_count")

    def __call__(self, logger, method_name, event_dict):
        return {k: self._redact(k, v) for k, v in event_dict.items()}

    def _redact(self, key: str, value: Any) -> Any:
        name = key.lower()
        if name in self.SECRET_KEYS and value:
            return "***REDACTED***"
        if name in self.BODY_KEYS and isinstance(value, str):
            return f"<{len(value)} chars>"
        if name in self.PHONE_KEYS and isinstance(value, str) and len(value) > 6:
            return f"{value[:2]}****{value[-4:]}"
        if isinstance(value, dict):
            return {k: self._redact(k, v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._redact(key, v) for v in value]
        if isinstance(value, str) and not name.endswith(self.VERBATIM_SUFFIXES):
            return self.P_MSISDN.sub(self._mask_msisdn, value)
        return value

    @staticmethod
    def _mask_msisdn(m: re.Match) -> str:
        g = m.group(0)
        return f"{g[:2]}****{g[-4:]}"


def configure_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Configure structured logging for the application.

    Sets up structlog with processors for timestamps, log levels, bound
    context (team_id, conversation_id, message_id) and PII redaction, rendered
    as JSON (production) or console (development).

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Whether to output JSON format (True for prod, False for dev)
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        PIIRedactionProcessor(),
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("message_sent", message_id=message.id, team_id=team.id)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """
    Bind context variables to all subsequent log entries.

    Used for request- or job-scoped context such as team_id and message_id;
    keys already bound (request_id) are kept.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
