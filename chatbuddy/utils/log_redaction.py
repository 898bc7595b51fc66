"""Masks sensitive values in log records"""
import logging
import re

SENSITIVE_KEYS = (
    "phone",
    "email",
    "token",
    "password",
    "api_key",
    "apikey",
    "authorization",
    "conversation",
    "metadata",
    "customer_name",
    "customername",
)

REDACTED = "[REDACTED]"

_KEY_VALUE = re.compile(
    r"""(?P<key>['"]?(?:%s)['"]?\s*[:=]\s*)(?P<value>'[^']*'|"[^"]*"|[^\s,}\]]+)""" % "|".join(SENSITIVE_KEYS),
    re.IGNORECASE,
)
_PHONE = re.compile(r"\+?\d[\d\s-]{8,}\d")
_BEARER = re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+", re.IGNORECASE)


def redact(text: str) -> str:
    text = _BEARER.sub(lambda m: m.group(1) + REDACTED, text)
    text = _KEY_VALUE.sub(lambda m: m.group("key") + REDACTED, text)
    return _PHONE.sub(REDACTED, text)


class RedactionFilter(logging.Filter):
    """Rewrites each record's message with sensitive values masked"""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        record.msg = redact(message)
        record.args = None
        return True


def install_redaction() -> None:
    """Attach the filter to every root handler"""
    redaction = RedactionFilter()
    for handler in logging.getLogger().handlers:
        if not any(isinstance(existing, RedactionFilter) for existing in handler.filters):
            handler.addFilter(redaction)
