"""Redaction of secrets in log events and API payloads."""

import re
from typing import Any

import orjson


REDACTED = "[REDACTED]"

SENSITIVE_KEYS = frozenset(
    {
        "access_token",
        "refresh_token",
        "id_token",
        "token",
        "accesstoken",
        "refreshtoken",
        "client_secret",
        "password",
        "secret",
        "api_key",
        "apikey",
        "authorization",
        "auth_code",
        "authorization_code",
        "master_key",
        "cookie",
    }
)

_BEARER_RE = re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+", re.IGNORECASE)
_GOOGLE_TOKEN_RE = re.compile(r"\bya29\.[A-Za-z0-9._-]+|\b1//[A-Za-z0-9._-]{10,}")


def _is_sensitive(key: str) -> bool:
    return key.lower().replace("-", "_") in SENSITIVE_KEYS


def mask_string(value: str) -> str:
    """Mask bearer headers and Google token shapes inside free text."""
    masked = _BEARER_RE.sub(rf"\1{REDACTED}", value)
    return _GOOGLE_TOKEN_RE.sub(REDACTED, masked)


def mask_sensitive_data(value: Any, _depth: int = 0) -> Any:
    """Recursively redact sensitive keys in dicts, lists and JSON strings.

    Args:
        value: Arbitrary data
        _depth: Recursion guard

    Returns:
        A copy of ``value`` with secrets replaced by ``[REDACTED]``
    """
    if _depth > 10:
        return value
    if isinstance(value, dict):
        return {
            k: REDACTED
            if isinstance(k, str) and _is_sensitive(k) and v not in (None, "")
            else mask_sensitive_data(v, _depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, list | tuple):
        return [mask_sensitive_data(item, _depth + 1) for item in value]
    if isinstance(value, str):
        stripped = value.lstrip()
        if stripped[:1] in ("{", "["):
            try:
                parsed = orjson.loads(stripped)
            except orjson.JSONDecodeError:
                return mask_string(value)
            return orjson.dumps(mask_sensitive_data(parsed, _depth + 1)).decode()
        return mask_string(value)
    return value


def mask_sensitive_processor(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor applying :func:`mask_sensitive_data` to every field."""
    event = event_dict.get("event")
    masked = mask_sensitive_data({k: v for k, v in event_dict.items() if k != "event"})
    if isinstance(event, str):
        masked["event"] = mask_string(event)
    elif event is not None:
        masked["event"] = event
    return masked
