"""Parameter and result sanitization applied before events leave the process.

Everything here works on copies: the values handed back to the tool caller
are never touched.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

logger = logging.getLogger("mcp_analytics.redaction")

REDACTED = "[REDACTED]"
TRUNCATED = "...[TRUNCATED]"
BINARY_REMOVED = "[BINARY_DATA_REMOVED]"

SENSITIVE_KEYS = (
    "password",
    "token",
    "key",
    "secret",
    "apikey",
    "api_key",
    "auth",
    "authorization",
    "credential",
    "pass",
    "pwd",
)

MAX_PARAM_LENGTH = 1000
MAX_TEXT_LENGTH = 2000
MAX_RESOURCE_TEXT_LENGTH = 1000
MAX_OBJECT_FIELDS = 50
MAX_ARRAY_ITEMS = 20

_BINARY_CONTENT_TYPES = ("image", "audio")


def _truncate(value: str, max_len: int) -> str:
    if len(value) <= max_len:
        return value
    return value[:max_len] + TRUNCATED


def _is_sensitive(key: Any) -> bool:
    lower_key = str(key).lower()
    return any(term in lower_key for term in SENSITIVE_KEYS)


def _as_mapping(value: Any) -> Any:
    """Dump pydantic models (MCP SDK types are pydantic) to plain dicts."""
    if hasattr(value, "model_dump") and callable(value.model_dump):
        return value.model_dump(mode="python", by_alias=True, exclude_none=True)
    return value


def _json_safe(value: Any) -> Any:
    """Copy *value* keeping its shape, turning anything non-JSON into text."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"[BINARY_DATA:{len(value)}_bytes]"
    value = _as_mapping(value)
    if isinstance(value, Mapping):
        return {str(key): _json_safe(field) for key, field in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return str(value)


def sanitize_parameters(params: Any) -> dict[str, Any]:
    """Return a copy of *params* safe to transmit.

    Values under keys that look sensitive are replaced by ``[REDACTED]``
    and long strings are truncated. Anything that is not a mapping yields
    an empty dict.
    """
    params = _as_mapping(params)
    if not isinstance(params, Mapping):
        return {}

    sanitized: dict[str, Any] = {}
    for key, value in params.items():
        if _is_sensitive(key):
            value = REDACTED
        if isinstance(value, str):
            value = _truncate(value, MAX_PARAM_LENGTH)
        else:
            value = _json_safe(value)
        sanitized[key] = value
    return sanitized


def sanitize_result(result: Any) -> Any:
    """Return a transmission-safe copy of a tool result.

    Never raises: if sanitization itself fails a small marker dict is
    returned in place of the result.
    """
    if not result:
        return result

    try:
        result = _as_mapping(result)
        if isinstance(result, Mapping) and isinstance(result.get("content"), list):
            sanitized = _json_safe(result)
            sanitized["content"] = [
                _sanitize_content_item(item) for item in result["content"]
            ]
            return sanitized
        return _sanitize_generic(result)
    except Exception:
        logger.debug("Result sanitization failed", exc_info=True)
        return {
            "_sanitizationError": "Failed to sanitize result",
            "_resultType": type(result).__name__,
        }


def _sanitize_content_item(item: Any) -> Any:
    item = _as_mapping(item)
    if not isinstance(item, Mapping):
        return _sanitize_generic(item)

    content_type = item.get("type")
    sanitized = _json_safe(item)

    if content_type == "text":
        text = item.get("text")
        if isinstance(text, str) and len(text) > MAX_TEXT_LENGTH:
            sanitized["text"] = _truncate(text, MAX_TEXT_LENGTH)
            sanitized["_originalLength"] = len(text)

    elif content_type in _BINARY_CONTENT_TYPES:
        data = item.get("data")
        if data:
            sanitized["data"] = BINARY_REMOVED
            sanitized["_dataSize"] = (
                len(data) if isinstance(data, (str, bytes, bytearray)) else "unknown"
            )
            sanitized["_mimeType"] = item.get("mimeType") or "unknown"

    elif content_type == "resource":
        text = item.get("text")
        if isinstance(text, str) and len(text) > MAX_RESOURCE_TEXT_LENGTH:
            sanitized["text"] = _truncate(text, MAX_RESOURCE_TEXT_LENGTH)
            sanitized["_originalLength"] = len(text)
        resource = item.get("resource")
        if isinstance(resource, Mapping):
            sanitized["resource"] = _sanitize_embedded_resource(resource)

    else:
        return _sanitize_generic(item)

    return sanitized


def _sanitize_embedded_resource(resource: Mapping) -> dict[str, Any]:
    sanitized = _json_safe(resource)
    text = resource.get("text")
    if isinstance(text, str) and len(text) > MAX_RESOURCE_TEXT_LENGTH:
        sanitized["text"] = _truncate(text, MAX_RESOURCE_TEXT_LENGTH)
        sanitized["_originalLength"] = len(text)
    blob = resource.get("blob")
    if blob:
        sanitized["blob"] = BINARY_REMOVED
        sanitized["_dataSize"] = len(blob) if isinstance(blob, (str, bytes)) else "unknown"
    return sanitized


def _sanitize_generic(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        return _truncate(value, MAX_TEXT_LENGTH)

    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"[BINARY_DATA:{len(value)}_bytes]"

    value = _as_mapping(value)

    if isinstance(value, Mapping):
        sanitized: dict[str, Any] = {}
        for count, (key, field) in enumerate(value.items()):
            if count >= MAX_OBJECT_FIELDS:
                sanitized["_truncated"] = True
                sanitized["_totalFields"] = len(value)
                break
            sanitized[str(key)] = _sanitize_generic(field)
        return sanitized

    if isinstance(value, (Sequence, set, frozenset)):
        items = list(value)
        return {
            "_type": "array",
            "_originalLength": len(items),
            "items": [_sanitize_generic(item) for item in items[:MAX_ARRAY_ITEMS]],
        }

    return _truncate(str(value), MAX_TEXT_LENGTH)
