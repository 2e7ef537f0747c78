from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

REDACTED_VALUE = "<redacted>"
SENSITIVE_KEY_SUBSTRINGS = (
    "password",
    "secret",
    "token",
    "private_key",
    "certificate_data",
    "key_vault_secret",
)


def _is_sensitive_key(key: Any) -> bool:
    if not isinstance(key, str):
        return False
    lowered = key.lower()
    return any(token in lowered for token in SENSITIVE_KEY_SUBSTRINGS)


def sanitize_for_json(value: Any) -> Any:
    """
    Convert common non-JSON types to serializable forms and redact sensitive fields.
    """
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            out[k] = REDACTED_VALUE if _is_sensitive_key(k) else sanitize_for_json(v)
        return out
    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_json(v) for v in value]
    return value


def model_to_dict(obj: Any) -> Any:
    """
    Turn an Azure SDK model (or plain object) into nested dicts/lists.
    SDK models expose as_dict() with snake_case attribute names.
    """
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, dict):
        return {k: model_to_dict(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [model_to_dict(v) for v in obj]
    as_dict = getattr(obj, "as_dict", None)
    if callable(as_dict):
        return sanitize_for_json(as_dict())
    if hasattr(obj, "__dict__"):
        return {k: model_to_dict(v) for k, v in vars(obj).items() if not k.startswith("_")}
    return sanitize_for_json(obj)
