"""Numpy-aware JSON sanitisation for analysis results."""

from __future__ import annotations

import json
import math
from enum import Enum
from typing import Any

__all__ = [
    "safe_json_dumps",
    "sanitize_for_json",
    "sanitize_value",
]


def sanitize_for_json(obj: Any) -> tuple[Any, bool]:
    """Recursively replace non-finite floats (NaN, Inf, -Inf) with ``None``.

    Numpy arrays become lists, numpy scalars become native Python types and
    str enums become their values, so the result serialises with
    ``json.dumps(allow_nan=False)``.

    Returns the sanitised object and whether any non-finite value was seen.
    """
    found_non_finite = False

    def _walk(v: Any) -> Any:
        nonlocal found_non_finite
        if isinstance(v, Enum):
            return v.value
        # Numpy array -> list (ndim distinguishes arrays from scalars).
        if hasattr(v, "tolist") and hasattr(v, "ndim"):
            v = v.tolist()
        elif hasattr(v, "item"):
            v = v.item()
        if isinstance(v, float):
            if math.isfinite(v):
                return v
            found_non_finite = True
            return None
        if isinstance(v, dict):
            return {k: _walk(val) for k, val in v.items()}
        if isinstance(v, (list, tuple)):
            return [_walk(item) for item in v]
        return v

    cleaned = _walk(obj)
    return cleaned, found_non_finite


def sanitize_value(value: Any) -> Any:
    cleaned, _ = sanitize_for_json(value)
    return cleaned


def safe_json_dumps(value: Any, *, indent: int | None = None) -> str:
    """Sanitise *value* and serialise it with ``allow_nan=False``."""
    return json.dumps(sanitize_value(value), ensure_ascii=False, allow_nan=False, indent=indent)
