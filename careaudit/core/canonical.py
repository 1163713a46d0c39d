"""
Canonical serialization for deterministic hashing.

This module is the heart of tamper evidence. Every hashed or signed value
must go through these functions so that a stored entry re-encodes to the
exact same bytes years after it was written.
"""

import json
import math
from typing import Any

from .errors import EncodingError


def canonicalize(obj: Any) -> Any:
    """
    Convert arbitrary nested dict/list to canonical form.

    Rules:
    - dict keys sorted alphabetically (keys must be str)
    - tuples converted to lists
    - only JSON scalars allowed: str, int, finite float, bool, None
    - recursive normalization

    Raises:
        EncodingError: If a value (or key) has no stable JSON representation
    """
    if isinstance(obj, dict):
        for k in obj:
            if not isinstance(k, str):
                raise EncodingError(f"dict keys must be str, got {type(k).__name__}: {k!r}")
        return {k: canonicalize(obj[k]) for k in sorted(obj.keys())}
    if isinstance(obj, (list, tuple)):
        return [canonicalize(x) for x in obj]
    if obj is None or isinstance(obj, (str, bool, int)):
        return obj
    if isinstance(obj, float):
        if not math.isfinite(obj):
            raise EncodingError(f"non-finite float is not representable: {obj!r}")
        return obj
    raise EncodingError(f"unsupported value type: {type(obj).__name__}")


def canonical_json_bytes(obj: Any) -> bytes:
    """
    Deterministic JSON bytes for hashing.

    Guarantees:
    - sort_keys=True (secondary safety)
    - separators remove whitespace
    - ensure_ascii=False keeps UTF-8 stable
    - allow_nan=False rejects NaN/Infinity
    - canonical preprocessing via canonicalize()

    Returns:
        UTF-8 encoded JSON bytes

    Raises:
        EncodingError: If obj is not representable
    """
    canon = canonicalize(obj)
    try:
        s = json.dumps(
            canon,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
        return s.encode("utf-8")
    except (ValueError, UnicodeEncodeError) as e:
        raise EncodingError(str(e)) from e


def canonical_json_str(obj: Any) -> str:
    """
    Deterministic JSON string (for display or storage).

    Same guarantees as canonical_json_bytes but returns string.
    """
    return canonical_json_bytes(obj).decode("utf-8")
