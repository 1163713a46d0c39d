"""
Tests for canonical serialization.

Critical: The canonical encoding is the hashing input; it must be
deterministic and must reject anything without a stable representation.
"""

import math
from datetime import datetime
from decimal import Decimal

import pytest

from careaudit.core.canonical import canonicalize, canonical_json_bytes, canonical_json_str
from careaudit.core.errors import EncodingError


def test_canonicalize_dict_key_order():
    """Dict key order must not affect canonical output."""
    d1 = {"z": 1, "a": 2, "m": 3}
    d2 = {"a": 2, "m": 3, "z": 1}

    assert canonical_json_bytes(d1) == canonical_json_bytes(d2)


def test_canonicalize_nested():
    """Nested structures must be canonicalized recursively."""
    obj = {"outer": {"z": (3, 1, 2), "a": {"nested": True}}}

    canon = canonicalize(obj)

    assert list(canon["outer"].keys()) == ["a", "z"]
    # Tuples become lists, element order is preserved
    assert canon["outer"]["z"] == [3, 1, 2]


def test_canonical_json_str_compact():
    """No whitespace, sorted keys."""
    assert canonical_json_str({"b": 2, "a": 1}) == '{"a":1,"b":2}'


def test_canonical_handles_unicode():
    """ensure_ascii=False keeps non-ASCII text as UTF-8."""
    out = canonical_json_bytes({"name": "Zoë 日本語"})

    assert "Zoë 日本語".encode("utf-8") in out


def test_none_differs_from_string_null():
    """JSON null and the string "null" must not collide."""
    assert canonical_json_bytes({"v": None}) != canonical_json_bytes({"v": "null"})


@pytest.mark.parametrize(
    "value",
    [
        {1, 2},
        b"bytes",
        datetime(2024, 1, 1),
        Decimal("1.5"),
        float("nan"),
        math.inf,
        -math.inf,
        object(),
    ],
)
def test_unrepresentable_values_rejected(value):
    """Values without a stable JSON form raise EncodingError."""
    with pytest.raises(EncodingError):
        canonical_json_bytes({"v": value})


def test_non_string_keys_rejected():
    """Integer keys would silently become strings; refuse them."""
    with pytest.raises(EncodingError):
        canonical_json_bytes({1: "x"})


def test_lone_surrogate_rejected():
    """Strings that cannot be encoded as UTF-8 raise EncodingError."""
    with pytest.raises(EncodingError):
        canonical_json_bytes({"v": "\ud800"})


def test_bool_and_int_are_distinct():
    assert canonical_json_bytes({"v": True}) == b'{"v":true}'
    assert canonical_json_bytes({"v": 1}) == b'{"v":1}'
