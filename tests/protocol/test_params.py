"""Tests for positional parameter literals."""

import math
import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal

import pytest

from trinoduck import NotSupportedError
from trinoduck.protocol.params import format_literal, prepare_statement


@pytest.mark.parametrize(
    "value, literal",
    [
        (None, "NULL"),
        (True, "true"),
        (42, "42"),
        (1.5, "DOUBLE '1.5'"),
        (math.nan, "nan()"),
        (-math.inf, "-infinity()"),
        (Decimal("1.50"), "DECIMAL '1.50'"),
        ("it's", "'it''s'"),
        (b"\x00\xff", "X'00ff'"),
        (date(2024, 2, 29), "DATE '2024-02-29'"),
        (datetime(2024, 1, 2, 3, 4, 5, 6), "TIMESTAMP '2024-01-02 03:04:05.000006'"),
        (datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc), "TIMESTAMP '2024-01-02 03:04:05.000000 UTC'"),
        (time(12, 30), "TIME '12:30:00.000000'"),
        (uuid.UUID(int=0), "UUID '00000000-0000-0000-0000-000000000000'"),
        ([1, None], "ARRAY[1, NULL]"),
        ({"a": 1}, "MAP(ARRAY['a'], ARRAY[1])"),
    ],
)
def test_format_literal(value, literal: str) -> None:
    assert format_literal(value) == literal


def test_unsupported_parameter() -> None:
    with pytest.raises(NotSupportedError):
        format_literal(object())


def test_prepare_statement() -> None:
    body, header = prepare_statement("SELECT ? WHERE x = ?", [1, "a"])
    assert body == "EXECUTE _trinoduck USING 1, 'a'"
    assert header == "_trinoduck=SELECT%20%3F%20WHERE%20x%20%3D%20%3F"
