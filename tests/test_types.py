"""Tests for type signature parsing and value decoding."""

import math
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from trinoduck import DecodeError, TypedValue, decode, encode, parse_signature


class TestParseSignature:
    def test_scalar(self) -> None:
        sig = parse_signature("bigint")
        assert sig.base == "bigint"
        assert sig.kind == "integer"
        assert sig.arguments == ()

    def test_nested(self) -> None:
        sig = parse_signature("array(map(varchar,integer))")
        assert sig.kind == "sequence"
        (element,) = sig.type_arguments
        assert element.kind == "mapping"
        key, value = element.type_arguments
        assert (key.base, value.base) == ("varchar", "integer")

    def test_parameters_and_suffix_words(self) -> None:
        sig = parse_signature("timestamp(3) with time zone")
        assert sig.base == "timestamp with time zone"
        assert sig.precision == 3
        assert sig.kind == "timestamp"

        sig = parse_signature("decimal(10, 2)")
        assert (sig.precision, sig.scale) == (10, 2)

    def test_row_fields(self) -> None:
        sig = parse_signature('row(x bigint, "y z" varchar, double)')
        assert sig.kind == "row"
        assert sig.field_names == ("x", "y z", None)
        assert [f.base for f in sig.type_arguments] == ["bigint", "varchar", "double"]

    def test_raw_text_is_kept(self) -> None:
        assert str(parse_signature("array(bigint)")) == "array(bigint)"

    @pytest.mark.parametrize(
        "text",
        ["geometry", "array(", "array(bigint", "map(varchar)", "array()", "", "array(bigint))"],
    )
    def test_invalid(self, text: str) -> None:
        with pytest.raises(DecodeError):
            parse_signature(text)


class TestNullAwareness:
    def test_null_scalar_has_zero_value(self) -> None:
        v = decode("bigint", None)
        assert v.is_null
        assert v.value == 0
        assert v.optional is None

        assert decode("varchar", None).value == ""
        assert decode("boolean", None).value is False

    def test_null_map_versus_empty_map(self) -> None:
        null_map = decode("map(varchar,integer)", None)
        empty_map = decode("map(varchar,integer)", {})

        assert null_map.is_null
        assert not empty_map.is_null
        # Both read the same through the zero-value accessor...
        assert null_map.value == {} == empty_map.value
        # ...but not through the optional one.
        assert null_map.optional is None
        assert empty_map.optional == {}
        assert null_map != empty_map

    def test_null_array_versus_empty_array(self) -> None:
        null_array = decode("array(bigint)", None)
        empty_array = decode("array(bigint)", [])
        assert null_array.value == [] and null_array.optional is None
        assert empty_array.value == [] and empty_array.optional == []
        assert len(null_array) == 0

    def test_elements_keep_their_own_validity(self) -> None:
        v = decode("array(array(bigint))", [[1, None], None, []])
        assert [item.is_null for item in v] == [False, True, False]
        assert [cell.is_null for cell in v[0]] == [False, True]
        assert v[1].value == []
        assert v.to_python() == [[1, None], None, []]


@pytest.mark.parametrize(
    "signature, fragment",
    [
        ("array(bigint)", [1, None, 3]),
        ("array(array(bigint))", [[1, None], None, []]),
        ("array(array(array(varchar)))", [[["a", None]], None, [[]], [None]]),
        ("map(varchar,array(integer))", {"a": [1, None], "b": None, "c": []}),
        ("array(row(x bigint, y varchar))", [[1, "a"], None, [None, None]]),
    ],
)
def test_nested_values_reencode_identically(signature: str, fragment: object) -> None:
    assert decode(signature, fragment).to_json() == fragment


class TestScalars:
    def test_integers(self) -> None:
        assert decode("bigint", 42).value == 42
        assert decode("bigint", "9223372036854775807").value == 2**63 - 1

    def test_doubles(self) -> None:
        assert decode("double", 1.5).value == 1.5
        assert math.isnan(decode("double", "NaN").value)
        assert decode("real", "-Infinity").value == -math.inf
        assert encode("double", math.inf) == "Infinity"

    def test_decimal(self) -> None:
        assert decode("decimal(10,2)", "1.50").value == Decimal("1.50")
        assert decode("decimal(10,2)", "1.50", decimal_as_double=True).value == 1.5
        assert encode("decimal(10,2)", Decimal("1.50")) == "1.50"
        assert encode("decimal(38,0)", Decimal("1E+2")) == "100"

    def test_varbinary(self) -> None:
        v = decode("varbinary", "aGVsbG8=")
        assert v.value == b"hello"
        assert v.to_json() == "aGVsbG8="

    def test_date_and_time(self) -> None:
        assert decode("date", "2024-02-29").value == date(2024, 2, 29)
        assert decode("time(3)", "12:34:56.789").value == time(12, 34, 56, 789000)
        assert decode("time(3) with time zone", "01:02:03.000+05:30").value.utcoffset() == timedelta(
            hours=5, minutes=30
        )

    def test_timestamp_truncates_to_microseconds(self) -> None:
        v = decode("timestamp(9)", "2024-01-02 03:04:05.123456789")
        assert v.value == datetime(2024, 1, 2, 3, 4, 5, 123456)
        assert v.to_json() == "2024-01-02 03:04:05.123456000"

    @pytest.mark.parametrize(
        "zone, expected",
        [
            ("UTC", timezone.utc),
            ("+05:30", timezone(timedelta(hours=5, minutes=30))),
            ("Europe/Berlin", ZoneInfo("Europe/Berlin")),
        ],
    )
    def test_timestamp_with_time_zone(self, zone: str, expected) -> None:
        v = decode("timestamp(3) with time zone", f"2024-01-02 03:04:05.000 {zone}")
        assert v.value.tzinfo == expected
        assert v.to_json() == f"2024-01-02 03:04:05.000 {zone}"

    def test_map_with_non_string_keys(self) -> None:
        v = decode("map(bigint,varchar)", {"1": "a", "2": None})
        assert v[1].value == "a"
        assert v[2].is_null
        assert v.to_python() == {1: "a", 2: None}
        assert v.to_json() == {"1": "a", "2": None}
        with pytest.raises(KeyError):
            v[3]


class TestDecodeErrors:
    @pytest.mark.parametrize(
        "signature, fragment",
        [
            ("bigint", "abc"),
            ("bigint", True),
            ("boolean", "true"),
            ("array(bigint)", 1),
            ("map(varchar,bigint)", [1]),
            ("row(x bigint, y bigint)", [1]),
            ("date", "not a date"),
            ("timestamp(3)", "2024-01-02 03:04:05.000 UTC"),
            ("varbinary", "***"),
        ],
    )
    def test_mismatched_fragment(self, signature: str, fragment: object) -> None:
        with pytest.raises(DecodeError) as exc_info:
            decode(signature, fragment)
        assert exc_info.value.kind == "decode"
        assert exc_info.value.signature == signature
        assert exc_info.value.fragment == fragment

    def test_unknown_signature(self) -> None:
        with pytest.raises(DecodeError):
            decode("hyperloglog", "AAAA")


def test_typed_values_compare_by_signature_and_value() -> None:
    assert decode("array(bigint)", [1, None]) == decode("array(bigint)", [1, None])
    assert decode("bigint", 1) != decode("integer", 1)
    assert decode("bigint", None) == TypedValue.null(parse_signature("bigint"))
    assert len({decode("varchar", "a"), decode("varchar", "a")}) == 1
