"""Type decoding for coordinator result values.

The coordinator describes every result column with a type signature string
such as ``array(map(varchar,integer))`` and sends values as plain JSON. This
module parses those signatures and turns (signature, JSON fragment) pairs
into :class:`TypedValue` objects, and back.

Decoding is a single recursive descent keyed on the signature's head token,
so ``array(array(array(bigint)))`` goes through the same code path as
``array(bigint)``.
"""

from __future__ import annotations

import base64
import json
import math
import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Any, Iterator
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import DecodeError

# Head token -> value kind
TYPE_KINDS = {
    "varchar": "string",
    "char": "string",
    "json": "string",
    "uuid": "string",
    "ipaddress": "string",
    "ipprefix": "string",
    "unknown": "string",
    "interval day to second": "string",
    "interval year to month": "string",
    "tinyint": "integer",
    "smallint": "integer",
    "integer": "integer",
    "bigint": "integer",
    "real": "double",
    "double": "double",
    "boolean": "boolean",
    "decimal": "decimal",
    "date": "date",
    "time": "time",
    "time with time zone": "time",
    "timestamp": "timestamp",
    "timestamp with time zone": "timestamp",
    "varbinary": "binary",
    "array": "sequence",
    "map": "mapping",
    "row": "row",
}

# Words that may follow a head token, e.g. "timestamp(3) with time zone"
_SUFFIX_WORDS = frozenset(["with", "without", "time", "zone", "to", "day", "second", "year", "month"])

_TOKEN_RE = re.compile(r'\s*(?:(?P<num>\d+)|(?P<ident>[A-Za-z_][A-Za-z0-9_]*)|"(?P<quoted>(?:[^"]|"")*)"|(?P<punct>[(),]))')

_TIMESTAMP_RE = re.compile(
    r"^(?P<date>-?\d{4,}-\d{2}-\d{2})[ T](?P<time>\d{2}:\d{2}:\d{2})(?:\.(?P<fraction>\d+))?(?:\s*(?P<zone>.+))?$"
)
_TIME_RE = re.compile(
    r"^(?P<time>\d{2}:\d{2}:\d{2})(?:\.(?P<fraction>\d+))?(?P<zone>[+-]\d{2}:\d{2})?$"
)
_OFFSET_RE = re.compile(r"^(?P<sign>[+-])(?P<hours>\d{2}):?(?P<minutes>\d{2})$")

_SPECIAL_FLOATS = {"NaN": math.nan, "Infinity": math.inf, "-Infinity": -math.inf}


@dataclass(frozen=True)
class TypeSignature:
    """A parsed type signature.

    Attributes:
        base: Lower-cased head token, including suffix words
            (``"timestamp with time zone"``).
        arguments: Integer parameters or nested signatures.
        field_names: Row field names, ``None`` for anonymous fields.
        raw: The signature text as received.
    """

    base: str
    arguments: tuple[Any, ...] = ()
    field_names: tuple[str | None, ...] = ()
    raw: str = field(default="", compare=False)

    @property
    def kind(self) -> str:
        try:
            return TYPE_KINDS[self.base]
        except KeyError:
            raise DecodeError("unsupported type signature", self.raw or self.base, None) from None

    @property
    def type_arguments(self) -> list[TypeSignature]:
        return [a for a in self.arguments if isinstance(a, TypeSignature)]

    @property
    def precision(self) -> int | None:
        ints = [a for a in self.arguments if isinstance(a, int)]
        return ints[0] if ints else None

    @property
    def scale(self) -> int | None:
        ints = [a for a in self.arguments if isinstance(a, int)]
        return ints[1] if len(ints) > 1 else None

    def __str__(self) -> str:
        return self.raw or self.base


class _SignatureParser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = self._tokenize(text)
        self.pos = 0

    def _tokenize(self, text: str) -> list[tuple[str, str]]:
        tokens = []
        index = 0
        stripped = text.rstrip()
        while index < len(stripped):
            match = _TOKEN_RE.match(stripped, index)
            if not match:
                raise DecodeError("malformed type signature", self.text, None)
            kind = match.lastgroup
            value = match.group(kind)
            if kind == "quoted":
                value = value.replace('""', '"')
            tokens.append((kind, value))
            index = match.end()
        return tokens

    def peek(self, offset: int = 0) -> tuple[str, str] | None:
        index = self.pos + offset
        return self.tokens[index] if index < len(self.tokens) else None

    def take(self, kind: str | None = None, value: str | None = None) -> tuple[str, str]:
        token = self.peek()
        if token is None or (kind and token[0] != kind) or (value and token[1] != value):
            raise DecodeError("malformed type signature", self.text, None)
        self.pos += 1
        return token

    def parse(self) -> TypeSignature:
        signature = self.parse_type()
        if self.peek() is not None:
            raise DecodeError("malformed type signature", self.text, None)
        return replace(signature, raw=self.text.strip())

    def parse_type(self) -> TypeSignature:
        start = self.pos
        head = self.take("ident")[1].lower()
        arguments: list[Any] = []
        field_names: list[str | None] = []

        if self.peek() == ("punct", "("):
            self.take()
            while True:
                if head == "row":
                    name, argument = self.parse_field()
                    field_names.append(name)
                else:
                    argument = self.parse_argument()
                arguments.append(argument)
                if self.peek() == ("punct", ","):
                    self.take()
                    continue
                self.take("punct", ")")
                break

        words = [head]
        while (token := self.peek()) and token[0] == "ident" and token[1].lower() in _SUFFIX_WORDS:
            words.append(self.take()[1].lower())

        return TypeSignature(
            base=" ".join(words),
            arguments=tuple(arguments),
            field_names=tuple(field_names),
            raw=self._raw(start),
        )

    def parse_argument(self) -> Any:
        token = self.peek()
        if token and token[0] == "num":
            self.take()
            return int(token[1])
        return self.parse_type()

    def parse_field(self) -> tuple[str | None, TypeSignature]:
        token = self.peek()
        following = self.peek(1)
        if token and token[0] == "quoted":
            self.take()
            return token[1], self.parse_type()
        if (
            token
            and token[0] == "ident"
            and following
            and following[0] == "ident"
            and following[1].lower() not in _SUFFIX_WORDS
        ):
            self.take()
            return token[1], self.parse_type()
        return None, self.parse_type()

    def _raw(self, start: int) -> str:
        parts = []
        for kind, value in self.tokens[start : self.pos]:
            if kind == "quoted":
                value = '"' + value.replace('"', '""') + '"'
            if parts and kind in ("ident", "quoted") and parts[-1] not in ("(", ","):
                parts.append(" ")
            parts.append(value)
        return "".join(parts)


@lru_cache(maxsize=1024)
def parse_signature(text: str) -> TypeSignature:
    """Parse a type signature string, e.g. ``map(varchar,array(bigint))``."""
    if not isinstance(text, str) or not text.strip():
        raise DecodeError("malformed type signature", str(text), None)
    signature = _SignatureParser(text).parse()
    _validate(signature)
    return signature


def _validate(signature: TypeSignature) -> None:
    kind = signature.kind
    nested = signature.type_arguments
    expected = {"sequence": 1, "mapping": 2}.get(kind)
    if expected is not None and len(nested) != expected:
        raise DecodeError(f"{signature.base} expects {expected} type argument(s)", signature.raw, None)
    if kind == "row" and not nested:
        raise DecodeError("row expects at least one field", signature.raw, None)
    for argument in nested:
        _validate(argument)


# -----------------------------------------------------------------------------
# Typed values
# -----------------------------------------------------------------------------

ZERO_VALUES: dict[str, Any] = {
    "string": "",
    "integer": 0,
    "double": 0.0,
    "boolean": False,
    "decimal": Decimal(0),
    "date": date.min,
    "time": time.min,
    "timestamp": datetime.min,
    "binary": b"",
}


class TypedValue:
    """A decoded cell, tagged with its signature and a nullability bit.

    ``value`` returns the native value or the kind's zero value when null;
    ``optional`` returns the native value or ``None``. Both work the same way
    for scalars, sequences and mappings.
    """

    __slots__ = ("signature", "valid", "_value")

    def __init__(self, signature: TypeSignature, value: Any = None, valid: bool = True) -> None:
        self.signature = signature
        self.valid = valid and value is not None
        self._value = value if self.valid else None

    @classmethod
    def null(cls, signature: TypeSignature) -> TypedValue:
        return cls(signature, None, valid=False)

    @property
    def kind(self) -> str:
        return self.signature.kind

    @property
    def is_null(self) -> bool:
        return not self.valid

    @property
    def value(self) -> Any:
        if self.valid:
            return self._value
        kind = self.kind
        if kind == "sequence":
            return []
        if kind == "mapping":
            return {}
        if kind == "row":
            return ()
        return ZERO_VALUES[kind]

    @property
    def optional(self) -> Any:
        return self._value

    def __iter__(self) -> Iterator[Any]:
        return iter(self.value)

    def __len__(self) -> int:
        return len(self.value)

    def __getitem__(self, key: Any) -> Any:
        if self.kind == "mapping" and not isinstance(key, TypedValue):
            for item_key, item_value in self.value.items():
                if item_key.optional == key:
                    return item_value
            raise KeyError(key)
        return self.value[key]

    def to_python(self) -> Any:
        """Recursively convert to plain Python values, ``None`` for nulls."""
        if not self.valid:
            return None
        kind = self.kind
        if kind == "sequence":
            return [item.to_python() for item in self._value]
        if kind == "row":
            return tuple(item.to_python() for item in self._value)
        if kind == "mapping":
            return {_hashable(k.to_python()): v.to_python() for k, v in self._value.items()}
        return self._value

    def to_json(self) -> Any:
        """Re-encode to the coordinator's JSON representation."""
        return encode(self.signature, self.to_python())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TypedValue):
            return NotImplemented
        return (
            self.signature == other.signature
            and self.valid == other.valid
            and _hashable(self.to_python()) == _hashable(other.to_python())
        )

    def __hash__(self) -> int:
        return hash((self.signature, self.valid, _hashable(self.to_python())))

    def __repr__(self) -> str:
        if not self.valid:
            return f"TypedValue({self.signature}, NULL)"
        return f"TypedValue({self.signature}, {self._value!r})"


def _hashable(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(_hashable(v) for v in value)
    if isinstance(value, dict):
        return tuple((_hashable(k), _hashable(v)) for k, v in value.items())
    if isinstance(value, float) and math.isnan(value):
        return "NaN"
    return value


# -----------------------------------------------------------------------------
# Decoding
# -----------------------------------------------------------------------------


def decode(signature: TypeSignature | str, raw: Any, *, decimal_as_double: bool = False) -> TypedValue:
    """Decode a raw JSON fragment according to ``signature``.

    Raises:
        DecodeError: The signature is unknown or the fragment does not match it.
    """
    if isinstance(signature, str):
        signature = parse_signature(signature)
    if raw is None:
        return TypedValue.null(signature)

    kind = signature.kind
    if kind == "sequence":
        if not isinstance(raw, list):
            raise DecodeError("expected a JSON array", signature.raw, raw)
        (element,) = signature.type_arguments
        return TypedValue(signature, [decode(element, item, decimal_as_double=decimal_as_double) for item in raw])

    if kind == "mapping":
        if not isinstance(raw, dict):
            raise DecodeError("expected a JSON object", signature.raw, raw)
        key_type, value_type = signature.type_arguments
        return TypedValue(
            signature,
            {
                decode(key_type, _map_key(key_type, key), decimal_as_double=decimal_as_double): decode(
                    value_type, item, decimal_as_double=decimal_as_double
                )
                for key, item in raw.items()
            },
        )

    if kind == "row":
        fields = signature.type_arguments
        if not isinstance(raw, list) or len(raw) != len(fields):
            raise DecodeError(f"expected a JSON array of {len(fields)} fields", signature.raw, raw)
        return TypedValue(
            signature,
            tuple(decode(f, item, decimal_as_double=decimal_as_double) for f, item in zip(fields, raw)),
        )

    decoder = _SCALAR_DECODERS[kind]
    try:
        value = decoder(signature, raw, decimal_as_double)
    except DecodeError:
        raise
    except (ValueError, TypeError, ArithmeticError, InvalidOperation, ZoneInfoNotFoundError) as e:
        raise DecodeError(f"invalid {signature.base} value: {e}", signature.raw, raw) from None
    return TypedValue(signature, value)


def _map_key(key_type: TypeSignature, key: str) -> Any:
    # Map keys always arrive as JSON object keys, i.e. strings.
    if key_type.kind in ("string", "date", "time", "timestamp", "decimal", "binary"):
        return key
    try:
        return json.loads(key)
    except ValueError:
        raise DecodeError("invalid map key", key_type.raw, key) from None


def _decode_string(signature: TypeSignature, raw: Any, _: bool) -> str:
    if not isinstance(raw, str):
        raise DecodeError("expected a string", signature.raw, raw)
    return raw


def _decode_integer(signature: TypeSignature, raw: Any, _: bool) -> int:
    if isinstance(raw, bool):
        raise DecodeError("expected an integer", signature.raw, raw)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and re.fullmatch(r"-?\d+", raw.strip()):
        return int(raw)
    raise DecodeError("expected an integer", signature.raw, raw)


def _decode_double(signature: TypeSignature, raw: Any, _: bool) -> float:
    if isinstance(raw, bool):
        raise DecodeError("expected a number", signature.raw, raw)
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str):
        if raw in _SPECIAL_FLOATS:
            return _SPECIAL_FLOATS[raw]
        return float(raw)
    raise DecodeError("expected a number", signature.raw, raw)


def _decode_boolean(signature: TypeSignature, raw: Any, _: bool) -> bool:
    if not isinstance(raw, bool):
        raise DecodeError("expected a boolean", signature.raw, raw)
    return raw


def _decode_decimal(signature: TypeSignature, raw: Any, decimal_as_double: bool) -> Decimal | float:
    if isinstance(raw, bool) or not isinstance(raw, (str, int, float)):
        raise DecodeError("expected a decimal", signature.raw, raw)
    if decimal_as_double:
        return float(raw)
    return Decimal(str(raw))


def _decode_binary(signature: TypeSignature, raw: Any, _: bool) -> bytes:
    if not isinstance(raw, str):
        raise DecodeError("expected base64 text", signature.raw, raw)
    return base64.b64decode(raw, validate=True)


def _decode_date(signature: TypeSignature, raw: Any, _: bool) -> date:
    if not isinstance(raw, str):
        raise DecodeError("expected a date string", signature.raw, raw)
    return date.fromisoformat(raw)


def _microseconds(fraction: str | None) -> int:
    if not fraction:
        return 0
    return int(fraction[:6].ljust(6, "0"))


def _decode_time(signature: TypeSignature, raw: Any, _: bool) -> time:
    match = _TIME_RE.match(raw) if isinstance(raw, str) else None
    if not match:
        raise DecodeError("expected a time string", signature.raw, raw)
    hour, minute, second = (int(p) for p in match["time"].split(":"))
    tz = parse_zone(match["zone"]) if match["zone"] else None
    return time(hour, minute, second, _microseconds(match["fraction"]), tzinfo=tz)


def _decode_timestamp(signature: TypeSignature, raw: Any, _: bool) -> datetime:
    match = _TIMESTAMP_RE.match(raw) if isinstance(raw, str) else None
    if not match:
        raise DecodeError("expected a timestamp string", signature.raw, raw)
    day = date.fromisoformat(match["date"])
    hour, minute, second = (int(p) for p in match["time"].split(":"))
    zone = match["zone"]
    if zone and signature.base != "timestamp with time zone":
        raise DecodeError("unexpected time zone", signature.raw, raw)
    return datetime(
        day.year,
        day.month,
        day.day,
        hour,
        minute,
        second,
        _microseconds(match["fraction"]),
        tzinfo=parse_zone(zone) if zone else None,
    )


def parse_zone(zone: str) -> tzinfo:
    """Parse a zone as sent by the coordinator: ``UTC``, ``+05:30`` or ``Europe/Berlin``."""
    zone = zone.strip()
    if zone in ("UTC", "Z", "Zulu"):
        return timezone.utc
    match = _OFFSET_RE.match(zone)
    if match:
        offset = timedelta(hours=int(match["hours"]), minutes=int(match["minutes"]))
        return timezone(-offset if match["sign"] == "-" else offset)
    return ZoneInfo(zone)


_SCALAR_DECODERS = {
    "string": _decode_string,
    "integer": _decode_integer,
    "double": _decode_double,
    "boolean": _decode_boolean,
    "decimal": _decode_decimal,
    "binary": _decode_binary,
    "date": _decode_date,
    "time": _decode_time,
    "timestamp": _decode_timestamp,
}


# -----------------------------------------------------------------------------
# Encoding
# -----------------------------------------------------------------------------


def encode(signature: TypeSignature | str, value: Any) -> Any:
    """Encode a Python value into the coordinator's JSON representation."""
    if isinstance(signature, str):
        signature = parse_signature(signature)
    if value is None:
        return None
    if isinstance(value, TypedValue):
        return value.to_json()

    kind = signature.kind
    if kind == "sequence":
        (element,) = signature.type_arguments
        return [encode(element, item) for item in value]
    if kind == "row":
        return [encode(f, item) for f, item in zip(signature.type_arguments, value)]
    if kind == "mapping":
        key_type, value_type = signature.type_arguments
        return {_encode_map_key(key_type, k): encode(value_type, v) for k, v in value.items()}
    if kind == "double":
        value = float(value)
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        return value
    if kind == "integer":
        return int(value)
    if kind == "boolean":
        return bool(value)
    if kind == "decimal":
        return format(value, "f") if isinstance(value, Decimal) else str(value)
    if kind == "binary":
        return base64.b64encode(bytes(value)).decode("ascii")
    if kind == "date":
        return value.isoformat()
    if kind == "time":
        text = value.strftime("%H:%M:%S") + _fraction(value.microsecond, signature.precision)
        if value.tzinfo is not None:
            text += format_zone(value.tzinfo, value)
        return text
    if kind == "timestamp":
        text = value.strftime("%Y-%m-%d %H:%M:%S") + _fraction(value.microsecond, signature.precision)
        if value.tzinfo is not None and signature.base == "timestamp with time zone":
            text += " " + format_zone(value.tzinfo, value)
        return text
    return str(value)


def _encode_map_key(key_type: TypeSignature, key: Any) -> str:
    encoded = encode(key_type, key)
    if isinstance(encoded, str):
        return encoded
    return json.dumps(encoded)


def _fraction(microsecond: int, precision: int | None) -> str:
    if precision is None:
        precision = 3
    if precision == 0:
        return ""
    return "." + f"{microsecond:06d}"[:precision].ljust(precision, "0")


def format_zone(tz: tzinfo, moment: datetime | time) -> str:
    if isinstance(tz, ZoneInfo):
        return tz.key
    if tz is timezone.utc:
        return "UTC"
    # pytz zones, as returned by some database drivers
    if isinstance(getattr(tz, "zone", None), str):
        return tz.zone
    offset = tz.utcoffset(moment if isinstance(moment, datetime) else None) or timedelta(0)
    sign = "-" if offset < timedelta(0) else "+"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{sign}{minutes // 60:02d}:{minutes % 60:02d}"
