"""
Runtime value wrappers for the Sust engine.

Values pair Python data with a Sust type. Strings are Python `str`, but all
byte-level operations go through UTF-8 with `surrogateescape`, so any byte
sequence built from chars round-trips exactly.
"""

from dataclasses import dataclass
from decimal import Decimal
import math
import re
from typing import Any, Callable, Dict, List, Optional

from ..types import (
    Type, TypeKind, ListType, MapType, OptionalType,
    INT, FLOAT, BOOL, CHAR, STRING, NULL, CHARS,
)
from ..errors import error_conversion, error_type_mismatch


_INT_LITERAL = re.compile(r"[+-]?[0-9]+")


@dataclass
class Value:
    """
    A runtime value with Sust type information.

    The `data` field holds the Python representation.
    The `type` field holds the declared Sust type.
    """
    data: Any
    type: Type

    def __repr__(self) -> str:
        return f"Value({self.data!r}, {self.type})"

    def __hash__(self) -> int:
        return hash((self.type, _freeze(self.data)))

    @property
    def kind(self) -> TypeKind:
        return self.type.kind

    def copy(self) -> "Value":
        """Deep copy; stream handles are shared, never duplicated."""
        kind = self.type.kind
        if kind == TypeKind.LIST:
            return Value([item.copy() for item in self.data], self.type)
        if kind == TypeKind.MAP:
            return Value({k.copy(): v.copy() for k, v in self.data.items()}, self.type)
        if kind == TypeKind.OPTIONAL:
            return Value(self.data.copy() if self.data is not None else None, self.type)
        return Value(self.data, self.type)


def _freeze(data: Any) -> Any:
    if isinstance(data, list):
        return tuple(_freeze(item) for item in data)
    if isinstance(data, dict):
        return frozenset((k, _freeze(v.data)) for k, v in data.items())
    if isinstance(data, Value):
        return (data.type, _freeze(data.data))
    return data


# Byte-level view of strings

def encode_text(text: str) -> bytes:
    """The bytes a string stands for."""
    return text.encode("utf-8", "surrogateescape")


def decode_text(data: bytes) -> str:
    """Build a string from arbitrary bytes."""
    return data.decode("utf-8", "surrogateescape")


# Convenience constructors

def int_val(n: int) -> Value:
    """Create an integer value."""
    return Value(int(n), INT)


def float_val(x: float) -> Value:
    """Create a float value."""
    return Value(float(x), FLOAT)


def bool_val(b: bool) -> Value:
    """Create a boolean value."""
    return Value(bool(b), BOOL)


def char_val(c: int) -> Value:
    """Create a char value (a single byte)."""
    if not 0 <= int(c) <= 255:
        raise error_conversion(INT.name, CHAR.name, f"{c} is outside 0..255")
    return Value(int(c), CHAR)


def string_val(s: str) -> Value:
    """Create a string value."""
    return Value(str(s), STRING)


def list_val(items: List[Value], element_type: Type) -> Value:
    """Create a list value from a list of Values."""
    return Value(list(items), ListType(element_type))


def chars_val(data: bytes) -> Value:
    """Create a list[char] value from bytes."""
    return Value([Value(b, CHAR) for b in data], CHARS)


def map_val(items: Dict[Value, Value], key_type: Type, value_type: Type) -> Value:
    """Create a map value."""
    return Value(dict(items), MapType(key_type, value_type))


def optional_val(inner: Optional[Value], inner_type: Type) -> Value:
    """Create an optional value, present or empty."""
    return Value(inner, OptionalType(inner_type))


def null_val() -> Value:
    """The unit value."""
    return Value(None, NULL)


def stream_val(handle: Any, stream_type: Type) -> Value:
    """Wrap a stream handle."""
    return Value(handle, stream_type)


def default_value(t: Type) -> Value:
    """The value a freshly initialized binding of type `t` holds."""
    kind = t.kind
    if kind == TypeKind.BOOL:
        return Value(False, t)
    if kind == TypeKind.INTEGER:
        return Value(0, t)
    if kind == TypeKind.FLOAT:
        return Value(0.0, t)
    if kind == TypeKind.CHAR:
        return Value(0, t)
    if kind == TypeKind.STRING:
        return Value("", t)
    if kind == TypeKind.LIST:
        return Value([], t)
    if kind == TypeKind.MAP:
        return Value({}, t)
    # optional, streams and null all start out absent
    return Value(None, t)


def parse_literal(t: Type, text: str) -> Value:
    """Parse literal text as a value of type `t`."""
    kind = t.kind
    if kind == TypeKind.BOOL:
        if text in ("true", "1"):
            return Value(True, t)
        if text in ("false", "0"):
            return Value(False, t)
    elif kind == TypeKind.INTEGER:
        if _INT_LITERAL.fullmatch(text):
            return Value(int(text), t)
    elif kind == TypeKind.FLOAT:
        if text == text.strip() and "_" not in text:
            try:
                return Value(float(text), t)
            except ValueError:
                pass
    elif kind == TypeKind.CHAR:
        if _INT_LITERAL.fullmatch(text) and 0 <= int(text) <= 255:
            return Value(int(text), t)
    elif kind == TypeKind.STRING:
        return Value(text, t)
    elif kind == TypeKind.OPTIONAL:
        if text == "none":
            return Value(None, t)
        if text.startswith("[") and text.endswith("]"):
            return Value(parse_literal(t.inner_type, text[1:-1]), t)
    elif kind == TypeKind.NULL:
        return Value(None, t)
    raise error_conversion(repr(text), t.name)


# Canonical representation

def format_float(x: float) -> str:
    """
    Shortest round-tripping decimal text, never in exponent form.

    Integral values drop the fraction: `15.0` renders as `15`.
    """
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "inf" if x > 0 else "-inf"
    text = repr(x)
    if "e" in text:
        text = format(Decimal(text), "f")
    if text.endswith(".0"):
        text = text[:-2]
    return text


def render(value: Value) -> str:
    """The canonical text of a value (what TO_STRING produces)."""
    kind = value.kind
    data = value.data
    if kind == TypeKind.BOOL:
        return "true" if data else "false"
    if kind == TypeKind.INTEGER:
        return str(data)
    if kind == TypeKind.FLOAT:
        return format_float(data)
    if kind == TypeKind.CHAR:
        return decode_text(bytes([data]))
    if kind == TypeKind.STRING:
        return data
    if kind == TypeKind.LIST:
        if value.type == CHARS:
            return decode_text(bytes(item.data for item in data))
        return "[" + ", ".join(render(item) for item in data) + "]"
    if kind == TypeKind.MAP:
        return "{" + ", ".join(f"{render(k)}: {render(v)}" for k, v in data.items()) + "}"
    if kind == TypeKind.OPTIONAL:
        return f"({render(data)})" if data is not None else "none"
    if kind == TypeKind.IN_STREAM:
        return "IN_STREAM"
    if kind == TypeKind.OUT_STREAM:
        return "OUT_STREAM"
    return "null"


def text_bytes(value: Value) -> Optional[bytes]:
    """Bytes of a String, Char or list[char]; None for anything else."""
    if value.type == STRING:
        return encode_text(value.data)
    if value.type == CHAR:
        return bytes([value.data])
    if value.type == CHARS:
        return bytes(item.data for item in value.data)
    return None


def output_bytes(value: Value) -> bytes:
    """What WRITE sends for a value."""
    raw = text_bytes(value)
    if raw is None:
        raw = encode_text(render(value))
    return raw


def expect_type(value: Value, expected: Type) -> Value:
    """Fail with a type mismatch unless `value` has type `expected`."""
    if not expected.is_assignable_from(value.type):
        raise error_type_mismatch(expected.name, value.type.name)
    return value


def expect_kind(value: Value, *kinds: TypeKind) -> Value:
    """Fail with a type mismatch unless `value` is one of `kinds`."""
    if value.kind not in kinds:
        expected = " or ".join(k.name.lower() for k in kinds)
        raise error_type_mismatch(expected, value.type.name)
    return value


# =============================================================================
# Conversion table
# =============================================================================

def _to_string(value: Value) -> Value:
    return string_val(render(value))


def _string_to_chars(value: Value) -> Value:
    return chars_val(encode_text(value.data))


def _parse_int(value: Value) -> Value:
    if not _INT_LITERAL.fullmatch(value.data):
        raise error_conversion(repr(value.data), INT.name)
    return int_val(int(value.data))


def _parse_float(value: Value) -> Value:
    return parse_literal(FLOAT, value.data)


def _string_to_char(value: Value) -> Value:
    raw = encode_text(value.data)
    if not raw:
        raise error_conversion("empty string", CHAR.name)
    return Value(raw[0], CHAR)


def _int_to_char(value: Value) -> Value:
    return char_val(value.data)


def _float_to_int(value: Value) -> Value:
    if not math.isfinite(value.data):
        raise error_conversion(format_float(value.data), INT.name, "not a finite number")
    return int_val(int(value.data))


def _int_to_float(value: Value) -> Value:
    try:
        return float_val(float(value.data))
    except OverflowError:
        raise error_conversion(str(value.data), FLOAT.name, "out of float range")


def _truthiness(value: Value) -> Value:
    kind = value.kind
    data = value.data
    if kind == TypeKind.STRING:
        return bool_val(data in ("true", "1"))
    if kind in (TypeKind.LIST, TypeKind.MAP):
        return bool_val(len(data) > 0)
    if kind in (TypeKind.OPTIONAL, TypeKind.IN_STREAM, TypeKind.OUT_STREAM):
        return bool_val(data is not None)
    if kind == TypeKind.NULL:
        return bool_val(False)
    return bool_val(data != 0)


Converter = Callable[[Value], Value]

# target kind -> source kind -> converter; missing pairs have no conversion path
CONVERSIONS: Dict[TypeKind, Dict[TypeKind, Converter]] = {
    TypeKind.STRING: {kind: _to_string for kind in TypeKind},
    TypeKind.LIST: {
        TypeKind.STRING: _string_to_chars,
    },
    TypeKind.INTEGER: {
        TypeKind.STRING: _parse_int,
        TypeKind.INTEGER: lambda v: int_val(v.data),
        TypeKind.FLOAT: _float_to_int,
        TypeKind.CHAR: lambda v: int_val(v.data),
        TypeKind.BOOL: lambda v: int_val(1 if v.data else 0),
    },
    TypeKind.FLOAT: {
        TypeKind.STRING: _parse_float,
        TypeKind.INTEGER: _int_to_float,
        TypeKind.FLOAT: lambda v: float_val(v.data),
        TypeKind.CHAR: lambda v: float_val(v.data),
    },
    TypeKind.CHAR: {
        TypeKind.STRING: _string_to_char,
        TypeKind.CHAR: lambda v: Value(v.data, CHAR),
        TypeKind.INTEGER: _int_to_char,
    },
    TypeKind.BOOL: {kind: _truthiness for kind in TypeKind},
}


def convert(value: Value, target: Type) -> Value:
    """Convert a value to `target` through the conversion table."""
    converter = CONVERSIONS.get(target.kind, {}).get(value.kind)
    if converter is None:
        raise error_conversion(value.type.name, target.name, "no conversion defined")
    result = converter(value)
    if result.type != target:
        raise error_conversion(value.type.name, target.name, "no conversion defined")
    return result
