"""
Type system definitions for the Sust language.

The type system is closed. Every value belongs to exactly one of:
    Scalars: bool, integer, float, char, string
    Containers: list[T], map[K,V], optional[T]
    Streams: in_stream, out_stream

Plus the unit type `null`, which only appears as a function result type.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional
from enum import Enum, auto
from abc import ABC, abstractmethod


class TypeKind(Enum):
    """Kind classification for types."""
    BOOL = auto()
    INTEGER = auto()
    FLOAT = auto()
    CHAR = auto()
    STRING = auto()
    LIST = auto()
    MAP = auto()
    OPTIONAL = auto()
    IN_STREAM = auto()
    OUT_STREAM = auto()
    NULL = auto()


# =============================================================================
# Type Classes
# =============================================================================

@dataclass(frozen=True)
class Type(ABC):
    """Base class for all Sust types."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The type name for display/errors."""
        pass

    @property
    @abstractmethod
    def kind(self) -> TypeKind:
        """The kind this type belongs to."""
        pass

    def is_assignable_from(self, other: "Type") -> bool:
        """Check if this type can accept a value of the other type."""
        return self == other

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class PrimitiveType(Type):
    """A scalar type (bool, integer, float, char, string) or null."""
    _name: str
    _kind: TypeKind

    @property
    def name(self) -> str:
        return self._name

    @property
    def kind(self) -> TypeKind:
        return self._kind


@dataclass(frozen=True)
class StreamType(Type):
    """A stream handle type: in_stream or out_stream."""
    _name: str
    _kind: TypeKind

    @property
    def name(self) -> str:
        return self._name

    @property
    def kind(self) -> TypeKind:
        return self._kind


@dataclass(frozen=True)
class ListType(Type):
    """A homogeneous list type: list[T]."""
    element_type: Type

    @property
    def name(self) -> str:
        return f"list[{self.element_type.name}]"

    @property
    def kind(self) -> TypeKind:
        return TypeKind.LIST


@dataclass(frozen=True)
class MapType(Type):
    """A map type with declared key and value types: map[K,V]."""
    key_type: Type
    value_type: Type

    @property
    def name(self) -> str:
        return f"map[{self.key_type.name},{self.value_type.name}]"

    @property
    def kind(self) -> TypeKind:
        return TypeKind.MAP


@dataclass(frozen=True)
class OptionalType(Type):
    """A present-or-absent wrapper type: optional[T]."""
    inner_type: Type

    @property
    def name(self) -> str:
        return f"optional[{self.inner_type.name}]"

    @property
    def kind(self) -> TypeKind:
        return TypeKind.OPTIONAL


# =============================================================================
# Built-in Type Instances
# =============================================================================

BOOL = PrimitiveType("bool", TypeKind.BOOL)
INT = PrimitiveType("integer", TypeKind.INTEGER)
FLOAT = PrimitiveType("float", TypeKind.FLOAT)
CHAR = PrimitiveType("char", TypeKind.CHAR)
STRING = PrimitiveType("string", TypeKind.STRING)
NULL = PrimitiveType("null", TypeKind.NULL)

IN_STREAM = StreamType("in_stream", TypeKind.IN_STREAM)
OUT_STREAM = StreamType("out_stream", TypeKind.OUT_STREAM)

CHARS = ListType(CHAR)


# Every spelling the language accepts for a non-generic type
TYPE_NAMES: Dict[str, Type] = {
    "bool": BOOL,
    "b": BOOL,
    "string": STRING,
    "str": STRING,
    "s": STRING,
    "integer": INT,
    "int": INT,
    "i": INT,
    "float": FLOAT,
    "f": FLOAT,
    "char": CHAR,
    "c": CHAR,
    "in_stream": IN_STREAM,
    "in": IN_STREAM,
    "out_stream": OUT_STREAM,
    "out": OUT_STREAM,
    "null": NULL,
}


def _split_type_args(text: str) -> List[str]:
    """Split generic arguments on commas at bracket depth zero."""
    parts: List[str] = []
    depth = 0
    current = []
    for char in text:
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts


def parse_type_name(name: str) -> Optional[Type]:
    """
    Resolve a type name to a Type.

    Handles generic forms such as `list[int]`, `map[string,list[char]]`
    and `optional[float]`. Returns None if the name is not a valid type.
    """
    name = name.strip()
    if name in TYPE_NAMES:
        return TYPE_NAMES[name]

    if not name.endswith("]") or "[" not in name:
        return None

    head, _, rest = name.partition("[")
    args = _split_type_args(rest[:-1])

    if head == "list" and len(args) == 1:
        element = parse_type_name(args[0])
        return ListType(element) if element is not None else None
    if head == "optional" and len(args) == 1:
        inner = parse_type_name(args[0])
        return OptionalType(inner) if inner is not None else None
    if head == "map" and len(args) == 2:
        key = parse_type_name(args[0])
        value = parse_type_name(args[1])
        if key is None or value is None:
            return None
        return MapType(key, value)
    return None


def resolve_type_name(name: str) -> Type:
    """Resolve a type name, raising a script error if it is unknown."""
    resolved = parse_type_name(name)
    if resolved is None:
        from .errors import error_unknown_type
        raise error_unknown_type(name)
    return resolved


def is_numeric(t: Type) -> bool:
    """Integer, float and char values compare numerically."""
    return t.kind in (TypeKind.INTEGER, TypeKind.FLOAT, TypeKind.CHAR)
