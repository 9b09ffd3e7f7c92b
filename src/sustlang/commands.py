"""
Opcodes and commands for the Sust engine.

A program reaches the engine as an ordered list of `Command` objects, each
an opcode plus its argument tokens and the source line it came from.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


class Opcode(Enum):
    """All opcodes recognized by the engine."""

    # --- Variables ---
    INIT_VAR = "INIT_VAR"               # type name
    SET_VAR = "SET_VAR"                 # path literal
    TEMP_VAR = "TEMP_VAR"               # type name literal
    MOVE_VAR = "MOVE_VAR"               # source target
    COPY_VAR = "COPY_VAR"               # source target
    DROP_VAR = "DROP_VAR"               # path
    HAS_VAR = "HAS_VAR"                 # path result

    # --- Conversions ---
    TO_STRING = "TO_STRING"
    TO_CHARS = "TO_CHARS"
    TO_CHAR = "TO_CHAR"
    TO_INTEGER = "TO_INTEGER"
    TO_FLOAT = "TO_FLOAT"
    TO_BOOL = "TO_BOOL"

    # --- Accessors ---
    GET_SYMBOL = "GET_SYMBOL"           # str index result
    GET_ITEM = "GET_ITEM"               # list index result
    GET_VALUE = "GET_VALUE"             # map key result

    # --- Arithmetic & slicing ---
    ADD_INT = "ADD_INT"
    ADD_FLOAT = "ADD_FLOAT"
    ADD_STR = "ADD_STR"
    SUB_STR = "SUB_STR"                 # str start end (inclusive)
    SUB_LIST = "SUB_LIST"               # list start end (inclusive)

    # --- Streams ---
    WRITE = "WRITE"                     # value out
    READ = "READ"                       # target size in
    READ_ALL = "READ_ALL"               # target in
    OPEN_FILE_IN = "OPEN_FILE_IN"
    OPEN_FILE_OUT = "OPEN_FILE_OUT"
    OPEN_TCP_CONNECTION = "OPEN_TCP_CONNECTION"
    OPEN_TCP_LISTENER = "OPEN_TCP_LISTENER"

    # --- Control flow ---
    FOR = "FOR"                         # func start end
    FOR_MAP = "FOR_MAP"                 # func map
    FOR_LIST = "FOR_LIST"               # func list
    FOR_STRING = "FOR_STRING"           # func str
    WHILE = "WHILE"                     # func -> bool
    IF = "IF"                           # cond func

    # --- Functions ---
    USE_FUNC = "USE_FUNC"               # func result [args...]
    FUNC = "FUNC"                       # result_type name [param type]...
    FUNC_END = "FUNC_END"
    RETURN = "RETURN"

    # --- Concurrency ---
    SLEEP = "SLEEP"
    NEW_THREAD = "NEW_THREAD"

    # --- Comparison & logic ---
    EQUALS = "EQUALS"
    MORE = "MORE"
    LESS = "LESS"
    AND = "AND"
    OR = "OR"
    NOT = "NOT"

    # --- Predicates ---
    HAS_STR = "HAS_STR"
    HAS_ITEM = "HAS_ITEM"
    HAS_ENTRY = "HAS_ENTRY"
    HAS_KEY = "HAS_KEY"
    HAS_VALUE = "HAS_VALUE"
    HAS_OPTIONAL = "HAS_OPTIONAL"

    # --- Optionals ---
    UNPACK_OPTIONAL = "UNPACK_OPTIONAL"
    PACK_OPTIONAL = "PACK_OPTIONAL"
    NONE_OPTIONAL = "NONE_OPTIONAL"

    # --- Sizes ---
    LIST_SIZE = "LIST_SIZE"
    MAP_SIZE = "MAP_SIZE"
    STRING_SIZE = "STRING_SIZE"

    # --- Modules & misc ---
    IMPORT = "IMPORT"
    IMPORT_TEXT = "IMPORT_TEXT"
    RANDOM = "RANDOM"


# (min, max) argument counts; None means unbounded
ARITY: Dict[Opcode, Tuple[int, Optional[int]]] = {
    Opcode.INIT_VAR: (2, 2),
    Opcode.SET_VAR: (1, 2),
    Opcode.TEMP_VAR: (2, 3),
    Opcode.MOVE_VAR: (2, 2),
    Opcode.COPY_VAR: (2, 2),
    Opcode.DROP_VAR: (1, 1),
    Opcode.HAS_VAR: (2, 2),
    Opcode.TO_STRING: (2, 2),
    Opcode.TO_CHARS: (2, 2),
    Opcode.TO_CHAR: (2, 2),
    Opcode.TO_INTEGER: (2, 2),
    Opcode.TO_FLOAT: (2, 2),
    Opcode.TO_BOOL: (2, 2),
    Opcode.GET_SYMBOL: (3, 3),
    Opcode.GET_ITEM: (3, 3),
    Opcode.GET_VALUE: (3, 3),
    Opcode.ADD_INT: (2, 2),
    Opcode.ADD_FLOAT: (2, 2),
    Opcode.ADD_STR: (2, 2),
    Opcode.SUB_STR: (3, 3),
    Opcode.SUB_LIST: (3, 3),
    Opcode.WRITE: (2, 2),
    Opcode.READ: (3, 3),
    Opcode.READ_ALL: (2, 2),
    Opcode.OPEN_FILE_IN: (2, 2),
    Opcode.OPEN_FILE_OUT: (2, 2),
    Opcode.OPEN_TCP_CONNECTION: (4, 4),
    Opcode.OPEN_TCP_LISTENER: (3, 3),
    Opcode.FOR: (3, 3),
    Opcode.FOR_MAP: (2, 2),
    Opcode.FOR_LIST: (2, 2),
    Opcode.FOR_STRING: (2, 2),
    Opcode.WHILE: (1, 1),
    Opcode.IF: (2, 2),
    Opcode.USE_FUNC: (2, None),
    Opcode.FUNC: (2, None),
    Opcode.FUNC_END: (0, 0),
    Opcode.RETURN: (0, 0),
    Opcode.SLEEP: (1, 1),
    Opcode.NEW_THREAD: (1, 1),
    Opcode.EQUALS: (3, 3),
    Opcode.MORE: (3, 3),
    Opcode.LESS: (3, 3),
    Opcode.AND: (3, 3),
    Opcode.OR: (3, 3),
    Opcode.NOT: (2, 2),
    Opcode.HAS_STR: (3, 3),
    Opcode.HAS_ITEM: (3, 3),
    Opcode.HAS_ENTRY: (4, 4),
    Opcode.HAS_KEY: (3, 3),
    Opcode.HAS_VALUE: (3, 3),
    Opcode.HAS_OPTIONAL: (2, 2),
    Opcode.UNPACK_OPTIONAL: (2, 2),
    Opcode.PACK_OPTIONAL: (2, 2),
    Opcode.NONE_OPTIONAL: (1, 1),
    Opcode.LIST_SIZE: (2, 2),
    Opcode.MAP_SIZE: (2, 2),
    Opcode.STRING_SIZE: (2, 2),
    Opcode.IMPORT: (1, 1),
    Opcode.IMPORT_TEXT: (1, 1),
    Opcode.RANDOM: (3, 3),
}


# Opcodes whose last argument is the verbatim rest of the line
LITERAL_TAIL: Dict[Opcode, int] = {
    Opcode.SET_VAR: 1,
    Opcode.TEMP_VAR: 2,
}


def lookup_opcode(name: str) -> Optional[Opcode]:
    """Return the opcode with the given name, or None."""
    try:
        return Opcode(name)
    except ValueError:
        return None


def arity_accepts(opcode: Opcode, count: int) -> bool:
    """Check an argument count against the opcode's arity."""
    low, high = ARITY[opcode]
    if count < low:
        return False
    return high is None or count <= high


@dataclass(frozen=True)
class Command:
    """A single command: opcode, argument tokens and source position."""
    opcode: Opcode
    args: Tuple[str, ...] = ()
    line: int = 0
    text: Optional[str] = field(default=None, compare=False)

    def arg(self, index: int, default: Optional[str] = None) -> Optional[str]:
        """Get an argument by position."""
        if index < len(self.args):
            return self.args[index]
        return default

    def __str__(self) -> str:
        if self.args:
            return f"{self.opcode.value} {' '.join(self.args)}"
        return self.opcode.value
