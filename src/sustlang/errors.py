"""
Sust-specific exceptions and error handling.

Error code ranges:
- E1xx: Script errors (front end and definition time)
- E2xx: Execution errors (raised while running commands)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, TYPE_CHECKING

if TYPE_CHECKING:
    from .commands import Command


class ErrorKind(Enum):
    """The error taxonomy; every diagnostic names exactly one kind."""
    UNKNOWN_OPCODE = "unknown-opcode"
    INVALID_ARGUMENTS = "invalid-arguments"
    UNKNOWN_TYPE = "unknown-type"
    DUPLICATE_FUNCTION = "duplicate-function"
    NESTED_FUNCTION = "nested-function"
    UNTERMINATED_FUNCTION = "unterminated-function"
    UNEXPECTED_FUNC_END = "unexpected-func-end"
    UNKNOWN_VARIABLE = "unknown-variable"
    TYPE_MISMATCH = "type-mismatch"
    CONVERSION_FAILURE = "conversion-failure"
    INDEX_OUT_OF_RANGE = "index-out-of-range"
    KEY_NOT_FOUND = "key-not-found"
    INVALID_RANGE = "invalid-range"
    EMPTY_OPTIONAL = "empty-optional"
    ARGUMENT_MISMATCH = "argument-mismatch"
    UNKNOWN_FUNCTION = "unknown-function"
    END_OF_STREAM = "end-of-stream"
    STREAM_UNAVAILABLE = "stream-unavailable"


@dataclass
class Diagnostic:
    """A single error report, located at the command that raised it."""
    code: str                       # E101, E201, etc.
    kind: ErrorKind
    message: str                    # Human-readable message
    line: Optional[int] = None
    opcode: Optional[str] = None
    source_line: Optional[str] = None   # The command text as written
    hints: List[str] = field(default_factory=list)
    related: List["Diagnostic"] = field(default_factory=list)

    @property
    def located(self) -> bool:
        return self.line is not None

    def format(self, show_source: bool = True) -> str:
        """Format the diagnostic for display."""
        parts = []

        # Header: location: error[code] kind: message
        loc = f"line {self.line}" if self.line is not None else "<unknown>"
        header = f"{loc}: error[{self.code}] {self.kind.value}: {self.message}"
        if self.opcode:
            header += f" (in {self.opcode})"
        parts.append(header)

        if show_source and self.source_line is not None:
            parts.append("  |")
            parts.append(f"{self.line:>3} | {self.source_line}")

        for hint in self.hints:
            parts.append(f"    = hint: {hint}")

        # Call sites the error propagated through
        for related in self.related:
            parts.append(f"    --> line {related.line}: {related.message}")

        return "\n".join(parts)


class SustError(Exception):
    """Base exception for Sust errors."""

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    @property
    def kind(self) -> ErrorKind:
        return self.diagnostic.kind

    @property
    def code(self) -> str:
        return self.diagnostic.code

    def locate(self, command: "Command") -> "SustError":
        """Attach the originating command, unless one is already attached."""
        diag = self.diagnostic
        if not diag.located:
            diag.line = command.line
            diag.opcode = command.opcode.value
            diag.source_line = command.text
        return self

    def add_call_site(self, command: "Command") -> "SustError":
        """Record a command this error propagated through."""
        self.diagnostic.related.append(Diagnostic(
            code=self.diagnostic.code,
            kind=self.diagnostic.kind,
            message=f"called from {command.opcode.value}",
            line=command.line,
            opcode=command.opcode.value,
        ))
        return self

    def __str__(self) -> str:
        return self.diagnostic.format()


class ScriptError(SustError):
    """Error in program structure, detected at definition time (E1xx)."""
    pass


class ExecutionError(SustError):
    """Error raised while executing a command (E2xx)."""
    pass


def _script_error(code: str, kind: ErrorKind, message: str, line: Optional[int] = None,
                  source_line: str = None, hints: List[str] = None) -> ScriptError:
    diag = Diagnostic(
        code=code,
        kind=kind,
        message=message,
        line=line,
        source_line=source_line,
        hints=hints or [],
    )
    return ScriptError(diag)


def _execution_error(code: str, kind: ErrorKind, message: str,
                     hints: List[str] = None) -> ExecutionError:
    diag = Diagnostic(
        code=code,
        kind=kind,
        message=message,
        hints=hints or [],
    )
    return ExecutionError(diag)


# --- Script error codes ---

def error_unknown_opcode(name: str, line: int = None, source_line: str = None) -> ScriptError:
    """E101: Unknown opcode."""
    return _script_error("E101", ErrorKind.UNKNOWN_OPCODE, f"unknown opcode '{name}'",
                         line, source_line)


def error_invalid_arguments(opcode: str, count: int, line: int = None,
                            source_line: str = None) -> ScriptError:
    """E102: Wrong number of argument tokens for an opcode."""
    return _script_error("E102", ErrorKind.INVALID_ARGUMENTS,
                         f"invalid arguments for {opcode}: got {count} token(s)",
                         line, source_line)


def error_unknown_type(name: str, line: int = None, source_line: str = None) -> ScriptError:
    """E103: Unknown type name."""
    return _script_error("E103", ErrorKind.UNKNOWN_TYPE, f"unknown type '{name}'",
                         line, source_line,
                         hints=["types: bool, integer, float, char, string, list[T], "
                                "map[K,V], optional[T], in_stream, out_stream, null"])


def error_duplicate_function(name: str, line: int = None, source_line: str = None) -> ScriptError:
    """E104: Function defined twice."""
    return _script_error("E104", ErrorKind.DUPLICATE_FUNCTION,
                         f"function '{name}' is already defined", line, source_line)


def error_nested_function(name: str, line: int = None, source_line: str = None) -> ScriptError:
    """E105: Function defined inside a function body."""
    return _script_error("E105", ErrorKind.NESTED_FUNCTION,
                         f"cannot define function '{name}' inside another function",
                         line, source_line)


def error_unterminated_function(name: str, line: int = None, source_line: str = None) -> ScriptError:
    """E106: FUNC without FUNC_END."""
    return _script_error("E106", ErrorKind.UNTERMINATED_FUNCTION,
                         f"function '{name}' is missing FUNC_END", line, source_line)


def error_unexpected_func_end(line: int = None, source_line: str = None) -> ScriptError:
    """E107: FUNC_END outside a function."""
    return _script_error("E107", ErrorKind.UNEXPECTED_FUNC_END,
                         "FUNC_END without a matching FUNC", line, source_line)


# --- Execution error codes ---

def error_unknown_variable(name: str) -> ExecutionError:
    """E201: Unknown variable."""
    return _execution_error("E201", ErrorKind.UNKNOWN_VARIABLE, f"unknown variable '{name}'")


def error_type_mismatch(expected: str, found: str) -> ExecutionError:
    """E202: Type mismatch."""
    return _execution_error("E202", ErrorKind.TYPE_MISMATCH,
                            f"type mismatch: expected '{expected}', found '{found}'")


def error_conversion(source: str, target: str, detail: str = None) -> ExecutionError:
    """E203: Value cannot be converted to the target type."""
    message = f"cannot convert {source} to {target}"
    if detail:
        message += f": {detail}"
    return _execution_error("E203", ErrorKind.CONVERSION_FAILURE, message)


def error_index_out_of_range(index: int, size: int) -> ExecutionError:
    """E204: Index out of range."""
    return _execution_error("E204", ErrorKind.INDEX_OUT_OF_RANGE,
                            f"index {index} out of range for size {size}")


def error_key_not_found(key: str) -> ExecutionError:
    """E205: Map key not found."""
    return _execution_error("E205", ErrorKind.KEY_NOT_FOUND, f"key {key} not found")


def error_invalid_range(start: int, end: int, size: int = None) -> ExecutionError:
    """E206: Invalid or inverted range."""
    message = f"invalid range [{start}, {end}]"
    if size is not None:
        message += f" for size {size}"
    return _execution_error("E206", ErrorKind.INVALID_RANGE, message,
                            hints=["ranges are inclusive: [start, end] with start <= end"])


def error_empty_optional(name: str) -> ExecutionError:
    """E207: Unpacking an empty optional."""
    return _execution_error("E207", ErrorKind.EMPTY_OPTIONAL, f"optional '{name}' is empty")


def error_argument_mismatch(function: str, message: str) -> ExecutionError:
    """E208: Call arguments do not match the function signature."""
    return _execution_error("E208", ErrorKind.ARGUMENT_MISMATCH,
                            f"bad call to '{function}': {message}")


def error_unknown_function(name: str) -> ExecutionError:
    """E209: Unknown function."""
    return _execution_error("E209", ErrorKind.UNKNOWN_FUNCTION, f"unknown function '{name}'")


def error_end_of_stream(wanted: int, got: int) -> ExecutionError:
    """E210: Stream ended before enough bytes were read."""
    return _execution_error("E210", ErrorKind.END_OF_STREAM,
                            f"end of stream after {got} of {wanted} byte(s)")


def error_stream_unavailable(detail: str) -> ExecutionError:
    """E211: Stream is unbound, closed or could not be opened."""
    return _execution_error("E211", ErrorKind.STREAM_UNAVAILABLE, f"stream unavailable: {detail}")
