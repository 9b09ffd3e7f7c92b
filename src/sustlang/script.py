"""
Front end: turn Sust program text into commands and function definitions.

One command per line. `#` starts a comment running to the end of the line.
Tokens are separated by runs of spaces or tabs, except that the literal at
the end of SET_VAR and TEMP_VAR is taken verbatim. FUNC ... FUNC_END blocks
are extracted into function definitions in a single pass, so functions may
be used before the line that defines them.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union
import logging
import re

from .commands import Command, Opcode, LITERAL_TAIL, lookup_opcode, arity_accepts
from .errors import (
    ScriptError, error_unknown_opcode, error_invalid_arguments,
    error_nested_function, error_unterminated_function, error_unexpected_func_end,
    error_duplicate_function,
)
from .runtime.functions import FunctionDef, Parameter
from .runtime.values import decode_text
from .types import resolve_type_name

logger = logging.getLogger(__name__)

_SEPARATOR = re.compile(r"[ \t]+")

# Opcodes whose first argument names a type
_TYPED = (Opcode.INIT_VAR, Opcode.TEMP_VAR)


@dataclass
class Script:
    """A parsed program: top-level commands plus the functions it defines."""
    commands: List[Command] = field(default_factory=list)
    functions: List[FunctionDef] = field(default_factory=list)
    source_lines: List[str] = field(default_factory=list)
    path: Optional[str] = None

    def function(self, name: str) -> Optional[FunctionDef]:
        for function in self.functions:
            if function.name == name:
                return function
        return None


def _strip(text: str) -> str:
    return text.split("#", 1)[0].strip(" \t\r\n")


def parse_line(text: str, line: int = 0) -> Optional[Command]:
    """
    Tokenize one line of program text.

    Returns None for blank and comment-only lines.
    """
    stripped = _strip(text)
    if not stripped:
        return None

    parts = _SEPARATOR.split(stripped, maxsplit=1)
    name = parts[0]
    rest = parts[1] if len(parts) > 1 else ""

    opcode = lookup_opcode(name)
    if opcode is None:
        raise error_unknown_opcode(name, line, stripped)

    if not rest:
        args: List[str] = []
    elif opcode in LITERAL_TAIL:
        args = _SEPARATOR.split(rest, maxsplit=LITERAL_TAIL[opcode])
    else:
        args = _SEPARATOR.split(rest)

    if not arity_accepts(opcode, len(args)):
        raise error_invalid_arguments(opcode.value, len(args), line, stripped)

    command = Command(opcode, tuple(args), line, stripped)
    if opcode in _TYPED:
        try:
            resolve_type_name(args[0])
        except ScriptError as e:
            raise e.locate(command)
    return command


class _FunctionBuilder:
    """Collects the body of a FUNC block."""

    def __init__(self, header: Command):
        self.header = header
        args = header.args
        try:
            self.result_type = resolve_type_name(args[0])
        except ScriptError as e:
            raise e.locate(header)
        self.name = args[1]

        pairs = args[2:]
        if len(pairs) % 2:
            raise error_invalid_arguments(header.opcode.value, len(args), header.line, header.text)
        self.parameters = []
        for param_name, type_name in zip(pairs[::2], pairs[1::2]):
            try:
                param_type = resolve_type_name(type_name)
            except ScriptError as e:
                raise e.locate(header)
            self.parameters.append(Parameter(param_name, param_type))
        self.body: List[Command] = []

    def build(self) -> FunctionDef:
        return FunctionDef(
            name=self.name,
            result_type=self.result_type,
            parameters=tuple(self.parameters),
            body=tuple(self.body),
            line=self.header.line,
        )


def parse_script(text: str, path: Optional[str] = None) -> Script:
    """
    Parse program text into a Script.

    Raises ScriptError for unknown opcodes, bad argument counts, unknown
    types and malformed or duplicate function definitions.
    """
    source_lines = text.splitlines()
    script = Script(source_lines=source_lines, path=path)
    defined = set()
    current: Optional[_FunctionBuilder] = None

    for number, raw in enumerate(source_lines, start=1):
        command = parse_line(raw, number)
        if command is None:
            continue

        if command.opcode == Opcode.FUNC:
            if current is not None:
                raise error_nested_function(command.args[1], number, command.text)
            current = _FunctionBuilder(command)
        elif command.opcode == Opcode.FUNC_END:
            if current is None:
                raise error_unexpected_func_end(number, command.text)
            function = current.build()
            if function.name in defined:
                raise error_duplicate_function(function.name, current.header.line,
                                               current.header.text)
            defined.add(function.name)
            script.functions.append(function)
            current = None
        elif current is not None:
            current.body.append(command)
        else:
            script.commands.append(command)

    if current is not None:
        header = current.header
        raise error_unterminated_function(current.name, header.line, header.text)

    logger.debug("parsed %s: %d command(s), %d function(s)",
                 path or "<text>", len(script.commands), len(script.functions))
    return script


def load_script(path: Union[str, Path]) -> Script:
    """Read and parse a script file."""
    script_path = Path(path)
    if not script_path.exists():
        raise FileNotFoundError(f"script not found: {script_path}")
    return parse_script(decode_text(script_path.read_bytes()), str(script_path))
