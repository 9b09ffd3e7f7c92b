"""
Sust: a line-oriented, command-driven scripting language.

This package provides:
- Front end: Turns program text into commands and function definitions
- Type system: The closed set of Sust types and their names
- Runtime: The execution engine (values, variable store, opcodes, streams)
- Diagnostics: Located errors with codes and call-site notes

Usage:
    from sustlang import parse_script, Interpreter

    script = parse_script('''
        INIT_VAR int x
        SET_VAR x 10
        TEMP_VAR int five 5
        ADD_INT x five
        TO_STRING x text
        WRITE text cout
    ''')
    interpreter = Interpreter(script)
    interpreter.set_standard_vars(["demo.sust"])
    result = interpreter.run()
    if not result.success:
        print(result.error_message)
"""

import logging

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("sustlang")
except PackageNotFoundError:  # pragma: no cover - handled when package not installed
    __version__ = "unknown"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from .types import (
    Type,
    TypeKind,
    PrimitiveType,
    StreamType,
    ListType,
    MapType,
    OptionalType,
    BOOL,
    INT,
    FLOAT,
    CHAR,
    STRING,
    NULL,
    IN_STREAM,
    OUT_STREAM,
    CHARS,
    parse_type_name,
    resolve_type_name,
)

from .commands import (
    Opcode,
    Command,
)

from .errors import (
    ErrorKind,
    Diagnostic,
    SustError,
    ScriptError,
    ExecutionError,
)

from .config import (
    RuntimeConfig,
    load_config,
)

from .runtime import (
    Value,
    Interpreter,
    ExecutionResult,
    ExecutionContext,
    FunctionDef,
    Parameter,
    HostServices,
    LocalHost,
    run_script,
)

from .script import (
    Script,
    parse_line,
    parse_script,
    load_script,
)

__all__ = [
    "__version__",
    # Types
    "Type",
    "TypeKind",
    "PrimitiveType",
    "StreamType",
    "ListType",
    "MapType",
    "OptionalType",
    "BOOL",
    "INT",
    "FLOAT",
    "CHAR",
    "STRING",
    "NULL",
    "IN_STREAM",
    "OUT_STREAM",
    "CHARS",
    "parse_type_name",
    "resolve_type_name",
    # Commands
    "Opcode",
    "Command",
    # Errors
    "ErrorKind",
    "Diagnostic",
    "SustError",
    "ScriptError",
    "ExecutionError",
    # Config
    "RuntimeConfig",
    "load_config",
    # Runtime
    "Value",
    "Interpreter",
    "ExecutionResult",
    "ExecutionContext",
    "FunctionDef",
    "Parameter",
    "HostServices",
    "LocalHost",
    "run_script",
    # Front end
    "Script",
    "parse_line",
    "parse_script",
    "load_script",
]
