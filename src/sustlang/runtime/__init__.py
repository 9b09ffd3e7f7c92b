"""
Sust Runtime - Command-sequence interpreter for Sust programs.

This module provides:
- Interpreter: Executes command sequences over a shared variable store
- Value: Runtime value wrappers with type metadata
- ExecutionContext: Frames, variable paths and the return signal
- FunctionRegistry: User function definitions and lookup
- OpcodeRegistry: Opcode handler implementations
- Streams and host services: console, file and TCP byte streams
"""

from .values import (
    Value,
    int_val,
    float_val,
    bool_val,
    char_val,
    string_val,
    list_val,
    chars_val,
    map_val,
    optional_val,
    null_val,
    stream_val,
    default_value,
    parse_literal,
    convert,
    render,
    encode_text,
    decode_text,
)

from .context import (
    Scope,
    VariableStore,
    ExecutionContext,
)

from .streams import (
    StreamHandle,
    InStream,
    OutStream,
)

from .host import (
    Connection,
    HostServices,
    LocalHost,
    console_in,
    console_out,
)

from .functions import (
    Parameter,
    FunctionDef,
    FunctionRegistry,
)

from .opcodes import (
    OpcodeHandler,
    OpcodeRegistry,
    get_opcode_registry,
)

from .interpreter import (
    Interpreter,
    ExecutionResult,
    run_script,
)

__all__ = [
    # Values
    "Value",
    "int_val",
    "float_val",
    "bool_val",
    "char_val",
    "string_val",
    "list_val",
    "chars_val",
    "map_val",
    "optional_val",
    "null_val",
    "stream_val",
    "default_value",
    "parse_literal",
    "convert",
    "render",
    "encode_text",
    "decode_text",
    # Context
    "Scope",
    "VariableStore",
    "ExecutionContext",
    # Streams
    "StreamHandle",
    "InStream",
    "OutStream",
    "Connection",
    "HostServices",
    "LocalHost",
    "console_in",
    "console_out",
    # Functions
    "Parameter",
    "FunctionDef",
    "FunctionRegistry",
    # Opcodes
    "OpcodeHandler",
    "OpcodeRegistry",
    "get_opcode_registry",
    # Interpreter
    "Interpreter",
    "ExecutionResult",
    "run_script",
]
