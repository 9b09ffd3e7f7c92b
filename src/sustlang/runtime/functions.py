"""
Function definitions and the function registry.

Definitions are immutable once registered. The registry is shared by every
execution context, so registration is guarded by its own lock.
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple
import logging
import threading

from .values import Value
from ..commands import Command, Opcode
from ..types import Type, NULL
from ..errors import (
    error_duplicate_function, error_nested_function, error_unknown_function,
    error_argument_mismatch,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Parameter:
    """A named, typed function parameter."""
    name: str
    type: Type

    def __str__(self) -> str:
        return f"{self.name}: {self.type}"


@dataclass(frozen=True)
class FunctionDef:
    """A user-defined function."""
    name: str
    result_type: Type
    parameters: Tuple[Parameter, ...] = ()
    body: Tuple[Command, ...] = ()
    line: int = 0

    @property
    def returns_value(self) -> bool:
        return self.result_type != NULL

    @property
    def signature(self) -> str:
        params = ", ".join(str(p) for p in self.parameters)
        return f"{self.name}({params}) -> {self.result_type}"

    def bind_arguments(self, args: List[Value]) -> List[Tuple[str, Value]]:
        """Pair arguments with parameters, checking count and types."""
        if len(args) != len(self.parameters):
            raise error_argument_mismatch(
                self.name,
                f"expected {len(self.parameters)} argument(s), got {len(args)}",
            )
        bound = []
        for param, arg in zip(self.parameters, args):
            if not param.type.is_assignable_from(arg.type):
                raise error_argument_mismatch(
                    self.name,
                    f"parameter '{param.name}' expects {param.type}, got {arg.type}",
                )
            bound.append((param.name, arg))
        return bound


class FunctionRegistry:
    """Name-indexed table of user functions."""

    def __init__(self):
        self._functions: Dict[str, FunctionDef] = {}
        self._lock = threading.Lock()

    def define(self, function: FunctionDef) -> None:
        """Register a function; names are unique."""
        for command in function.body:
            if command.opcode == Opcode.FUNC:
                raise error_nested_function(command.arg(1, "?"), command.line, command.text)
        with self._lock:
            if function.name in self._functions:
                raise error_duplicate_function(function.name, function.line)
            self._functions[function.name] = function
        logger.debug("registered %s", function.signature)

    def get(self, name: str) -> FunctionDef:
        """Look up a function, failing with unknown-function."""
        function = self._functions.get(name)
        if function is None:
            raise error_unknown_function(name)
        return function

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)
