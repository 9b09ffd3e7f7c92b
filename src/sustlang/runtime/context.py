"""
Variable store and execution contexts for the Sust engine.

Manages the global scope, function frames and variable paths. A frame is a
single scope that never nests: lookups inside a function consult its own
frame and then the global scope, never the caller's frame.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple
from contextlib import contextmanager
import re
import threading

from .values import Value, parse_literal, expect_type
from ..types import Type, TypeKind
from ..errors import (
    error_unknown_variable, error_type_mismatch, error_index_out_of_range,
    error_key_not_found, error_conversion, SustError,
)


_INDEX = re.compile(r"[0-9]+")


@dataclass
class Scope:
    """
    A single scope containing variable bindings.

    `pending_drop` holds the auto-drop markers left by TEMP_VAR, keyed by
    name, as (owning sequence, command index).
    """
    variables: Dict[str, Value] = field(default_factory=dict)
    name: str = "anonymous"  # For debugging
    pending_drop: Dict[str, Tuple[object, int]] = field(default_factory=dict)

    def get(self, name: str) -> Optional[Value]:
        """Look up a binding in this scope only."""
        return self.variables.get(name)

    def set(self, name: str, value: Value) -> None:
        """Create (or re-create) a binding; a re-created binding is not temporary."""
        self.variables[name] = value
        self.pending_drop.pop(name, None)

    def remove(self, name: str) -> Optional[Value]:
        """Remove a binding, returning its value if it existed."""
        self.pending_drop.pop(name, None)
        return self.variables.pop(name, None)

    def contains(self, name: str) -> bool:
        return name in self.variables

    def mark_temporary(self, name: str, owner: object, index: int) -> None:
        """Schedule a binding for automatic removal."""
        self.pending_drop[name] = (owner, index)

    def sweep(self, owner: object, before: Optional[int] = None) -> List[str]:
        """
        Drop temporaries scheduled by `owner`.

        Only markers with an index lower than `before` are dropped; with no
        bound every marker of `owner` goes.
        """
        dropped = []
        for name, (marker_owner, index) in list(self.pending_drop.items()):
            if marker_owner is not owner:
                continue
            if before is None or index < before:
                del self.pending_drop[name]
                self.variables.pop(name, None)
                dropped.append(name)
        return dropped


class VariableStore:
    """
    The global scope shared by every execution context.

    A single re-entrant lock serializes access, so a command that holds it
    sees and updates bindings atomically.
    """

    def __init__(self):
        self.globals = Scope(name="global")
        self.lock = threading.RLock()


def split_path(path: str) -> Tuple[str, List[str]]:
    """Split `name.seg1.seg2` into the root name and its segments."""
    root, *parts = path.split(".")
    return root, parts


def _list_index(part: str, size: int) -> int:
    if not _INDEX.fullmatch(part):
        raise error_conversion(repr(part), "list index")
    index = int(part)
    if index >= size:
        raise error_index_out_of_range(index, size)
    return index


def _child(container: Value, part: str) -> Value:
    """Index one level into a list or map."""
    if container.kind == TypeKind.LIST:
        return container.data[_list_index(part, len(container.data))]
    if container.kind == TypeKind.MAP:
        key = parse_literal(container.type.key_type, part)
        if key not in container.data:
            raise error_key_not_found(part)
        return container.data[key]
    raise error_type_mismatch("list or map", container.type.name)


class ExecutionContext:
    """
    One thread of execution: its call stack over the shared store.

    Tracks:
    - Function frames (the active one is the top of the stack)
    - The return signal of the running function or program
    """

    def __init__(self, store: VariableStore, name: str = "main"):
        self.store = store
        self.name = name
        self.frames: List[Scope] = []
        # (sequence token, command index) of the command being executed
        self.temp_marker: Optional[Tuple[object, int]] = None
        self._should_return = False

    @property
    def active_scope(self) -> Scope:
        """The scope new bindings go into."""
        if self.frames:
            return self.frames[-1]
        return self.store.globals

    @property
    def in_function(self) -> bool:
        return bool(self.frames)

    @contextmanager
    def new_frame(self, name: str = "function") -> Iterator[Scope]:
        """
        Context manager to push a fresh function frame.

        Usage:
            with ctx.new_frame("func add"):
                ctx.declare("a", int_val(1))
        """
        frame = Scope(name=name)
        self.frames.append(frame)
        try:
            yield frame
        finally:
            self.frames.pop()

    def _owner(self, name: str) -> Optional[Scope]:
        """The scope holding `name`: the active frame first, then globals."""
        if self.frames and self.frames[-1].contains(name):
            return self.frames[-1]
        if self.store.globals.contains(name):
            return self.store.globals
        return None

    def _walk(self, root: str, parts: List[str]) -> Value:
        owner = self._owner(root)
        if owner is None:
            raise error_unknown_variable(root)
        value = owner.get(root)
        for part in parts:
            value = _child(value, part)
        return value

    # --- Reads ---

    def lookup(self, path: str) -> Value:
        """Get the value at a variable path."""
        root, parts = split_path(path)
        with self.store.lock:
            return self._walk(root, parts)

    def has(self, path: str) -> bool:
        """Check whether a variable path resolves."""
        root, parts = split_path(path)
        with self.store.lock:
            owner = self._owner(root)
            if owner is None:
                return False
            value = owner.get(root)
            for part in parts:
                if value.kind == TypeKind.LIST:
                    if not _INDEX.fullmatch(part) or int(part) >= len(value.data):
                        return False
                    value = value.data[int(part)]
                elif value.kind == TypeKind.MAP:
                    try:
                        key = parse_literal(value.type.key_type, part)
                    except SustError:
                        return False
                    if key not in value.data:
                        return False
                    value = value.data[key]
                else:
                    return False
            return True

    def slot_type(self, path: str) -> Type:
        """The declared type a write to `path` must match."""
        root, parts = split_path(path)
        with self.store.lock:
            if not parts:
                return self._walk(root, []).type
            parent = self._walk(root, parts[:-1])
            if parent.kind == TypeKind.LIST:
                return parent.type.element_type
            if parent.kind == TypeKind.MAP:
                return parent.type.value_type
            raise error_type_mismatch("list or map", parent.type.name)

    # --- Writes ---

    def declare(self, name: str, value: Value) -> Scope:
        """Create a binding in the active scope, shadowing any global."""
        with self.store.lock:
            scope = self.active_scope
            scope.set(name, value)
            return scope

    def assign(self, path: str, value: Value) -> None:
        """
        Write a value to a variable path.

        An unbound plain name is created in the active scope. Existing
        bindings, list slots and map values only accept their declared type.
        """
        root, parts = split_path(path)
        with self.store.lock:
            if not parts:
                owner = self._owner(root)
                if owner is None:
                    self.active_scope.set(root, value)
                    return
                expect_type(value, owner.get(root).type)
                owner.variables[root] = value
                return

            parent = self._walk(root, parts[:-1])
            last = parts[-1]
            if parent.kind == TypeKind.LIST:
                index = _list_index(last, len(parent.data))
                expect_type(value, parent.type.element_type)
                parent.data[index] = value
            elif parent.kind == TypeKind.MAP:
                key = parse_literal(parent.type.key_type, last)
                expect_type(value, parent.type.value_type)
                parent.data[key] = value
            else:
                raise error_type_mismatch("list or map", parent.type.name)

    def remove(self, path: str) -> Value:
        """Remove a binding, list element or map entry and return it."""
        root, parts = split_path(path)
        with self.store.lock:
            if not parts:
                owner = self._owner(root)
                if owner is None:
                    raise error_unknown_variable(root)
                return owner.remove(root)

            parent = self._walk(root, parts[:-1])
            last = parts[-1]
            if parent.kind == TypeKind.LIST:
                return parent.data.pop(_list_index(last, len(parent.data)))
            if parent.kind == TypeKind.MAP:
                key = parse_literal(parent.type.key_type, last)
                if key not in parent.data:
                    raise error_key_not_found(last)
                return parent.data.pop(key)
            raise error_type_mismatch("list or map", parent.type.name)

    def move(self, source: str, target: str) -> None:
        """
        Transfer a value from `source` to `target`.

        The target is written before the source is removed, so a failed
        write leaves both untouched.
        """
        with self.store.lock:
            value = self.lookup(source)
            if source == target:
                return
            self.assign(target, value)
            self.remove(source)

    def copy(self, source: str, target: str) -> None:
        """Deep-copy `source` into `target`."""
        with self.store.lock:
            self.assign(target, self.lookup(source).copy())

    # --- Return signal ---

    def signal_return(self) -> None:
        """Signal an early return from the running function or program."""
        self._should_return = True

    @property
    def should_return(self) -> bool:
        return self._should_return

    def clear_return(self) -> None:
        """Clear the return signal (used after handling return)."""
        self._should_return = False
