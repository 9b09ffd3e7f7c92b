"""
Opcode handler registry for the Sust interpreter.

Maps each opcode to the Python function that executes it. Handlers take
`(interp, ctx, command)` and work purely through the execution context, the
function registry and the host.

Handlers marked atomic run entirely under the store lock. Blocking and
callback-driving handlers are not atomic; they lock only around their own
reads and writes so other threads can make progress while they wait.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, TYPE_CHECKING
import logging
import math
import time

from .values import (
    Value, int_val, bool_val, char_val, string_val, chars_val, optional_val,
    stream_val, default_value, parse_literal, convert, render, encode_text,
    decode_text, text_bytes, output_bytes, expect_type, expect_kind,
)
from .context import ExecutionContext
from .streams import require_in, require_out
from ..commands import Command, Opcode
from ..types import (
    TypeKind, resolve_type_name, is_numeric,
    INT, FLOAT, BOOL, CHAR, STRING, CHARS, IN_STREAM, OUT_STREAM,
)
from ..errors import (
    error_type_mismatch, error_index_out_of_range, error_key_not_found,
    error_invalid_range, error_empty_optional, error_nested_function,
    error_unterminated_function, error_unexpected_func_end,
)

if TYPE_CHECKING:
    from .interpreter import Interpreter

logger = logging.getLogger(__name__)

Handler = Callable[["Interpreter", ExecutionContext, Command], None]

# Result targets with this name discard the value
DISCARD = "null"


@dataclass
class OpcodeHandler:
    """An opcode with its implementation."""
    opcode: Opcode
    run: Handler
    atomic: bool = True


# --- Argument helpers ---

def _int_arg(ctx: ExecutionContext, path: str) -> int:
    return expect_type(ctx.lookup(path), INT).data


def _string_arg(ctx: ExecutionContext, path: str) -> str:
    return expect_type(ctx.lookup(path), STRING).data


def _bool_arg(ctx: ExecutionContext, path: str) -> bool:
    return expect_type(ctx.lookup(path), BOOL).data


def _store(ctx: ExecutionContext, target: str, value: Value) -> None:
    """Write an opcode's result; a target named `null` discards it."""
    if target == DISCARD:
        return
    ctx.assign(target, value)


def _check_range(start: int, end: int, size: int) -> None:
    """Inclusive [start, end] must lie within a sequence of `size` items."""
    if start < 0 or end >= size or start > end:
        raise error_invalid_range(start, end, size)


def _text_target_type(ctx: ExecutionContext, path: str):
    """READ targets are string or list[char]; unbound names become list[char]."""
    if not ctx.has(path):
        return CHARS
    target_type = ctx.slot_type(path)
    if target_type not in (STRING, CHARS):
        raise error_type_mismatch("string or list[char]", target_type.name)
    return target_type


def _text_value(target_type, data: bytes) -> Value:
    if target_type == STRING:
        return string_val(decode_text(data))
    return chars_val(data)


class OpcodeRegistry:
    """
    Dispatch table of all opcodes.

    Handlers are registered in groups and looked up by opcode.
    """

    def __init__(self):
        self._handlers: Dict[Opcode, OpcodeHandler] = {}
        self._register_all()

    def get(self, opcode: Opcode) -> Optional[OpcodeHandler]:
        """Look up the handler for an opcode."""
        return self._handlers.get(opcode)

    def register(self, opcode: Opcode, run: Handler, atomic: bool = True) -> None:
        """Register a handler."""
        self._handlers[opcode] = OpcodeHandler(opcode, run, atomic)

    def __contains__(self, opcode: Opcode) -> bool:
        return opcode in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def _register_all(self) -> None:
        """Register all opcode handlers."""
        self._register_variable_ops()
        self._register_conversion_ops()
        self._register_accessor_ops()
        self._register_arithmetic_ops()
        self._register_comparison_ops()
        self._register_predicate_ops()
        self._register_optional_ops()
        self._register_size_ops()
        self._register_stream_ops()
        self._register_control_ops()
        self._register_function_ops()
        self._register_concurrency_ops()
        self._register_module_ops()

    # --- Variables ---

    def _register_variable_ops(self) -> None:
        """Register binding creation, transfer and removal."""

        def _init_var(interp, ctx, cmd):
            var_type = resolve_type_name(cmd.args[0])
            ctx.declare(cmd.args[1], default_value(var_type))

        def _set_var(interp, ctx, cmd):
            path = cmd.args[0]
            target_type = ctx.slot_type(path)
            ctx.assign(path, parse_literal(target_type, cmd.arg(1, "")))

        def _temp_var(interp, ctx, cmd):
            var_type = resolve_type_name(cmd.args[0])
            name = cmd.args[1]
            value = parse_literal(var_type, cmd.arg(2, ""))
            scope = ctx.declare(name, value)
            if ctx.temp_marker is not None:
                scope.mark_temporary(name, *ctx.temp_marker)

        def _move_var(interp, ctx, cmd):
            ctx.move(cmd.args[0], cmd.args[1])

        def _copy_var(interp, ctx, cmd):
            ctx.copy(cmd.args[0], cmd.args[1])

        def _drop_var(interp, ctx, cmd):
            ctx.remove(cmd.args[0])

        def _has_var(interp, ctx, cmd):
            _store(ctx, cmd.args[1], bool_val(ctx.has(cmd.args[0])))

        ops = [
            (Opcode.INIT_VAR, _init_var),  # Bind a type's default value
            (Opcode.SET_VAR, _set_var),  # Parse a literal into an existing slot
            (Opcode.TEMP_VAR, _temp_var),  # Bind a literal that lives for one more command
            (Opcode.MOVE_VAR, _move_var),  # Transfer a value, unbinding the source
            (Opcode.COPY_VAR, _copy_var),  # Deep-copy a value
            (Opcode.DROP_VAR, _drop_var),  # Remove a binding, element or entry
            (Opcode.HAS_VAR, _has_var),  # Test whether a path resolves
        ]
        for opcode, run in ops:
            self.register(opcode, run)

    # --- Conversions ---

    def _register_conversion_ops(self) -> None:
        """Register TO_* conversions; all go through the conversion table."""

        def _converter(target):
            def _convert(interp, ctx, cmd):
                _store(ctx, cmd.args[1], convert(ctx.lookup(cmd.args[0]), target))
            return _convert

        ops = [
            (Opcode.TO_STRING, STRING),
            (Opcode.TO_CHARS, CHARS),
            (Opcode.TO_CHAR, CHAR),
            (Opcode.TO_INTEGER, INT),
            (Opcode.TO_FLOAT, FLOAT),
            (Opcode.TO_BOOL, BOOL),
        ]
        for opcode, target in ops:
            self.register(opcode, _converter(target))

    # --- Accessors ---

    def _register_accessor_ops(self) -> None:
        """Register GET_SYMBOL, GET_ITEM and GET_VALUE."""

        def _get_symbol(interp, ctx, cmd):
            raw = encode_text(_string_arg(ctx, cmd.args[0]))
            index = _int_arg(ctx, cmd.args[1])
            if not 0 <= index < len(raw):
                raise error_index_out_of_range(index, len(raw))
            _store(ctx, cmd.args[2], char_val(raw[index]))

        def _get_item(interp, ctx, cmd):
            items = expect_kind(ctx.lookup(cmd.args[0]), TypeKind.LIST).data
            index = _int_arg(ctx, cmd.args[1])
            if not 0 <= index < len(items):
                raise error_index_out_of_range(index, len(items))
            _store(ctx, cmd.args[2], items[index].copy())

        def _get_value(interp, ctx, cmd):
            mapping = expect_kind(ctx.lookup(cmd.args[0]), TypeKind.MAP)
            key = expect_type(ctx.lookup(cmd.args[1]), mapping.type.key_type)
            if key not in mapping.data:
                raise error_key_not_found(render(key))
            _store(ctx, cmd.args[2], mapping.data[key].copy())

        self.register(Opcode.GET_SYMBOL, _get_symbol)
        self.register(Opcode.GET_ITEM, _get_item)
        self.register(Opcode.GET_VALUE, _get_value)

    # --- Arithmetic & slicing ---

    def _register_arithmetic_ops(self) -> None:
        """Register in-place addition and inclusive slicing."""

        def _add_int(interp, ctx, cmd):
            a = expect_type(ctx.lookup(cmd.args[0]), INT)
            b = expect_type(ctx.lookup(cmd.args[1]), INT)
            ctx.assign(cmd.args[0], int_val(a.data + b.data))

        def _add_float(interp, ctx, cmd):
            a = expect_type(ctx.lookup(cmd.args[0]), FLOAT)
            b = expect_type(ctx.lookup(cmd.args[1]), FLOAT)
            ctx.assign(cmd.args[0], Value(a.data + b.data, FLOAT))

        def _add_str(interp, ctx, cmd):
            head = encode_text(_string_arg(ctx, cmd.args[0]))
            other = ctx.lookup(cmd.args[1])
            tail = text_bytes(other)
            if tail is None:
                raise error_type_mismatch("string, char or list[char]", other.type.name)
            ctx.assign(cmd.args[0], string_val(decode_text(head + tail)))

        def _sub_str(interp, ctx, cmd):
            raw = encode_text(_string_arg(ctx, cmd.args[0]))
            start = _int_arg(ctx, cmd.args[1])
            end = _int_arg(ctx, cmd.args[2])
            _check_range(start, end, len(raw))
            ctx.assign(cmd.args[0], string_val(decode_text(raw[start:end + 1])))

        def _sub_list(interp, ctx, cmd):
            current = expect_kind(ctx.lookup(cmd.args[0]), TypeKind.LIST)
            start = _int_arg(ctx, cmd.args[1])
            end = _int_arg(ctx, cmd.args[2])
            _check_range(start, end, len(current.data))
            ctx.assign(cmd.args[0], Value(current.data[start:end + 1], current.type))

        ops = [
            (Opcode.ADD_INT, _add_int),
            (Opcode.ADD_FLOAT, _add_float),
            (Opcode.ADD_STR, _add_str),
            (Opcode.SUB_STR, _sub_str),
            (Opcode.SUB_LIST, _sub_list),
        ]
        for opcode, run in ops:
            self.register(opcode, run)

    # --- Comparison & logic ---

    def _register_comparison_ops(self) -> None:
        """Register EQUALS, MORE, LESS and the boolean connectives."""

        def _equals(interp, ctx, cmd):
            a = ctx.lookup(cmd.args[0])
            b = ctx.lookup(cmd.args[1])
            _store(ctx, cmd.args[2], bool_val(a == b))

        def _numeric_pair(ctx, cmd):
            a = ctx.lookup(cmd.args[0])
            b = ctx.lookup(cmd.args[1])
            for value in (a, b):
                if not is_numeric(value.type):
                    raise error_type_mismatch("integer, float or char", value.type.name)
            return a.data, b.data

        def _more(interp, ctx, cmd):
            a, b = _numeric_pair(ctx, cmd)
            _store(ctx, cmd.args[2], bool_val(a > b))

        def _less(interp, ctx, cmd):
            a, b = _numeric_pair(ctx, cmd)
            _store(ctx, cmd.args[2], bool_val(a < b))

        def _and(interp, ctx, cmd):
            a = _bool_arg(ctx, cmd.args[0])
            b = _bool_arg(ctx, cmd.args[1])
            _store(ctx, cmd.args[2], bool_val(a and b))

        def _or(interp, ctx, cmd):
            a = _bool_arg(ctx, cmd.args[0])
            b = _bool_arg(ctx, cmd.args[1])
            _store(ctx, cmd.args[2], bool_val(a or b))

        def _not(interp, ctx, cmd):
            _store(ctx, cmd.args[1], bool_val(not _bool_arg(ctx, cmd.args[0])))

        ops = [
            (Opcode.EQUALS, _equals),
            (Opcode.MORE, _more),
            (Opcode.LESS, _less),
            (Opcode.AND, _and),
            (Opcode.OR, _or),
            (Opcode.NOT, _not),
        ]
        for opcode, run in ops:
            self.register(opcode, run)

    # --- Predicates ---

    def _register_predicate_ops(self) -> None:
        """Register the HAS_* membership tests."""

        def _has_str(interp, ctx, cmd):
            haystack = encode_text(_string_arg(ctx, cmd.args[0]))
            needle = ctx.lookup(cmd.args[1])
            raw = text_bytes(needle)
            if raw is None:
                raise error_type_mismatch("string, char or list[char]", needle.type.name)
            _store(ctx, cmd.args[2], bool_val(raw in haystack))

        def _has_item(interp, ctx, cmd):
            items = expect_kind(ctx.lookup(cmd.args[0]), TypeKind.LIST).data
            item = ctx.lookup(cmd.args[1])
            _store(ctx, cmd.args[2], bool_val(item in items))

        def _has_entry(interp, ctx, cmd):
            mapping = expect_kind(ctx.lookup(cmd.args[0]), TypeKind.MAP).data
            key = ctx.lookup(cmd.args[1])
            value = ctx.lookup(cmd.args[2])
            _store(ctx, cmd.args[3], bool_val(key in mapping and mapping[key] == value))

        def _has_key(interp, ctx, cmd):
            mapping = expect_kind(ctx.lookup(cmd.args[0]), TypeKind.MAP).data
            key = ctx.lookup(cmd.args[1])
            _store(ctx, cmd.args[2], bool_val(key in mapping))

        def _has_value(interp, ctx, cmd):
            mapping = expect_kind(ctx.lookup(cmd.args[0]), TypeKind.MAP).data
            value = ctx.lookup(cmd.args[1])
            _store(ctx, cmd.args[2], bool_val(value in mapping.values()))

        def _has_optional(interp, ctx, cmd):
            optional = expect_kind(ctx.lookup(cmd.args[0]), TypeKind.OPTIONAL)
            _store(ctx, cmd.args[1], bool_val(optional.data is not None))

        ops = [
            (Opcode.HAS_STR, _has_str),
            (Opcode.HAS_ITEM, _has_item),
            (Opcode.HAS_ENTRY, _has_entry),
            (Opcode.HAS_KEY, _has_key),
            (Opcode.HAS_VALUE, _has_value),
            (Opcode.HAS_OPTIONAL, _has_optional),
        ]
        for opcode, run in ops:
            self.register(opcode, run)

    # --- Optionals ---

    def _register_optional_ops(self) -> None:
        """Register the optional lifecycle."""

        def _unpack(interp, ctx, cmd):
            optional = expect_kind(ctx.lookup(cmd.args[0]), TypeKind.OPTIONAL)
            if optional.data is None:
                raise error_empty_optional(cmd.args[0])
            _store(ctx, cmd.args[1], optional.data.copy())

        def _pack(interp, ctx, cmd):
            value = ctx.lookup(cmd.args[0])
            _store(ctx, cmd.args[1], optional_val(value.copy(), value.type))

        def _none(interp, ctx, cmd):
            optional = expect_kind(ctx.lookup(cmd.args[0]), TypeKind.OPTIONAL)
            ctx.assign(cmd.args[0], optional_val(None, optional.type.inner_type))

        self.register(Opcode.UNPACK_OPTIONAL, _unpack)
        self.register(Opcode.PACK_OPTIONAL, _pack)
        self.register(Opcode.NONE_OPTIONAL, _none)

    # --- Sizes ---

    def _register_size_ops(self) -> None:
        """Register LIST_SIZE, MAP_SIZE and STRING_SIZE."""

        def _sizer(kind, measure):
            def _size(interp, ctx, cmd):
                value = expect_kind(ctx.lookup(cmd.args[0]), kind)
                _store(ctx, cmd.args[1], int_val(measure(value)))
            return _size

        self.register(Opcode.LIST_SIZE, _sizer(TypeKind.LIST, lambda v: len(v.data)))
        self.register(Opcode.MAP_SIZE, _sizer(TypeKind.MAP, lambda v: len(v.data)))
        # Size in bytes
        self.register(Opcode.STRING_SIZE,
                      _sizer(TypeKind.STRING, lambda v: len(encode_text(v.data))))

    # --- Streams ---

    def _register_stream_ops(self) -> None:
        """Register stream I/O; none of these hold the lock while blocked."""

        def _write(interp, ctx, cmd):
            with ctx.store.lock:
                data = output_bytes(ctx.lookup(cmd.args[0]))
                handle = require_out(ctx.lookup(cmd.args[1]))
            handle.write(data)

        def _read(interp, ctx, cmd):
            with ctx.store.lock:
                target_type = _text_target_type(ctx, cmd.args[0])
                size = _int_arg(ctx, cmd.args[1])
                handle = require_in(ctx.lookup(cmd.args[2]))
            if size < 0:
                raise error_invalid_range(0, size)
            data = handle.read_exact(size)
            with ctx.store.lock:
                ctx.assign(cmd.args[0], _text_value(target_type, data))

        def _read_all(interp, ctx, cmd):
            with ctx.store.lock:
                target_type = _text_target_type(ctx, cmd.args[0])
                handle = require_in(ctx.lookup(cmd.args[1]))
            data = handle.read_all()
            with ctx.store.lock:
                ctx.assign(cmd.args[0], _text_value(target_type, data))

        def _open_file_in(interp, ctx, cmd):
            with ctx.store.lock:
                path = _string_arg(ctx, cmd.args[0])
            handle = interp.host.open_file_in(path)
            with ctx.store.lock:
                ctx.assign(cmd.args[1], stream_val(handle, IN_STREAM))

        def _open_file_out(interp, ctx, cmd):
            with ctx.store.lock:
                path = _string_arg(ctx, cmd.args[0])
            handle = interp.host.open_file_out(path)
            with ctx.store.lock:
                ctx.assign(cmd.args[1], stream_val(handle, OUT_STREAM))

        def _open_tcp_connection(interp, ctx, cmd):
            with ctx.store.lock:
                address = _string_arg(ctx, cmd.args[0])
                port = _int_arg(ctx, cmd.args[1])
            reader, writer = interp.host.connect_tcp(address, port)
            with ctx.store.lock:
                ctx.assign(cmd.args[2], stream_val(reader, IN_STREAM))
                ctx.assign(cmd.args[3], stream_val(writer, OUT_STREAM))

        def _open_tcp_listener(interp, ctx, cmd):
            with ctx.store.lock:
                address = _string_arg(ctx, cmd.args[0])
                port = _int_arg(ctx, cmd.args[1])
            interp.serve(ctx, address, port, cmd.args[2])

        ops = [
            (Opcode.WRITE, _write),
            (Opcode.READ, _read),
            (Opcode.READ_ALL, _read_all),
            (Opcode.OPEN_FILE_IN, _open_file_in),
            (Opcode.OPEN_FILE_OUT, _open_file_out),
            (Opcode.OPEN_TCP_CONNECTION, _open_tcp_connection),
            (Opcode.OPEN_TCP_LISTENER, _open_tcp_listener),
        ]
        for opcode, run in ops:
            self.register(opcode, run, atomic=False)

    # --- Control flow ---

    def _register_control_ops(self) -> None:
        """Register callback-driven control flow."""

        def _if(interp, ctx, cmd):
            with ctx.store.lock:
                condition = _bool_arg(ctx, cmd.args[0])
            if condition:
                interp.invoke(ctx, cmd.args[1], [])

        def _for(interp, ctx, cmd):
            with ctx.store.lock:
                start = _int_arg(ctx, cmd.args[1])
                end = _int_arg(ctx, cmd.args[2])
            for i in range(start, end + 1):
                interp.invoke(ctx, cmd.args[0], [int_val(i)])

        def _for_list(interp, ctx, cmd):
            with ctx.store.lock:
                items = expect_kind(ctx.lookup(cmd.args[1]), TypeKind.LIST)
                snapshot = [item.copy() for item in items.data]
            for item in snapshot:
                interp.invoke(ctx, cmd.args[0], [item])

        def _for_map(interp, ctx, cmd):
            with ctx.store.lock:
                mapping = expect_kind(ctx.lookup(cmd.args[1]), TypeKind.MAP)
                snapshot = [(k.copy(), v.copy()) for k, v in mapping.data.items()]
            for key, value in snapshot:
                interp.invoke(ctx, cmd.args[0], [key, value])

        def _for_string(interp, ctx, cmd):
            with ctx.store.lock:
                raw = encode_text(_string_arg(ctx, cmd.args[1]))
            for byte in raw:
                interp.invoke(ctx, cmd.args[0], [char_val(byte)])

        def _while(interp, ctx, cmd):
            while True:
                result = interp.invoke(ctx, cmd.args[0], [])
                if result is None:
                    raise error_type_mismatch(BOOL.name, "null")
                if not expect_type(result, BOOL).data:
                    break

        ops = [
            (Opcode.IF, _if),
            (Opcode.FOR, _for),
            (Opcode.FOR_LIST, _for_list),
            (Opcode.FOR_MAP, _for_map),
            (Opcode.FOR_STRING, _for_string),
            (Opcode.WHILE, _while),
        ]
        for opcode, run in ops:
            self.register(opcode, run, atomic=False)

    # --- Functions ---

    def _register_function_ops(self) -> None:
        """Register calls, returns and the definition markers."""

        def _use_func(interp, ctx, cmd):
            name, target = cmd.args[0], cmd.args[1]
            with ctx.store.lock:
                args = [ctx.lookup(path).copy() for path in cmd.args[2:]]
            result = interp.invoke(ctx, name, args)
            if result is not None:
                with ctx.store.lock:
                    _store(ctx, target, result)

        def _return(interp, ctx, cmd):
            ctx.signal_return()

        def _func(interp, ctx, cmd):
            # Definitions are extracted before execution
            if ctx.in_function:
                raise error_nested_function(cmd.args[1])
            raise error_unterminated_function(cmd.args[1])

        def _func_end(interp, ctx, cmd):
            raise error_unexpected_func_end()

        self.register(Opcode.USE_FUNC, _use_func, atomic=False)
        self.register(Opcode.RETURN, _return)
        self.register(Opcode.FUNC, _func)
        self.register(Opcode.FUNC_END, _func_end)

    # --- Concurrency ---

    def _register_concurrency_ops(self) -> None:
        """Register SLEEP and NEW_THREAD."""

        def _sleep(interp, ctx, cmd):
            with ctx.store.lock:
                delay = expect_kind(ctx.lookup(cmd.args[0]), TypeKind.INTEGER, TypeKind.FLOAT).data
            if isinstance(delay, float) and not math.isfinite(delay) or delay < 0:
                raise error_invalid_range(0, delay)
            try:
                time.sleep(delay / 1000)
            except OverflowError:
                raise error_invalid_range(0, delay)

        def _new_thread(interp, ctx, cmd):
            interp.spawn(cmd.args[0])

        self.register(Opcode.SLEEP, _sleep, atomic=False)
        self.register(Opcode.NEW_THREAD, _new_thread)

    # --- Modules & misc ---

    def _register_module_ops(self) -> None:
        """Register IMPORT, IMPORT_TEXT and RANDOM."""

        def _import(interp, ctx, cmd):
            with ctx.store.lock:
                path = _string_arg(ctx, cmd.args[0])
            interp.import_text(ctx, interp.host.read_script(path), origin=path)

        def _import_text(interp, ctx, cmd):
            with ctx.store.lock:
                text = _string_arg(ctx, cmd.args[0])
            interp.import_text(ctx, text)

        def _random(interp, ctx, cmd):
            low = _int_arg(ctx, cmd.args[0])
            high = _int_arg(ctx, cmd.args[1])
            if low > high:
                raise error_invalid_range(low, high)
            _store(ctx, cmd.args[2], int_val(interp.random.randint(low, high)))

        self.register(Opcode.IMPORT, _import, atomic=False)
        self.register(Opcode.IMPORT_TEXT, _import_text, atomic=False)
        self.register(Opcode.RANDOM, _random)


# Global registry instance
_registry: Optional[OpcodeRegistry] = None


def get_opcode_registry() -> OpcodeRegistry:
    """Get the global opcode registry."""
    global _registry
    if _registry is None:
        _registry = OpcodeRegistry()
    return _registry
