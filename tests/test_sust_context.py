"""
Tests for the variable store, frames and variable paths.
"""

import pytest

from sustlang import ExecutionError, ErrorKind
from sustlang.runtime import (
    ExecutionContext, VariableStore, Scope,
    int_val, string_val, list_val, map_val,
)
from sustlang.types import INT, STRING, ListType


@pytest.fixture
def ctx():
    return ExecutionContext(VariableStore())


def _kind(exc_info):
    return exc_info.value.kind


# --- Scope Tests ---

class TestScope:
    """Test a single scope and its auto-drop markers."""

    def test_set_clears_marker(self):
        """Re-creating a binding makes it permanent."""
        scope = Scope()
        scope.set("t", int_val(1))
        scope.mark_temporary("t", "seq", 0)
        scope.set("t", int_val(2))
        assert scope.sweep("seq") == []
        assert scope.get("t") == int_val(2)

    def test_sweep_respects_index(self):
        """Only markers older than the bound are dropped."""
        scope = Scope()
        owner = object()
        scope.set("a", int_val(1))
        scope.set("b", int_val(2))
        scope.mark_temporary("a", owner, 0)
        scope.mark_temporary("b", owner, 1)
        assert scope.sweep(owner, before=1) == ["a"]
        assert not scope.contains("a")
        assert scope.contains("b")

    def test_sweep_ignores_other_owners(self):
        scope = Scope()
        scope.set("a", int_val(1))
        scope.mark_temporary("a", "outer", 0)
        assert scope.sweep("inner") == []
        assert scope.contains("a")

    def test_sweep_is_idempotent_for_removed(self):
        """A temporary removed early is silently skipped."""
        scope = Scope()
        scope.set("a", int_val(1))
        scope.mark_temporary("a", "seq", 0)
        scope.remove("a")
        assert scope.sweep("seq") == []


# --- Context Tests ---

class TestFrames:
    """Test frame isolation."""

    def test_globals_visible_in_frame(self, ctx):
        ctx.declare("g", int_val(1))
        with ctx.new_frame("f"):
            assert ctx.lookup("g") == int_val(1)

    def test_frame_locals_vanish(self, ctx):
        with ctx.new_frame("f"):
            ctx.declare("local", int_val(1))
            assert ctx.has("local")
        assert not ctx.has("local")

    def test_caller_frame_invisible(self, ctx):
        """A nested call never sees its caller's locals."""
        with ctx.new_frame("caller"):
            ctx.declare("mine", int_val(1))
            with ctx.new_frame("callee"):
                assert not ctx.has("mine")

    def test_frame_shadows_global(self, ctx):
        ctx.declare("x", int_val(1))
        with ctx.new_frame("f"):
            ctx.declare("x", string_val("local"))
            assert ctx.lookup("x") == string_val("local")
        assert ctx.lookup("x") == int_val(1)

    def test_assign_reaches_global(self, ctx):
        """Writes go to wherever the name lives."""
        ctx.declare("counter", int_val(1))
        with ctx.new_frame("f"):
            ctx.assign("counter", int_val(2))
        assert ctx.lookup("counter") == int_val(2)

    def test_assign_creates_in_active_scope(self, ctx):
        with ctx.new_frame("f"):
            ctx.assign("fresh", int_val(3))
        assert not ctx.has("fresh")


class TestVariables:
    """Test reads, writes and removal."""

    def test_unknown_variable(self, ctx):
        with pytest.raises(ExecutionError) as exc_info:
            ctx.lookup("missing")
        assert _kind(exc_info) == ErrorKind.UNKNOWN_VARIABLE

    def test_assign_type_mismatch(self, ctx):
        ctx.declare("x", int_val(1))
        with pytest.raises(ExecutionError) as exc_info:
            ctx.assign("x", string_val("no"))
        assert _kind(exc_info) == ErrorKind.TYPE_MISMATCH
        assert ctx.lookup("x") == int_val(1)

    def test_remove(self, ctx):
        ctx.declare("x", int_val(1))
        assert ctx.remove("x") == int_val(1)
        assert not ctx.has("x")
        with pytest.raises(ExecutionError):
            ctx.remove("x")

    def test_move_leaves_source_unbound(self, ctx):
        ctx.declare("src", string_val("v"))
        ctx.move("src", "dst")
        assert not ctx.has("src")
        assert ctx.lookup("dst") == string_val("v")

    def test_failed_move_changes_nothing(self, ctx):
        ctx.declare("src", string_val("v"))
        ctx.declare("dst", int_val(0))
        with pytest.raises(ExecutionError):
            ctx.move("src", "dst")
        assert ctx.lookup("src") == string_val("v")
        assert ctx.lookup("dst") == int_val(0)

    def test_move_onto_itself(self, ctx):
        ctx.declare("x", int_val(5))
        ctx.move("x", "x")
        assert ctx.lookup("x") == int_val(5)

    def test_copy_is_independent(self, ctx):
        ctx.declare("xs", list_val([int_val(1)], INT))
        ctx.copy("xs", "ys")
        ctx.lookup("ys").data.append(int_val(2))
        assert len(ctx.lookup("xs").data) == 1


class TestPaths:
    """Test `name.segment` paths into lists and maps."""

    def test_list_index(self, ctx):
        ctx.declare("xs", list_val([int_val(10), int_val(20)], INT))
        assert ctx.lookup("xs.1") == int_val(20)
        assert ctx.slot_type("xs.0") == INT

    def test_list_index_out_of_range(self, ctx):
        ctx.declare("xs", list_val([int_val(10)], INT))
        with pytest.raises(ExecutionError) as exc_info:
            ctx.lookup("xs.3")
        assert _kind(exc_info) == ErrorKind.INDEX_OUT_OF_RANGE
        with pytest.raises(ExecutionError) as exc_info:
            ctx.assign("xs.1", int_val(0))
        assert _kind(exc_info) == ErrorKind.INDEX_OUT_OF_RANGE

    def test_map_key(self, ctx):
        ctx.declare("m", map_val({string_val("a"): int_val(1)}, STRING, INT))
        assert ctx.lookup("m.a") == int_val(1)
        ctx.assign("m.b", int_val(2))
        assert ctx.lookup("m.b") == int_val(2)
        with pytest.raises(ExecutionError) as exc_info:
            ctx.lookup("m.zzz")
        assert _kind(exc_info) == ErrorKind.KEY_NOT_FOUND

    def test_map_key_parsed_as_key_type(self, ctx):
        ctx.declare("m", map_val({int_val(7): string_val("seven")}, INT, STRING))
        assert ctx.lookup("m.7") == string_val("seven")

    def test_nested_path(self, ctx):
        inner = list_val([int_val(1), int_val(2)], INT)
        ctx.declare("m", map_val({string_val("k"): inner}, STRING, ListType(INT)))
        ctx.assign("m.k.0", int_val(9))
        assert ctx.lookup("m.k.0") == int_val(9)

    def test_indexing_scalar_fails(self, ctx):
        ctx.declare("n", int_val(1))
        with pytest.raises(ExecutionError) as exc_info:
            ctx.lookup("n.0")
        assert _kind(exc_info) == ErrorKind.TYPE_MISMATCH

    def test_has_never_raises(self, ctx):
        ctx.declare("xs", list_val([int_val(1)], INT))
        ctx.declare("m", map_val({}, INT, INT))
        assert ctx.has("xs.0")
        assert not ctx.has("xs.1")
        assert not ctx.has("xs.a")
        assert not ctx.has("m.notanint")
        assert not ctx.has("nothing.0")

    def test_remove_element(self, ctx):
        ctx.declare("xs", list_val([int_val(1), int_val(2), int_val(3)], INT))
        assert ctx.remove("xs.0") == int_val(1)
        assert ctx.lookup("xs") == list_val([int_val(2), int_val(3)], INT)

    def test_remove_entry(self, ctx):
        ctx.declare("m", map_val({string_val("a"): int_val(1)}, STRING, INT))
        ctx.remove("m.a")
        assert ctx.lookup("m").data == {}


class TestReturnSignal:
    """Test the return flag."""

    def test_signal_and_clear(self, ctx):
        assert not ctx.should_return
        ctx.signal_return()
        assert ctx.should_return
        ctx.clear_return()
        assert not ctx.should_return
