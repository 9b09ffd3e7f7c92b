"""
Tests for the Sust interpreter: variables, functions and value opcodes.
"""

import io
import textwrap

import pytest

from sustlang import (
    ErrorKind, Opcode, RuntimeConfig, Interpreter, parse_script, run_script,
)
from sustlang.runtime import (
    InStream, OutStream, get_opcode_registry, int_val, string_val,
)


def run(source, args=(), stdin=b"", config=None, host=None):
    """Run a program, returning (result, bytes written to cout)."""
    out = io.BytesIO()
    result = run_script(
        textwrap.dedent(source),
        args=args,
        stdout=out,
        stdin=io.BytesIO(stdin),
        config=config,
        host=host,
    )
    return result, out.getvalue()


def run_ok(source, **kwargs):
    result, output = run(source, **kwargs)
    assert result.success, result.error_message
    return output


def run_error(source, **kwargs):
    result, _ = run(source, **kwargs)
    assert not result.success
    return result.diagnostic


# --- Basic Programs ---

class TestBasicPrograms:
    """End-to-end programs over cout."""

    def test_hello(self):
        output = run_ok("""
            TEMP_VAR string text Hello
            WRITE text cout
        """)
        assert output == b"Hello"

    def test_arithmetic(self):
        output = run_ok("""
            INIT_VAR int x
            SET_VAR x 10
            TEMP_VAR int five 5
            ADD_INT x five
            TO_STRING x text
            WRITE text cout
        """)
        assert output == b"15"

    def test_float_arithmetic(self):
        output = run_ok("""
            INIT_VAR float x
            SET_VAR x 1.5
            TEMP_VAR float y 2.25
            ADD_FLOAT x y
            WRITE x cout
        """)
        assert output == b"3.75"

    def test_write_canonical_forms(self):
        output = run_ok("""
            INIT_VAR list[int] xs
            INIT_VAR bool flag
            WRITE xs cout
            WRITE flag cout
        """)
        assert output == b"[]false"

    def test_empty_program(self):
        assert run_ok("") == b""

    def test_args_global(self):
        output = run_ok("""
            TEMP_VAR int one 1
            GET_ITEM args one first
            WRITE first cout
            LIST_SIZE args n
            WRITE n cout
        """, args=("alpha", "beta"))
        assert output == b"alpha3"

    def test_return_at_top_level_ends_program(self):
        output = run_ok("""
            TEMP_VAR string a A
            WRITE a cout
            RETURN
            TEMP_VAR string b B
            WRITE b cout
        """)
        assert output == b"A"


# --- Variable Opcodes ---

class TestVariableOpcodes:
    """Test INIT/SET/TEMP/MOVE/COPY/DROP/HAS_VAR."""

    def test_temp_var_lives_one_more_command(self):
        output = run_ok("""
            TEMP_VAR string t X
            HAS_VAR t alive
            HAS_VAR t later
            WRITE alive cout
            WRITE later cout
        """)
        assert output == b"truefalse"

    def test_temp_var_reinit_clears_marker(self):
        output = run_ok("""
            TEMP_VAR int t 1
            INIT_VAR int t
            INIT_VAR int other
            HAS_VAR t still
            WRITE still cout
        """)
        assert output == b"true"

    def test_temp_var_moved_away(self):
        output = run_ok("""
            TEMP_VAR string t kept
            MOVE_VAR t keep
            INIT_VAR int filler
            WRITE keep cout
        """)
        assert output == b"kept"

    def test_copy_then_equals(self):
        output = run_ok("""
            INIT_VAR list[int] src
            COPY_VAR src dst
            EQUALS src dst same
            HAS_VAR src bound
            WRITE same cout
            WRITE bound cout
        """)
        assert output == b"truetrue"

    def test_move_unbinds_source(self):
        output = run_ok("""
            INIT_VAR string src
            SET_VAR src value
            MOVE_VAR src dst
            HAS_VAR src there
            WRITE there cout
            WRITE dst cout
        """)
        assert output == b"falsevalue"

    def test_drop_var(self):
        diag = run_error("""
            INIT_VAR int x
            DROP_VAR x
            DROP_VAR x
        """)
        assert diag.kind == ErrorKind.UNKNOWN_VARIABLE
        assert diag.line == 4

    def test_set_var_requires_existing(self):
        diag = run_error("SET_VAR ghost 1")
        assert diag.kind == ErrorKind.UNKNOWN_VARIABLE

    def test_set_var_parses_against_declared_type(self):
        diag = run_error("""
            INIT_VAR int x
            SET_VAR x abc
        """)
        assert diag.kind == ErrorKind.CONVERSION_FAILURE
        assert diag.opcode == "SET_VAR"
        assert diag.source_line == "SET_VAR x abc"

    def test_set_var_string_with_spaces(self):
        output = run_ok("""
            INIT_VAR string s
            SET_VAR s two  spaces
            WRITE s cout
        """)
        assert output == b"two  spaces"

    def test_result_type_is_enforced(self):
        diag = run_error("""
            INIT_VAR int n
            TEMP_VAR string s 5
            COPY_VAR s n
        """)
        assert diag.kind == ErrorKind.TYPE_MISMATCH

    def test_map_and_list_paths(self):
        output = run_ok("""
            INIT_VAR map[string,int] ages
            SET_VAR ages.bob 41
            SET_VAR ages.amy 30
            MAP_SIZE ages n
            WRITE ages cout
            WRITE n cout
        """)
        assert output == b"{bob: 41, amy: 30}2"


# --- Conversions & Accessors ---

class TestValueOpcodes:
    """Test conversions, accessors, slicing and predicates."""

    def test_conversions(self):
        output = run_ok("""
            TEMP_VAR string digits 42
            TO_INTEGER digits n
            TO_FLOAT n f
            WRITE f cout
            TO_CHAR n star
            WRITE star cout
            TO_BOOL n truth
            WRITE truth cout
        """)
        assert output == b"42*true"

    def test_to_chars_and_back(self):
        output = run_ok("""
            TEMP_VAR string s hey
            TO_CHARS s chars
            LIST_SIZE chars n
            WRITE n cout
            WRITE chars cout
        """)
        assert output == b"3hey"

    def test_bad_conversion(self):
        diag = run_error("""
            TEMP_VAR string s nope
            TO_INTEGER s n
        """)
        assert diag.kind == ErrorKind.CONVERSION_FAILURE

    @pytest.mark.parametrize("literal", ["inf", "-inf", "nan"])
    def test_non_finite_float_to_integer(self, literal):
        diag = run_error("""
            TEMP_VAR float f %s
            TO_INTEGER f n
        """ % literal)
        assert diag.kind == ErrorKind.CONVERSION_FAILURE
        assert diag.opcode == "TO_INTEGER"

    def test_huge_integer_to_float(self):
        diag = run_error("""
            TEMP_VAR int big 1%s
            TO_FLOAT big f
        """ % ("0" * 400))
        assert diag.kind == ErrorKind.CONVERSION_FAILURE
        assert diag.opcode == "TO_FLOAT"

    def test_float_output_has_no_exponent(self):
        output = run_ok("""
            TEMP_VAR float f 1e20
            WRITE f cout
        """)
        assert output == b"100000000000000000000"

    def test_get_symbol(self):
        output = run_ok("""
            INIT_VAR string s
            SET_VAR s hello
            TEMP_VAR int i 1
            GET_SYMBOL s i c
            WRITE c cout
        """)
        assert output == b"e"

    def test_get_symbol_out_of_range(self):
        diag = run_error("""
            INIT_VAR string s
            SET_VAR s hi
            TEMP_VAR int i 2
            GET_SYMBOL s i c
        """)
        assert diag.kind == ErrorKind.INDEX_OUT_OF_RANGE

    def test_get_value(self):
        output = run_ok("""
            INIT_VAR map[int,string] m
            SET_VAR m.7 seven
            TEMP_VAR int k 7
            GET_VALUE m k v
            WRITE v cout
        """)
        assert output == b"seven"

    def test_get_value_missing_key(self):
        diag = run_error("""
            INIT_VAR map[int,string] m
            TEMP_VAR int k 7
            GET_VALUE m k v
        """)
        assert diag.kind == ErrorKind.KEY_NOT_FOUND

    def test_sub_str_is_inclusive(self):
        output = run_ok("""
            INIT_VAR string s
            SET_VAR s hello
            INIT_VAR int a
            SET_VAR a 1
            INIT_VAR int b
            SET_VAR b 3
            SUB_STR s a b
            WRITE s cout
        """)
        assert output == b"ell"

    @pytest.mark.parametrize("start,end", [(-1, 2), (0, 5), (3, 1)])
    def test_sub_str_invalid_range(self, start, end):
        diag = run_error(f"""
            INIT_VAR string s
            SET_VAR s hello
            INIT_VAR int a
            SET_VAR a {start}
            INIT_VAR int b
            SET_VAR b {end}
            SUB_STR s a b
        """)
        assert diag.kind == ErrorKind.INVALID_RANGE

    def test_sub_list(self):
        output = run_ok("""
            TEMP_VAR string s abcde
            TO_CHARS s xs
            INIT_VAR int a
            SET_VAR a 3
            INIT_VAR int b
            SET_VAR b 4
            SUB_LIST xs a b
            WRITE xs cout
        """)
        assert output == b"de"

    def test_add_str_sources_agree(self):
        output = run_ok("""
            INIT_VAR string one
            INIT_VAR string two
            INIT_VAR string three
            TEMP_VAR string piece A
            ADD_STR one piece
            TEMP_VAR char code 65
            ADD_STR two code
            TEMP_VAR string text A
            TO_CHARS text chars
            ADD_STR three chars
            EQUALS one two same_a
            EQUALS two three same_b
            WRITE same_a cout
            WRITE same_b cout
            WRITE three cout
        """)
        assert output == b"truetrueA"

    def test_add_int_type_mismatch(self):
        diag = run_error("""
            INIT_VAR int x
            TEMP_VAR float y 1.0
            ADD_INT x y
        """)
        assert diag.kind == ErrorKind.TYPE_MISMATCH

    def test_comparisons_and_logic(self):
        output = run_ok("""
            INIT_VAR int a
            SET_VAR a 3
            INIT_VAR float b
            SET_VAR b 2.5
            MORE a b more
            LESS a b less
            NOT less not_less
            AND more not_less both
            OR less both either
            WRITE either cout
        """)
        assert output == b"true"

    def test_more_rejects_strings(self):
        diag = run_error("""
            INIT_VAR string a
            INIT_VAR string b
            MORE a b r
        """)
        assert diag.kind == ErrorKind.TYPE_MISMATCH

    def test_predicates(self):
        output = run_ok("""
            INIT_VAR map[string,int] m
            SET_VAR m.a 1
            INIT_VAR string key
            SET_VAR key a
            INIT_VAR int one
            SET_VAR one 1
            HAS_KEY m key k
            HAS_VALUE m one v
            HAS_ENTRY m key one e
            INIT_VAR string s
            SET_VAR s haystack
            TEMP_VAR string sub st
            HAS_STR s sub h
            TO_CHARS key keys
            TEMP_VAR char c 97
            HAS_ITEM keys c i
            WRITE k cout
            WRITE v cout
            WRITE e cout
            WRITE h cout
            WRITE i cout
        """)
        assert output == b"truetruetruetruetrue"

    def test_sizes_count_bytes(self):
        output = run_ok("""
            TEMP_VAR string s é
            STRING_SIZE s n
            WRITE n cout
        """)
        assert output == b"2"


# --- Optionals ---

class TestOptionals:
    """Test the optional lifecycle."""

    def test_pack_then_unpack(self):
        output = run_ok("""
            TEMP_VAR int v 9
            PACK_OPTIONAL v boxed
            HAS_OPTIONAL boxed present
            UNPACK_OPTIONAL boxed back
            WRITE present cout
            WRITE back cout
            WRITE boxed cout
        """)
        assert output == b"true9(9)"

    def test_unpack_empty(self):
        diag = run_error("""
            INIT_VAR optional[int] maybe
            UNPACK_OPTIONAL maybe v
        """)
        assert diag.kind == ErrorKind.EMPTY_OPTIONAL
        assert diag.code == "E207"

    def test_none_optional(self):
        output = run_ok("""
            INIT_VAR optional[string] maybe
            SET_VAR maybe [hi]
            HAS_OPTIONAL maybe before
            NONE_OPTIONAL maybe
            HAS_OPTIONAL maybe after
            WRITE before cout
            WRITE after cout
        """)
        assert output == b"truefalse"


# --- Functions ---

ADD = """
    FUNC int add a int b int
        COPY_VAR a result
        ADD_INT result b
    FUNC_END
"""


class TestFunctions:
    """Test the call protocol."""

    def test_call_with_result(self):
        output = run_ok(ADD + """
            INIT_VAR int x
            SET_VAR x 2
            INIT_VAR int y
            SET_VAR y 3
            USE_FUNC add sum x y
            WRITE sum cout
        """)
        assert output == b"5"

    def test_forward_reference(self):
        output = run_ok("""
            USE_FUNC greet null
            FUNC null greet
                TEMP_VAR string s hi
                WRITE s cout
            FUNC_END
        """)
        assert output == b"hi"

    def test_arguments_are_copies(self):
        output = run_ok("""
            FUNC null bump n int
                TEMP_VAR int one 1
                ADD_INT n one
            FUNC_END
            INIT_VAR int mine
            USE_FUNC bump null mine
            WRITE mine cout
        """)
        assert output == b"0"

    def test_unknown_function_before_frame(self):
        diag = run_error("""
            INIT_VAR int x
            USE_FUNC missing result
        """)
        assert diag.kind == ErrorKind.UNKNOWN_FUNCTION
        assert diag.line == 3

    def test_unknown_function_leaves_caller_unchanged(self):
        """A failed lookup binds no result and leaves no frame behind."""
        interpreter = Interpreter(parse_script(
            "INIT_VAR int x\nSET_VAR x 7\nUSE_FUNC missing result\n"))
        interpreter.set_standard_vars(
            ["prog"],
            cout=OutStream(io.BytesIO(), "cout", owns_resource=False),
            cin=InStream(io.BytesIO(), "cin", owns_resource=False),
        )
        result = interpreter.run()
        assert result.diagnostic.kind == ErrorKind.UNKNOWN_FUNCTION
        globals_ = interpreter.store.globals
        assert not globals_.contains("result")
        assert globals_.get("x") == int_val(7)

    def test_argument_count_mismatch(self):
        diag = run_error(ADD + """
            INIT_VAR int x
            USE_FUNC add sum x
        """)
        assert diag.kind == ErrorKind.ARGUMENT_MISMATCH

    def test_argument_type_mismatch(self):
        diag = run_error(ADD + """
            INIT_VAR int x
            INIT_VAR float y
            USE_FUNC add sum x y
        """)
        assert diag.kind == ErrorKind.ARGUMENT_MISMATCH

    def test_frames_do_not_see_caller_locals(self):
        output = run_ok("""
            FUNC null outer
                INIT_VAR int secret
                USE_FUNC inner null
            FUNC_END
            FUNC null inner
                HAS_VAR secret seen
                WRITE seen cout
            FUNC_END
            USE_FUNC outer null
        """)
        assert output == b"false"

    def test_functions_update_globals(self):
        output = run_ok("""
            FUNC null bump
                TEMP_VAR int one 1
                ADD_INT counter one
            FUNC_END
            INIT_VAR int counter
            USE_FUNC bump null
            USE_FUNC bump null
            WRITE counter cout
        """)
        assert output == b"2"

    def test_null_target_discards_result(self):
        output = run_ok(ADD + """
            INIT_VAR int x
            USE_FUNC add null x x
            HAS_VAR null there
            WRITE there cout
        """)
        assert output == b"false"

    def test_return_ends_function_early(self):
        output = run_ok("""
            FUNC int pick
                SET_VAR result 1
                RETURN
                SET_VAR result 2
            FUNC_END
            USE_FUNC pick n
            WRITE n cout
            TEMP_VAR string after !
            WRITE after cout
        """)
        assert output == b"1!"

    def test_error_notes_call_site(self):
        diag = run_error("""
            FUNC null broken
                DROP_VAR nothing
            FUNC_END
            USE_FUNC broken null
        """)
        assert diag.kind == ErrorKind.UNKNOWN_VARIABLE
        assert diag.line == 3
        assert diag.opcode == "DROP_VAR"
        assert [(r.line, r.opcode) for r in diag.related] == [(5, "USE_FUNC")]
        assert "called from USE_FUNC" in diag.format()

    def test_nested_calls(self):
        output = run_ok(ADD + """
            FUNC int add3 a int b int c int
                USE_FUNC add ab a b
                USE_FUNC add result ab c
            FUNC_END
            INIT_VAR int x
            SET_VAR x 1
            INIT_VAR int y
            SET_VAR y 2
            INIT_VAR int z
            SET_VAR z 3
            USE_FUNC add3 total x y z
            WRITE total cout
        """)
        assert output == b"6"


# --- Misc ---

class TestMisc:
    """Test RANDOM, SLEEP and direct interpreter use."""

    def test_every_opcode_has_a_handler(self):
        registry = get_opcode_registry()
        assert [op for op in Opcode if op not in registry] == []
        assert len(registry) == len(Opcode)

    def test_random_is_seeded(self):
        source = """
            INIT_VAR int lo
            SET_VAR lo 1
            INIT_VAR int hi
            SET_VAR hi 1000000
            RANDOM lo hi r
            WRITE r cout
        """
        first = run_ok(source, config=RuntimeConfig(random_seed=7))
        second = run_ok(source, config=RuntimeConfig(random_seed=7))
        assert first == second
        assert 1 <= int(first) <= 1000000

    def test_random_bounds_are_inclusive(self):
        output = run_ok("""
            INIT_VAR int lo
            SET_VAR lo 4
            INIT_VAR int hi
            SET_VAR hi 4
            RANDOM lo hi r
            WRITE r cout
        """)
        assert output == b"4"

    def test_random_invalid_range(self):
        diag = run_error("""
            INIT_VAR int lo
            SET_VAR lo 5
            INIT_VAR int hi
            SET_VAR hi 4
            RANDOM lo hi r
        """)
        assert diag.kind == ErrorKind.INVALID_RANGE

    def test_sleep(self):
        output = run_ok("""
            TEMP_VAR int ms 1
            SLEEP ms
            TEMP_VAR string done ok
            WRITE done cout
        """)
        assert output == b"ok"

    @pytest.mark.parametrize("declaration", [
        "TEMP_VAR float ms nan",
        "TEMP_VAR float ms inf",
        "TEMP_VAR int ms -5",
        "TEMP_VAR int ms 1" + "0" * 400,
    ])
    def test_sleep_rejects_unusable_delay(self, declaration):
        diag = run_error(declaration + "\nSLEEP ms\n")
        assert diag.kind == ErrorKind.INVALID_RANGE
        assert diag.opcode == "SLEEP"

    def test_interpreter_globals(self):
        out = io.BytesIO()
        interpreter = Interpreter(parse_script("INIT_VAR int x\nSET_VAR x 3\n"))
        interpreter.set_standard_vars(
            ["prog"],
            cout=OutStream(out, "cout", owns_resource=False),
            cin=InStream(io.BytesIO(), "cin", owns_resource=False),
        )
        result = interpreter.run()
        assert result.success
        assert interpreter.store.globals.get("x") == int_val(3)
        assert interpreter.store.globals.get("args").data == [string_val("prog")]
