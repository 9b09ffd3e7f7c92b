"""
Command-sequence interpreter for Sust execution.

Runs commands in order, dispatching each through the opcode registry,
threading the shared variable store and function registry through every
command.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, TYPE_CHECKING
import itertools
import logging
import random
import threading

from .values import (
    Value, string_val, list_val, int_val, stream_val, default_value, expect_type,
)
from .context import ExecutionContext, VariableStore
from .functions import FunctionDef, FunctionRegistry
from .host import HostServices, LocalHost, console_in, console_out
from .opcodes import OpcodeRegistry, get_opcode_registry
from .streams import InStream, OutStream
from ..commands import Command
from ..config import RuntimeConfig
from ..errors import SustError, Diagnostic, error_unknown_opcode, error_unknown_variable
from ..types import STRING, IN_STREAM, OUT_STREAM

if TYPE_CHECKING:
    from ..script import Script

logger = logging.getLogger(__name__)

RESULT_VAR = "result"


@dataclass
class ExecutionResult:
    """Result of running a program."""
    success: bool
    error: Optional[SustError] = None

    @property
    def diagnostic(self) -> Optional[Diagnostic]:
        if self.error is None:
            return None
        return self.error.diagnostic

    @property
    def error_message(self) -> Optional[str]:
        """The formatted diagnostic, if the run failed."""
        if self.error is None:
            return None
        return self.error.diagnostic.format()


class Interpreter:
    """
    Sequential command interpreter.

    One interpreter owns one program: its global store, its function
    registry and every context (main and spawned threads) running it.
    """

    def __init__(
        self,
        script: Optional["Script"] = None,
        config: Optional[RuntimeConfig] = None,
        host: Optional[HostServices] = None,
        opcodes: Optional[OpcodeRegistry] = None,
    ):
        """
        Initialize the interpreter.

        Args:
            script: Parsed program; its functions are registered immediately
            config: Runtime configuration (defaults if omitted)
            host: Provider of file, TCP and script resources
            opcodes: Dispatch table (the shared registry if omitted)
        """
        self.config = config or RuntimeConfig()
        self.host = host or LocalHost(self.config.tcp_backlog, self.config.import_root)
        self.opcodes = opcodes or get_opcode_registry()
        self.store = VariableStore()
        self.functions = FunctionRegistry()
        self.random = random.Random(self.config.random_seed)
        self.commands: List[Command] = []
        self._threads: List[threading.Thread] = []
        self._thread_ids = itertools.count(1)

        if script is not None:
            self.commands = list(script.commands)
            for function in script.functions:
                self.functions.define(function)

    def set_standard_vars(
        self,
        args: Sequence[str],
        cout: Optional[OutStream] = None,
        cin: Optional[InStream] = None,
    ) -> None:
        """Bind the `args`, `cout` and `cin` globals."""
        if cout is None:
            cout = console_out()
        if cin is None:
            cin = console_in()
        globals_ = self.store.globals
        with self.store.lock:
            globals_.set("args", list_val([string_val(a) for a in args], STRING))
            globals_.set("cout", stream_val(cout, OUT_STREAM))
            globals_.set("cin", stream_val(cin, IN_STREAM))

    def run(self) -> ExecutionResult:
        """Execute the top-level commands in the main context."""
        ctx = ExecutionContext(self.store, name="main")
        try:
            self.execute_sequence(self.commands, ctx)
        except SustError as e:
            return ExecutionResult(success=False, error=e)
        return ExecutionResult(success=True)

    # --- Execution ---

    def execute_sequence(self, commands: Sequence[Command], ctx: ExecutionContext) -> None:
        """
        Execute commands in order until the end or a RETURN signal.

        Temporaries declared here are dropped one command after their
        declaration, and any still pending when the sequence ends go too.
        """
        token = object()
        scope = ctx.active_scope
        outer_marker = ctx.temp_marker
        try:
            for index, command in enumerate(commands):
                ctx.temp_marker = (token, index)
                self.execute_command(command, ctx)
                if scope.pending_drop:
                    with self.store.lock:
                        scope.sweep(token, before=index)
                if ctx.should_return:
                    break
        finally:
            ctx.temp_marker = outer_marker
            if scope.pending_drop:
                with self.store.lock:
                    scope.sweep(token)

    def execute_command(self, command: Command, ctx: ExecutionContext) -> None:
        """Dispatch one command, locating any error it raises."""
        handler = self.opcodes.get(command.opcode)
        try:
            if handler is None:
                raise error_unknown_opcode(command.opcode.value)
            if handler.atomic:
                with self.store.lock:
                    handler.run(self, ctx, command)
            else:
                handler.run(self, ctx, command)
        except SustError as e:
            if e.diagnostic.located:
                e.add_call_site(command)
            else:
                e.locate(command)
            raise

    def invoke(self, ctx: ExecutionContext, name: str, args: List[Value]) -> Optional[Value]:
        """
        Call a function and return its result.

        Arguments become the parameters of a fresh frame as given, so
        callers pass values they own. Returns None for `null` functions.
        """
        function = self.functions.get(name)
        bound = function.bind_arguments(args)
        logger.debug("[%s] call %s", ctx.name, name)

        with ctx.new_frame(f"func {name}") as frame:
            with self.store.lock:
                for param_name, value in bound:
                    frame.set(param_name, value)
                frame.set(RESULT_VAR, default_value(function.result_type))
            self.execute_sequence(function.body, ctx)
            ctx.clear_return()
            with self.store.lock:
                result = frame.get(RESULT_VAR)

        if not function.returns_value:
            return None
        if result is None:
            raise error_unknown_variable(RESULT_VAR)
        return expect_type(result, function.result_type)

    # --- Modules ---

    def import_text(self, ctx: ExecutionContext, text: str, origin: Optional[str] = None) -> None:
        """Register the functions of a script and run its top-level commands."""
        from ..script import parse_script

        script = parse_script(text, origin)
        for function in script.functions:
            self.functions.define(function)
        logger.debug("imported %s (%d function(s))", origin or "<text>", len(script.functions))
        self.execute_sequence(script.commands, ctx)
        # RETURN in an imported script ends only the import
        ctx.clear_return()

    # --- Threads ---

    def _run_detached(self, ctx: ExecutionContext, function: FunctionDef,
                      args: List[Value], cleanup=None) -> None:
        try:
            self.invoke(ctx, function.name, args)
        except SustError as e:
            logger.error("thread %s aborted:\n%s", ctx.name, e.diagnostic.format())
        except Exception:
            logger.exception("thread %s crashed", ctx.name)
        finally:
            if cleanup is not None:
                cleanup()
            logger.debug("thread %s finished", ctx.name)

    def _start(self, ctx: ExecutionContext, function: FunctionDef, args: List[Value],
               cleanup=None) -> threading.Thread:
        thread = threading.Thread(
            target=self._run_detached,
            args=(ctx, function, args, cleanup),
            name=ctx.name,
            daemon=True,
        )
        with self.store.lock:
            self._threads.append(thread)
        thread.start()
        return thread

    def spawn(self, name: str) -> threading.Thread:
        """Run a parameterless function on a new daemon thread."""
        function = self.functions.get(name)
        function.bind_arguments([])
        ctx = ExecutionContext(self.store, name=f"thread-{next(self._thread_ids)}-{name}")
        logger.debug("spawning %s", ctx.name)
        return self._start(ctx, function, [])

    def serve(self, ctx: ExecutionContext, address: str, port: int, name: str) -> None:
        """
        Accept connections and hand each one to `name` on its own thread.

        Returns once the listener closes and every handler has finished.
        """
        function = self.functions.get(name)
        workers = []
        for connection in self.host.listen_tcp(address, port):
            args = [
                string_val(connection.address),
                int_val(connection.port),
                stream_val(connection.input, IN_STREAM),
                stream_val(connection.output, OUT_STREAM),
            ]
            worker_ctx = ExecutionContext(
                self.store, name=f"conn-{next(self._thread_ids)}-{name}")
            workers.append(self._start(worker_ctx, function, args, cleanup=connection.close))
        for worker in workers:
            worker.join()

    def join_threads(self, timeout: Optional[float] = None) -> None:
        """Wait for spawned threads, including ones they spawn."""
        while True:
            with self.store.lock:
                pending = [t for t in self._threads if t.is_alive()]
                self._threads = pending
            if not pending:
                return
            for thread in pending:
                thread.join(timeout)
            if timeout is not None:
                return


# Convenience function for simple execution
def run_script(
    source: str,
    args: Sequence[str] = (),
    stdout=None,
    stdin=None,
    config: Optional[RuntimeConfig] = None,
    host: Optional[HostServices] = None,
    path: str = "<script>",
) -> ExecutionResult:
    """
    High-level API to parse and run Sust source code in one call.

        from sustlang import run_script

        result = run_script('''
            TEMP_VAR string text Hello
            WRITE text cout
        ''')

        if not result.success:
            print(result.error_message)

    Args:
        source: Program text
        args: Extra arguments; `args` holds `path` followed by these
        stdout: Binary stream behind `cout` (the console if omitted)
        stdin: Binary stream behind `cin` (the console if omitted)
        config: Runtime configuration
        host: Host services for files, TCP and imports
        path: Script path reported as the first element of `args`

    Returns:
        ExecutionResult with the error, if any
    """
    from ..script import parse_script

    config = config or RuntimeConfig()
    try:
        script = parse_script(source, path)
        interpreter = Interpreter(script, config=config, host=host)
    except SustError as e:
        return ExecutionResult(success=False, error=e)

    interpreter.set_standard_vars([path, *args], cout=console_out(stdout), cin=console_in(stdin))

    result = interpreter.run()
    if config.join_threads:
        interpreter.join_threads()
    return result
