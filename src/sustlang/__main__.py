#!/usr/bin/env python3
"""
CLI for the Sust interpreter.

Usage:
    sust run FILE [ARG ...]
    sust check FILE
    sust list FILE

Examples:
    # Validate a script without running it
    sust check examples/echo.sust

    # Show the functions a script defines
    sust list examples/echo.sust

    # Run a script; its `args` global is [FILE, ARG ...]
    sust run examples/echo.sust hello world

    # Use a YAML runtime configuration
    sust --config sust.yaml run server.sust
"""

import argparse
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def _load(path_str: str):
    """Parse a script file, printing diagnostics; returns None on failure."""
    from .errors import ScriptError
    from .script import load_script

    source_path = Path(path_str)
    if not source_path.exists():
        print(f"Error: File not found: {source_path}", file=sys.stderr)
        return None
    try:
        return load_script(source_path)
    except ScriptError as e:
        print(e.diagnostic.format(), file=sys.stderr)
        return None


def cmd_check(args):
    """Check a script for front-end errors."""
    script = _load(args.file)
    if script is None:
        return 1
    print(f"OK: {Path(args.file).name} - {len(script.commands)} command(s), "
          f"{len(script.functions)} function(s), no errors")
    return 0


def cmd_list(args):
    """List the functions a script defines."""
    script = _load(args.file)
    if script is None:
        return 1
    print(f"Functions ({len(script.functions)}):")
    for function in script.functions:
        print(f"  {function.signature}  (line {function.line})")
    return 0


def cmd_run(args, config):
    """Run a script."""
    from .errors import SustError
    from .runtime import Interpreter, LocalHost

    script = _load(args.file)
    if script is None:
        return 1

    host = LocalHost(config.tcp_backlog, config.import_root)
    try:
        interpreter = Interpreter(script, config=config, host=host)
    except SustError as e:
        print(e.diagnostic.format(), file=sys.stderr)
        return 1
    interpreter.set_standard_vars([args.file, *args.args])

    result = interpreter.run()
    if config.join_threads:
        interpreter.join_threads()
    host.shutdown()

    if not result.success:
        print(result.error_message, file=sys.stderr)
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='sust',
        description='Sust script interpreter',
    )
    parser.add_argument('--config', metavar='FILE',
                        help='YAML runtime configuration (default: $SUST_CONFIG)')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='action', required=True)

    # check command
    check_parser = subparsers.add_parser('check', help='Check a script for errors')
    check_parser.add_argument('file', help='Sust source file')

    # list command
    list_parser = subparsers.add_parser('list', help='List functions in a script')
    list_parser.add_argument('file', help='Sust source file')

    # run command
    run_parser = subparsers.add_parser('run', help='Run a script')
    run_parser.add_argument('file', help='Sust source file')
    run_parser.add_argument('args', nargs=argparse.REMAINDER,
                            help='Arguments passed to the script')

    return parser


def main(argv=None):
    from .config import load_config

    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.log_level,
        format='%(levelname)s %(name)s: %(message)s',
    )
    logger.debug("action %s, config %s", args.action, config)

    if args.action == 'check':
        return cmd_check(args)
    elif args.action == 'list':
        return cmd_list(args)
    elif args.action == 'run':
        return cmd_run(args, config)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())
