"""Decorator-driven argparse scaffolding for the pipeline commands.

Commands register with ``@app.command`` and declare their flags with
``@app.argument`` stacked underneath. ``CLIApp.run`` parses argv, sets up
logging from the shared ``-v``/``-q`` flags (given before the command
name), dispatches, and maps raised errors to exit codes.
"""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .cli_errors import CLIError, ExitCode, handle_error

CommandFunc = Callable[[argparse.Namespace], int]

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Route pipeline logging to stderr at a level chosen by the CLI flags."""
    level = logging.WARNING
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)


@dataclass
class CommandDef:
    name: str
    func: CommandFunc
    help: str = ""
    arguments: List[Tuple[tuple, Dict[str, Any]]] = field(default_factory=list)


class CLIApp:
    """Collects commands and their arguments, then builds one parser.

        app = CLIApp("meetings", "Meeting schedule pipeline")

        @app.command("build", help="Build artifacts")
        @app.argument("--config", required=True)
        def cmd_build(args):
            return 0
    """

    def __init__(self, name: str, description: str = "", *, version: Optional[str] = None):
        self.name = name
        self.description = description
        self.version = version
        self._commands: Dict[str, CommandDef] = {}
        self._pending: List[Tuple[tuple, Dict[str, Any]]] = []
        self._parser: Optional[argparse.ArgumentParser] = None

    def command(self, name: str, *, help: str = "") -> Callable[[CommandFunc], CommandFunc]:
        """Register ``func`` as subcommand ``name`` with the pending arguments."""
        def decorator(func: CommandFunc) -> CommandFunc:
            # @argument decorators run bottom-up; restore source order
            arguments = list(reversed(self._pending))
            self._pending.clear()
            self._commands[name] = CommandDef(name=name, func=func, help=help, arguments=arguments)
            return func
        return decorator

    def argument(self, *flags: str, **kwargs: Any) -> Callable[[CommandFunc], CommandFunc]:
        """Queue an argument for the next @command (place it below @command)."""
        def decorator(func: CommandFunc) -> CommandFunc:
            self._pending.append((flags, kwargs))
            return func
        return decorator

    def build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog=self.name,
            description=self.description,
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        if self.version:
            parser.add_argument("--version", "-V", action="version", version=f"%(prog)s {self.version}")
        parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
        parser.add_argument("--quiet", "-q", action="store_true", help="Only log errors")

        subparsers = parser.add_subparsers(dest="command", metavar="<command>")
        for cmd in self._commands.values():
            sub = subparsers.add_parser(cmd.name, help=cmd.help, description=cmd.help)
            for flags, kwargs in cmd.arguments:
                sub.add_argument(*flags, **kwargs)
            sub.set_defaults(_cmd_func=cmd.func)
        self._parser = parser
        return parser

    def run(self, argv: Optional[Sequence[str]] = None) -> int:
        """Parse ``argv``, dispatch, and return the exit code."""
        parser = self._parser or self.build_parser()
        args = parser.parse_args(argv)
        verbose = getattr(args, "verbose", False)
        configure_logging(verbose=verbose, quiet=getattr(args, "quiet", False))

        cmd_func = getattr(args, "_cmd_func", None)
        if cmd_func is None:
            parser.print_help()
            return ExitCode.USAGE

        try:
            return int(cmd_func(args))
        except CLIError as e:
            return handle_error(e, verbose=verbose)
        except KeyboardInterrupt as e:
            return handle_error(e)
        except Exception as e:
            return handle_error(e, verbose=verbose)
