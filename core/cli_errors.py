"""CLI exit codes and error reporting.

Commands raise CLIError subclasses; CLIApp.run turns them into a one-line
message (plus optional hint) on stderr and the matching exit code.
"""
from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional


class ExitCode(IntEnum):
    """Exit codes shared by the meetings commands."""
    SUCCESS = 0
    ERROR = 1
    USAGE = 2
    CONFIG_ERROR = 3
    NOT_FOUND = 6
    INTERRUPTED = 130  # Ctrl+C


@dataclass
class CLIError(Exception):
    message: str
    code: ExitCode = ExitCode.ERROR
    hint: Optional[str] = None

    def __str__(self) -> str:
        return self.message


class ConfigError(CLIError):
    """Invalid or unreadable YAML config."""
    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message, ExitCode.CONFIG_ERROR, hint)


class NotFoundError(CLIError):
    """An input artifact named on the command line does not exist."""
    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message, ExitCode.NOT_FOUND, hint)


class UsageError(CLIError):
    """Bad argument value or conflicting options."""
    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message, ExitCode.USAGE, hint)


def handle_error(error: BaseException, verbose: bool = False) -> int:
    """Report ``error`` on stderr and return the exit code for it.

    Unexpected exceptions map to ExitCode.ERROR; the traceback is printed
    only when ``verbose`` is set.
    """
    if isinstance(error, CLIError):
        print(f"Error: {error.message}", file=sys.stderr)
        if error.hint:
            print(f"Hint: {error.hint}", file=sys.stderr)
        return error.code

    if isinstance(error, KeyboardInterrupt):
        print("\nInterrupted.", file=sys.stderr)
        return ExitCode.INTERRUPTED

    print(f"Error: {error}", file=sys.stderr)
    if verbose:
        import traceback
        traceback.print_exc()
    return ExitCode.ERROR
