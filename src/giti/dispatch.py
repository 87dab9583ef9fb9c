"""Running external programs: git itself, formatters and the editor.

`dispatch_to` hands the terminal to the child silently, `run_command`
echoes the command line first so multi-step commands (pullc, review, ...)
show what they are doing. Both block until the child exits.
"""

import os
import shlex
import subprocess
from pathlib import Path
from typing import List, Sequence

from rich.console import Console

from .errors import ConfigurationMissing, DelegationFailure

_console = Console(highlight=False)


def _shell_out(args: Sequence[str], echo: bool) -> None:
    if echo:
        _console.print(f"=> Running: {' '.join(args)}", style="cyan")

    try:
        returncode = subprocess.call(list(args))
    except FileNotFoundError:
        raise ConfigurationMissing(f"{args[0]} is not installed or not on PATH.")

    if echo:
        # An empty line to separate the different commands.
        print()

    if returncode == 0:
        return
    if returncode < 0:
        raise DelegationFailure(args[0], signal=-returncode)
    raise DelegationFailure(args[0], returncode=returncode)


def dispatch_to(program: str, args: Sequence[str]) -> None:
    """Run `program` with `args` without echoing the command line."""
    _shell_out([program, *args], echo=False)


def run_command(args: Sequence[str]) -> None:
    """Run the command and echo the command line."""
    _shell_out(args, echo=True)


def communicate(args: Sequence[str]) -> subprocess.CompletedProcess:
    """Run the command capturing stdout and stderr. Never raises on exit code."""
    return subprocess.run(list(args), capture_output=True, text=True)


def get_editor() -> List[str]:
    for var in ("GIT_EDITOR", "VISUAL", "EDITOR"):
        editor = os.environ.get(var)
        if editor:
            return shlex.split(editor)

    result = communicate(["git", "var", "GIT_EDITOR"])
    if result.returncode == 0 and result.stdout.strip():
        return shlex.split(result.stdout.strip())
    return ["vi"]


def run_editor(path: Path) -> None:
    editor = get_editor()
    _shell_out([*editor, str(path)], echo=False)
