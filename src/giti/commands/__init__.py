"""giti's own commands, keyed by the name they are invoked with."""

from typing import Dict

import click

from .tree import up, down, pullc, diffbase
from .review import review, cleanup
from .pr import pr, prs
from .fix import fix
from .repo import start, clone


def _by_name(*commands: click.Command) -> Dict[str, click.Command]:
    return {command.name: command for command in commands}


# Commands that need a repository and the diffbase store.
REPOSITORY_COMMANDS = _by_name(up, down, pullc, diffbase, review, cleanup, pr, fix, start)

# Commands that run without consulting any repository.
STANDALONE_COMMANDS = _by_name(clone, prs)
