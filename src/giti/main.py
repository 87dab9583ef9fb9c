import logging
import os
import sys
from typing import Sequence

import click
from dotenv import load_dotenv

from . import interceptor
from .errors import DelegationFailure, GitiError
from .version import get_version

LOG_FORMAT = "[%(levelname)s] %(message)s"
LOG_LEVEL_ENV = "GITI_LOG_LEVEL"

load_dotenv()


def run(args: Sequence[str]) -> int:
    """Runs one invocation and returns the process exit code."""
    if list(args) == ["--giti-version"]:
        click.echo(f"giti {get_version()}")
        return 0

    try:
        interceptor.handle_repository(args)
    except DelegationFailure as e:
        # The child already told the user what went wrong.
        if e.signal is not None:
            click.echo(e.message, err=True)
            return 1
        return e.returncode
    except GitiError as e:
        click.echo(e.message.rstrip(), err=True)
        return 1
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.exceptions.Exit as e:
        return e.exit_code
    except click.Abort:
        click.echo("Aborted!", err=True)
        return 1
    return 0


def main():
    logging.basicConfig(
        level=os.environ.get(LOG_LEVEL_ENV, "INFO").upper(),
        format=LOG_FORMAT,
    )
    sys.exit(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
