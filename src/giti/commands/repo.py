from pathlib import Path
from typing import List, Optional, Sequence

import click

from ..app import AppContext
from ..dispatch import dispatch_to, run_command
from ..errors import GitiError
from ..remotes import expand_clone_target
from .. import git_utils


@click.command()
@click.pass_obj
@click.argument("branch")
@click.option("--from", "start_point", type=str, default=None, help="Start point (default: origin/<main branch>).")
def start(app: AppContext, branch: str, start_point: Optional[str]):
    """Start a new branch off the freshly fetched main branch."""
    repo = app.get_repo()
    git_utils.expect_working_directory_clean(repo)
    if git_utils.branch_exists_locally(repo, branch):
        raise GitiError(f"Branch {branch} already exists.")

    if start_point is None:
        if "origin" in git_utils.get_remotes(repo):
            run_command(["git", "fetch", "origin"])
            start_point = f"origin/{app.main_branch}"
        else:
            start_point = app.main_branch

    run_command(["git", "checkout", "--no-track", "-b", branch, start_point])
    # Branches started from the trunk are roots of their own tree.
    app.get_store().add(branch)


def expand_clone_args(args: Sequence[str]) -> List[str]:
    """Expands the repository argument of a clone command line if it is 'owner/repo'."""
    result = list(args)
    for i, arg in enumerate(result):
        if arg.startswith("-") or ("/" not in arg and ":" not in arg):
            continue
        if not Path(arg).exists():
            result[i] = expand_clone_target(arg)
        break
    return result


@click.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False}
)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def clone(args):
    """git clone, accepting 'owner/repo' for GitHub repositories."""
    dispatch_to("git", ["clone", *expand_clone_args(args)])
