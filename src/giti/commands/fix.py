from pathlib import Path
from typing import Dict, List, Optional
import logging

import click

from ..app import AppContext
from ..dispatch import dispatch_to
from .. import git_utils

log = logging.getLogger(__name__)

FIX_COMMIT_MESSAGE = "Ran git fix."


def formatter_for(path: Path, formatters: Dict[str, List[str]]) -> Optional[List[str]]:
    """The formatter command for `path`: a full file name match wins over the extension."""
    if path.name in formatters:
        return formatters[path.name]
    if path.suffix and path.suffix in formatters:
        return formatters[path.suffix]
    return None


@click.command()
@click.pass_obj
@click.argument("base", required=False)
def fix(app: AppContext, base: Optional[str]):
    """Run formatters over all files changed since BASE and commit the result."""
    repo = app.get_repo()
    git_utils.expect_working_directory_clean(repo)

    base = base or app.config.fix.base or f"origin/{app.main_branch}"
    click.echo(f"Fixing modified files compared to {base}")
    added, _, modified = git_utils.get_changed_files(repo, base, "HEAD")

    work_tree = Path(repo.working_tree_dir)
    for path in sorted(added | modified):
        command = formatter_for(path, app.config.fix.formatters)
        if command is None:
            continue
        log.debug(f"Formatting {path} with {command[0]}")
        dispatch_to(command[0], [*command[1:], str(work_tree / path)])

    _, changed_files = git_utils.status(repo)
    if changed_files:
        click.echo("Fixed files:\n")
        for path in sorted(changed_files):
            click.echo(f"  {path}")
        click.echo("")
        dispatch_to("git", ["commit", "-am", FIX_COMMIT_MESSAGE])
