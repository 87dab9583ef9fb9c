"""Moving around and maintaining the diffbase tree."""

from typing import Optional, Set
import logging

import click
from rich.console import Console
from rich.markup import escape
from rich.tree import Tree

from ..app import AppContext
from ..diffbase import DiffbaseStore
from ..dispatch import run_command
from ..errors import CorruptState, GitiError
from .. import git_utils

log = logging.getLogger(__name__)


def resolve_up(store: DiffbaseStore, branch: str, root: bool = False) -> str:
    """The branch `g up` checks out: the diffbase of `branch`, or its root."""
    if root:
        result = store.get_root(branch)
        if result is None:
            raise CorruptState(f"{branch} is not in the diffbase tree.")
        return result

    parent = store.get_parent(branch)
    if parent is None:
        raise GitiError(f"{branch} has no diffbase.")
    return parent


def resolve_down(store: DiffbaseStore, branch: str) -> str:
    """The branch `g down` checks out: the only branch that has `branch` as diffbase."""
    children = store.get_children(branch)
    if children is None:
        raise CorruptState(f"{branch} is not in the diffbase tree.")
    if not children:
        raise GitiError(f"{branch}: no branches have it as diffbase.")
    if len(children) > 1:
        raise GitiError(
            f"{branch} has no unique branch that has it as diffbase. "
            f"Contenders are {', '.join(children)}."
        )
    return children[0]


@click.command()
@click.pass_obj
@click.option("-r", "--root", is_flag=True, default=False, help="Check out the root instead of the parent.")
def up(app: AppContext, root: bool):
    """Check out the diffbase of the current branch."""
    target = resolve_up(app.get_store(), app.current_branch(), root=root)
    git_utils.checkout(target)


@click.command()
@click.pass_obj
def down(app: AppContext):
    """Check out the unique branch that has the current branch as diffbase."""
    target = resolve_down(app.get_store(), app.current_branch())
    git_utils.checkout(target)


@click.command()
@click.pass_obj
@click.option(
    "-p",
    "--push",
    is_flag=True,
    default=False,
    help="Also push all branches that have an upstream.",
)
def pullc(app: AppContext, push: bool):
    """Pull the whole tree of the current branch, merging every parent into its children."""
    repo = app.get_repo()
    store = app.get_store()
    local_branches = git_utils.get_all_local_branches(repo)
    branch_at_start = app.current_branch()
    root = store.get_root(branch_at_start)
    if root is None:
        raise CorruptState(f"{branch_at_start} is not in the diffbase tree.")

    def has_upstream(branch: str) -> bool:
        info = local_branches.get(branch)
        return info is not None and info.upstream is not None

    def sync(branch: str, parent: Optional[str] = None):
        git_utils.checkout(branch)
        if has_upstream(branch):
            run_command(["git", "pull"])
        if parent is not None:
            git_utils.merge(parent)
        if push and has_upstream(branch):
            run_command(["git", "push"])

    visited: Set[str] = {root}

    def merge_parent_into_children(parent: str):
        for child in store.get_children(parent) or []:
            if child in visited:
                raise CorruptState(f"{child} is reachable twice in the diffbase tree.")
            visited.add(child)
            if child not in local_branches:
                log.warning(f"Skipping {child}: it is not a local branch.")
                continue
            sync(child, parent)
            merge_parent_into_children(child)

    run_command(["git", "fetch"])
    sync(root)
    merge_parent_into_children(root)

    if app.current_branch() != branch_at_start:
        git_utils.checkout(branch_at_start)


def build_tree(store: DiffbaseStore, current: Optional[str] = None) -> Tree:
    tree = Tree("[bold]diffbase tree[/bold]", guide_style="dim")
    seen: Set[str] = set()

    def label(branch: str) -> str:
        name = escape(branch)
        text = f"[green]* {name}[/green]" if branch == current else name
        ref = store.get_merge_request(branch)
        if ref is not None:
            text += f" [dim]({ref})[/dim]"
        return text

    def add(node: Tree, branch: str):
        if branch in seen:
            raise CorruptState(f"{branch} is reachable twice in the diffbase tree.")
        seen.add(branch)
        child_node = node.add(label(branch))
        for child in store.get_children(branch) or []:
            add(child_node, child)

    for root in sorted(store.roots()):
        add(tree, root)
    return tree


@click.command()
@click.pass_obj
@click.argument("parent", required=False)
@click.option("--unset", is_flag=True, default=False, help="Make the current branch a root.")
@click.option("--tree", "show_tree", is_flag=True, default=False, help="Show the whole tree.")
def diffbase(app: AppContext, parent: Optional[str], unset: bool, show_tree: bool):
    """Show or set the diffbase of the current branch.

    \b
    Examples:
        g diffbase             # print the diffbase
        g diffbase feature-a   # base the current branch on feature-a
        g diffbase --unset
        g diffbase --tree
    """
    store = app.get_store()
    current = app.current_branch()

    if show_tree:
        Console(highlight=False).print(build_tree(store, current))
        return

    if unset:
        previous = store.clear_diffbase(current)
        if previous is None:
            click.echo(f"{current} has no diffbase.")
        else:
            click.echo(f"Removed diffbase {previous} of {current}.")
        return

    if parent is None:
        existing = store.get_parent(current)
        if existing is None:
            raise GitiError(f"{current} has no diffbase.")
        click.echo(existing)
        return

    if not git_utils.branch_exists_locally(app.get_repo(), parent):
        raise GitiError(f"{parent} is not a local branch.")
    # Unlike the inferred links, an explicit one reports InvalidDiffbase.
    store.set_diffbase(current, parent)
