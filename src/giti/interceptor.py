"""Deciding, per invocation, what to do before and after running git.

Most invocations are handed to git untouched. A few git commands are
intercepted to keep the diffbase tree current (branch renames and deletes,
checkout -b, switch -c, merge) and a few commands only exist in giti
(up, down, pullc, review, ...). Those are click commands run with the
AppContext as their obj.

Once the diffbase store has been opened it is written back exactly once,
after the handler returned or raised.
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

import click
import yaml

from . import git_utils
from .app import AppContext
from .config import GitiConfig, load_config
from .diffbase import DiffbaseStore
from .dispatch import dispatch_to
from .errors import DelegationFailure, GitiError, InvalidDiffbase, IOFailure

log = logging.getLogger(__name__)

# Start points that name whatever is checked out.
CURRENT_BRANCH_REFS = ("HEAD", "@")


def extract_option(
    name: Optional[str], args: Sequence[str]
) -> Tuple[Optional[str], List[str], List[str]]:
    """Splits `args` into (value of option `name`, other options, positional args).

    Both "-m value" and "-m=value" are understood. Relative order is kept
    within the two lists.
    """
    value = None
    ignored_options: List[str] = []
    positional_args: List[str] = []

    it = iter(args)
    for arg in it:
        if name is not None:
            if arg == name:
                value = next(it, None)
                continue
            if arg.startswith(name + "="):
                value = arg.split("=", 1)[1]
                continue

        if arg.startswith("-"):
            ignored_options.append(arg)
        else:
            positional_args.append(arg)
    return value, ignored_options, positional_args


def expand_alias(args: Sequence[str], aliases: Dict[str, List[str]]) -> List[str]:
    """Replaces a leading alias by its expansion. One level only."""
    if not args or args[0] not in aliases:
        return list(args)
    return [*aliases[args[0]], *args[1:]]


def _infer_new_branch_diffbase(app: AppContext, new_branch: str, start_point: Optional[str]):
    store = app.get_store()
    if start_point is None or start_point in CURRENT_BRANCH_REFS:
        parent = app.current_branch()
    else:
        parent = start_point
    if parent not in store:
        # Detached HEAD or a remote ref: nothing local to hang the branch on.
        log.debug(f"Not setting a diffbase for {new_branch}: {parent} is not a local branch")
        return
    try:
        store.set_diffbase(new_branch, parent)
    except InvalidDiffbase as e:
        log.debug(f"Not setting a diffbase for {new_branch}: {e}")


def _create_branch(args: Sequence[str], app: AppContext, new_branch: str, start_point: Optional[str]):
    store = app.get_store()
    created = new_branch not in store
    if created:
        _infer_new_branch_diffbase(app, new_branch, start_point)

    try:
        dispatch_to("git", args)
    except DelegationFailure:
        if created:
            store.remove(new_branch)
        raise
    store.add(new_branch)


def handle_checkout(args: Sequence[str], app: AppContext):
    """Intercepts checkout -b <branch> to set the diffbase on branching."""
    new_branch, _, positional = extract_option("-b", args[1:])
    if new_branch is None:
        return dispatch_to("git", args)
    start_point = positional[0] if positional else None
    _create_branch(args, app, new_branch, start_point)


def handle_switch(args: Sequence[str], app: AppContext):
    """Like handle_checkout, for switch -c/--create <branch>."""
    new_branch, _, positional = extract_option("-c", args[1:])
    if new_branch is None:
        new_branch, _, positional = extract_option("--create", args[1:])
    if new_branch is None:
        return dispatch_to("git", args)
    start_point = positional[0] if positional else None
    _create_branch(args, app, new_branch, start_point)


def handle_merge(args: Sequence[str], app: AppContext):
    """For a plain 'merge <branch>' the merged branch becomes the diffbase."""
    _, ignored_options, positional_args = extract_option(None, args[1:])

    if not ignored_options and len(positional_args) == 1:
        store = app.get_store()
        current_branch = app.current_branch()
        other = positional_args[0]
        if current_branch in store and other in store:
            try:
                store.set_diffbase(current_branch, other)
            except InvalidDiffbase as e:
                log.debug(f"Keeping diffbase of {current_branch}: {e}")
    dispatch_to("git", args)


def _handle_rename(args: Sequence[str], app: AppContext, value: str, positional: List[str], force: bool):
    store = app.get_store()
    if positional:
        # git branch -m <old> <new>
        old, new = value, positional[0]
    else:
        old, new = app.current_branch(), value

    click.echo(f"Detected branch rename: {old} -> {new}")
    # A forced rename drops the entry it overwrites, so keep everything.
    saved = store.snapshot()
    try:
        store.rename(old, new, force=force)
    except GitiError as e:
        log.warning(f"Not updating the diffbase tree: {e}")

    try:
        dispatch_to("git", args)
    except DelegationFailure:
        store.restore(saved)
        raise


def _handle_delete(args: Sequence[str], app: AppContext):
    store = app.get_store()
    _, _, positional = extract_option(None, args[1:])
    try:
        dispatch_to("git", args)
    finally:
        # 'branch -d a b' deletes what it can even when it fails for some.
        remaining = git_utils.get_all_local_branch_names(app.get_repo())
        for branch in positional:
            if branch not in remaining and store.remove(branch):
                log.info(f"Removed {branch} from the diffbase tree.")


def handle_branch(args: Sequence[str], app: AppContext):
    """Interjects git branch -m/-M (rename) and -d/-D/--delete."""
    value, _, positional = extract_option("-m", args[1:])
    if value is not None:
        return _handle_rename(args, app, value, positional, force=False)
    value, _, positional = extract_option("-M", args[1:])
    if value is not None:
        return _handle_rename(args, app, value, positional, force=True)

    if any(arg in ("-d", "-D", "--delete") for arg in args[1:]):
        return _handle_delete(args, app)
    dispatch_to("git", args)


GIT_HANDLERS: Dict[str, Callable[[Sequence[str], AppContext], None]] = {
    "branch": handle_branch,
    "checkout": handle_checkout,
    "merge": handle_merge,
    "switch": handle_switch,
}


def _load_config(work_tree: Optional[str] = None) -> GitiConfig:
    try:
        return load_config(work_tree)
    except (FileNotFoundError, yaml.YAMLError, ValueError) as e:
        raise GitiError(str(e))


def run_leaf(command: click.Command, args: Sequence[str], app: AppContext):
    rv = command.main(
        args=list(args[1:]),
        prog_name=f"g {args[0]}",
        obj=app,
        standalone_mode=False,
    )
    # With standalone_mode=False click returns the code of ctx.exit() calls.
    if isinstance(rv, int) and rv != 0:
        raise click.exceptions.Exit(rv)


def handle_repository(
    original_args: Sequence[str],
    aliases: Optional[Dict[str, List[str]]] = None,
    repo_finder: Callable = git_utils.discover_repo,
):
    from .commands import REPOSITORY_COMMANDS, STANDALONE_COMMANDS

    if aliases is None:
        aliases = git_utils.get_aliases()
    args = expand_alias(original_args, aliases)
    if not args:
        return dispatch_to("git", args)

    command = args[0]
    if command in STANDALONE_COMMANDS:
        return run_leaf(STANDALONE_COMMANDS[command], args, AppContext(config=_load_config()))

    repo = repo_finder()
    if repo is None or repo.bare:
        return dispatch_to("git", args)

    config = _load_config(repo.working_tree_dir)
    main_branch = git_utils.get_main_branch(repo, config.main_branch)
    store = DiffbaseStore.open(repo, main_branch)
    app = AppContext(repo=repo, store=store, config=config)

    try:
        if command in REPOSITORY_COMMANDS:
            run_leaf(REPOSITORY_COMMANDS[command], args, app)
        elif command in GIT_HANDLERS:
            GIT_HANDLERS[command](args, app)
        else:
            dispatch_to("git", args)
    finally:
        try:
            store.write_to_disk()
        except IOFailure as e:
            log.error(str(e))
