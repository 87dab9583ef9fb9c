"""Read-only queries against the local repository.

Everything that only inspects the repository goes through GitPython. Commands
that change the work tree (checkout, merge, pull, ...) are run through the
dispatcher so the user sees git's own output.
"""

from configparser import Error as ConfigParserError
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple
import logging
import shlex

import git
from git import Repo
from git.exc import BadName, GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .dispatch import run_command
from .errors import GitiError

log = logging.getLogger(__name__)

FALLBACK_MAIN_BRANCHES = ("main", "master")


@dataclass
class BranchInfo:
    name: str
    # Tracking branch, e.g. "origin/feature". None if no upstream is configured.
    upstream: Optional[str] = None


@dataclass
class Remote:
    name: str
    url: str


def short_sha(sha: str) -> str:
    return sha[:12]


def discover_repo(path: str = ".") -> Optional[Repo]:
    """Returns the repository containing `path`, or None outside of a repository."""
    try:
        return Repo(path, search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError):
        return None


def get_aliases() -> Dict[str, List[str]]:
    """Parses git's configuration and extracts all aliases that do not shell out.

    We only need to understand aliases for git commands (like checkout, branch
    and so on), we never care for aliases starting with '!'.
    """
    try:
        output = git.Git().config("--get-regexp", r"^alias\.")
    except GitCommandError:
        # git config exits with 1 when nothing matches.
        return {}

    aliases = {}
    for line in output.splitlines():
        key, _, value = line.partition(" ")
        value = value.strip()
        if not value or value.startswith("!"):
            continue
        try:
            aliases[key[len("alias."):]] = shlex.split(value)
        except ValueError:
            log.debug(f"Ignoring unparsable alias {key}: {value}")
    return aliases


def get_current_branch(repo: Repo) -> str:
    try:
        return repo.active_branch.name
    except TypeError:
        # Detached HEAD state
        return short_sha(repo.head.commit.hexsha)


def get_all_local_branch_names(repo: Repo) -> Set[str]:
    return {head.name for head in repo.heads}


def get_all_local_branches(repo: Repo) -> Dict[str, BranchInfo]:
    """Returns all local branches with their upstream information."""
    branches = {}
    for head in repo.heads:
        try:
            tracking = head.tracking_branch()
        except ValueError:
            tracking = None
        branches[head.name] = BranchInfo(
            name=head.name, upstream=tracking.name if tracking is not None else None
        )
    return branches


def branch_exists_locally(repo: Repo, branch_name: str) -> bool:
    return branch_name in get_all_local_branch_names(repo)


def get_main_branch(repo: Repo, configured: Optional[str] = None) -> str:
    """The trunk of the repository.

    Uses the configured name if given, then what origin/HEAD points to, then
    the first existing branch of 'main' and 'master'.
    """
    if configured:
        return configured

    try:
        ref = repo.git.symbolic_ref("--quiet", "refs/remotes/origin/HEAD")
        return ref.strip().rsplit("/", 1)[-1]
    except GitCommandError:
        pass

    local = get_all_local_branch_names(repo)
    for candidate in FALLBACK_MAIN_BRANCHES:
        if candidate in local:
            return candidate
    return FALLBACK_MAIN_BRANCHES[-1]


def get_remotes(repo: Repo) -> Dict[str, Remote]:
    """Returns a map from remote name to Remote (fetch URL)."""
    remotes = {}
    for remote in repo.remotes:
        try:
            url = next(iter(remote.urls))
        except (StopIteration, GitCommandError):
            continue
        remotes[remote.name] = Remote(name=remote.name, url=url)
    return remotes


def get_upstream(repo: Repo, local_branch: str) -> Optional[Tuple[str, str]]:
    """Returns (remote, branch) that `local_branch` tracks, or None."""
    reader = repo.config_reader()
    section = f'branch "{local_branch}"'
    if not reader.has_section(section):
        return None
    try:
        remote = reader.get_value(section, "remote")
        merge = reader.get_value(section, "merge")
    except ConfigParserError:
        return None
    merge = str(merge)
    if merge.startswith("refs/heads/"):
        merge = merge[len("refs/heads/"):]
    return str(remote), merge


def status(repo: Repo) -> Tuple[Set[Path], Set[Path]]:
    """Returns the (deleted, modified) tracked files in the working directory."""
    deleted: Set[Path] = set()
    modified: Set[Path] = set()

    output = repo.git.status("--porcelain", "-uno")
    for line in output.splitlines():
        if len(line) < 4:
            continue
        code, path = line[:2], line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        if "D" in code:
            deleted.add(Path(path))
        else:
            modified.add(Path(path))
    return deleted, modified


def expect_working_directory_clean(repo: Repo) -> None:
    deleted, changed = status(repo)
    if not deleted and not changed:
        return

    error = "You cannot have pending changes for this command. Changed files:\n\n"
    for path in sorted(deleted | changed):
        error += f"  {path}\n"
    raise GitiError(error)


def get_changed_files(
    repo: Repo, old: str, new: str
) -> Tuple[Set[Path], Set[Path], Set[Path]]:
    """Returns the (added, deleted, modified) files between two tree-ishs."""
    try:
        old_commit = repo.commit(old)
        new_commit = repo.commit(new)
    except (BadName, ValueError, GitCommandError) as e:
        raise GitiError(f"Cannot resolve '{old}' or '{new}': {e}")

    added: Set[Path] = set()
    deleted: Set[Path] = set()
    modified: Set[Path] = set()
    for diff in old_commit.diff(new_commit):
        if diff.new_file:
            added.add(Path(diff.b_path))
        elif diff.deleted_file:
            deleted.add(Path(diff.a_path))
        elif diff.renamed_file:
            deleted.add(Path(diff.a_path))
            added.add(Path(diff.b_path))
        else:
            modified.add(Path(diff.b_path))
    return added, deleted, modified


def get_pull_request_template(work_tree: Path) -> Optional[str]:
    for sub_path in (".github", "docs", "."):
        directory = work_tree / sub_path
        if not directory.is_dir():
            continue
        for path in sorted(directory.iterdir()):
            if path.is_file() and path.stem.lower() == "pull_request_template":
                try:
                    return path.read_text(encoding="utf-8")
                except OSError:
                    return None
    return None


def checkout(branch: str) -> None:
    run_command(["git", "checkout", branch])


def merge(branch: str) -> None:
    run_command(["git", "merge", "--no-edit", branch])
