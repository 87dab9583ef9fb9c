"""The diffbase tree: which local branch each branch is based on.

Every known branch maps to a DiffbaseEntry holding its parent ("diffbase"),
its children and an optional hosted request. Entries only ever refer to each
other by name; the store's dict is the single authority and every traversal
looks names up again.

The tree is persisted to <git-dir>/diffbase.json as a flat list of records:

    [
      {"branch": "feature-a", "diffbase": null, "github_pr": null, "gitlab_mr": null},
      {"branch": "feature-b", "diffbase": "feature-a", "github_pr": {...}, "gitlab_mr": null}
    ]

On load the snapshot is reconciled with the branches that actually exist:
records of branches deleted behind our back are dropped.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
import copy
import json
import logging

import click
from git import Repo

from . import git_utils
from .errors import CorruptState, GitiError, InvalidDiffbase, IOFailure
from .models import (
    MergeRequestRef,
    merge_request_ref_from_json,
    merge_request_ref_to_json,
)

log = logging.getLogger(__name__)

DIFFBASE_FILE = "diffbase.json"
JSON_INDENT = 2


@dataclass
class DiffbaseEntry:
    parent: Optional[str] = None
    children: List[str] = field(default_factory=list)
    merge_request: Optional[MergeRequestRef] = None


class DiffbaseStore:
    def __init__(self, json_file_path: Path, local_branches: Iterable[str], main_branch: str):
        self.json_file_path = Path(json_file_path)
        self.main_branch = main_branch
        self.entries: Dict[str, DiffbaseEntry] = {
            branch: DiffbaseEntry() for branch in sorted(local_branches)
        }
        self._load()

    @classmethod
    def open(cls, repo: Repo, main_branch: str) -> "DiffbaseStore":
        # common_dir is shared by all worktrees of the repository.
        git_dir = Path(getattr(repo, "common_dir", None) or repo.git_dir)
        return cls(
            git_dir / DIFFBASE_FILE,
            git_utils.get_all_local_branch_names(repo),
            main_branch,
        )

    def _load(self):
        if not self.json_file_path.exists():
            return

        try:
            content = self.json_file_path.read_text(encoding="utf-8")
        except OSError as e:
            raise IOFailure(f"Could not read {self.json_file_path}: {e}")

        try:
            records = json.loads(content)
        except json.JSONDecodeError as e:
            raise CorruptState(
                f"{self.json_file_path} is not valid JSON ({e}). "
                "Remove it to start with an empty diffbase tree."
            )
        if not isinstance(records, list):
            raise CorruptState(f"{self.json_file_path} must contain a JSON list.")

        for record in records:
            if not isinstance(record, dict) or not isinstance(record.get("branch"), str):
                raise CorruptState(f"Invalid record in {self.json_file_path}: {record!r}")

            branch = record["branch"]
            if branch not in self.entries:
                log.info(
                    f"Branch {branch} no longer exists. Removing it from the diffbase map."
                )
                continue

            try:
                self.entries[branch].merge_request = merge_request_ref_from_json(record)
            except (KeyError, TypeError, ValueError) as e:
                raise CorruptState(f"Invalid merge request for {branch}: {e}")

            parent = record.get("diffbase")
            if parent is None:
                continue
            if parent not in self.entries:
                log.info(f"Diffbase {parent} of {branch} no longer exists.")
                continue

            try:
                self._link(branch, parent)
            except InvalidDiffbase as e:
                log.warning(f"Ignoring stored diffbase of {branch}: {e}")

    def _check_can_be_diffbase(self, branch: str, diffbase: str):
        if diffbase == self.main_branch:
            raise InvalidDiffbase(diffbase, "The main branch is the implicit base of every root.")
        if branch == self.main_branch:
            raise InvalidDiffbase(diffbase, f"{branch} is the main branch and has no diffbase.")
        if branch == diffbase:
            raise InvalidDiffbase(diffbase, "A branch cannot be its own diffbase.")

    def _link(self, branch: str, diffbase: str):
        self._check_can_be_diffbase(branch, diffbase)

        entry = self.entries.setdefault(branch, DiffbaseEntry())
        self.entries.setdefault(diffbase, DiffbaseEntry())

        if entry.parent is not None and entry.parent in self.entries:
            old_children = self.entries[entry.parent].children
            if branch in old_children:
                old_children.remove(branch)

        entry.parent = diffbase
        children = self.entries[diffbase].children
        if branch not in children:
            children.append(branch)

    def set_diffbase(self, branch: str, diffbase: str):
        """Makes `diffbase` the parent of `branch`.

        Raises:
            InvalidDiffbase: if `diffbase` is the main branch, or the link
                would make `branch` an ancestor of itself. The store is
                left unchanged.
        """
        self._check_can_be_diffbase(branch, diffbase)
        if diffbase in self.entries and branch in self.entries:
            if branch in self._ancestors(diffbase):
                raise InvalidDiffbase(
                    diffbase, f"{diffbase} is based on {branch} already."
                )
        self._link(branch, diffbase)
        click.echo(f"Setting diffbase of {branch} to {diffbase}.")

    def clear_diffbase(self, branch: str) -> Optional[str]:
        """Makes `branch` a root again. Returns the previous diffbase."""
        entry = self.entries.get(branch)
        if entry is None or entry.parent is None:
            return None
        previous = entry.parent
        parent_entry = self.entries.get(previous)
        if parent_entry is not None and branch in parent_entry.children:
            parent_entry.children.remove(branch)
        entry.parent = None
        return previous

    def add(self, branch: str) -> DiffbaseEntry:
        return self.entries.setdefault(branch, DiffbaseEntry())

    def _ancestors(self, branch: str) -> List[str]:
        """`branch` followed by its parent, grandparent, ... up to the root."""
        if branch not in self.entries:
            return []

        chain = [branch]
        seen = {branch}
        parent = self.entries[branch].parent
        while parent is not None:
            if parent in seen:
                raise CorruptState(
                    f"The diffbase tree contains a cycle: {' -> '.join(chain + [parent])}. "
                    f"Fix or remove {self.json_file_path}."
                )
            if parent not in self.entries:
                raise CorruptState(f"{chain[-1]} has unknown diffbase {parent}.")
            chain.append(parent)
            seen.add(parent)
            parent = self.entries[parent].parent
        return chain

    def get_parent(self, branch: str) -> Optional[str]:
        entry = self.entries.get(branch)
        return entry.parent if entry is not None else None

    def get_children(self, branch: str) -> Optional[List[str]]:
        """Returns all children. Returns None if `branch` is not known at all."""
        entry = self.entries.get(branch)
        if entry is None:
            return None
        return list(entry.children)

    def get_root(self, branch: str) -> Optional[str]:
        """Returns the ancestor of `branch` that has no diffbase. Might be the
        branch itself. Returns None if `branch` is not a known branch.

        Raises:
            CorruptState: if the parent links loop.
        """
        chain = self._ancestors(branch)
        return chain[-1] if chain else None

    def rename(self, current: str, new: str, force: bool = False):
        """Renames the branch `current` to `new`, rewriting every reference to it.

        If `new` is already known it is only replaced when `force` is given
        (like `git branch -M`). Nothing is modified when an error is raised.
        """
        if current not in self.entries:
            raise GitiError(f"{current} is not a known branch.")
        if current == new:
            return
        if new in self.entries:
            if not force:
                raise GitiError(f"{new} is already a known branch.")
            self.remove(new)

        self.entries[new] = self.entries.pop(current)
        for entry in self.entries.values():
            if entry.parent == current:
                entry.parent = new
            entry.children = [new if child == current else child for child in entry.children]

        if self.main_branch == current:
            self.main_branch = new

    def remove(self, branch: str) -> bool:
        """Forgets `branch`. Its children are re-attached to its own parent."""
        entry = self.entries.pop(branch, None)
        if entry is None:
            return False

        parent_entry = self.entries.get(entry.parent) if entry.parent else None
        if parent_entry is not None and branch in parent_entry.children:
            parent_entry.children.remove(branch)

        for child in entry.children:
            child_entry = self.entries.get(child)
            if child_entry is None:
                continue
            if parent_entry is not None:
                child_entry.parent = entry.parent
                if child not in parent_entry.children:
                    parent_entry.children.append(child)
            else:
                child_entry.parent = None
        return True

    def get_merge_request(self, branch: str) -> Optional[MergeRequestRef]:
        entry = self.entries.get(branch)
        return entry.merge_request if entry is not None else None

    def set_merge_request(self, branch: str, ref: Optional[MergeRequestRef]):
        self.entries.setdefault(branch, DiffbaseEntry()).merge_request = ref

    def snapshot(self) -> Tuple[Dict[str, DiffbaseEntry], str]:
        """A deep copy of the current state, for `restore`."""
        return copy.deepcopy(self.entries), self.main_branch

    def restore(self, snapshot: Tuple[Dict[str, DiffbaseEntry], str]):
        entries, main_branch = snapshot
        self.entries = copy.deepcopy(entries)
        self.main_branch = main_branch

    def branches(self) -> List[str]:
        return list(self.entries)

    def roots(self) -> List[str]:
        return [name for name, entry in self.entries.items() if entry.parent is None]

    def __contains__(self, branch: str) -> bool:
        return branch in self.entries

    def to_json(self) -> List[dict]:
        records = []
        for branch in sorted(self.entries):
            entry = self.entries[branch]
            record = {"branch": branch, "diffbase": entry.parent}
            record.update(merge_request_ref_to_json(entry.merge_request))
            records.append(record)
        return records

    def write_to_disk(self):
        """Overwrites the snapshot with the full current state.

        Raises:
            IOFailure: if the file cannot be written.
        """
        content = json.dumps(self.to_json(), indent=JSON_INDENT) + "\n"
        try:
            self.json_file_path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise IOFailure(f"Could not write {self.json_file_path}: {e}")
