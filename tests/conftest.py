from pathlib import Path

import git
import pytest

from giti.diffbase import DiffbaseStore


@pytest.fixture
def make_store(tmp_path: Path):
    """Builds a DiffbaseStore over a fake set of local branches."""

    def _make(branches=("main",), main_branch="main"):
        return DiffbaseStore(tmp_path / "diffbase.json", branches, main_branch)

    return _make


@pytest.fixture
def stacked_store(make_store):
    """main (trunk) -> feature-a -> feature-b, the way the branches were created.

    feature-a was created from main, so it is a root; feature-b is based on
    feature-a.
    """
    store = make_store(["main", "feature-a", "feature-b"])
    store.set_diffbase("feature-b", "feature-a")
    return store


def _commit_file(repo: git.Repo, name: str, content: str, message: str):
    path = Path(repo.working_tree_dir) / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    repo.index.add([name])
    repo.index.commit(message)


@pytest.fixture
def git_repo(tmp_path: Path) -> git.Repo:
    """A throwaway repository with one commit on 'main'."""
    work_tree = tmp_path / "repo"
    work_tree.mkdir()
    repo = git.Repo.init(work_tree)
    with repo.config_writer() as writer:
        writer.set_value("user", "name", "Test User")
        writer.set_value("user", "email", "test@example.com")
        writer.set_value("commit", "gpgsign", "false")
    _commit_file(repo, "README.md", "hello\n", "Initial commit")
    # Independent of init.defaultBranch.
    repo.git.branch("-M", "main")
    return repo


@pytest.fixture
def commit_file():
    return _commit_file
