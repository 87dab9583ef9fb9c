"""Version of the running giti.

Installed copies report their package metadata. A source checkout that was
never installed describes its own git history instead; the working directory
is the user's repository and says nothing about giti.
"""

from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

UNKNOWN_VERSION = "unknown"


def get_version() -> str:
    try:
        return version("giti")
    except PackageNotFoundError:
        return _describe_checkout(Path(__file__).resolve().parent)


def _describe_checkout(path: Path) -> str:
    try:
        repo = Repo(path, search_parent_directories=True)
        return repo.git.describe("--tags", "--dirty", "--always")
    except (InvalidGitRepositoryError, NoSuchPathError, GitCommandError):
        return UNKNOWN_VERSION
