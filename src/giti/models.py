"""Identifiers and normalized views of hosted pull/merge requests.

A branch in the diffbase store may be associated with exactly one hosted
request. The association is stored as a MergeRequestRef, which is either a
GitHubPullRequestId (repository + number) or a GitLabMergeRequestId (the
project-qualified web URL). Both serialize to small dicts that are embedded
in diffbase.json:

    {"github_pr": {"repo": {"owner": "SirVer", "name": "giti"}, "number": 12}}
    {"gitlab_mr": {"url": "https://gitlab.com/group/project/-/merge_requests/3"}}
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union
import re


class PullRequestState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"

    @classmethod
    def parse(cls, value: str, merged: bool = False) -> "PullRequestState":
        """Normalize provider states ("open", "opened", "closed", "merged", "locked")."""
        if merged:
            return cls.MERGED
        value = value.lower()
        if value in ("open", "opened"):
            return cls.OPEN
        if value == "merged":
            return cls.MERGED
        if value in ("closed", "locked"):
            return cls.CLOSED
        raise ValueError(f"Invalid pull request state: {value}")

    @property
    def is_finished(self) -> bool:
        return self in (PullRequestState.CLOSED, PullRequestState.MERGED)


@dataclass(frozen=True)
class RepoId:
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> "RepoId":
        owner, sep, name = value.strip().strip("/").rpartition("/")
        if not sep or not owner or not name:
            raise ValueError(f"Expected <owner>/<name>, got '{value}'")
        return cls(owner=owner, name=name)

    def to_dict(self) -> dict:
        return {"owner": self.owner, "name": self.name}

    @classmethod
    def from_dict(cls, data: dict) -> "RepoId":
        return cls(owner=data["owner"], name=data["name"])

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class GitHubPullRequestId:
    """Just enough data to uniquely identify a pull request on GitHub."""

    repo: RepoId
    number: int

    @property
    def url(self) -> str:
        return f"https://github.com/{self.repo.owner}/{self.repo.name}/pull/{self.number}"

    def to_dict(self) -> dict:
        return {"repo": self.repo.to_dict(), "number": self.number}

    @classmethod
    def from_dict(cls, data: dict) -> "GitHubPullRequestId":
        return cls(repo=RepoId.from_dict(data["repo"]), number=int(data["number"]))

    def __str__(self) -> str:
        return f"{self.repo.full_name}#{self.number}"


_GITLAB_MR_URL = re.compile(
    r"^(?P<base>https?://[^/]+)/(?P<project>.+?)/-/merge_requests/(?P<iid>\d+)/?$"
)


@dataclass(frozen=True)
class GitLabMergeRequestId:
    """A merge request on a GitLab instance, identified by its web URL."""

    url: str

    def _match(self) -> re.Match:
        match = _GITLAB_MR_URL.match(self.url)
        if match is None:
            raise ValueError(f"Not a GitLab merge request URL: {self.url}")
        return match

    @property
    def host_url(self) -> str:
        return self._match().group("base")

    @property
    def project(self) -> str:
        return self._match().group("project")

    @property
    def iid(self) -> int:
        return int(self._match().group("iid"))

    @classmethod
    def is_valid_url(cls, url: str) -> bool:
        return _GITLAB_MR_URL.match(url) is not None

    def to_dict(self) -> dict:
        return {"url": self.url}

    @classmethod
    def from_dict(cls, data: dict) -> "GitLabMergeRequestId":
        url = data["url"]
        if not isinstance(url, str) or not cls.is_valid_url(url):
            raise ValueError(f"Not a GitLab merge request URL: {url!r}")
        return cls(url=url)

    def __str__(self) -> str:
        return f"{self.project}!{self.iid}"


MergeRequestRef = Union[GitHubPullRequestId, GitLabMergeRequestId]


def merge_request_ref_to_json(ref: Optional[MergeRequestRef]) -> dict:
    """Returns the 'github_pr'/'gitlab_mr' keys of a diffbase.json record."""
    return {
        "github_pr": ref.to_dict() if isinstance(ref, GitHubPullRequestId) else None,
        "gitlab_mr": ref.to_dict() if isinstance(ref, GitLabMergeRequestId) else None,
    }


def merge_request_ref_from_json(record: dict) -> Optional[MergeRequestRef]:
    if record.get("github_pr"):
        return GitHubPullRequestId.from_dict(record["github_pr"])
    if record.get("gitlab_mr"):
        return GitLabMergeRequestId.from_dict(record["gitlab_mr"])
    return None


@dataclass
class PullRequest:
    """A pull or merge request, normalized across providers."""

    id: MergeRequestRef
    title: str
    author: str
    state: PullRequestState
    source_branch: str
    target_branch: str
    # Owner of the source branch for cross-fork GitHub PRs.
    source_owner: Optional[str] = None
    source_repo: Optional[str] = None

    @property
    def url(self) -> str:
        return self.id.url

    @property
    def number(self) -> int:
        if isinstance(self.id, GitHubPullRequestId):
            return self.id.number
        return self.id.iid
