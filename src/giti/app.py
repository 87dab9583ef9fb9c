from typing import Dict, List, Optional
from urllib.parse import urlsplit
import logging

from git import Repo

from . import git_utils
from .config import GitiConfig
from .diffbase import DiffbaseStore
from .errors import ConfigurationMissing, GitiError
from .models import GitHubPullRequestId, GitLabMergeRequestId, MergeRequestRef, PullRequest
from .providers import GitHub, GitLab
from .remotes import Provider, RemoteIdentity, parse_remote_url

log = logging.getLogger(__name__)


class AppContext:
    """Everything a command needs for one invocation.

    `repo` and `store` are None for commands that run outside of a repository
    (clone, prs). Provider clients are created on first use so that a missing
    token only matters for commands that talk to that provider.
    """

    def __init__(
        self,
        repo: Optional[Repo] = None,
        store: Optional[DiffbaseStore] = None,
        config: Optional[GitiConfig] = None,
    ):
        self.repo = repo
        self.store = store
        self.config = config or GitiConfig()
        self._github: Optional[GitHub] = None
        self._gitlab: Optional[GitLab] = None

    def get_repo(self) -> Repo:
        if self.repo is None:
            raise ConfigurationMissing("This command must be run inside a git repository.")
        return self.repo

    def get_store(self) -> DiffbaseStore:
        if self.store is None:
            raise ConfigurationMissing("This command must be run inside a git repository.")
        return self.store

    @property
    def main_branch(self) -> str:
        return self.get_store().main_branch

    def current_branch(self) -> str:
        return git_utils.get_current_branch(self.get_repo())

    def github(self) -> GitHub:
        if self._github is None:
            self._github = GitHub()
        return self._github

    def gitlab(self) -> GitLab:
        if self._gitlab is None:
            self._gitlab = GitLab(base_url=self.config.gitlab.url)
        return self._gitlab

    def client_for(self, provider: Provider):
        if provider == Provider.GITHUB:
            return self.github()
        return self.gitlab()

    def gitlab_hosts(self) -> List[str]:
        host = urlsplit(self.config.gitlab.url).hostname
        return [host] if host else []

    def remote_identities(self) -> Dict[str, RemoteIdentity]:
        identities = {}
        for name, remote in git_utils.get_remotes(self.get_repo()).items():
            identity = parse_remote_url(remote.url, self.gitlab_hosts())
            if identity is not None:
                identities[name] = identity
        return identities

    def remote_identity(self, remote: str = "origin") -> RemoteIdentity:
        identity = self.remote_identities().get(remote)
        if identity is None:
            raise ConfigurationMissing(
                f"Remote '{remote}' does not point to a GitHub or GitLab repository."
            )
        return identity

    def client_for_ref(self, ref: MergeRequestRef):
        if isinstance(ref, GitHubPullRequestId):
            return self.github()
        if isinstance(ref, GitLabMergeRequestId):
            return self.gitlab()
        raise GitiError(f"Unsupported merge request reference: {ref!r}")

    def fetch_request(self, ref: MergeRequestRef) -> PullRequest:
        return self.client_for_ref(ref).get_request(ref)
