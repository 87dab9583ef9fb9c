from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional
import logging
import os
import subprocess

import github
from github import Auth
from github import PullRequest as GithubPullRequest

from ..errors import ConfigurationMissing, GitiError
from ..models import GitHubPullRequestId, PullRequest, PullRequestState, RepoId
from ..remotes import RemoteIdentity

log = logging.getLogger(__name__)

SEARCH_PAGE_LIMIT = 100
FETCH_WORKERS = 8


def gh_auth_token() -> Optional[str]:
    token = os.getenv("GITHUB_TOKEN")
    if token:
        return token
    token = os.getenv("GH_TOKEN")
    if token:
        return token

    try:
        token = subprocess.check_output(
            ["gh", "auth", "token"], text=True, stderr=subprocess.DEVNULL
        ).strip()
    except (subprocess.CalledProcessError, FileNotFoundError):
        token = None

    return token or None


def pull_to_request(pull: GithubPullRequest.PullRequest) -> PullRequest:
    repo = RepoId.parse(pull.base.repo.full_name)
    head_repo = pull.head.repo
    return PullRequest(
        id=GitHubPullRequestId(repo=repo, number=pull.number),
        title=pull.title,
        author=pull.user.login,
        state=PullRequestState.parse(pull.state, merged=bool(pull.merged)),
        source_branch=pull.head.ref,
        target_branch=pull.base.ref,
        source_owner=pull.head.user.login if pull.head.user else None,
        source_repo=head_repo.name if head_repo is not None else None,
    )


class GitHub:
    def __init__(self, token: Optional[str] = None, gh: Optional[github.Github] = None):
        if gh is None:
            token = token or gh_auth_token()
            if not token:
                raise ConfigurationMissing(
                    "GitHub token not found. Please set GITHUB_TOKEN or GH_TOKEN."
                )
            gh = github.Github(auth=Auth.Token(token))
        self.gh = gh

    def get_request(self, pr_id: GitHubPullRequestId) -> PullRequest:
        try:
            pull = self.gh.get_repo(pr_id.repo.full_name).get_pull(pr_id.number)
            return pull_to_request(pull)
        except github.GithubException as e:
            raise GitiError(f"Could not fetch {pr_id}: {e}")

    def create_request(
        self,
        identity: RemoteIdentity,
        title: str,
        body: str,
        source: str,
        target: str,
        draft: bool = False,
    ) -> PullRequest:
        try:
            gh_repo = self.gh.get_repo(identity.repo_id.full_name)
            pull = gh_repo.create_pull(
                title=title, body=body, head=source, base=target, draft=draft
            )
            return pull_to_request(pull)
        except github.GithubException as e:
            raise GitiError(f"Could not create pull request on {identity.repo_id}: {e}")

    def find_assigned(self, repo: Optional[RepoId] = None) -> List[PullRequest]:
        """Open pull requests assigned to the authenticated user, optionally in one repository."""
        try:
            login = self.gh.get_user().login
            query = f"is:pr is:open archived:false assignee:{login}"
            if repo is not None:
                query += f" repo:{repo.full_name}"
            issues = list(self.gh.search_issues(query)[:SEARCH_PAGE_LIMIT])
            log.debug(f"GitHub search '{query}' returned {len(issues)} results")

            with ThreadPoolExecutor(max_workers=FETCH_WORKERS) as executor:
                pulls = list(executor.map(lambda issue: issue.as_pull_request(), issues))
        except github.GithubException as e:
            raise GitiError(f"Could not search GitHub pull requests: {e}")

        requests = [pull_to_request(pull) for pull in pulls]
        requests.sort(key=lambda pr: (pr.id.repo.full_name, pr.number))
        return requests
