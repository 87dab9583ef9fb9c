"""A small GitLab REST client.

Only the handful of endpoints giti needs are wrapped. Authentication uses
a personal access token from $GITLAB_TOKEN, sent as PRIVATE-TOKEN header.
"""

from typing import Any, List, Optional
from urllib.parse import quote
import logging
import os

import requests

from ..config import DEFAULT_GITLAB_URL
from ..errors import ConfigurationMissing, GitiError
from ..models import GitLabMergeRequestId, PullRequest, PullRequestState, RepoId
from ..remotes import RemoteIdentity

log = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30
PER_PAGE = 100


def mr_to_request(data: dict) -> PullRequest:
    return PullRequest(
        id=GitLabMergeRequestId(url=data["web_url"]),
        title=data["title"],
        author=(data.get("author") or {}).get("username", ""),
        state=PullRequestState.parse(data["state"]),
        source_branch=data["source_branch"],
        target_branch=data["target_branch"],
    )


class GitLab:
    def __init__(
        self,
        base_url: str = DEFAULT_GITLAB_URL,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        token = token or os.getenv("GITLAB_TOKEN")
        if not token:
            raise ConfigurationMissing("GitLab token not found. Please set GITLAB_TOKEN.")
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"PRIVATE-TOKEN": token})

    def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        url = f"{self.base_url}/{endpoint}"
        log.debug(f"GitLab {method} {url}")
        try:
            response = self.session.request(method, url, timeout=REQUEST_TIMEOUT, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise GitiError(f"GitLab request {method} {endpoint} failed: {e}")

    @staticmethod
    def _project_path(project: str) -> str:
        return f"projects/{quote(project, safe='')}"

    def find_user_name(self) -> str:
        return self._request("GET", "user")["username"]

    def get_request(self, mr_id: GitLabMergeRequestId) -> PullRequest:
        data = self._request(
            "GET", f"{self._project_path(mr_id.project)}/merge_requests/{mr_id.iid}"
        )
        return mr_to_request(data)

    def create_request(
        self,
        identity: RemoteIdentity,
        title: str,
        body: str,
        source: str,
        target: str,
        draft: bool = False,
    ) -> PullRequest:
        if draft and not title.lower().startswith("draft:"):
            title = f"Draft: {title}"
        data = self._request(
            "POST",
            f"{self._project_path(identity.repo_id.full_name)}/merge_requests",
            json={
                "source_branch": source,
                "target_branch": target,
                "title": title,
                "description": body,
            },
        )
        return mr_to_request(data)

    def find_assigned(self, repo: Optional[RepoId] = None) -> List[PullRequest]:
        """Open merge requests assigned to the authenticated user, optionally in one project."""
        params = {"scope": "assigned_to_me", "state": "opened", "per_page": PER_PAGE}
        endpoint = "merge_requests"
        if repo is not None:
            endpoint = f"{self._project_path(repo.full_name)}/merge_requests"
        merge_requests = [mr_to_request(data) for data in self._request("GET", endpoint, params=params)]
        merge_requests.sort(key=lambda mr: (mr.id.project, mr.number))
        return merge_requests
