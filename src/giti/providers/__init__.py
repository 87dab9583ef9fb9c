"""Clients for hosted pull/merge requests.

Both clients expose the same three operations on normalized PullRequest
objects: get_request, create_request and find_assigned.
"""

from .github import GitHub, gh_auth_token
from .gitlab import GitLab

__all__ = ["GitHub", "GitLab", "gh_auth_token"]
