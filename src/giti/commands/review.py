"""Checking out other people's branches for review, and cleaning them up again.

Review branches are created locally as <prefix><owner>/<branch> (prefix
defaults to "review/") and track the author's branch, so `g review push`
can force-push fixups back and `g cleanup` can recognize and delete them.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Optional, Tuple
import logging
import re

import click

from ..app import AppContext
from ..dispatch import run_command
from ..errors import GitiError
from ..models import (
    GitHubPullRequestId,
    GitLabMergeRequestId,
    MergeRequestRef,
    PullRequestState,
    RepoId,
)
from ..remotes import Provider, project_name
from .. import git_utils

log = logging.getLogger(__name__)

STATE_WORKERS = 8

_GITHUB_PR_URL = re.compile(
    r"^https?://github\.com/(?P<owner>[^/]+)/(?P<name>[^/]+)/pull/(?P<number>\d+)"
)


def parse_request_ref(app: AppContext, target: str) -> MergeRequestRef:
    """Understands '123', '#123', GitHub pull URLs and GitLab merge request URLs.

    Bare numbers refer to requests on the origin remote's project.
    """
    match = _GITHUB_PR_URL.match(target)
    if match:
        return GitHubPullRequestId(
            repo=RepoId(owner=match.group("owner"), name=match.group("name")),
            number=int(match.group("number")),
        )
    if GitLabMergeRequestId.is_valid_url(target):
        return GitLabMergeRequestId(url=target)

    number = target.lstrip("#!")
    if not number.isdigit():
        raise GitiError(
            "review requires a pull request number or URL, <user>:<branch> or 'push'."
        )

    identity = app.remote_identity("origin")
    if identity.provider == Provider.GITHUB:
        return GitHubPullRequestId(repo=identity.repo_id, number=int(number))
    return GitLabMergeRequestId(url=f"{identity.web_url}/-/merge_requests/{number}")


def _ensure_remote(app: AppContext, user: str) -> str:
    """Makes sure a remote named `user` exists, pointing to user's fork of origin."""
    remotes = git_utils.get_remotes(app.get_repo())
    if user in remotes:
        return user

    identity = app.remote_identities().get("origin")
    if identity is not None:
        url = identity.url_for_owner(user)
    elif "origin" in remotes:
        url = f"git@github.com:{user}/{project_name(remotes['origin'].url)}"
    else:
        raise GitiError(f"There is no remote '{user}' and no origin to derive it from.")
    run_command(["git", "remote", "add", user, url])
    return user


def checkout_review_branch(
    app: AppContext,
    remote: str,
    remote_branch: str,
    local_branch: str,
    ref: Optional[MergeRequestRef] = None,
):
    repo = app.get_repo()
    store = app.get_store()

    if git_utils.branch_exists_locally(repo, local_branch):
        if app.current_branch() == local_branch:
            raise GitiError(f"{local_branch} is checked out. Switch to another branch first.")
        run_command(["git", "branch", "-D", local_branch])
        store.remove(local_branch)

    run_command(["git", "fetch", remote, remote_branch])
    run_command(["git", "branch", "--track", local_branch, f"{remote}/{remote_branch}"])
    run_command(["git", "checkout", local_branch])

    store.add(local_branch)
    if ref is not None:
        store.set_merge_request(local_branch, ref)


def review_push(app: AppContext):
    current = app.current_branch()
    upstream = git_utils.get_upstream(app.get_repo(), current)
    if upstream is None:
        raise GitiError(f"{current} has no upstream branch to push to.")
    remote, branch = upstream
    run_command(["git", "push", "--force", remote, f"HEAD:{branch}"])


def split_user_branch(target: str) -> Optional[Tuple[str, str]]:
    if "://" in target or ":" not in target:
        return None
    user, branch = target.split(":", 1)
    if not user or not branch:
        return None
    return user, branch


@click.command()
@click.pass_obj
@click.argument("target")
def review(app: AppContext, target: str):
    """Check out a pull request (or <user>:<branch>) for review.

    \b
    Examples:
        g review 123
        g review https://github.com/SirVer/giti/pull/123
        g review SirVer:fix-the-thing
        g review push          # force-push HEAD back to the author's branch
    """
    git_utils.expect_working_directory_clean(app.get_repo())

    if target == "push":
        return review_push(app)

    prefix = app.config.review.prefix
    user_branch = split_user_branch(target)
    if user_branch is not None:
        user, branch = user_branch
        remote = _ensure_remote(app, user)
        return checkout_review_branch(app, remote, branch, f"{prefix}{user}/{branch}")

    ref = parse_request_ref(app, target)
    request = app.fetch_request(ref)
    click.echo(f"Reviewing {ref}: {request.title} (by {request.author})")

    if isinstance(ref, GitHubPullRequestId):
        owner = request.source_owner or request.author
        if owner == ref.repo.owner:
            remote = "origin"
        else:
            remote = _ensure_remote(app, owner)
        local_branch = f"{prefix}{owner}/{request.source_branch}"
    else:
        remote = "origin"
        local_branch = f"{prefix}{request.source_branch}"

    checkout_review_branch(app, remote, request.source_branch, local_branch, ref)


def fetch_states(app: AppContext, refs: Dict[str, MergeRequestRef]) -> Dict[str, PullRequestState]:
    """Looks up the state of every branch's request concurrently.

    Branches whose request cannot be fetched are left out.
    """

    def fetch(item):
        branch, ref = item
        try:
            return branch, app.fetch_request(ref).state
        except GitiError as e:
            log.warning(f"Could not check {ref} of {branch}: {e}")
            return branch, None

    with ThreadPoolExecutor(max_workers=STATE_WORKERS) as executor:
        results = executor.map(fetch, refs.items())
    return {branch: state for branch, state in results if state is not None}


def branches_to_clean_up(
    branches, current: str, main_branch: str, prefix: str, states: Dict[str, PullRequestState]
):
    result = []
    for branch in sorted(branches):
        if branch in (current, main_branch):
            continue
        state = states.get(branch)
        if branch.startswith(prefix) or (state is not None and state.is_finished):
            result.append(branch)
    return result


@click.command()
@click.pass_obj
def cleanup(app: AppContext):
    """Delete review branches and branches whose request was merged or closed."""
    repo = app.get_repo()
    store = app.get_store()
    current = app.current_branch()
    prefix = app.config.review.prefix
    local = git_utils.get_all_local_branch_names(repo)

    refs = {
        branch: store.get_merge_request(branch)
        for branch in local
        if branch != current
        and not branch.startswith(prefix)
        and store.get_merge_request(branch) is not None
    }
    # Fail on missing tokens before anything is deleted.
    for ref in refs.values():
        app.client_for_ref(ref)
    states = fetch_states(app, refs) if refs else {}

    for branch in branches_to_clean_up(local, current, store.main_branch, prefix, states):
        run_command(["git", "branch", "-D", branch])
        store.remove(branch)
