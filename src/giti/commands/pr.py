from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional, Tuple
import json
import logging

import click

from ..app import AppContext
from ..dispatch import run_command, run_editor
from ..errors import ConfigurationMissing, GitiError
from ..models import GitHubPullRequestId, PullRequest, RepoId
from ..utils.output import OutputFormat, format_option
from ..utils.templates import render_template
from .. import git_utils

log = logging.getLogger(__name__)

PR_MESSAGE_FILE = "PR_EDITMSG"


def parse_request_message(text: str) -> Tuple[str, str]:
    """Splits an edited message into (title, body), dropping '#' comment lines."""
    lines = [line.rstrip() for line in text.splitlines() if not line.startswith("#")]
    while lines and not lines[0].strip():
        lines.pop(0)
    if not lines:
        return "", ""
    title = lines[0].strip()
    body = "\n".join(lines[1:]).strip()
    return title, body


def edit_request_message(app: AppContext, source: str, target: str, repo_name: str) -> Tuple[str, str]:
    repo = app.get_repo()
    head = repo.head.commit
    body = git_utils.get_pull_request_template(Path(repo.working_tree_dir))
    if body is None:
        # Everything after the summary line of the last commit.
        body = head.message.split("\n", 1)[1].strip() if "\n" in head.message else ""

    message = render_template(
        "text",
        "pull_request_message",
        title=head.summary,
        body=body,
        source=source,
        target=target,
        repo=repo_name,
    )
    path = Path(repo.git_dir) / PR_MESSAGE_FILE
    path.write_text(message, encoding="utf-8")
    run_editor(path)
    return parse_request_message(path.read_text(encoding="utf-8"))


@click.command()
@click.pass_obj
@click.option("--base", "base", type=str, default=None, help="Target branch (default: the diffbase, else the main branch).")
@click.option("--remote", "remote", type=str, default="origin", show_default=True, help="Remote to push to and open the request on.")
@click.option("--draft", is_flag=True, default=False, help="Open the request as a draft.")
def pr(app: AppContext, base: Optional[str], remote: str, draft: bool):
    """Push the current branch and open a pull/merge request for it."""
    store = app.get_store()
    branch = app.current_branch()
    if branch == store.main_branch:
        raise GitiError(f"Refusing to open a request from the main branch {branch}.")

    existing = store.get_merge_request(branch)
    if existing is not None:
        click.echo(f"{branch} already has a request: {existing.url}")
        return

    identity = app.remote_identity(remote)
    client = app.client_for(identity.provider)
    target = base or store.get_parent(branch) or store.main_branch

    if git_utils.get_upstream(app.get_repo(), branch) is None:
        run_command(["git", "push", "--set-upstream", remote, branch])
    else:
        run_command(["git", "push"])

    title, body = edit_request_message(app, branch, target, identity.repo_id.full_name)
    if not title:
        raise GitiError("Aborting due to empty title.")

    click.echo(
        f"Creating request:\nrepo:  {identity.repo_id}\nfrom:  {branch}\nto:    {target}\ntitle: {title}"
    )
    request = client.create_request(identity, title, body, source=branch, target=target, draft=draft)
    store.set_merge_request(branch, request.id)
    click.echo(f"Created {request.url}")


def request_to_dict(request: PullRequest) -> dict:
    if isinstance(request.id, GitHubPullRequestId):
        repo = f"github:{request.id.repo.full_name}"
    else:
        repo = f"gitlab:{request.id.project}"
    return {
        "repo": repo,
        "number": request.number,
        "title": request.title,
        "author": request.author,
        "state": request.state.value,
        "source_branch": request.source_branch,
        "target_branch": request.target_branch,
        "url": request.url,
    }


@click.command()
@click.pass_obj
@click.option("--repo", "repo_filter", type=str, default=None, help="Only list requests of <owner>/<name>.")
@format_option()
def prs(app: AppContext, repo_filter: Optional[str], format: str):
    """List open pull/merge requests assigned to you on GitHub and GitLab."""
    try:
        repo = RepoId.parse(repo_filter) if repo_filter else None
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="'--repo'")

    clients = []
    for name, factory in (("GitHub", app.github), ("GitLab", app.gitlab)):
        try:
            clients.append(factory())
        except ConfigurationMissing as e:
            log.info(f"Skipping {name}: {e}")
    if not clients:
        raise ConfigurationMissing("Set GITHUB_TOKEN or GITLAB_TOKEN to list requests.")

    with ThreadPoolExecutor(max_workers=len(clients)) as executor:
        futures = [executor.submit(client.find_assigned, repo) for client in clients]
        requests: List[PullRequest] = []
        for future in futures:
            requests.extend(future.result())

    items = [request_to_dict(request) for request in requests]
    if format == OutputFormat.JSON.value:
        click.echo(json.dumps(items, indent=2))
        return
    click.echo(render_template("text", "pull_requests", requests=items), nl=False)
