"""Classifying git remote URLs by hosting provider.

Supports the URL styles git itself accepts:
- git@github.com:owner/repo.git       (scp-like)
- ssh://git@gitlab.com:2222/group/sub/repo.git
- https://github.com/owner/repo(.git)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional
from urllib.parse import urlsplit
import re

from .models import RepoId


class Provider(str, Enum):
    GITHUB = "github"
    GITLAB = "gitlab"


_SCP_LIKE = re.compile(r"^(?:(?P<user>[^@/]+)@)?(?P<host>[^:/]+):(?P<path>[^/].*)$")


@dataclass(frozen=True)
class RemoteIdentity:
    provider: Provider
    host: str
    owner: str
    name: str
    ssh: bool = True

    @property
    def repo_id(self) -> RepoId:
        return RepoId(owner=self.owner, name=self.name)

    @property
    def web_url(self) -> str:
        return f"https://{self.host}/{self.owner}/{self.name}"

    def url_for_owner(self, owner: str) -> str:
        """The URL of the same project under a different owner (i.e. a fork)."""
        if self.ssh:
            return f"git@{self.host}:{owner}/{self.name}.git"
        return f"https://{self.host}/{owner}/{self.name}.git"


def _split_url(url: str):
    """Returns (host, path, is_ssh) or None."""
    url = url.strip()
    if "://" in url:
        parts = urlsplit(url)
        if not parts.hostname:
            return None
        return parts.hostname, parts.path, parts.scheme in ("ssh", "git+ssh")

    match = _SCP_LIKE.match(url)
    if match is None:
        return None
    return match.group("host"), match.group("path"), True


def classify_host(host: str, gitlab_hosts: Iterable[str] = ()) -> Optional[Provider]:
    host = host.lower()
    if host in {h.lower() for h in gitlab_hosts}:
        return Provider.GITLAB
    if host == "github.com" or host.endswith(".github.com"):
        return Provider.GITHUB
    if "gitlab" in host:
        return Provider.GITLAB
    return None


def parse_remote_url(
    url: str, gitlab_hosts: Iterable[str] = ()
) -> Optional[RemoteIdentity]:
    """Parse a remote URL into a RemoteIdentity, or None if the host is unknown.

    GitLab projects can live in nested groups, so everything but the last
    path component is the owner ("group/subgroup").
    """
    split = _split_url(url)
    if split is None:
        return None
    host, path, ssh = split

    provider = classify_host(host, gitlab_hosts)
    if provider is None:
        return None

    path = path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    owner, sep, name = path.rpartition("/")
    if not sep or not owner or not name:
        return None
    if provider == Provider.GITHUB and "/" in owner:
        return None

    return RemoteIdentity(provider=provider, host=host, owner=owner, name=name, ssh=ssh)


def project_name(url: str) -> str:
    """The project part of the URL, i.e. 'giti.git' for git@github.com:SirVer/giti.git."""
    return url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]


def expand_clone_target(target: str) -> str:
    """Expands a short 'owner/repo' into a GitHub SSH URL; anything else is returned as is."""
    if "://" in target or ":" in target or target.startswith((".", "/", "~")):
        return target
    parts = target.split("/")
    if len(parts) != 2 or not all(parts):
        return target
    return f"git@github.com:{parts[0]}/{parts[1]}.git"
