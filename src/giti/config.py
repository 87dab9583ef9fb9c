"""Configuration file support for giti.

This module handles loading and parsing the optional .giti.yaml
configuration file that lives at the root of the work tree. Example:

    # Name of the trunk branch. Detected from origin/HEAD when unset.
    main_branch: main

    review:
      prefix: review/

    gitlab:
      url: https://gitlab.example.com/api/v4

    fix:
      base: origin/main
      formatters:
        .py: [black, -q]
        BUILD: [buildifier]
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, List
import logging
import os
import yaml

log = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = ".giti.yaml"
CONFIG_PATH_ENV = "GITI_CONFIG"

DEFAULT_GITLAB_URL = "https://gitlab.com/api/v4"
DEFAULT_REVIEW_PREFIX = "review/"


def _default_formatters() -> Dict[str, List[str]]:
    return {
        ".h": ["clang-format", "-i", "-sort-includes", "-style=Google"],
        ".cc": ["clang-format", "-i", "-sort-includes", "-style=Google"],
        ".proto": ["clang-format", "-i", "-sort-includes", "-style=Google"],
        ".rs": ["rustfmt"],
        "BUILD": ["buildifier"],
        ".BUILD": ["buildifier"],
    }


@dataclass
class ReviewConfig:
    """Configuration for the review and cleanup commands.

    Attributes:
        prefix: Marker prefix of locally created review branches. Branches
            carrying it are deleted by `g cleanup`.
    """

    prefix: str = DEFAULT_REVIEW_PREFIX

    @classmethod
    def from_dict(cls, data: dict) -> "ReviewConfig":
        return cls(prefix=data.get("prefix", cls.prefix))


@dataclass
class GitLabConfig:
    url: str = DEFAULT_GITLAB_URL

    @classmethod
    def from_dict(cls, data: dict) -> "GitLabConfig":
        return cls(url=str(data.get("url", cls.url)).rstrip("/"))


@dataclass
class FixConfig:
    """Configuration for the fix command.

    Attributes:
        base: Revision to compare against. Defaults to origin/<main branch>.
        formatters: Maps a file extension (".cc") or a full file name
            ("BUILD") to the command that formats the file in place. The
            file path is appended as the last argument.
    """

    base: Optional[str] = None
    formatters: Dict[str, List[str]] = field(default_factory=_default_formatters)

    @classmethod
    def from_dict(cls, data: dict) -> "FixConfig":
        formatters = _default_formatters()
        for key, command in (data.get("formatters") or {}).items():
            if isinstance(command, str):
                command = command.split()
            if not command:
                formatters.pop(key, None)
                continue
            formatters[key] = [str(c) for c in command]
        return cls(base=data.get("base"), formatters=formatters)


@dataclass
class GitiConfig:
    """Configuration settings for giti.

    All settings are optional and have sensible defaults.
    """

    main_branch: Optional[str] = None
    review: ReviewConfig = field(default_factory=ReviewConfig)
    gitlab: GitLabConfig = field(default_factory=GitLabConfig)
    fix: FixConfig = field(default_factory=FixConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "GitiConfig":
        """Create a GitiConfig from a dictionary, using defaults for missing keys."""
        return cls(
            main_branch=data.get("main_branch"),
            review=ReviewConfig.from_dict(data.get("review") or {}),
            gitlab=GitLabConfig.from_dict(data.get("gitlab") or {}),
            fix=FixConfig.from_dict(data.get("fix") or {}),
        )


def load_config(
    work_tree: Optional[str] = None, config_path: Optional[str] = None
) -> GitiConfig:
    """Load configuration from a YAML file.

    If config_path (or $GITI_CONFIG) is explicitly provided and the file
    doesn't exist, raises an error. Otherwise a missing .giti.yaml in the
    work tree yields the default config.

    Raises:
        FileNotFoundError: If an explicit config path doesn't exist.
        yaml.YAMLError: If the config file contains invalid YAML.
        ValueError: If the config file is not a mapping.
    """
    config_path = config_path or os.environ.get(CONFIG_PATH_ENV)
    explicit_path = config_path is not None
    if explicit_path:
        path = Path(config_path)
    else:
        path = Path(work_tree or ".") / DEFAULT_CONFIG_PATH

    if not path.exists():
        if explicit_path:
            raise FileNotFoundError(f"Config file not found: {path}")
        return GitiConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    # Handle empty file or file with only comments
    if data is None:
        return GitiConfig()

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a YAML mapping (dictionary)")

    log.debug(f"Loaded config from {path}")
    return GitiConfig.from_dict(data)
