from pathlib import Path

import pytest
import yaml

from giti.config import DEFAULT_REVIEW_PREFIX, GitiConfig, load_config


@pytest.fixture(autouse=True)
def no_config_env(monkeypatch):
    monkeypatch.delenv("GITI_CONFIG", raising=False)


def test_missing_file_gives_defaults(tmp_path: Path):
    config = load_config(str(tmp_path))

    assert config == GitiConfig()
    assert config.review.prefix == DEFAULT_REVIEW_PREFIX
    assert config.fix.formatters["BUILD"] == ["buildifier"]


def test_values_are_read(tmp_path: Path):
    (tmp_path / ".giti.yaml").write_text(
        "\n".join(
            [
                "main_branch: trunk",
                "review:",
                "  prefix: r/",
                "gitlab:",
                "  url: https://gitlab.example.com/api/v4/",
                "fix:",
                "  base: upstream/trunk",
                "  formatters:",
                "    .py: black -q",
                "    .rs: []",
            ]
        )
    )

    config = load_config(str(tmp_path))

    assert config.main_branch == "trunk"
    assert config.review.prefix == "r/"
    assert config.gitlab.url == "https://gitlab.example.com/api/v4"
    assert config.fix.base == "upstream/trunk"
    assert config.fix.formatters[".py"] == ["black", "-q"]
    assert ".rs" not in config.fix.formatters
    assert ".cc" in config.fix.formatters


def test_empty_file(tmp_path: Path):
    (tmp_path / ".giti.yaml").write_text("# nothing here\n")

    assert load_config(str(tmp_path)) == GitiConfig()


def test_explicit_path_must_exist(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("GITI_CONFIG", str(tmp_path / "missing.yaml"))

    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path))


def test_invalid_contents(tmp_path: Path):
    path = tmp_path / ".giti.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_config(str(tmp_path))

    path.write_text("review: [unclosed\n")
    with pytest.raises(yaml.YAMLError):
        load_config(str(tmp_path))
