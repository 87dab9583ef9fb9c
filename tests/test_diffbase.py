import json
import logging
from pathlib import Path

import pytest

from giti.diffbase import DiffbaseStore
from giti.errors import CorruptState, GitiError, InvalidDiffbase
from giti.models import GitHubPullRequestId, GitLabMergeRequestId, RepoId


def links(store):
    return {name: (e.parent, list(e.children)) for name, e in store.entries.items()}


def test_every_local_branch_is_seeded(make_store):
    store = make_store(["main", "a", "b"])

    assert sorted(store.branches()) == ["a", "b", "main"]
    for branch in ("main", "a", "b"):
        assert store.get_parent(branch) is None
        assert store.get_children(branch) == []


def test_unknown_branch_has_no_children_list(make_store):
    store = make_store(["main"])

    assert store.get_children("nope") is None
    assert store.get_root("nope") is None
    assert store.get_parent("nope") is None


def test_set_diffbase_links_both_sides(make_store):
    store = make_store(["main", "a", "b"])
    store.set_diffbase("b", "a")

    assert store.get_parent("b") == "a"
    assert store.get_children("a") == ["b"]


def test_set_diffbase_creates_missing_entries(make_store):
    store = make_store(["main"])
    store.set_diffbase("new", "base")

    assert "new" in store and "base" in store
    assert store.get_children("base") == ["new"]


def test_set_diffbase_to_trunk_fails_and_changes_nothing(stacked_store):
    before = links(stacked_store)

    with pytest.raises(InvalidDiffbase):
        stacked_store.set_diffbase("feature-a", "main")
    with pytest.raises(InvalidDiffbase):
        stacked_store.set_diffbase("brand-new", "main")

    assert links(stacked_store) == before


def test_trunk_itself_cannot_get_a_diffbase(stacked_store):
    with pytest.raises(InvalidDiffbase):
        stacked_store.set_diffbase("main", "feature-a")
    assert stacked_store.get_parent("main") is None


def test_set_diffbase_is_idempotent(make_store):
    store = make_store(["main", "a", "b"])
    store.set_diffbase("b", "a")
    store.set_diffbase("b", "a")

    assert store.get_children("a") == ["b"]


def test_set_diffbase_moves_branch_to_new_parent(make_store):
    store = make_store(["main", "a", "b", "c"])
    store.set_diffbase("c", "a")
    store.set_diffbase("c", "b")

    assert store.get_parent("c") == "b"
    assert store.get_children("a") == []
    assert store.get_children("b") == ["c"]


def test_set_diffbase_refuses_cycles(make_store):
    store = make_store(["main", "a", "b", "c"])
    store.set_diffbase("b", "a")
    store.set_diffbase("c", "b")
    before = links(store)

    with pytest.raises(InvalidDiffbase):
        store.set_diffbase("a", "c")
    with pytest.raises(InvalidDiffbase):
        store.set_diffbase("a", "a")

    assert links(store) == before


def test_get_root_walks_to_branch_without_parent(make_store):
    store = make_store(["main", "a", "b", "c", "d"])
    store.set_diffbase("b", "a")
    store.set_diffbase("c", "b")
    store.set_diffbase("d", "b")

    for branch in ("a", "b", "c", "d"):
        root = store.get_root(branch)
        assert root == "a"
        assert store.get_parent(root) is None
    assert store.get_root("main") == "main"


def test_get_root_reports_cycles_from_a_corrupt_snapshot(tmp_path):
    path = tmp_path / "diffbase.json"
    path.write_text(
        json.dumps(
            [
                {"branch": "a", "diffbase": "b", "github_pr": None},
                {"branch": "b", "diffbase": "a", "github_pr": None},
            ]
        )
    )
    store = DiffbaseStore(path, ["main", "a", "b"], "main")

    with pytest.raises(CorruptState, match="cycle"):
        store.get_root("a")


def test_rename_rewrites_every_reference(make_store):
    store = make_store(["main", "a", "b", "c", "d"])
    store.set_diffbase("b", "a")
    store.set_diffbase("c", "b")
    store.set_diffbase("d", "b")
    ref = GitHubPullRequestId(repo=RepoId("SirVer", "giti"), number=7)
    store.set_merge_request("b", ref)

    store.rename("b", "renamed")

    assert "b" not in store
    assert store.get_parent("renamed") == "a"
    assert store.get_children("renamed") == ["c", "d"]
    assert store.get_merge_request("renamed") == ref
    for name, entry in store.entries.items():
        assert entry.parent != "b", name
        assert "b" not in entry.children, name
    assert store.get_children("a") == ["renamed"]
    assert store.get_parent("c") == "renamed"


def test_rename_of_unknown_branch_changes_nothing(stacked_store):
    before = links(stacked_store)

    with pytest.raises(GitiError):
        stacked_store.rename("missing", "other")

    assert links(stacked_store) == before


def test_rename_onto_existing_branch_needs_force(make_store):
    store = make_store(["main", "a", "b", "c"])
    store.set_diffbase("c", "a")

    with pytest.raises(GitiError):
        store.rename("c", "b")
    assert store.get_parent("c") == "a"

    store.rename("c", "b", force=True)
    assert store.get_parent("b") == "a"
    assert store.get_children("a") == ["b"]


def test_renaming_the_trunk_updates_the_trunk_name(stacked_store):
    stacked_store.rename("main", "trunk")

    assert stacked_store.main_branch == "trunk"
    with pytest.raises(InvalidDiffbase):
        stacked_store.set_diffbase("feature-b", "trunk")
    # The old trunk name is an ordinary branch name again.
    stacked_store.set_diffbase("main", "feature-a")
    assert stacked_store.get_parent("main") == "feature-a"


def test_remove_splices_children_onto_parent(make_store):
    store = make_store(["main", "a", "b", "c"])
    store.set_diffbase("b", "a")
    store.set_diffbase("c", "b")

    assert store.remove("b") is True

    assert store.get_parent("c") == "a"
    assert store.get_children("a") == ["c"]
    assert store.remove("b") is False


def test_removing_a_root_makes_children_roots(make_store):
    store = make_store(["main", "a", "b"])
    store.set_diffbase("b", "a")

    store.remove("a")

    assert store.get_parent("b") is None
    assert store.get_root("b") == "b"


def test_clear_diffbase(make_store):
    store = make_store(["main", "a", "b"])
    store.set_diffbase("b", "a")

    assert store.clear_diffbase("b") == "a"
    assert store.get_parent("b") is None
    assert store.get_children("a") == []
    assert store.clear_diffbase("b") is None


def test_write_then_reload_keeps_links_and_requests(tmp_path):
    path = tmp_path / "diffbase.json"
    branches = ["main", "a", "b", "c", "review/x"]
    store = DiffbaseStore(path, branches, "main")
    store.set_diffbase("b", "a")
    store.set_diffbase("c", "a")
    gh = GitHubPullRequestId(repo=RepoId("SirVer", "giti"), number=12)
    gl = GitLabMergeRequestId(url="https://gitlab.com/group/sub/proj/-/merge_requests/3")
    store.set_merge_request("b", gh)
    store.set_merge_request("review/x", gl)
    store.write_to_disk()

    reloaded = DiffbaseStore(path, branches, "main")

    assert links(reloaded) == links(store)
    assert reloaded.get_merge_request("b") == gh
    assert reloaded.get_merge_request("review/x") == gl
    assert reloaded.get_merge_request("a") is None


def test_load_save_cycle_is_lossless(tmp_path):
    path = tmp_path / "diffbase.json"
    store = DiffbaseStore(path, ["main", "a", "b", "c"], "main")
    store.set_diffbase("c", "a")
    store.set_diffbase("b", "a")
    store.write_to_disk()
    first = path.read_text()

    DiffbaseStore(path, ["main", "a", "b", "c"], "main").write_to_disk()

    assert path.read_text() == first


def test_snapshot_format(tmp_path):
    path = tmp_path / "diffbase.json"
    store = DiffbaseStore(path, ["main", "a", "b"], "main")
    store.set_diffbase("b", "a")
    store.set_merge_request("b", GitHubPullRequestId(repo=RepoId("o", "r"), number=1))
    store.write_to_disk()

    records = json.loads(path.read_text())

    assert records == [
        {"branch": "a", "diffbase": None, "github_pr": None, "gitlab_mr": None},
        {
            "branch": "b",
            "diffbase": "a",
            "github_pr": {"repo": {"owner": "o", "name": "r"}, "number": 1},
            "gitlab_mr": None,
        },
        {"branch": "main", "diffbase": None, "github_pr": None, "gitlab_mr": None},
    ]


def test_branches_deleted_outside_are_dropped(tmp_path, caplog):
    path = tmp_path / "diffbase.json"
    store = DiffbaseStore(path, ["main", "a", "gone", "child"], "main")
    store.set_diffbase("gone", "a")
    store.set_diffbase("child", "gone")
    store.write_to_disk()

    with caplog.at_level(logging.INFO, logger="giti.diffbase"):
        reloaded = DiffbaseStore(path, ["main", "a", "child"], "main")

    assert "gone" not in reloaded
    assert reloaded.get_children("a") == []
    assert reloaded.get_parent("child") is None
    assert "gone no longer exists" in caplog.text


def test_old_snapshots_without_gitlab_key_load(tmp_path):
    path = tmp_path / "diffbase.json"
    path.write_text(
        json.dumps(
            [
                {"branch": "a", "diffbase": None, "github_pr": None},
                {
                    "branch": "b",
                    "diffbase": "a",
                    "github_pr": {"repo": {"owner": "SirVer", "name": "giti"}, "number": 3},
                },
            ]
        )
    )

    store = DiffbaseStore(path, ["main", "a", "b"], "main")

    assert store.get_parent("b") == "a"
    assert store.get_merge_request("b").number == 3


def test_stored_trunk_parent_is_ignored(tmp_path):
    # Written while 'main' was not the trunk yet.
    path = tmp_path / "diffbase.json"
    path.write_text(json.dumps([{"branch": "a", "diffbase": "main", "github_pr": None}]))

    store = DiffbaseStore(path, ["main", "a"], "main")

    assert store.get_parent("a") is None
    assert store.get_children("main") == []


@pytest.mark.parametrize("content", ["{not json", '{"branch": "a"}', '[{"diffbase": null}]'])
def test_unreadable_snapshot_is_corrupt_state(tmp_path, content):
    path = tmp_path / "diffbase.json"
    path.write_text(content)

    with pytest.raises(CorruptState):
        DiffbaseStore(path, ["main", "a"], "main")


def test_bad_gitlab_url_in_snapshot_is_corrupt_state(tmp_path):
    path = tmp_path / "diffbase.json"
    path.write_text(
        json.dumps(
            [{"branch": "a", "diffbase": None, "github_pr": None, "gitlab_mr": {"url": "https://gitlab.com/g/p"}}]
        )
    )

    with pytest.raises(CorruptState, match="Invalid merge request for a"):
        DiffbaseStore(path, ["main", "a"], "main")


def test_open_uses_the_repository(git_repo):
    git_repo.git.branch("feature")

    store = DiffbaseStore.open(git_repo, "main")

    assert sorted(store.branches()) == ["feature", "main"]
    assert store.json_file_path.name == "diffbase.json"
    assert store.json_file_path.parent.resolve() == Path(git_repo.git_dir).resolve()
