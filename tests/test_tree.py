import pytest
from rich.console import Console

from giti.commands import tree
from giti.errors import CorruptState, GitiError, InvalidDiffbase


def test_up_from_feature_b(stacked_store):
    assert tree.resolve_up(stacked_store, "feature-b") == "feature-a"
    assert tree.resolve_up(stacked_store, "feature-b", root=True) == "feature-a"


def test_up_root_of_a_root_is_itself(stacked_store):
    assert tree.resolve_up(stacked_store, "main", root=True) == "main"


def test_up_without_diffbase_fails(stacked_store):
    with pytest.raises(GitiError, match="feature-a has no diffbase"):
        tree.resolve_up(stacked_store, "feature-a")


def test_down_with_unique_child(stacked_store):
    assert tree.resolve_down(stacked_store, "feature-a") == "feature-b"


def test_down_without_children(stacked_store):
    with pytest.raises(GitiError, match="no branches have it as diffbase"):
        tree.resolve_down(stacked_store, "feature-b")


def test_down_names_all_contenders(make_store):
    store = make_store(["main", "a", "b", "c"])
    store.set_diffbase("b", "a")
    store.set_diffbase("c", "a")

    with pytest.raises(GitiError) as excinfo:
        tree.resolve_down(store, "a")

    assert "Contenders are b, c." in str(excinfo.value)


def test_down_on_unknown_branch_is_corrupt_state(stacked_store):
    with pytest.raises(CorruptState):
        tree.resolve_down(stacked_store, "detached")


def test_stack_built_with_checkout_b(make_store):
    # main -> feature-a -> feature-b, created with 'checkout -b' each time.
    store = make_store(["main"])
    # Branching off the trunk makes a root.
    with pytest.raises(InvalidDiffbase):
        store.set_diffbase("feature-a", "main")
    store.add("feature-a")
    store.set_diffbase("feature-b", "feature-a")

    assert tree.resolve_up(store, "feature-b", root=True) == "feature-a"
    assert tree.resolve_down(store, "feature-a") == "feature-b"
    with pytest.raises(GitiError):
        tree.resolve_down(store, "main")


def test_build_tree_renders_every_branch(make_store):
    store = make_store(["main", "a", "b", "c"])
    store.set_diffbase("b", "a")
    store.set_diffbase("c", "b")
    console = Console(width=80, record=True, color_system=None)

    console.print(tree.build_tree(store, current="b"))
    text = console.export_text()

    lines = [line.strip(" \u2502\u251c\u2514\u2500\u2501\u2503\u2523\u2517|`-+") for line in text.splitlines()]
    assert lines[0] == "diffbase tree"
    assert {"main", "a", "* b", "c"} <= set(lines)
    assert lines.index("a") < lines.index("* b") < lines.index("c")


def test_pullc_visits_whole_subtree(make_store, monkeypatch):
    store = make_store(["main", "a", "b", "c", "d"])
    store.set_diffbase("b", "a")
    store.set_diffbase("c", "b")
    store.set_diffbase("d", "a")
    current = {"branch": "c"}
    commands = []

    def checkout(branch):
        commands.append(("checkout", branch))
        current["branch"] = branch

    def merge(branch):
        commands.append(("merge", branch))

    def run_command(args):
        commands.append(tuple(args))

    upstreams = {"a": "origin/a", "b": None, "c": "origin/c", "d": "origin/d", "main": "origin/main"}
    monkeypatch.setattr(tree.git_utils, "checkout", checkout)
    monkeypatch.setattr(tree.git_utils, "merge", merge)
    monkeypatch.setattr(tree, "run_command", run_command)
    monkeypatch.setattr(
        tree.git_utils,
        "get_all_local_branches",
        lambda repo: {
            name: tree.git_utils.BranchInfo(name=name, upstream=up)
            for name, up in upstreams.items()
        },
    )

    from giti.app import AppContext

    app = AppContext(repo=object(), store=store)
    app.current_branch = lambda: current["branch"]

    tree.pullc.main(args=["--push"], obj=app, standalone_mode=False)

    assert commands == [
        ("git", "fetch"),
        ("checkout", "a"),
        ("git", "pull"),
        ("git", "push"),
        # b has no upstream: no pull/push, but it is merged and recursed into.
        ("checkout", "b"),
        ("merge", "a"),
        ("checkout", "c"),
        ("git", "pull"),
        ("merge", "b"),
        ("git", "push"),
        ("checkout", "d"),
        ("git", "pull"),
        ("merge", "a"),
        ("git", "push"),
        ("checkout", "c"),
    ]
