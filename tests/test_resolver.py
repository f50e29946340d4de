from __future__ import annotations

import pytest

from fakes import FakeMetadata, FakeRegistry, chain
from recipeci.config import BASE_REPO_URL, ResolveOptions
from recipeci.errors import ResolutionError
from recipeci.graph import DependencyGraph, collect_repo_urls
from recipeci.model import RecipeMetadata, RecipeNode
from recipeci.resolver import DependencyResolver, export_repo_list

NO_VERIFY = ResolveOptions(verify_repo_exists=False, include_base=False)


def test_single_recipe_without_parent():
    meta = chain(("Firefox.install", "autopkg/recipes", None))
    graph = DependencyResolver(meta).resolve("Firefox.install", NO_VERIFY)

    assert [n.identifier for n in graph] == ["Firefox.install.recipe"]
    assert graph.get("Firefox.install.recipe").depth == 0
    assert graph.get("Firefox.install.recipe").is_root


def test_max_depth_cuts_chain():
    meta = chain(("A", "org/a", "B"), ("B", "org/b", "C"), ("C", "org/c", None))
    graph = DependencyResolver(meta).resolve("A", ResolveOptions(max_depth=1, verify_repo_exists=False, include_base=False))

    assert graph.pairs() == [
        ("A.recipe", "https://github.com/org/a"),
        ("B.recipe", "https://github.com/org/b"),
    ]
    assert "C.recipe" not in meta.lookups


def test_max_depth_zero_only_root_plus_base():
    meta = chain(("A", "org/a", "B"), ("B", "org/b", None))
    graph = DependencyResolver(meta).resolve("A", ResolveOptions(max_depth=0, verify_repo_exists=False))

    assert len(graph) == 1
    assert graph.repo_urls() == ["https://github.com/org/a", BASE_REPO_URL]


def test_include_parents_false_stops_after_root():
    meta = chain(("A", "org/a", "B"), ("B", "org/b", None))
    options = ResolveOptions(include_parents=False, verify_repo_exists=False, include_base=False)
    graph = DependencyResolver(meta).resolve("A", options)

    assert [n.identifier for n in graph] == ["A.recipe"]


def test_depths_non_decreasing_and_identifiers_unique():
    meta = chain(("A", "org/a", "B"), ("B", "org/b", "C"), ("C", "org/a", "D"), ("D", "org/d", None))
    graph = DependencyResolver(meta).resolve("A", NO_VERIFY)

    depths = [n.depth for n in graph]
    assert depths == sorted(depths) == [0, 1, 2, 3]
    ids = [n.identifier for n in graph]
    assert len(ids) == len(set(ids))
    # org/a appears twice in the chain but once in the repo list
    assert graph.repo_urls() == ["https://github.com/org/a", "https://github.com/org/b", "https://github.com/org/d"]


def test_cycle_terminates():
    meta = chain(("A", "org/a", "B"), ("B", "org/b", "A"))
    graph = DependencyResolver(meta).resolve("A", NO_VERIFY)

    assert [n.identifier for n in graph] == ["A.recipe", "B.recipe"]


def test_self_parent_terminates():
    meta = chain(("A", "org/a", "A"))
    graph = DependencyResolver(meta).resolve("A", NO_VERIFY)
    assert len(graph) == 1


def test_parent_identifier_with_suffix_is_followed():
    meta = chain(("A", "org/a", "B.recipe"), ("B", "org/b", None))
    graph = DependencyResolver(meta).resolve("A", NO_VERIFY)
    assert graph.get("A.recipe").parent_identifier == "B.recipe"
    assert "B.recipe" in graph


def test_root_lookup_failure_raises():
    with pytest.raises(ResolutionError) as exc:
        DependencyResolver(FakeMetadata({})).resolve("Missing", NO_VERIFY)
    assert exc.value.identifier == "Missing.recipe"


def test_invalid_root_raises_resolution_error():
    with pytest.raises(ResolutionError):
        DependencyResolver(FakeMetadata({})).resolve("   ", NO_VERIFY)


def test_ancestor_lookup_failure_becomes_warning():
    meta = chain(("A", "org/a", "Gone"))
    graph = DependencyResolver(meta).resolve("A", NO_VERIFY)

    gone = graph.get("Gone.recipe")
    assert gone is not None
    assert gone.repo_url == ""
    assert gone.depth == 1
    assert [w.kind for w in gone.warnings] == ["lookup"]
    assert graph.repo_urls() == ["https://github.com/org/a"]
    assert len(graph.warnings()) == 1


def test_unverified_repo_becomes_warning():
    meta = chain(("A", "org/a", "B"), ("B", "org/b", None))
    registry = FakeRegistry(known={"https://github.com/org/a"})
    graph = DependencyResolver(meta, registry).resolve("A", ResolveOptions(include_base=False))

    assert graph.get("A.recipe").warnings == ()
    assert [w.kind for w in graph.get("B.recipe").warnings] == ["unverified"]
    assert registry.checked == ["https://github.com/org/a", "https://github.com/org/b"]


def test_verify_without_registry_is_an_error():
    meta = chain(("A", "org/a", None))
    with pytest.raises(ValueError):
        DependencyResolver(meta).resolve("A", ResolveOptions(verify_repo_exists=True))


def test_resolve_many_isolates_failures():
    meta = chain(("A", "org/a", None), ("B", "org/b", None))
    graphs, errors = DependencyResolver(meta).resolve_many(["A", "Missing", "B", "A.recipe"], NO_VERIFY)

    assert list(graphs) == ["A.recipe", "B.recipe"]
    assert list(errors) == ["Missing.recipe"]
    assert isinstance(errors["Missing.recipe"], ResolutionError)
    # duplicate root resolved once
    assert meta.lookups.count("A.recipe") == 1


def test_resolve_many_collects_unique_repos():
    meta = chain(("A", "org/a", "P"), ("B", "org/b", "P"), ("P", "org/parent", None))
    graphs, errors = DependencyResolver(meta).resolve_many(["A", "B"], ResolveOptions(verify_repo_exists=False))

    assert errors == {}
    assert collect_repo_urls(graphs) == [
        "https://github.com/org/a",
        "https://github.com/org/parent",
        BASE_REPO_URL,
        "https://github.com/org/b",
    ]


def test_graph_rejects_duplicates_and_deep_nodes():
    g = DependencyGraph("A.recipe", max_depth=1)
    g.add(RecipeNode(identifier="A.recipe", repo_url="x", depth=0))
    with pytest.raises(ValueError):
        g.add(RecipeNode(identifier="A.recipe", repo_url="x", depth=0))
    with pytest.raises(ValueError):
        g.add(RecipeNode(identifier="B.recipe", repo_url="x", depth=2))


def test_resolve_options_validation():
    with pytest.raises(ValueError):
        ResolveOptions(max_depth=-1)


def test_blank_parent_is_ignored():
    meta = FakeMetadata({"A.recipe": RecipeMetadata(repo_url="https://github.com/org/a", parent_identifier="  ")})
    graph = DependencyResolver(meta).resolve("A", NO_VERIFY)
    assert len(graph) == 1


def test_export_repo_list_appends_only_new(tmp_path):
    path = tmp_path / "nested" / "repos.txt"

    assert export_repo_list(["https://github.com/org/a", "https://github.com/org/b"], path) == 2
    assert export_repo_list(["https://github.com/org/b", "https://github.com/org/c", "https://github.com/org/c"], path) == 1

    assert path.read_text().splitlines() == [
        "https://github.com/org/a",
        "https://github.com/org/b",
        "https://github.com/org/c",
    ]


def test_export_repo_list_handles_missing_trailing_newline(tmp_path):
    path = tmp_path / "repos.txt"
    path.write_text("https://github.com/org/a")

    export_repo_list(["https://github.com/org/b"], path)
    assert path.read_text() == "https://github.com/org/a\nhttps://github.com/org/b\n"


class _FlakyMetadata(FakeMetadata):
    """Raises arbitrary (non-lookup) exceptions for chosen identifiers."""

    def __init__(self, entries, raises):
        super().__init__(entries)
        self.raises = raises

    def lookup_recipe_metadata(self, identifier, use_auth_token=False):
        if identifier in self.raises:
            raise self.raises[identifier]
        return super().lookup_recipe_metadata(identifier, use_auth_token)


def test_ancestor_unexpected_error_becomes_warning():
    meta = _FlakyMetadata(
        {"Child.recipe": RecipeMetadata(repo_url="https://github.com/org/child", parent_identifier="Anc")},
        {"Anc.recipe": ConnectionError("reset")},
    )
    graph = DependencyResolver(meta).resolve("Child", NO_VERIFY)

    anc = graph.get("Anc.recipe")
    assert [w.kind for w in anc.warnings] == ["lookup"]
    assert "ConnectionError" in anc.warnings[0].message
    assert graph.repo_urls() == ["https://github.com/org/child"]


def test_root_unexpected_error_becomes_resolution_error():
    meta = _FlakyMetadata({}, {"Bad.recipe": AttributeError("'str' object has no attribute 'get'")})
    with pytest.raises(ResolutionError) as exc:
        DependencyResolver(meta).resolve("Bad", NO_VERIFY)
    assert exc.value.identifier == "Bad.recipe"


def test_resolve_many_keeps_other_roots_on_unexpected_error():
    meta = _FlakyMetadata(
        {"Good.recipe": RecipeMetadata(repo_url="https://github.com/org/good")},
        {"Bad.recipe": OSError("index cache unwritable")},
    )
    graphs, errors = DependencyResolver(meta).resolve_many(["Good", "Bad"], NO_VERIFY)

    assert list(graphs) == ["Good.recipe"]
    assert list(errors) == ["Bad.recipe"]
    assert "index cache unwritable" in errors["Bad.recipe"].message


def test_resolve_many_verify_without_registry_is_an_error():
    with pytest.raises(ValueError):
        DependencyResolver(chain(("A", "org/a", None))).resolve_many(["A"], ResolveOptions())
