from __future__ import annotations

import time

import pytest

from recipeci import index as index_mod
from recipeci.cache import IndexCache
from recipeci.config import ResolveOptions
from recipeci.errors import MetadataLookupError
from recipeci.index import RecipeIndexSource
from recipeci.resolver import DependencyResolver

INDEX = {
    "identifiers": {
        "com.github.autopkg.pkg.Firefox_EN": {
            "name": "Firefox.pkg.recipe",
            "shortname": "Firefox.pkg",
            "repo": "autopkg/recipes",
            "path": "Mozilla/Firefox.pkg.recipe",
            "parent": "com.github.autopkg.download.firefox-rc-en_US",
        },
        "com.github.autopkg.download.firefox-rc-en_US": {
            "name": "Firefox.download.recipe",
            "shortname": "Firefox.download",
            "repo": "autopkg/recipes",
            "path": "Mozilla/Firefox.download.recipe",
        },
        "com.github.someone.install.Firefox": {
            "name": "Firefox.install.recipe",
            "shortname": "Firefox.install",
            "repo": "someone/someone-recipes",
            "path": "Firefox/Firefox.install.recipe",
            "parent": "com.github.autopkg.pkg.Firefox_EN",
        },
    }
}


@pytest.fixture
def fetches(monkeypatch):
    calls = []

    def fake_fetch(url, *, token=None, timeout=30.0):
        calls.append((url, token))
        return INDEX

    monkeypatch.setattr(index_mod, "_fetch_json", fake_fetch)
    return calls


def test_lookup_by_shortname(fetches):
    meta = RecipeIndexSource().lookup_recipe_metadata("Firefox.install.recipe")
    assert meta.repo_url == "https://github.com/someone/someone-recipes"
    assert meta.parent_identifier == "com.github.autopkg.pkg.Firefox_EN"


def test_lookup_by_identifier(fetches):
    meta = RecipeIndexSource().lookup_recipe_metadata("com.github.autopkg.download.firefox-rc-en_US.recipe")
    assert meta.repo_url == "https://github.com/autopkg/recipes"
    assert meta.parent_identifier is None


def test_unknown_recipe(fetches):
    with pytest.raises(MetadataLookupError):
        RecipeIndexSource().lookup_recipe_metadata("Nope.recipe")


def test_index_fetched_once_per_source(fetches):
    source = RecipeIndexSource()
    source.lookup_recipe_metadata("Firefox.pkg.recipe")
    source.lookup_recipe_metadata("Firefox.download.recipe")
    assert len(fetches) == 1


def test_token_sent_only_when_asked(fetches, monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "secret")
    RecipeIndexSource().lookup_recipe_metadata("Firefox.pkg.recipe", use_auth_token=True)
    RecipeIndexSource().lookup_recipe_metadata("Firefox.pkg.recipe", use_auth_token=False)
    assert [t for _, t in fetches] == ["secret", None]


def test_invalid_index(monkeypatch):
    monkeypatch.setattr(index_mod, "_fetch_json", lambda url, **kw: {"something": {}})
    with pytest.raises(MetadataLookupError):
        RecipeIndexSource().lookup_recipe_metadata("Firefox.pkg.recipe")


def test_fetch_error_becomes_lookup_error(monkeypatch):
    def boom(url, **kw):
        raise OSError("network down")

    monkeypatch.setattr(index_mod, "_fetch_json", boom)
    with pytest.raises(MetadataLookupError):
        RecipeIndexSource().lookup_recipe_metadata("Firefox.pkg.recipe")


def test_disk_cache_is_reused(tmp_path, fetches):
    cache = IndexCache(tmp_path)
    RecipeIndexSource(cache=cache).lookup_recipe_metadata("Firefox.pkg.recipe")
    RecipeIndexSource(cache=cache).lookup_recipe_metadata("Firefox.pkg.recipe")
    assert len(fetches) == 1


def test_cache_expires(tmp_path):
    cache = IndexCache(tmp_path, ttl=60)
    cache.save("https://example.com/index.json", INDEX, now=time.time() - 120)

    entry = cache.load("https://example.com/index.json")
    assert not entry.hit
    assert entry.reason.startswith("stale")

    cache.save("https://example.com/index.json", INDEX)
    entry = cache.load("https://example.com/index.json")
    assert entry.hit
    assert entry.data == INDEX


def test_cache_miss_and_clear(tmp_path):
    cache = IndexCache(tmp_path)
    assert cache.load("https://example.com/index.json").reason == "cache miss"
    cache.save("https://example.com/index.json", INDEX)
    cache.clear()
    assert not cache.load("https://example.com/index.json").hit


def test_resolver_walks_index_chain(fetches):
    resolver = DependencyResolver(RecipeIndexSource())
    graph = resolver.resolve("Firefox.install", ResolveOptions(verify_repo_exists=False))

    assert [n.depth for n in graph] == [0, 1, 2]
    assert graph.repo_urls() == [
        "https://github.com/someone/someone-recipes",
        "https://github.com/autopkg/recipes",
    ]


def test_unwritable_cache_falls_back_to_fetch(tmp_path, fetches):
    blocker = tmp_path / "cache"
    blocker.write_text("not a directory")

    meta = RecipeIndexSource(cache=IndexCache(blocker)).lookup_recipe_metadata("Firefox.pkg.recipe")
    assert meta.repo_url == "https://github.com/autopkg/recipes"
    assert len(fetches) == 1


def test_malformed_entries_are_ignored(monkeypatch):
    doc = {"identifiers": {"com.example.broken": "oops", **INDEX["identifiers"]}}
    monkeypatch.setattr(index_mod, "_fetch_json", lambda url, **kw: doc)

    source = RecipeIndexSource()
    assert source.lookup_recipe_metadata("Firefox.download.recipe").repo_url == "https://github.com/autopkg/recipes"
    with pytest.raises(MetadataLookupError):
        source.lookup_recipe_metadata("com.example.broken")
