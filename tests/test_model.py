from __future__ import annotations

from datetime import datetime, timezone

import pytest

from recipeci.errors import TaskExecutionError
from recipeci.model import BatchResult, normalize_identifier, strip_recipe_suffix


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Firefox.install", "Firefox.install.recipe"),
        ("  Firefox.install  ", "Firefox.install.recipe"),
        ("Firefox.install.recipe", "Firefox.install.recipe"),
        ("Foo.recipe.yaml", "Foo.recipe.yaml"),
        ("Foo.recipe.plist", "Foo.recipe.plist"),
    ],
)
def test_normalize_identifier(raw, expected):
    assert normalize_identifier(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", None])
def test_normalize_identifier_rejects_empty(raw):
    with pytest.raises(ValueError):
        normalize_identifier(raw)


def test_normalize_identifier_is_case_sensitive():
    assert normalize_identifier("firefox") != normalize_identifier("Firefox")


def test_strip_recipe_suffix_prefers_longest():
    assert strip_recipe_suffix("Foo.recipe.yaml") == "Foo"
    assert strip_recipe_suffix("Foo.recipe") == "Foo"
    assert strip_recipe_suffix("com.github.x.Foo") == "com.github.x.Foo"


def _result(output: str, error=None) -> BatchResult:
    return BatchResult(
        identifier="Foo.recipe",
        output=output,
        execution_error=error,
        started_at=datetime.now(timezone.utc),
        duration=0.1,
    )


def test_batch_result_status():
    assert _result("Downloaded https://example.com/foo.dmg").status == "updated"
    assert _result("Found new version 1.2").status == "updated"
    assert _result("Nothing new to download").status == "unchanged"
    assert _result("").status == "unchanged"

    failed = _result("", TaskExecutionError(identifier="Foo.recipe", message="boom", exit_code=1))
    assert failed.status == "failed"
    assert not failed.ok
