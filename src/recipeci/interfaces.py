# interfaces.py
# Collaborators the core talks to. Default implementations live in
# autopkg.py, git.py, index.py and notify.py; tests pass fakes.
from __future__ import annotations

from typing import Iterable, List, Optional, Protocol, runtime_checkable

from .model import RecipeMetadata


@runtime_checkable
class RecipeExecutor(Protocol):
    def execute_recipe(self, identifier: str, overrides_dir: Optional[str], verbose_level: int) -> str:
        """Run one recipe and return its combined output. Raise on failure."""
        ...


@runtime_checkable
class MetadataSource(Protocol):
    def lookup_recipe_metadata(self, identifier: str, use_auth_token: bool) -> RecipeMetadata:
        """Return the recipe's repository and declared parent. Raise MetadataLookupError."""
        ...


@runtime_checkable
class RepositoryRegistry(Protocol):
    def repository_exists(self, repo_url: str) -> bool:
        ...


@runtime_checkable
class Notifier(Protocol):
    def notify_completion(self, webhook_url: str, summary: str) -> None:
        ...


class RecipeTool(RecipeExecutor, RepositoryRegistry, Protocol):
    """Everything the built-in workflow steps need from the packaging tool."""

    def version(self) -> str:
        ...

    def add_repos(self, repo_urls: Iterable[str]) -> str:
        ...

    def update_repos(self, repos: Iterable[str]) -> str:
        ...

    def verify_trust_info(self, identifier: str) -> str:
        ...

    def update_trust_info(self, identifier: str) -> str:
        ...

    def list_repos(self) -> List[str]:
        ...

    def list_recipes(self, override_dirs: Iterable[str] = ()) -> List[str]:
        ...
