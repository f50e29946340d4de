# index.py
from __future__ import annotations

import json
import os
import threading
import urllib.error
import urllib.request
from typing import Any, Dict, List, Optional

from loguru import logger

from .cache import IndexCache
from .config import DEFAULT_INDEX_URL
from .errors import MetadataLookupError
from .model import RecipeMetadata, strip_recipe_suffix

GITHUB_BASE = "https://github.com/"


def _fetch_json(url: str, *, token: str | None = None, timeout: float = 30.0) -> Dict[str, Any]:
    headers = {"Accept": "application/json", "User-Agent": "recipeci"}
    if token:
        headers["Authorization"] = f"token {token}"
    req = urllib.request.Request(url, headers=headers, method="GET")
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        body = resp.read().decode("utf-8")
    return json.loads(body)


class RecipeIndexSource:
    """
    MetadataSource backed by the public recipe index.

    The index maps recipe identifiers to {name, shortname, repo, path, parent}.
    A recipe is looked up by exact identifier first, then by shortname, then
    by name. The parsed index is kept in memory for the life of the object
    and on disk (IndexCache) for a day.
    """

    def __init__(
        self,
        index_url: str = DEFAULT_INDEX_URL,
        *,
        cache: Optional[IndexCache] = None,
        timeout: float = 30.0,
    ):
        self.index_url = index_url
        self.cache = cache
        self.timeout = timeout
        self._identifiers: Optional[Dict[str, Dict[str, Any]]] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Index loading
    # ------------------------------------------------------------------

    def identifiers(self, use_auth_token: bool = False) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            if self._identifiers is None:
                self._identifiers = self._load(use_auth_token)
            return self._identifiers

    def _load(self, use_auth_token: bool) -> Dict[str, Dict[str, Any]]:
        if self.cache is not None:
            try:
                entry = self.cache.load(self.index_url)
            except OSError as e:
                logger.warning(f"[index] cache unavailable ({e}); fetching {self.index_url}")
            else:
                if entry.hit:
                    logger.debug(f"[index] using cached index: {entry.reason}")
                    return self._identifiers_section(entry.data)
                logger.debug(f"[index] {entry.reason}; fetching {self.index_url}")

        token = os.environ.get("GITHUB_TOKEN") if use_auth_token else None
        try:
            doc = _fetch_json(self.index_url, token=token, timeout=self.timeout)
        except (urllib.error.URLError, OSError, ValueError) as e:
            raise MetadataLookupError(identifier="*", message=f"cannot fetch recipe index: {e}") from e

        identifiers = self._identifiers_section(doc)
        if self.cache is not None:
            try:
                self.cache.save(self.index_url, doc)
            except OSError as e:
                logger.warning(f"[index] could not cache index: {e}")
        logger.info(f"[index] loaded {len(identifiers)} recipes from index")
        return identifiers

    @staticmethod
    def _identifiers_section(doc: Any) -> Dict[str, Dict[str, Any]]:
        section = doc.get("identifiers") if isinstance(doc, dict) else None
        if not isinstance(section, dict):
            raise MetadataLookupError(identifier="*", message="invalid index format: missing identifiers section")
        return section

    # ------------------------------------------------------------------
    # MetadataSource
    # ------------------------------------------------------------------

    def find(self, identifier: str, use_auth_token: bool = False) -> Optional[str]:
        """Return the index key for `identifier`, or None."""
        index = self.identifiers(use_auth_token)
        bare = strip_recipe_suffix(identifier)

        for key in (identifier, bare):
            if key in index:
                return key

        matches: List[str] = sorted(
            k for k, info in index.items()
            if isinstance(info, dict)
            and (info.get("shortname") == bare or info.get("name") in (identifier, bare))
        )
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(f"[index] {len(matches)} recipes match {identifier}; using {matches[0]}")
        return matches[0]

    def lookup_recipe_metadata(self, identifier: str, use_auth_token: bool = False) -> RecipeMetadata:
        key = self.find(identifier, use_auth_token)
        if key is None:
            raise MetadataLookupError(identifier=identifier, message="not found in recipe index")

        info = self.identifiers(use_auth_token)[key]
        if not isinstance(info, dict):
            raise MetadataLookupError(identifier=identifier, message=f"index entry {key} is malformed")
        repo = (info.get("repo") or "").strip()
        if not repo:
            raise MetadataLookupError(identifier=identifier, message=f"index entry {key} has no repository")

        repo_url = repo if repo.startswith(("https://", "http://")) else GITHUB_BASE + repo
        parent = (info.get("parent") or "").strip() or None
        return RecipeMetadata(repo_url=repo_url, parent_identifier=parent)
