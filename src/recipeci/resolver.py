# resolver.py
from __future__ import annotations

from collections import deque
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Deque, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from .config import BASE_REPO_URL, ResolveOptions
from .errors import AncestorWarning, MetadataLookupError, ResolutionError
from .graph import DependencyGraph
from .interfaces import MetadataSource, RepositoryRegistry
from .model import RecipeNode, normalize_identifier


def _lookup_message(e: Exception) -> str:
    if isinstance(e, MetadataLookupError):
        return e.message
    return f"{type(e).__name__}: {e}" if str(e) else type(e).__name__


class DependencyResolver:
    """
    Walks a recipe's parent chain and records the repository of each recipe.

    Policy: the root is mandatory, ancestors are best effort. A root lookup
    failure raises ResolutionError; an ancestor failure is stored as an
    AncestorWarning on that ancestor's node and ends the walk there.
    """

    def __init__(
        self,
        metadata: MetadataSource,
        registry: Optional[RepositoryRegistry] = None,
        *,
        base_repo_url: str = BASE_REPO_URL,
    ):
        self.metadata = metadata
        self.registry = registry
        self.base_repo_url = base_repo_url

    # ------------------------------------------------------------------
    # Single root
    # ------------------------------------------------------------------

    def resolve(self, root_identifier: str, options: ResolveOptions | None = None) -> DependencyGraph:
        options = options or ResolveOptions()
        if options.verify_repo_exists and self.registry is None:
            raise ValueError("verify_repo_exists=True needs a repository registry")

        try:
            root = normalize_identifier(root_identifier)
        except ValueError as e:
            raise ResolutionError(identifier=repr(root_identifier), message=str(e)) from e

        logger.debug(f"[resolve] {root} (max_depth={options.max_depth})")
        graph = DependencyGraph(root, max_depth=options.max_depth)

        # (identifier, depth); enqueued ids are tracked so a diamond never queues twice
        queue: Deque[Tuple[str, int]] = deque([(root, 0)])
        seen = {root}

        while queue:
            identifier, depth = queue.popleft()
            warnings: List[AncestorWarning] = []

            try:
                meta = self.metadata.lookup_recipe_metadata(identifier, options.use_auth_token)
            except Exception as e:
                message = _lookup_message(e)
                if depth == 0:
                    raise ResolutionError(identifier=identifier, message=message) from e
                logger.warning(f"[resolve] ancestor lookup failed for {identifier}: {message}")
                warnings.append(AncestorWarning(identifier, "lookup", message))
                graph.add(RecipeNode(identifier=identifier, repo_url="", depth=depth, warnings=tuple(warnings)))
                continue

            parent = None
            if meta.parent_identifier and meta.parent_identifier.strip():
                parent = normalize_identifier(meta.parent_identifier)

            if options.verify_repo_exists and meta.repo_url:
                if not self.registry.repository_exists(meta.repo_url):
                    logger.warning(f"[resolve] repository not verified for {identifier}: {meta.repo_url}")
                    warnings.append(
                        AncestorWarning(identifier, "unverified", f"repository {meta.repo_url} not found")
                    )

            graph.add(
                RecipeNode(
                    identifier=identifier,
                    repo_url=meta.repo_url,
                    depth=depth,
                    parent_identifier=parent,
                    warnings=tuple(warnings),
                )
            )

            if not options.include_parents or parent is None:
                continue
            if depth + 1 > options.max_depth:
                logger.debug(f"[resolve] max depth reached at {identifier}; not following {parent}")
                continue
            if parent in seen:
                logger.debug(f"[resolve] {parent} already in chain of {root}; skipping")
                continue

            seen.add(parent)
            queue.append((parent, depth + 1))

        if options.include_base:
            graph.base_repo_url = self.base_repo_url

        logger.debug(f"[resolve] {root}: {len(graph)} recipe(s), repos={graph.repo_urls()}")
        return graph

    # ------------------------------------------------------------------
    # Many roots
    # ------------------------------------------------------------------

    def resolve_many(
        self,
        identifiers: Iterable[str],
        options: ResolveOptions | None = None,
        *,
        max_workers: int = 4,
    ) -> Tuple[Dict[str, DependencyGraph], Dict[str, ResolutionError]]:
        """
        Resolve every root independently.

        Returns (graphs, errors), both keyed by normalized identifier. A
        failing root lands in `errors` and never affects the others.
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        options = options or ResolveOptions()
        if options.verify_repo_exists and self.registry is None:
            raise ValueError("verify_repo_exists=True needs a repository registry")

        roots: List[str] = []
        errors: Dict[str, ResolutionError] = {}
        for raw in identifiers:
            try:
                ident = normalize_identifier(raw)
            except ValueError as e:
                errors[repr(raw)] = ResolutionError(identifier=repr(raw), message=str(e))
                continue
            if ident not in roots:
                roots.append(ident)

        graphs: Dict[str, DependencyGraph] = {}
        if not roots:
            return graphs, errors

        with ThreadPoolExecutor(max_workers=min(max_workers, len(roots))) as pool:
            futures = {pool.submit(self.resolve, r, options): r for r in roots}
            for fut in as_completed(futures):
                root = futures[fut]
                try:
                    graphs[root] = fut.result()
                except ResolutionError as e:
                    logger.error(f"[resolve] {e}")
                    errors[root] = e
                except Exception as e:
                    err = ResolutionError(identifier=root, message=_lookup_message(e))
                    logger.error(f"[resolve] {err}")
                    errors[root] = err

        # present results in request order, not completion order
        graphs = {r: graphs[r] for r in roots if r in graphs}
        return graphs, errors


def export_repo_list(repo_urls: Iterable[str], path: str | Path) -> int:
    """
    Append repository URLs that are not already listed to a newline-delimited file.

    Returns the number of URLs added.
    """
    list_path = Path(path).expanduser()
    existing: List[str] = []
    needs_newline = False
    if list_path.exists():
        text = list_path.read_text()
        existing = [line.strip() for line in text.splitlines() if line.strip()]
        needs_newline = bool(text) and not text.endswith("\n")
    else:
        list_path.parent.mkdir(parents=True, exist_ok=True)

    new = []
    for url in repo_urls:
        if url and url not in existing and url not in new:
            new.append(url)

    if new:
        with list_path.open("a") as f:
            if needs_newline:
                f.write("\n")
            for url in new:
                f.write(url + "\n")

    logger.info(f"[resolve] added {len(new)} new repo(s) to {list_path}")
    return len(new)
