# steps/repos.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from loguru import logger

from ..config import ResolveOptions
from ..errors import ResolutionError, StepError
from ..graph import DependencyGraph, collect_repo_urls
from ..model import WorkflowStep
from ..resolver import export_repo_list
from .context import StepContext, unique_recipes


@dataclass(frozen=True)
class RepoAnalysis:
    """Output of a recipe repository analysis step."""
    graphs: Dict[str, DependencyGraph]
    errors: Dict[str, ResolutionError]
    repo_urls: List[str]
    added: int = 0  # entries appended to the repo list file


def repo_add_step(
    repos: Sequence[str],
    *,
    name: str = "repo-add",
    continue_on_error: bool = False,
) -> WorkflowStep:
    repos = list(repos)

    def _execute(ctx: StepContext) -> None:
        logger.info(f"[workflow] adding {len(repos)} repo(s)")
        ctx.tool.add_repos(repos)
        ctx.record_output(list(repos))

    return WorkflowStep(
        name=name,
        execute=_execute,
        continue_on_error=continue_on_error,
        description="Register recipe repositories",
        kind="repo-add",
    )


def repo_update_step(
    repos: Optional[Sequence[str]] = None,
    *,
    name: str = "repo-update",
    continue_on_error: bool = False,
) -> WorkflowStep:
    repos = list(repos or [])

    def _execute(ctx: StepContext) -> None:
        logger.info(f"[workflow] updating {', '.join(repos) if repos else 'all repos'}")
        ctx.tool.update_repos(repos)

    return WorkflowStep(
        name=name,
        execute=_execute,
        continue_on_error=continue_on_error,
        description="Update registered recipe repositories",
        kind="repo-update",
    )


def recipe_repo_analysis_step(
    recipes: Sequence[str],
    *,
    options: Optional[ResolveOptions] = None,
    add_repos: bool = False,
    repo_list_path: Optional[str] = None,
    max_workers: Optional[int] = None,
    name: str = "analyze-deps",
    continue_on_error: bool = False,
) -> WorkflowStep:
    """
    Resolve every recipe's parent chain and collect the repositories it needs.

    Roots that cannot be resolved fail the step, but only after the roots
    that did resolve have been exported and added. max_workers defaults to
    the workflow's max_concurrency at run time.
    """
    recipes = list(recipes)

    def _execute(ctx: StepContext) -> None:
        roots = unique_recipes(recipes)
        workers = max_workers or ctx.config.max_concurrency
        graphs, errors = ctx.resolver.resolve_many(roots, options, max_workers=workers)
        ctx.mark_processed(roots)

        for g in graphs.values():
            for w in g.warnings():
                logger.warning(f"[workflow] {g.root}: {w}")

        urls = collect_repo_urls(graphs)
        logger.info(f"[workflow] {len(graphs)} recipe(s) need {len(urls)} repo(s)")

        added = 0
        if repo_list_path and urls:
            added = export_repo_list(urls, repo_list_path)
        if add_repos and urls:
            ctx.tool.add_repos(urls)

        ctx.record_output(RepoAnalysis(graphs=graphs, errors=errors, repo_urls=urls, added=added))

        if errors:
            raise StepError(
                step=ctx.step,
                message=f"{len(errors)} recipe(s) could not be resolved",
                details={k: e.message for k, e in errors.items()},
            )

    return WorkflowStep(
        name=name,
        execute=_execute,
        continue_on_error=continue_on_error,
        description="Discover the repositories each recipe depends on",
        kind="analyze-deps",
        recipes=recipes,
    )
