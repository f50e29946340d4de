# steps/recipes.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from loguru import logger

from ..errors import CommandFailed, StepError
from ..model import WorkflowStep, strip_recipe_suffix
from ..runner import BatchOutcome, tasks_for
from .context import StepContext, unique_recipes


def _failure_text(e: CommandFailed) -> str:
    return e.output.strip() or str(e)


# ---------------------------------------------------------------------
# Trust info
# ---------------------------------------------------------------------

def check_trust(ctx: StepContext, identifier: str, *, update_on_failure: bool = False) -> Optional[str]:
    """
    Verify a recipe's trust info, optionally updating it once.

    Returns None when the recipe ends up trusted, else the failure text.
    An update only counts once a second verification passes.
    """
    try:
        ctx.tool.verify_trust_info(identifier)
        logger.info(f"[workflow] ✓ trust verified: {identifier}")
        return None
    except CommandFailed as e:
        if not update_on_failure:
            logger.error(f"[workflow] ✗ trust verification failed: {identifier}")
            return _failure_text(e)
        logger.warning(f"[workflow] trust verification failed for {identifier}; updating trust info")

    try:
        ctx.tool.update_trust_info(identifier)
    except CommandFailed as e:
        logger.error(f"[workflow] ✗ could not update trust info for {identifier}")
        return _failure_text(e)

    try:
        ctx.tool.verify_trust_info(identifier)
    except CommandFailed as e:
        logger.error(f"[workflow] ✗ {identifier} still untrusted after update")
        return _failure_text(e)

    logger.info(f"[workflow] trust info updated: {identifier}")
    return None


def verify_step(
    recipes: Sequence[str],
    *,
    update_on_failure: bool = False,
    name: str = "verify-trust",
    continue_on_error: bool = False,
) -> WorkflowStep:
    recipes = list(recipes)

    def _execute(ctx: StepContext) -> None:
        failures: Dict[str, str] = {}
        for ident in unique_recipes(recipes):
            ctx.mark_processed([ident])
            failure = check_trust(ctx, ident, update_on_failure=update_on_failure)
            if failure is not None:
                failures[ident] = failure

        if failures:
            raise StepError(
                step=ctx.step,
                message=f"trust verification failed for {len(failures)} recipe(s)",
                details=failures,
            )

    return WorkflowStep(
        name=name,
        execute=_execute,
        continue_on_error=continue_on_error,
        description="Verify recipe trust info",
        kind="verify-trust",
        recipes=recipes,
    )


def update_trust_step(
    recipes: Sequence[str],
    *,
    name: str = "update-trust",
    continue_on_error: bool = False,
) -> WorkflowStep:
    recipes = list(recipes)

    def _execute(ctx: StepContext) -> None:
        failures: Dict[str, str] = {}
        for ident in unique_recipes(recipes):
            ctx.mark_processed([ident])
            try:
                ctx.tool.update_trust_info(ident)
            except CommandFailed as e:
                failures[ident] = _failure_text(e)
        if failures:
            raise StepError(
                step=ctx.step,
                message=f"could not update trust info for {len(failures)} recipe(s)",
                details=failures,
            )

    return WorkflowStep(
        name=name,
        execute=_execute,
        continue_on_error=continue_on_error,
        description="Update recipe trust info",
        kind="update-trust",
        recipes=recipes,
    )


# ---------------------------------------------------------------------
# Recipe list validation
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class RecipeValidation:
    """Output of a validation step. `invalid` is what fails the step."""
    valid: List[str] = field(default_factory=list)
    invalid: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    trust_failed: List[str] = field(default_factory=list)


def _is_override(identifier: str) -> bool:
    return strip_recipe_suffix(identifier).endswith(".override")


def validate_step(
    recipes: Sequence[str],
    *,
    allow_non_existent: bool = False,
    verify_trust: bool = True,
    update_trust_on_failure: bool = True,
    name: str = "validate",
    continue_on_error: bool = False,
) -> WorkflowStep:
    """
    Check every recipe against the tool's recipe listing.

    Missing recipes are invalid unless allow_non_existent. Overrides also get
    their trust info verified (and updated once, if allowed).
    """
    recipes = list(recipes)

    def _execute(ctx: StepContext) -> None:
        override_dirs = [ctx.config.overrides_dir] if ctx.config.overrides_dir else []
        listed = set()
        for line in ctx.tool.list_recipes(override_dirs):
            listed.add(line)
            listed.add(strip_recipe_suffix(line))

        result = RecipeValidation()
        reasons: Dict[str, str] = {}
        for ident in unique_recipes(recipes):
            ctx.mark_processed([ident])

            if ident not in listed and strip_recipe_suffix(ident) not in listed:
                logger.warning(f"[workflow] recipe not found: {ident}")
                result.missing.append(ident)
                if not allow_non_existent:
                    result.invalid.append(ident)
                    reasons[ident] = "not found"
                continue

            if verify_trust and _is_override(ident):
                failure = check_trust(ctx, ident, update_on_failure=update_trust_on_failure)
                if failure is not None:
                    result.trust_failed.append(ident)
                    result.invalid.append(ident)
                    reasons[ident] = failure
                    continue

            result.valid.append(ident)

        logger.info(
            f"[workflow] validated {len(result.valid)} recipe(s): {len(result.missing)} missing, "
            f"{len(result.trust_failed)} failed trust"
        )
        ctx.record_output(result)

        if result.invalid:
            raise StepError(
                step=ctx.step,
                message=f"{len(result.invalid)} recipe(s) failed validation",
                details=reasons,
            )

    return WorkflowStep(
        name=name,
        execute=_execute,
        continue_on_error=continue_on_error,
        description=f"Validate {len(recipes)} recipe(s)",
        kind="validate",
        recipes=recipes,
    )


# ---------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------

def _run_batch(ctx: StepContext, recipes: Sequence[str], **overrides) -> BatchOutcome:
    tasks = tasks_for(
        unique_recipes(recipes),
        overrides_dir=ctx.config.overrides_dir,
        verbose_level=ctx.config.verbose_level,
    )
    outcome = ctx.engine.run_batch(tasks, ctx.config.batch_options(**overrides))
    ctx.mark_processed(outcome.results.keys())
    ctx.record_output(outcome)

    # individual recipe failures are reported, not fatal
    if outcome.error is not None:
        raise StepError(
            step=ctx.step,
            message=str(outcome.error),
            details=outcome.counts(),
        )
    return outcome


def run_step(
    recipes: Sequence[str],
    *,
    stop_on_first_error: Optional[bool] = None,
    name: str = "run",
    continue_on_error: bool = False,
) -> WorkflowStep:
    """Run recipes one at a time."""
    recipes = list(recipes)

    def _execute(ctx: StepContext) -> None:
        overrides = {"max_concurrency": 1}
        if stop_on_first_error is not None:
            overrides["stop_on_first_error"] = stop_on_first_error
        _run_batch(ctx, recipes, **overrides)

    return WorkflowStep(
        name=name,
        execute=_execute,
        continue_on_error=continue_on_error,
        description="Run recipes sequentially",
        kind="run",
        recipes=recipes,
    )


def parallel_run_step(
    recipes: Sequence[str],
    *,
    max_concurrency: Optional[int] = None,
    stop_on_first_error: Optional[bool] = None,
    name: str = "parallel-run",
    continue_on_error: bool = False,
) -> WorkflowStep:
    recipes = list(recipes)

    def _execute(ctx: StepContext) -> None:
        overrides = {}
        if max_concurrency is not None:
            overrides["max_concurrency"] = max_concurrency
        if stop_on_first_error is not None:
            overrides["stop_on_first_error"] = stop_on_first_error
        _run_batch(ctx, recipes, **overrides)

    return WorkflowStep(
        name=name,
        execute=_execute,
        continue_on_error=continue_on_error,
        description="Run recipes in parallel",
        kind="parallel-run",
        recipes=recipes,
    )
