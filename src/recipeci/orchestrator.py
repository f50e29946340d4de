# orchestrator.py
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence

from loguru import logger

from .autopkg import Autopkg
from .cache import IndexCache
from .config import CleanupOptions, ResolveOptions, WorkflowConfig
from .errors import StepError, WorkflowStateError, WorkflowValidationError
from .git import GitRemoteRegistry
from .index import RecipeIndexSource
from .interfaces import MetadataSource, Notifier, RecipeTool, RepositoryRegistry
from .model import WorkflowResult, WorkflowState, WorkflowStatus, WorkflowStep
from .notify import WebhookNotifier
from .report import persist_report, workflow_summary
from .resolver import DependencyResolver
from .runner import BatchEngine
from .steps import (
    StepContext,
    cleanup_step,
    install_step,
    parallel_run_step,
    recipe_repo_analysis_step,
    repo_add_step,
    repo_update_step,
    root_check_step,
    run_step,
    tool_check_step,
    update_trust_step,
    validate_step,
    verify_step,
)

# steps that make no sense without recipes
RECIPE_KINDS = {"analyze-deps", "validate", "verify-trust", "update-trust", "run", "parallel-run"}


class WorkflowOrchestrator:
    """
    Builder for an ordered list of workflow steps plus a sequential driver.

        result = (
            WorkflowOrchestrator()
            .with_concurrency(4)
            .add_tool_check_step()
            .add_recipe_repo_analysis_step(recipes, add_repos=True)
            .add_parallel_run_step(recipes)
            .add_cleanup_step(continue_on_error=True)
            .execute()
        )

    An orchestrator runs once: IDLE -> RUNNING -> COMPLETED | ABORTED.
    Collaborators not passed in are created from the config when execute()
    starts (autopkg CLI, recipe index, git ls-remote, webhook).
    """

    def __init__(
        self,
        config: Optional[WorkflowConfig] = None,
        *,
        tool: Optional[RecipeTool] = None,
        metadata: Optional[MetadataSource] = None,
        registry: Optional[RepositoryRegistry] = None,
        notifier: Optional[Notifier] = None,
    ):
        # builder methods mutate this copy, never the caller's config
        self.config = replace(config) if config is not None else WorkflowConfig()
        self.tool = tool
        self.metadata = metadata
        self.registry = registry
        self.notifier = notifier
        self._steps: List[WorkflowStep] = []
        self._status = WorkflowStatus.IDLE

    @property
    def status(self) -> WorkflowStatus:
        return self._status

    @property
    def steps(self) -> List[WorkflowStep]:
        return list(self._steps)

    def _check_idle(self) -> None:
        if self._status is not WorkflowStatus.IDLE:
            raise WorkflowStateError(f"workflow is {self._status.value}; it can no longer be changed")

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def with_prefs_path(self, path: str):
        self._check_idle()
        self.config.prefs_path = path
        return self

    def with_concurrency(self, n: int):
        self._check_idle()
        if n < 1:
            raise ValueError(f"concurrency must be >= 1, got {n}")
        self.config.max_concurrency = n
        return self

    def with_timeout(self, seconds: Optional[float]):
        self._check_idle()
        if seconds is not None and seconds <= 0:
            raise ValueError(f"timeout must be positive, got {seconds}")
        self.config.timeout = seconds
        return self

    def with_stop_on_first_error(self, enabled: bool = True):
        self._check_idle()
        self.config.stop_on_first_error = enabled
        return self

    def with_report_file(self, path: str):
        self._check_idle()
        self.config.report_file = path
        return self

    def with_webhook_notifications(self, url: str, *, notify_on_error: bool = True, notify_on_completion: bool = True):
        self._check_idle()
        self.config.webhook_url = url
        self.config.notify_on_error = notify_on_error
        self.config.notify_on_completion = notify_on_completion
        return self

    def with_verbose_level(self, level: int):
        self._check_idle()
        self.config.verbose_level = level
        return self

    def with_overrides_dir(self, path: str):
        self._check_idle()
        self.config.overrides_dir = path
        return self

    def with_auth_token(self, enabled: bool = True):
        """Use GITHUB_TOKEN when the default registry checks repositories."""
        self._check_idle()
        self.config.use_auth_token = enabled
        return self

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _append(self, step: WorkflowStep):
        self._check_idle()
        # names key errors_by_step, so a repeated name gets a suffix
        taken = {s.name for s in self._steps}
        if step.name in taken:
            n = 2
            while f"{step.name}-{n}" in taken:
                n += 1
            step.name = f"{step.name}-{n}"
        self._steps.append(step)
        return self

    def add_step(
        self,
        name: str,
        fn: Callable[[StepContext], Any],
        *,
        continue_on_error: bool = False,
        description: str = "",
    ):
        return self._append(
            WorkflowStep(name=name, execute=fn, continue_on_error=continue_on_error, description=description)
        )

    def add_conditional_step(
        self,
        name: str,
        condition: Callable[[], bool],
        fn: Callable[[StepContext], Any],
        *,
        continue_on_error: bool = False,
        description: str = "",
    ):
        return self._append(
            WorkflowStep(
                name=name,
                execute=fn,
                continue_on_error=continue_on_error,
                description=description,
                condition=condition,
            )
        )

    def add_root_check_step(self, **kwargs):
        return self._append(root_check_step(**kwargs))

    def add_tool_check_step(self, tool: str = "autopkg", **kwargs):
        return self._append(tool_check_step(tool, **kwargs))

    def add_install_step(self, installer: Optional[Callable[[StepContext], str]] = None, **kwargs):
        return self._append(install_step(installer, **kwargs))

    def add_repo_add_step(self, repos: Sequence[str], **kwargs):
        return self._append(repo_add_step(repos, **kwargs))

    def add_repo_update_step(self, repos: Optional[Sequence[str]] = None, **kwargs):
        return self._append(repo_update_step(repos, **kwargs))

    def add_recipe_repo_analysis_step(
        self,
        recipes: Sequence[str],
        *,
        options: Optional[ResolveOptions] = None,
        add_repos: bool = False,
        repo_list_path: Optional[str] = None,
        **kwargs,
    ):
        step = recipe_repo_analysis_step(
            recipes,
            options=options,
            add_repos=add_repos,
            repo_list_path=repo_list_path,
            **kwargs,
        )
        self._append(step)
        if options is not None and options.use_auth_token:
            self.config.use_auth_token = True
        return self

    def add_validate_step(
        self,
        recipes: Sequence[str],
        *,
        allow_non_existent: bool = False,
        verify_trust: bool = True,
        update_trust_on_failure: bool = True,
        **kwargs,
    ):
        return self._append(
            validate_step(
                recipes,
                allow_non_existent=allow_non_existent,
                verify_trust=verify_trust,
                update_trust_on_failure=update_trust_on_failure,
                **kwargs,
            )
        )

    def add_verify_step(self, recipes: Sequence[str], *, update_on_failure: bool = False, **kwargs):
        return self._append(verify_step(recipes, update_on_failure=update_on_failure, **kwargs))

    def add_update_trust_step(self, recipes: Sequence[str], **kwargs):
        return self._append(update_trust_step(recipes, **kwargs))

    def add_run_step(self, recipes: Sequence[str], **kwargs):
        return self._append(run_step(recipes, **kwargs))

    def add_parallel_run_step(self, recipes: Sequence[str], **kwargs):
        return self._append(parallel_run_step(recipes, **kwargs))

    def add_cleanup_step(self, options: Optional[CleanupOptions] = None, **kwargs):
        return self._append(cleanup_step(options, **kwargs))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> None:
        if not self._steps:
            raise WorkflowValidationError("workflow has no steps")

        problems = []
        for step in self._steps:
            if step.kind in RECIPE_KINDS:
                if not step.recipes:
                    problems.append(f"step '{step.name}' has no recipes")
                elif any(not (r or "").strip() for r in step.recipes):
                    problems.append(f"step '{step.name}' has an empty recipe name")
        if self.config.max_concurrency < 1:
            problems.append(f"max_concurrency must be >= 1, got {self.config.max_concurrency}")
        if (self.config.notify_on_error or self.config.notify_on_completion) and not self.config.webhook_url:
            problems.append("notifications requested without a webhook URL")

        if problems:
            raise WorkflowValidationError("; ".join(problems))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _context(self) -> StepContext:
        cfg = self.config
        tool = self.tool or Autopkg(prefs_path=cfg.prefs_path)
        metadata = self.metadata or RecipeIndexSource(cache=IndexCache(cfg.cache_dir))
        registry = self.registry or GitRemoteRegistry(use_auth_token=cfg.use_auth_token)
        return StepContext(
            config=cfg,
            tool=tool,
            resolver=DependencyResolver(metadata, registry),
            engine=BatchEngine(tool),
            notifier=self.notifier or WebhookNotifier(),
        )

    def _notify(self, ctx: StepContext, text: str) -> None:
        try:
            ctx.notifier.notify_completion(self.config.webhook_url, text)
        except Exception as e:
            logger.warning(f"[workflow] notification failed: {e}")

    def execute(self) -> WorkflowResult:
        if self._status is not WorkflowStatus.IDLE:
            raise WorkflowStateError(f"workflow already {self._status.value}; build a new orchestrator to run again")
        self.validate()

        state = WorkflowState(started_at=datetime.now(timezone.utc))
        self._status = state.status = WorkflowStatus.RUNNING
        ctx = self._context()

        logger.info(f"[workflow] running {len(self._steps)} step(s)")

        for i, step in enumerate(self._steps, start=1):
            ctx.begin(step.name)
            label = f"[workflow] ({i}/{len(self._steps)}) {step.name}"

            try:
                if step.condition is not None and not step.condition():
                    logger.info(f"{label}: skipped (condition not met)")
                    state.skipped_steps.append(step.name)
                    continue

                logger.info(f"{label}: started")
                step.execute(ctx)
            except Exception as e:
                err = e if isinstance(e, StepError) else StepError(
                    step=step.name,
                    message=str(e) or type(e).__name__,
                    details={"error_type": type(e).__name__},
                )
                state.failed_steps.append(step.name)
                state.errors_by_step[step.name] = err
                logger.error(f"{label}: failed: {err.message}")

                if self.config.notify_on_error:
                    self._notify(ctx, f"Workflow step '{step.name}' failed: {err.message}")

                if not step.continue_on_error:
                    state.status = WorkflowStatus.ABORTED
                    logger.error(f"[workflow] aborting: mandatory step '{step.name}' failed")
                    break
                logger.warning(f"[workflow] continuing: '{step.name}' is advisory")
            else:
                state.completed_steps.append(step.name)
                logger.info(f"{label}: completed")
            finally:
                state.mark_processed(ctx.touched)
                if step.name in ctx.outputs:
                    state.outputs[step.name] = ctx.outputs[step.name]

        if state.status is WorkflowStatus.RUNNING:
            state.status = WorkflowStatus.COMPLETED
        self._status = state.status

        result = WorkflowResult.from_state(state, datetime.now(timezone.utc))
        logger.info(
            f"[workflow] {result.status.value} in {result.elapsed:.1f}s: "
            f"{len(result.completed_steps)} completed, {len(result.failed_steps)} failed, "
            f"{len(result.skipped_steps)} skipped"
        )

        if self.config.report_file:
            try:
                persist_report(self.config.report_file, result)
            except Exception as e:
                logger.warning(f"[workflow] could not write report {self.config.report_file}: {e}")

        if self.config.notify_on_completion:
            self._notify(ctx, workflow_summary(result))

        return result

    def execute_with_hooks(
        self,
        pre_exec: Optional[Callable[[], None]] = None,
        post_exec: Optional[Callable[[Optional[WorkflowResult], Optional[BaseException]], None]] = None,
    ) -> WorkflowResult:
        """
        execute() wrapped in optional hooks.

        post_exec receives (result, None) on a normal return and (None, exc)
        when execute() raises; the exception is re-raised afterwards.
        """
        if pre_exec is not None:
            pre_exec()
        try:
            result = self.execute()
        except Exception as e:
            if post_exec is not None:
                post_exec(None, e)
            raise
        if post_exec is not None:
            post_exec(result, None)
        return result
