# report.py
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import List, Union

from loguru import logger
from pydantic import BaseModel, Field

from .model import WorkflowResult
from .runner import BatchOutcome

REPORT_FORMATS = ("text", "json", "markdown")


# -------------------- Schemas --------------------

class RecipeReport(BaseModel):
    recipe: str
    status: str  # updated|unchanged|failed
    success: bool
    updated: bool
    error: str | None = None
    output: str = ""
    duration: float = 0.0


class BatchReport(BaseModel):
    total: int
    success: int
    failed: int
    updated: int
    unchanged: int
    not_attempted: list[str] = Field(default_factory=list)
    error: str | None = None
    timestamp: datetime
    elapsed: float
    recipes: list[RecipeReport] = Field(default_factory=list)


class StepReport(BaseModel):
    name: str
    status: str  # completed|failed|skipped
    error: str | None = None


class WorkflowReport(BaseModel):
    status: str
    success: bool
    started_at: datetime
    finished_at: datetime
    elapsed: float
    steps: list[StepReport] = Field(default_factory=list)
    processed_recipes: list[str] = Field(default_factory=list)
    batches: dict[str, BatchReport] = Field(default_factory=dict)


# -------------------- Builders --------------------

def batch_report(outcome: BatchOutcome) -> BatchReport:
    recipes: List[RecipeReport] = []
    for name, r in outcome.results.items():
        recipes.append(
            RecipeReport(
                recipe=name,
                status=r.status,
                success=r.ok,
                updated=r.status == "updated",
                error=str(r.execution_error) if r.execution_error is not None else None,
                output=r.output,
                duration=round(r.duration, 3),
            )
        )
    c = outcome.counts()
    return BatchReport(
        total=c["total"],
        success=len(outcome.succeeded),
        failed=c["failed"],
        updated=c["updated"],
        unchanged=c["unchanged"],
        not_attempted=outcome.not_attempted,
        error=str(outcome.error) if outcome.error is not None else None,
        timestamp=outcome.started_at,
        elapsed=round(outcome.elapsed, 3),
        recipes=recipes,
    )


def workflow_report(result: WorkflowResult) -> WorkflowReport:
    steps: List[StepReport] = []
    for name in result.completed_steps:
        steps.append(StepReport(name=name, status="completed"))
    for name in result.failed_steps:
        err = result.errors_by_step.get(name)
        steps.append(StepReport(name=name, status="failed", error=err.message if err is not None else None))
    for name in result.skipped_steps:
        steps.append(StepReport(name=name, status="skipped"))

    batches = {
        name: batch_report(value)
        for name, value in result.outputs.items()
        if isinstance(value, BatchOutcome)
    }
    return WorkflowReport(
        status=result.status.value,
        success=result.success,
        started_at=result.started_at,
        finished_at=result.finished_at,
        elapsed=round(result.elapsed, 3),
        steps=steps,
        processed_recipes=list(result.processed_recipes),
        batches=batches,
    )


# -------------------- Rendering --------------------

def render_batch_report(outcome: BatchOutcome, fmt: str = "text") -> str:
    """
    Render a batch outcome as "text", "json" or "markdown".

    Raises:
        ValueError: unsupported format
    """
    fmt = (fmt or "text").lower()
    if fmt not in REPORT_FORMATS:
        raise ValueError(f"unsupported report format: {fmt}")

    report = batch_report(outcome)
    if fmt == "json":
        return report.model_dump_json(indent=2)

    failed = [r for r in report.recipes if not r.success]
    updated = [r for r in report.recipes if r.updated]

    if fmt == "text":
        lines = [
            "Recipe Run Report",
            "=================",
            "",
            f"Total recipes: {report.total}",
            f"Successful: {report.success}",
            f"Failed: {report.failed}",
            f"Updated: {report.updated}",
            f"No changes: {report.unchanged}",
        ]
        if report.not_attempted:
            lines.append(f"Not attempted: {len(report.not_attempted)}")
        if report.error:
            lines.append(f"Batch error: {report.error}")
        if failed:
            lines += ["", "Failed Recipes:"] + [f"- {r.recipe}: {r.error}" for r in failed]
        if updated:
            lines += ["", "Updated Recipes:"] + [f"- {r.recipe}" for r in updated]
        if report.not_attempted:
            lines += ["", "Not Attempted:"] + [f"- {name}" for name in report.not_attempted]
        return "\n".join(lines) + "\n"

    lines = [
        "# Recipe Run Report",
        "",
        f"- **Total recipes:** {report.total}",
        f"- **Successful:** {report.success}",
        f"- **Failed:** {report.failed}",
        f"- **Updated:** {report.updated}",
        f"- **No changes:** {report.unchanged}",
    ]
    if report.not_attempted:
        lines.append(f"- **Not attempted:** {len(report.not_attempted)}")
    if report.error:
        lines.append(f"- **Batch error:** {report.error}")
    lines.append("")
    if failed:
        lines += ["## Failed Recipes", ""]
        for r in failed:
            lines += [f"### {r.recipe}", "", f"Error: {r.error}", ""]
            if r.output:
                lines += ["```", r.output.rstrip("\n"), "```", ""]
    if updated:
        lines += ["## Updated Recipes", ""]
        for r in updated:
            lines += [f"### {r.recipe}", ""]
            if r.output:
                lines += ["```", r.output.rstrip("\n"), "```", ""]
    return "\n".join(lines)


def workflow_summary(result: WorkflowResult) -> str:
    """One short plain-text paragraph suitable for a chat webhook."""
    head = "Workflow completed successfully" if result.success else f"Workflow {result.status.value}"
    lines = [
        f"{head} in {result.elapsed:.1f}s",
        f"Steps: {len(result.completed_steps)} completed, {len(result.failed_steps)} failed, "
        f"{len(result.skipped_steps)} skipped",
    ]
    if result.processed_recipes:
        lines.append(f"Recipes processed: {len(result.processed_recipes)}")
    for name in result.failed_steps:
        err = result.errors_by_step.get(name)
        lines.append(f"- {name}: {err.message if err is not None else 'failed'}")
    return "\n".join(lines)


# -------------------- Persistence --------------------

def persist_report(path: str | Path, results: Union[BatchOutcome, WorkflowResult]) -> Path:
    """Write a JSON summary of a batch outcome or workflow result."""
    if isinstance(results, BatchOutcome):
        model: BaseModel = batch_report(results)
    elif isinstance(results, WorkflowResult):
        model = workflow_report(results)
    else:
        raise TypeError(f"cannot build a report from {type(results).__name__}")

    out = Path(path).expanduser()
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(model.model_dump_json(indent=2) + "\n", encoding="utf-8")
    logger.info(f"[report] wrote {out}")
    return out
