# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .errors import AncestorWarning, StepError, TaskExecutionError

RECIPE_SUFFIX = ".recipe"
_KNOWN_SUFFIXES = (".recipe", ".recipe.yaml", ".recipe.plist")

# Markers the packaging tool prints when a recipe fetched something new.
_UPDATED_MARKERS = ("new version", "Downloaded", "Installing")
_UNCHANGED_MARKER = "Nothing new to download"


def normalize_identifier(identifier: str) -> str:
    """
    Normalize a recipe identifier.

    "  Firefox.install " -> "Firefox.install.recipe"
    "Foo.recipe.yaml"    -> "Foo.recipe.yaml"   (already suffixed)

    Comparison stays case-sensitive.
    """
    name = (identifier or "").strip()
    if not name:
        raise ValueError("recipe identifier must not be empty")
    if name.endswith(_KNOWN_SUFFIXES):
        return name
    return name + RECIPE_SUFFIX


def strip_recipe_suffix(identifier: str) -> str:
    for suffix in sorted(_KNOWN_SUFFIXES, key=len, reverse=True):
        if identifier.endswith(suffix):
            return identifier[: -len(suffix)]
    return identifier


# ----------------------------------------------------------------------
# Dependency resolution
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class RecipeMetadata:
    """What the metadata source knows about one recipe."""
    repo_url: str
    parent_identifier: Optional[str] = None


@dataclass(frozen=True)
class RecipeNode:
    """One recipe in a resolved inheritance chain."""
    identifier: str
    repo_url: str
    depth: int
    parent_identifier: Optional[str] = None
    warnings: Tuple[AncestorWarning, ...] = ()

    @property
    def is_root(self) -> bool:
        return self.depth == 0


# ----------------------------------------------------------------------
# Batch execution
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class BatchTask:
    """A single recipe execution request."""
    identifier: str
    overrides_dir: str | None = None
    verbose_level: int = 0


@dataclass(frozen=True)
class BatchResult:
    """Outcome of one attempted BatchTask."""
    identifier: str
    output: str
    execution_error: TaskExecutionError | None
    started_at: datetime
    duration: float  # seconds

    @property
    def ok(self) -> bool:
        return self.execution_error is None

    @property
    def status(self) -> str:
        """
        "failed" | "updated" | "unchanged"

        Derived from the tool output; anything that is neither obviously new
        nor explicitly unchanged counts as unchanged.
        """
        if self.execution_error is not None:
            return "failed"
        if _UNCHANGED_MARKER in self.output:
            return "unchanged"
        if any(m in self.output for m in _UPDATED_MARKERS):
            return "updated"
        return "unchanged"


# ----------------------------------------------------------------------
# Workflow
# ----------------------------------------------------------------------

class WorkflowStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class WorkflowStep:
    """
    A named unit of orchestrated work.

    `execute` receives the StepContext and raises on failure.
    Steps with continue_on_error=True are advisory: their failure is recorded
    but never stops the run.
    """
    name: str
    execute: Callable[[Any], None]
    continue_on_error: bool = False
    description: str = ""
    kind: str = "custom"
    recipes: List[str] = field(default_factory=list)
    condition: Optional[Callable[[], bool]] = None


@dataclass
class WorkflowState:
    """Run-scoped record, mutated only by the orchestrator's driver."""
    started_at: datetime
    status: WorkflowStatus = WorkflowStatus.IDLE
    completed_steps: List[str] = field(default_factory=list)
    failed_steps: List[str] = field(default_factory=list)
    skipped_steps: List[str] = field(default_factory=list)
    errors_by_step: Dict[str, StepError] = field(default_factory=dict)
    processed_recipes: List[str] = field(default_factory=list)
    outputs: Dict[str, Any] = field(default_factory=dict)

    def mark_processed(self, recipes) -> None:
        for r in recipes:
            if r not in self.processed_recipes:
                self.processed_recipes.append(r)


@dataclass(frozen=True)
class WorkflowResult:
    """Terminal snapshot of a workflow run."""
    status: WorkflowStatus
    completed_steps: Tuple[str, ...]
    failed_steps: Tuple[str, ...]
    skipped_steps: Tuple[str, ...]
    errors_by_step: Mapping[str, StepError]
    processed_recipes: Tuple[str, ...]
    outputs: Mapping[str, Any]
    started_at: datetime
    finished_at: datetime
    elapsed: float  # seconds

    @property
    def success(self) -> bool:
        return self.status is WorkflowStatus.COMPLETED

    @classmethod
    def from_state(cls, state: WorkflowState, finished_at: datetime) -> "WorkflowResult":
        return cls(
            status=state.status,
            completed_steps=tuple(state.completed_steps),
            failed_steps=tuple(state.failed_steps),
            skipped_steps=tuple(state.skipped_steps),
            errors_by_step=MappingProxyType(dict(state.errors_by_step)),
            processed_recipes=tuple(state.processed_recipes),
            outputs=MappingProxyType(dict(state.outputs)),
            started_at=state.started_at,
            finished_at=finished_at,
            elapsed=(finished_at - state.started_at).total_seconds(),
        )
