# steps/context.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from ..config import WorkflowConfig
from ..interfaces import Notifier, RecipeTool
from ..model import normalize_identifier
from ..resolver import DependencyResolver
from ..runner import BatchEngine


@dataclass
class StepContext:
    """
    What a running step can see.

    Built once per execute() by the orchestrator. `step` is the name of the
    step currently running; `record_output` and `mark_processed` write into
    buffers the driver folds into the WorkflowState after each step.
    """
    config: WorkflowConfig
    tool: RecipeTool
    resolver: DependencyResolver
    engine: BatchEngine
    notifier: Notifier
    step: str = ""
    outputs: Dict[str, Any] = field(default_factory=dict)
    touched: List[str] = field(default_factory=list)

    def begin(self, step_name: str) -> None:
        self.step = step_name
        self.touched = []

    def record_output(self, value: Any) -> None:
        self.outputs[self.step] = value

    def mark_processed(self, recipes: Iterable[str]) -> None:
        for r in recipes:
            if r not in self.touched:
                self.touched.append(r)


def unique_recipes(recipes: Iterable[str]) -> List[str]:
    """Normalize and de-duplicate, keeping first-seen order. Invalid names raise ValueError."""
    out: List[str] = []
    for r in recipes:
        ident = normalize_identifier(r)
        if ident not in out:
            out.append(ident)
    return out
