# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


class RecipeCIError(Exception):
    """Base class for every error raised by recipeci."""


# ----------------------------------------------------------------------
# Resolution
# ----------------------------------------------------------------------

@dataclass(eq=False)
class ResolutionError(RecipeCIError):
    """The root recipe of a resolution could not be looked up."""
    identifier: str
    message: str

    def __str__(self) -> str:
        return f"cannot resolve {self.identifier}: {self.message}"


@dataclass(eq=False)
class MetadataLookupError(RecipeCIError):
    identifier: str
    message: str

    def __str__(self) -> str:
        return f"metadata lookup failed for {self.identifier}: {self.message}"


@dataclass(frozen=True)
class AncestorWarning:
    """
    A non-fatal problem found on one node of a dependency graph.

    Recorded on the node, never raised:
      - kind="lookup": the ancestor's metadata could not be fetched
      - kind="unverified": the node's repository is not known to the registry
    """
    identifier: str
    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.identifier} ({self.kind}): {self.message}"


# ----------------------------------------------------------------------
# Batch execution
# ----------------------------------------------------------------------

@dataclass(eq=False)
class TaskExecutionError(RecipeCIError):
    """One recipe's run failed. Lives inside its BatchResult."""
    identifier: str
    message: str
    exit_code: Optional[int] = None

    def __str__(self) -> str:
        if self.exit_code is not None:
            return f"{self.identifier} failed (exit={self.exit_code}): {self.message}"
        return f"{self.identifier} failed: {self.message}"


@dataclass(eq=False)
class EngineError(RecipeCIError):
    """The batch as a whole faulted (could not start, stopped or timed out)."""
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class BatchStoppedError(EngineError):
    identifier: str = ""

    def __str__(self) -> str:
        return f"batch stopped after {self.identifier} failed: {self.message}"


@dataclass(eq=False)
class BatchTimeoutError(EngineError):
    timeout: float = 0.0

    def __str__(self) -> str:
        return f"batch timed out after {self.timeout:g}s: {self.message}"


# ----------------------------------------------------------------------
# External tools
# ----------------------------------------------------------------------

@dataclass(eq=False)
class CommandFailed(RecipeCIError):
    cmd: str
    exit_code: int
    output: str = ""

    def __str__(self) -> str:
        return f"command failed (exit={self.exit_code}): {self.cmd}"


@dataclass(eq=False)
class ToolUnavailable(RecipeCIError):
    tool: str
    hint: str

    def __str__(self) -> str:
        return f"{self.tool} is not available. Hint: {self.hint}"


@dataclass(eq=False)
class NotificationError(RecipeCIError):
    url: str
    message: str

    def __str__(self) -> str:
        return f"notification to {self.url} failed: {self.message}"


# ----------------------------------------------------------------------
# Workflow
# ----------------------------------------------------------------------

@dataclass(eq=False)
class StepError(RecipeCIError):
    """
    A workflow step failed.

    Whether this aborts the run depends on the step's continue_on_error flag.
    """
    step: str
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"step '{self.step}' failed: {self.message}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class WorkflowValidationError(RecipeCIError):
    pass


class WorkflowStateError(RecipeCIError):
    pass
