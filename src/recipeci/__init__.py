from .config import BatchOptions, CleanupOptions, ResolveOptions, WorkflowConfig
from .graph import DependencyGraph, collect_repo_urls
from .model import BatchResult, BatchTask, RecipeNode, WorkflowResult, WorkflowStatus, WorkflowStep
from .orchestrator import WorkflowOrchestrator
from .resolver import DependencyResolver, export_repo_list
from .runner import BatchEngine, BatchOutcome, tasks_for

__all__ = [
    "BatchOptions",
    "CleanupOptions",
    "ResolveOptions",
    "WorkflowConfig",
    "DependencyGraph",
    "collect_repo_urls",
    "BatchResult",
    "BatchTask",
    "RecipeNode",
    "WorkflowResult",
    "WorkflowStatus",
    "WorkflowStep",
    "WorkflowOrchestrator",
    "DependencyResolver",
    "export_repo_list",
    "BatchEngine",
    "BatchOutcome",
    "tasks_for",
]
