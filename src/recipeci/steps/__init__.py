# steps/__init__.py
from .cleanup import cleanup_cache, cleanup_step
from .context import StepContext
from .environment import TOOL_HINTS, install_step, root_check_step, tool_check_step
from .recipes import (
    RecipeValidation,
    check_trust,
    parallel_run_step,
    run_step,
    update_trust_step,
    validate_step,
    verify_step,
)
from .repos import RepoAnalysis, recipe_repo_analysis_step, repo_add_step, repo_update_step

__all__ = [
    "StepContext",
    "TOOL_HINTS",
    "RepoAnalysis",
    "RecipeValidation",
    "root_check_step",
    "tool_check_step",
    "install_step",
    "repo_add_step",
    "repo_update_step",
    "recipe_repo_analysis_step",
    "verify_step",
    "validate_step",
    "check_trust",
    "update_trust_step",
    "run_step",
    "parallel_run_step",
    "cleanup_cache",
    "cleanup_step",
]
