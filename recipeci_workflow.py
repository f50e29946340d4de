# recipeci_workflow.py
# Nightly run: check the environment, pull in every repo our recipes need,
# validate the list, verify trust, then run everything in parallel.
from __future__ import annotations

import os

from recipeci import CleanupOptions, WorkflowConfig, WorkflowOrchestrator
from recipeci.cli import read_recipe_list

RECIPES = read_recipe_list("recipes.txt") if os.path.exists("recipes.txt") else [
    "Firefox.pkg",
    "GoogleChrome.pkg",
    "Zoom.pkg",
]


def workflow():
    cfg = WorkflowConfig.from_env()
    return (
        WorkflowOrchestrator(cfg)
        .with_concurrency(4)
        .with_timeout(60 * 60)
        .with_report_file(".recipeci/report.json")
        .add_root_check_step()
        .add_tool_check_step("autopkg")
        .add_recipe_repo_analysis_step(RECIPES, add_repos=True, repo_list_path=".recipeci/repo_list.txt")
        .add_repo_update_step(continue_on_error=True)
        .add_validate_step(RECIPES, allow_non_existent=False)
        .add_verify_step(RECIPES, update_on_failure=True, continue_on_error=True)
        .add_parallel_run_step(RECIPES)
        .add_cleanup_step(CleanupOptions(keep_days=7), continue_on_error=True)
    )
