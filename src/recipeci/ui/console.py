"""Console output formatting utilities for recipeci."""

from __future__ import annotations

import sys
from typing import Mapping, Optional

from ..errors import ResolutionError
from ..graph import DependencyGraph
from ..model import WorkflowResult
from ..runner import BatchOutcome


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(self, workflow: str, step_count: int) -> None:
        """Print run start information."""
        print("\nRUN STARTED")
        print(f"Workflow: {workflow}")
        print(f"Steps: {step_count}")
        print()

    def print_batch_started(self, recipe_count: int, max_concurrency: int) -> None:
        print("\nBATCH STARTED")
        print(f"Recipes: {recipe_count}")
        print(f"Workers: {max_concurrency}")
        print()

    def print_dependencies(
        self,
        graphs: Mapping[str, DependencyGraph],
        errors: Mapping[str, ResolutionError],
    ) -> None:
        """Print each recipe's chain with the repository it comes from."""
        for root, graph in graphs.items():
            self.print_header(root)
            for node in graph:
                indent = "  " * node.depth
                repo = node.repo_url or "(unknown repository)"
                print(f"{indent}{node.identifier}  {repo}")
                for w in node.warnings:
                    print(f"{indent}  warning: {w.message}")
            if graph.base_repo_url:
                print(f"base: {graph.base_repo_url}")
        for root, err in errors.items():
            print(f"\n{root}: FAILED ({err.message})", file=sys.stderr)

    def print_repo_list(self, repo_urls: list[str]) -> None:
        self.print_header(f"Repositories ({len(repo_urls)})")
        for url in repo_urls:
            print(f"  {url}")

    def print_batch_results(self, outcome: BatchOutcome) -> None:
        """Print final batch summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for name, result in outcome.results.items():
            print(f"  {name}: {result.status.upper()} ({result.duration:.1f}s)")
            if result.execution_error is not None and self.debug:
                print(f"    {result.execution_error}")
        for name in outcome.not_attempted:
            print(f"  {name}: NOT ATTEMPTED")
        c = outcome.counts()
        print(
            f"\n{c['updated']} updated, {c['unchanged']} unchanged, "
            f"{c['failed']} failed, {c['not_attempted']} not attempted"
        )
        if outcome.error is not None:
            print(f"Batch error: {outcome.error}", file=sys.stderr)

    def print_workflow_result(self, result: WorkflowResult) -> None:
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for name in result.completed_steps:
            print(f"  {name}: SUCCESS")
        for name in result.failed_steps:
            print(f"  {name}: FAILED")
            err = result.errors_by_step.get(name)
            if err is not None:
                first = str(err) if self.debug else err.message.split("\n")[0]
                print(f"    Error: {first}")
        for name in result.skipped_steps:
            print(f"  {name}: SKIPPED")
        print(f"\nStatus: {result.status.value} ({result.elapsed:.1f}s)")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
