# cli.py
from __future__ import annotations

import sys
from pathlib import Path
from typing import List

import click

from .autopkg import Autopkg
from .cache import IndexCache
from .config import ResolveOptions, WorkflowConfig
from .git import GitRemoteRegistry
from .graph import collect_repo_urls
from .index import RecipeIndexSource
from .loader import load_workflow
from .log import configure_logging
from .report import REPORT_FORMATS, persist_report, render_batch_report
from .resolver import DependencyResolver, export_repo_list
from .runner import BatchEngine, tasks_for
from .steps.context import unique_recipes
from .ui.console import Console, get_console, set_console

DEFAULT_WORKFLOW = "recipeci_workflow.py"


def find_workflow_files() -> list[Path]:
    """Find recipeci_workflow.py and any other *_workflow.py in the current directory."""
    workflow_files = []
    current_dir = Path(".")

    default_workflow = current_dir / DEFAULT_WORKFLOW
    if default_workflow.exists():
        workflow_files.append(default_workflow)

    for path in current_dir.glob("*_workflow.py"):
        if path != default_workflow:
            workflow_files.append(path)

    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix != ".py":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  recipeci run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:", f"  {DEFAULT_WORKFLOW}", "  *_workflow.py"],
            suggestion=f"Create a workflow file:\n  {DEFAULT_WORKFLOW}\n\nOr specify one explicitly:\n  recipeci run --workflow my_workflow.py",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a workflow explicitly:\n  recipeci run --workflow {DEFAULT_WORKFLOW}",
        )
        sys.exit(1)

    return workflow_files[0]


def read_recipe_list(path: str | Path) -> List[str]:
    """Newline-delimited recipe names; blank lines and '#' comments are ignored."""
    names = []
    for line in Path(path).expanduser().read_text(encoding="utf-8").splitlines():
        line = line.split("#", 1)[0].strip()
        if line:
            names.append(line)
    return names


def _collect_recipes(recipes: tuple, recipe_list: str | None) -> List[str]:
    names = list(recipes)
    if recipe_list:
        names.extend(read_recipe_list(recipe_list))
    if not names:
        get_console().print_error(
            "No recipes given",
            "Pass recipe names as arguments or use --recipe-list.",
        )
        sys.exit(1)
    return names


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.option("--log-file", default=None, help="Also write debug logs to this file")
@click.pass_context
def cli(ctx, debug, log_file):
    """recipeci: resolve, verify and run packaging recipes in parallel."""
    console = Console(debug=debug)
    set_console(console)
    configure_logging(debug=debug, log_file=log_file)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option(
    "--workflow",
    default=None,
    help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)",
)
@click.pass_context
def run(ctx, workflow):
    """Run a recipeci workflow file."""
    console = get_console()
    workflow_path = discover_workflow(workflow)

    try:
        orchestrator = load_workflow(workflow_path)
        console.print_run_started(workflow=workflow_path.name, step_count=len(orchestrator.steps))

        result = orchestrator.execute()
        console.print_workflow_result(result)

        if not result.success:
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.argument("recipes", nargs=-1)
@click.option("--recipe-list", default=None, type=click.Path(exists=True, dir_okay=False), help="File with one recipe per line")
@click.option("--max-depth", default=5, show_default=True, type=int, help="How many parents to follow")
@click.option("--parents/--no-parents", default=True, show_default=True, help="Follow parent recipes")
@click.option("--verify/--no-verify", default=True, show_default=True, help="Check each repository with git ls-remote")
@click.option("--base/--no-base", default=True, show_default=True, help="Include the base autopkg/recipes repository")
@click.option("--use-token", is_flag=True, default=False, help="Authenticate with GITHUB_TOKEN")
@click.option("--export", "export_path", default=None, help="Append unique repository URLs to this file")
@click.option("--add", "add_repos", is_flag=True, default=False, help="Register the repositories with autopkg")
@click.option("--prefs", default=None, help="autopkg preferences file")
@click.option("--cache-dir", default=None, help="Recipe index cache directory")
@click.pass_context
def deps(ctx, recipes, recipe_list, max_depth, parents, verify, base, use_token, export_path, add_repos, prefs, cache_dir):
    """Resolve the repositories a set of recipes depend on."""
    console = get_console()
    names = _collect_recipes(recipes, recipe_list)
    cfg = WorkflowConfig.from_env()

    try:
        options = ResolveOptions(
            include_parents=parents,
            max_depth=max_depth,
            verify_repo_exists=verify,
            include_base=base,
            use_auth_token=use_token,
        )
        source = RecipeIndexSource(cache=IndexCache(cache_dir or cfg.cache_dir))
        resolver = DependencyResolver(source, GitRemoteRegistry(use_auth_token=use_token))
        graphs, errors = resolver.resolve_many(names, options, max_workers=cfg.max_concurrency)

        console.print_dependencies(graphs, errors)
        urls = collect_repo_urls(graphs)
        console.print_repo_list(urls)

        if export_path and urls:
            export_repo_list(urls, export_path)
        if add_repos and urls:
            Autopkg(prefs_path=prefs or cfg.prefs_path).add_repos(urls)

        if errors:
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.argument("recipes", nargs=-1)
@click.option("--recipe-list", default=None, type=click.Path(exists=True, dir_okay=False), help="File with one recipe per line")
@click.option("--workers", default=None, type=int, help="Number of recipes run at once")
@click.option("--timeout", default=None, type=float, help="Whole-batch timeout in seconds")
@click.option("--fail-fast/--no-fail-fast", default=False, show_default=True, help="Stop starting recipes after the first failure")
@click.option("--prefs", default=None, help="autopkg preferences file")
@click.option("--override-dir", default=None, help="autopkg override directory")
@click.option("-v", "--verbose", count=True, help="Pass -v to autopkg (repeatable)")
@click.option("--report", "report_path", default=None, help="Write a JSON report to this file")
@click.option("--format", "fmt", default="text", show_default=True, type=click.Choice(REPORT_FORMATS), help="Report printed to stdout")
@click.pass_context
def batch(ctx, recipes, recipe_list, workers, timeout, fail_fast, prefs, override_dir, verbose, report_path, fmt):
    """Run recipes in parallel."""
    console = get_console()
    names = _collect_recipes(recipes, recipe_list)
    cfg = WorkflowConfig.from_env()

    try:
        options = cfg.batch_options(
            max_concurrency=workers or cfg.max_concurrency,
            timeout=timeout if timeout is not None else cfg.timeout,
            stop_on_first_error=fail_fast,
            verbose_level=verbose or cfg.verbose_level,
        )
        unique = unique_recipes(names)
        tasks = tasks_for(unique, overrides_dir=override_dir or cfg.overrides_dir, verbose_level=options.verbose_level)

        console.print_batch_started(len(tasks), options.max_concurrency)
        engine = BatchEngine(Autopkg(prefs_path=prefs or cfg.prefs_path))
        outcome = engine.run_batch(tasks, options)

        console.print_batch_results(outcome)
        if fmt != "text" or ctx.obj.get("debug", False):
            console.print_info(render_batch_report(outcome, fmt))

        report_file = report_path or cfg.report_file
        if report_file:
            persist_report(report_file, outcome)

        if outcome.error is not None or outcome.failed:
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
