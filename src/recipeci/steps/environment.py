# steps/environment.py
from __future__ import annotations

import os
import shutil
import subprocess
from typing import Callable, Dict, List, Optional

from loguru import logger

from ..errors import StepError, ToolUnavailable
from ..model import WorkflowStep
from .context import StepContext

TOOL_HINTS = {
    "autopkg": "Install AutoPkg from https://github.com/autopkg/autopkg/releases or fix PATH.",
    "git": "Install git (e.g., xcode-select --install) or fix PATH.",
    "python3": "Install Python 3 or fix PATH (python3).",
}

# Tools that do not answer --version
VERSION_ARGS: Dict[str, List[str]] = {
    "autopkg": ["version"],
}


# ---------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------

def check_not_root(step: str = "root-check") -> None:
    geteuid = getattr(os, "geteuid", None)
    if geteuid is not None and geteuid() == 0:
        raise StepError(
            step=step,
            message="running as root",
            details={"hint": "Recipes must run as a regular user. Re-run without sudo."},
        )


def check_tool_available(tool: str) -> str:
    """Return the tool's version string, or raise ToolUnavailable with a hint."""
    hint = TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")
    if shutil.which(tool) is None:
        raise ToolUnavailable(tool=tool, hint=hint)

    args = VERSION_ARGS.get(tool, ["--version"])
    try:
        proc = subprocess.run([tool, *args], capture_output=True, text=True, check=True)
    except (subprocess.CalledProcessError, FileNotFoundError):
        raise ToolUnavailable(tool=tool, hint=hint)
    return (proc.stdout or proc.stderr or "").strip()


# ---------------------------------------------------------------------
# Step factories
# ---------------------------------------------------------------------

def root_check_step(*, name: str = "root-check", continue_on_error: bool = False) -> WorkflowStep:
    def _execute(ctx: StepContext) -> None:
        check_not_root(ctx.step)
        logger.info("[workflow] not running as root")

    return WorkflowStep(
        name=name,
        execute=_execute,
        continue_on_error=continue_on_error,
        description="Refuse to run as the root user",
        kind="root-check",
    )


def tool_check_step(
    tool: str = "autopkg",
    *,
    name: str = "tool-check",
    continue_on_error: bool = False,
) -> WorkflowStep:
    def _execute(ctx: StepContext) -> None:
        version = check_tool_available(tool)
        logger.info(f"[workflow] {tool} available: {version or 'unknown version'}")
        ctx.record_output(version)

    return WorkflowStep(
        name=name,
        execute=_execute,
        continue_on_error=continue_on_error,
        description=f"Check that {tool} is installed",
        kind="tool-check",
    )


def install_step(
    installer: Optional[Callable[[StepContext], str]] = None,
    *,
    name: str = "install",
    continue_on_error: bool = False,
) -> WorkflowStep:
    """
    Make sure the packaging tool is usable.

    `installer` does the actual work and returns the installed version.
    Without one, the step only asks the configured tool for its version.
    """
    def _execute(ctx: StepContext) -> None:
        if installer is not None:
            version = installer(ctx)
        else:
            version = ctx.tool.version()
        logger.info(f"[workflow] tool version: {version}")
        ctx.record_output(version)

    return WorkflowStep(
        name=name,
        execute=_execute,
        continue_on_error=continue_on_error,
        description="Install or confirm the packaging tool",
        kind="install",
    )
