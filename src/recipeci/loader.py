# loader.py
from __future__ import annotations

import runpy
from pathlib import Path

from .orchestrator import WorkflowOrchestrator


def load_workflow(path: str | Path) -> WorkflowOrchestrator:
    """
    Load a workflow from a python file path.

    The file must define either:
      - workflow() -> WorkflowOrchestrator
      - WORKFLOW = WorkflowOrchestrator(...)

    Returns:
      WorkflowOrchestrator
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ValueError(f"Workflow must be a .py file, got: {wf_path.name}")

    module_name = f"recipeci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    wf = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        wf = globals_dict["workflow"]()
    elif "WORKFLOW" in globals_dict:
        wf = globals_dict["WORKFLOW"]

    if not isinstance(wf, WorkflowOrchestrator):
        raise TypeError(
            "Workflow must return/define a WorkflowOrchestrator. "
            "Define workflow() -> WorkflowOrchestrator or WORKFLOW = WorkflowOrchestrator()..."
        )

    return wf
