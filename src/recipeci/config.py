# config.py
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

BASE_REPO_URL = "https://github.com/autopkg/recipes"
DEFAULT_INDEX_URL = "https://raw.githubusercontent.com/autopkg/index/refs/heads/main/index.json"
DEFAULT_CACHE_DIR = ".recipeci/cache"
DEFAULT_TOOL_CACHE_DIR = "~/Library/AutoPkg/Cache"


@dataclass(frozen=True)
class ResolveOptions:
    include_parents: bool = True
    max_depth: int = 5
    verify_repo_exists: bool = True
    include_base: bool = True
    use_auth_token: bool = False

    def __post_init__(self) -> None:
        if self.max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {self.max_depth}")


@dataclass(frozen=True)
class BatchOptions:
    max_concurrency: int = 4
    stop_on_first_error: bool = False
    timeout: Optional[float] = 3600.0  # seconds, whole batch; None = no limit
    verbose_level: int = 0

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")


@dataclass(frozen=True)
class CleanupOptions:
    cache_dir: str = DEFAULT_TOOL_CACHE_DIR
    remove_downloads: bool = True
    remove_recipe_cache: bool = True
    keep_days: int = 0  # 0 removes everything


@dataclass
class WorkflowConfig:
    """
    Global configuration of a workflow run.

    Threaded explicitly into every step; nothing reads process-wide flags.
    """
    prefs_path: Optional[str] = None
    max_concurrency: int = 4
    timeout: Optional[float] = 3600.0
    stop_on_first_error: bool = False
    report_file: Optional[str] = None
    webhook_url: Optional[str] = None
    notify_on_error: bool = False
    notify_on_completion: bool = False
    verbose_level: int = 0
    overrides_dir: Optional[str] = None
    cache_dir: str = DEFAULT_CACHE_DIR
    use_auth_token: bool = False  # GITHUB_TOKEN for repository checks

    def batch_options(self, **overrides) -> BatchOptions:
        opts = BatchOptions(
            max_concurrency=self.max_concurrency,
            stop_on_first_error=self.stop_on_first_error,
            timeout=self.timeout,
            verbose_level=self.verbose_level,
        )
        return replace(opts, **overrides) if overrides else opts

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "WorkflowConfig":
        env = os.environ if environ is None else environ
        cfg = cls()
        if env.get("AUTOPKG_PREFS_PATH"):
            cfg.prefs_path = str(Path(env["AUTOPKG_PREFS_PATH"]).expanduser())
        if env.get("OVERRIDES_DIR"):
            cfg.overrides_dir = str(Path(env["OVERRIDES_DIR"]).expanduser())
        if env.get("WEBHOOK_URL"):
            cfg.webhook_url = env["WEBHOOK_URL"]
            cfg.notify_on_error = True
            cfg.notify_on_completion = True
        if env.get("RECIPECI_MAX_CONCURRENCY"):
            cfg.max_concurrency = int(env["RECIPECI_MAX_CONCURRENCY"])
        if env.get("RECIPECI_TIMEOUT"):
            cfg.timeout = float(env["RECIPECI_TIMEOUT"])
        if env.get("RECIPECI_REPORT_FILE"):
            cfg.report_file = env["RECIPECI_REPORT_FILE"]
        return cfg
