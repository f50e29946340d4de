# steps/cleanup.py
from __future__ import annotations

import shutil
import time
from pathlib import Path
from typing import List, Optional

from loguru import logger

from ..config import CleanupOptions
from ..model import WorkflowStep
from .context import StepContext

DOWNLOADS_DIR = "downloads"


def _clean_directory(d: Path, keep_days: int, now: float) -> List[Path]:
    removed: List[Path] = []
    for entry in sorted(d.iterdir()):
        try:
            mtime = entry.stat().st_mtime
        except OSError as e:
            logger.warning(f"[cleanup] cannot stat {entry}: {e}")
            continue

        # keep_days=0 removes everything
        if keep_days > 0 and (now - mtime) / 86400 < keep_days:
            continue

        try:
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
        except OSError as e:
            logger.warning(f"[cleanup] failed to remove {entry}: {e}")
            continue
        logger.debug(f"[cleanup] removed {entry}")
        removed.append(entry)
    return removed


def cleanup_cache(options: Optional[CleanupOptions] = None, *, now: Optional[float] = None) -> List[Path]:
    """
    Remove cached downloads and per-recipe cache contents.

    Layout under options.cache_dir:
      downloads/          shared downloads
      <recipe dir>/...    one directory per recipe

    Returns the removed paths.

    Raises:
        FileNotFoundError: the cache directory does not exist
    """
    options = options or CleanupOptions()
    now = time.time() if now is None else now

    cache_dir = Path(options.cache_dir).expanduser()
    if not cache_dir.is_dir():
        raise FileNotFoundError(f"cache directory does not exist: {cache_dir}")

    removed: List[Path] = []
    if options.remove_downloads:
        downloads = cache_dir / DOWNLOADS_DIR
        if downloads.is_dir():
            logger.info(f"[cleanup] cleaning downloads cache {downloads}")
            removed.extend(_clean_directory(downloads, options.keep_days, now))

    if options.remove_recipe_cache:
        logger.info(f"[cleanup] cleaning recipe cache {cache_dir}")
        for entry in sorted(cache_dir.iterdir()):
            if entry.is_dir() and entry.name != DOWNLOADS_DIR:
                removed.extend(_clean_directory(entry, options.keep_days, now))

    logger.info(f"[cleanup] removed {len(removed)} item(s)")
    return removed


def cleanup_step(
    options: Optional[CleanupOptions] = None,
    *,
    name: str = "cleanup",
    continue_on_error: bool = False,
) -> WorkflowStep:
    def _execute(ctx: StepContext) -> None:
        ctx.record_output(cleanup_cache(options))

    return WorkflowStep(
        name=name,
        execute=_execute,
        continue_on_error=continue_on_error,
        description="Clean the tool's download and recipe caches",
        kind="cleanup",
    )
