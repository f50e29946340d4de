# autopkg.py
# Thin wrapper around the autopkg CLI.
# Everything that shells out to the packaging tool goes through _autopkg so
# flags, output capture and failure reporting stay consistent.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from loguru import logger

from .errors import CommandFailed

# autopkg is not chatty past -vvv
_MAX_VERBOSE = 4
# keep the tail of very long outputs on errors
_OUTPUT_TAIL = 4000


class Autopkg:
    """
    Default RecipeTool implementation.

    Each method maps to one autopkg subcommand. A non-zero exit raises
    CommandFailed carrying the combined stdout/stderr, which the batch engine
    copies into the failed BatchResult.
    """

    def __init__(self, binary: str = "autopkg", prefs_path: Optional[str] = None):
        self.binary = binary
        self.prefs_path = prefs_path

    def _autopkg(self, args: Sequence[str], *, with_prefs: bool = True) -> str:
        cmd = [self.binary, *args]
        if with_prefs and self.prefs_path:
            cmd.extend(["--prefs", str(Path(self.prefs_path).expanduser())])

        logger.debug(f"[autopkg] {' '.join(cmd)}")
        try:
            proc = subprocess.run(cmd, text=True, capture_output=True, check=False)
        except FileNotFoundError as e:
            raise CommandFailed(cmd=" ".join(cmd), exit_code=127, output=str(e)) from e

        output = (proc.stdout or "") + (proc.stderr or "")
        if proc.returncode != 0:
            raise CommandFailed(cmd=" ".join(cmd), exit_code=proc.returncode, output=output[-_OUTPUT_TAIL:])
        return output

    # ------------------------------------------------------------------
    # RecipeExecutor
    # ------------------------------------------------------------------

    def execute_recipe(self, identifier: str, overrides_dir: Optional[str], verbose_level: int) -> str:
        args: List[str] = ["run", identifier]
        if overrides_dir:
            args.extend(["--override-dir", str(Path(overrides_dir).expanduser())])
        if verbose_level > 0:
            args.append("-" + "v" * min(verbose_level, _MAX_VERBOSE))
        return self._autopkg(args)

    def list_recipes(self, override_dirs: Iterable[str] = ()) -> List[str]:
        """Recipe names autopkg can currently find, one per output line."""
        args: List[str] = ["list-recipes"]
        for d in override_dirs:
            if d:
                args.extend(["--override-dir", str(Path(d).expanduser())])
        out = self._autopkg(args)
        return [line.strip() for line in out.splitlines() if line.strip()]

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    def list_repos(self) -> List[str]:
        out = self._autopkg(["repo-list"])
        return [line.strip() for line in out.splitlines() if line.strip()]

    def repository_exists(self, repo_url: str) -> bool:
        """True when the repository is already registered with autopkg."""
        wanted = _repo_key(repo_url)
        for line in self.list_repos():
            # repo-list prints "<path> (<url>)"
            if wanted and wanted in _repo_key(line):
                return True
        return False

    def add_repos(self, repo_urls: Iterable[str]) -> str:
        urls = [u for u in repo_urls if u]
        if not urls:
            return ""
        return self._autopkg(["repo-add", *urls])

    def update_repos(self, repos: Iterable[str]) -> str:
        names = [r for r in repos if r] or ["all"]
        return self._autopkg(["repo-update", *names])

    # ------------------------------------------------------------------
    # Trust info
    # ------------------------------------------------------------------

    def verify_trust_info(self, identifier: str) -> str:
        return self._autopkg(["verify-trust-info", identifier])

    def update_trust_info(self, identifier: str) -> str:
        return self._autopkg(["update-trust-info", identifier])

    def version(self) -> str:
        return self._autopkg(["version"], with_prefs=False).strip()


def _repo_key(value: str) -> str:
    v = value.strip().lower()
    if v.endswith(".git"):
        v = v[:-4]
    for prefix in ("https://", "http://", "git@"):
        if v.startswith(prefix):
            v = v[len(prefix):]
    return v.replace("github.com:", "github.com/").rstrip("/")
