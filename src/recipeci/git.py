# git.py
# Small wrapper around the Git CLI.
# Only used to check that a recipe repository is reachable before it is
# registered with the packaging tool.

from __future__ import annotations

import os
import subprocess
from typing import Mapping, Optional

from loguru import logger


def _git(args: list[str], *, env: Optional[Mapping[str, str]] = None, timeout: float = 30.0) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Raises subprocess.CalledProcessError on a non-zero exit and
    subprocess.TimeoutExpired when the remote does not answer.
    """
    out = subprocess.check_output(
        ["git", *args],
        env=dict(env) if env is not None else None,
        text=True,
        stderr=subprocess.DEVNULL,
        timeout=timeout,
    )
    return out.strip()


def _with_token(repo_url: str, token: str) -> str:
    # https://github.com/x/y -> https://<token>@github.com/x/y
    if token and repo_url.startswith("https://"):
        return "https://" + token + "@" + repo_url[len("https://"):]
    return repo_url


class GitRemoteRegistry:
    """
    RepositoryRegistry backed by `git ls-remote --exit-code`.

    With use_auth_token, GITHUB_TOKEN (if set) is embedded in the URL so
    private repositories can be checked too. Prompts are disabled so a
    missing repository fails instead of asking for credentials.
    """

    def __init__(self, *, use_auth_token: bool = False, timeout: float = 30.0):
        self.use_auth_token = use_auth_token
        self.timeout = timeout

    def repository_exists(self, repo_url: str) -> bool:
        if not repo_url:
            return False

        url = repo_url
        if self.use_auth_token:
            url = _with_token(repo_url, os.environ.get("GITHUB_TOKEN", ""))

        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"
        try:
            _git(["ls-remote", "--exit-code", "--heads", url], env=env, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            logger.debug(f"[git] ls-remote {repo_url} exited {e.returncode}")
            return False
        except subprocess.TimeoutExpired:
            logger.warning(f"[git] ls-remote {repo_url} timed out after {self.timeout:g}s")
            return False
        except FileNotFoundError:
            logger.warning("[git] git is not installed; cannot verify repositories")
            return False
        return True
