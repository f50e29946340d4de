# cache.py
from __future__ import annotations

import hashlib
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from .config import DEFAULT_CACHE_DIR

# ---------------------------------------------------------------------
# Recipe index cache
# ---------------------------------------------------------------------
# The recipe index is a single multi-megabyte JSON document that changes a
# few times a day. It is stored once per source URL:
#
#   root/
#     index/
#       <sha256(url)>.json           the document
#       <sha256(url)>.manifest.json  {"url", "fetched_at_unix"}
#
# An entry is fresh for ttl seconds after it was fetched.
# ---------------------------------------------------------------------

DEFAULT_INDEX_TTL = 24 * 60 * 60


@dataclass(frozen=True)
class CacheEntry:
    hit: bool
    reason: str  # human readable
    data: Optional[Dict[str, Any]] = None


def _sha256_str(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def _json_dumps_stable(obj) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class IndexCache:
    def __init__(self, root: str | Path = DEFAULT_CACHE_DIR, *, ttl: float = DEFAULT_INDEX_TTL):
        self.root = Path(root).expanduser().resolve()
        self.ttl = ttl

    def _dir(self) -> Path:
        d = self.root / "index"
        d.mkdir(parents=True, exist_ok=True)
        return d

    def data_path(self, url: str) -> Path:
        return self._dir() / f"{_sha256_str(url)}.json"

    def manifest_path(self, url: str) -> Path:
        return self._dir() / f"{_sha256_str(url)}.manifest.json"

    def load(self, url: str, *, now: Optional[float] = None) -> CacheEntry:
        data_p = self.data_path(url)
        man_p = self.manifest_path(url)
        if not data_p.exists() or not man_p.exists():
            return CacheEntry(hit=False, reason="cache miss")

        try:
            manifest = json.loads(man_p.read_text(encoding="utf-8"))
            fetched_at = float(manifest["fetched_at_unix"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            return CacheEntry(hit=False, reason=f"unreadable manifest: {e}")

        age = (time.time() if now is None else now) - fetched_at
        if age > self.ttl:
            return CacheEntry(hit=False, reason=f"stale ({age / 3600:.1f}h old)")

        try:
            data = json.loads(data_p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            return CacheEntry(hit=False, reason=f"unreadable cache: {e}")

        return CacheEntry(hit=True, reason=f"fresh ({age / 3600:.1f}h old)", data=data)

    def save(self, url: str, data: Dict[str, Any], *, now: Optional[float] = None) -> Path:
        data_p = self.data_path(url)
        tmp = data_p.with_suffix(".json.tmp")
        try:
            # write then rename so concurrent readers never see a partial file
            tmp.write_text(_json_dumps_stable(data), encoding="utf-8")
            tmp.replace(data_p)
        finally:
            if tmp.exists():
                tmp.unlink(missing_ok=True)

        manifest = {"url": url, "fetched_at_unix": int(time.time() if now is None else now)}
        self.manifest_path(url).write_text(json.dumps(manifest, sort_keys=True, indent=2), encoding="utf-8")
        logger.debug(f"[index] cached {url} at {data_p}")
        return data_p

    def clear(self) -> None:
        d = self.root / "index"
        if not d.exists():
            return
        for p in d.glob("*.json"):
            p.unlink(missing_ok=True)
