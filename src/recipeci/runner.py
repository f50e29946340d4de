# runner.py
from __future__ import annotations

import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Callable, Deque, Dict, Iterable, List, Mapping, Optional

from loguru import logger

from .config import BatchOptions
from .errors import BatchStoppedError, BatchTimeoutError, EngineError, TaskExecutionError
from .interfaces import RecipeExecutor
from .model import BatchResult, BatchTask, normalize_identifier


@dataclass(frozen=True)
class BatchOutcome:
    """
    Everything a batch run produced.

    `results` only holds tasks that were attempted: a recipe that was never
    dequeued (stop or timeout) is absent, which is different from a result
    carrying an execution_error.
    """
    results: Mapping[str, BatchResult]
    error: Optional[EngineError]
    requested: tuple
    started_at: datetime
    elapsed: float

    @property
    def succeeded(self) -> List[str]:
        return [k for k, r in self.results.items() if r.ok]

    @property
    def failed(self) -> List[str]:
        return [k for k, r in self.results.items() if not r.ok]

    @property
    def not_attempted(self) -> List[str]:
        return [k for k in self.requested if k not in self.results]

    def counts(self) -> Dict[str, int]:
        out = {"total": len(self.requested), "updated": 0, "unchanged": 0, "failed": 0}
        for r in self.results.values():
            out[r.status] += 1
        out["not_attempted"] = len(self.not_attempted)
        return out

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


def tasks_for(
    recipes: Iterable[str],
    *,
    overrides_dir: str | None = None,
    verbose_level: int = 0,
) -> List[BatchTask]:
    return [
        BatchTask(identifier=normalize_identifier(r), overrides_dir=overrides_dir, verbose_level=verbose_level)
        for r in recipes
    ]


class BatchEngine:
    """
    Runs recipes under a bounded worker pool.

    - at most max_concurrency recipes in flight
    - stop_on_first_error: after the first failure nothing new is dequeued,
      in-flight recipes finish (never killed)
    - timeout: whole-batch budget, handled exactly like a stop
    """

    def __init__(self, executor: RecipeExecutor, *, clock: Callable[[], float] = time.monotonic):
        self.executor = executor
        self._clock = clock

    def _run_task(self, task: BatchTask, options: BatchOptions, stop: threading.Event) -> Optional[BatchResult]:
        # A task that sees the stop flag before starting is never attempted.
        if stop.is_set():
            return None

        started_at = datetime.now(timezone.utc)
        t0 = time.monotonic()
        verbose = max(task.verbose_level, options.verbose_level)
        logger.debug(f"[batch] ▶ {task.identifier}")

        try:
            output = self.executor.execute_recipe(task.identifier, task.overrides_dir, verbose)
            error = None
        except Exception as e:
            output = getattr(e, "output", "") or ""
            error = TaskExecutionError(
                identifier=task.identifier,
                message=str(e),
                exit_code=getattr(e, "exit_code", None),
            )

        duration = time.monotonic() - t0
        if error is None:
            logger.info(f"[batch] ✓ {task.identifier} completed in {duration:.1f}s")
        else:
            logger.error(f"[batch] ✗ {task.identifier} failed after {duration:.1f}s: {error.message}")

        return BatchResult(
            identifier=task.identifier,
            output=output or "",
            execution_error=error,
            started_at=started_at,
            duration=duration,
        )

    def run_batch(self, tasks: Iterable[BatchTask], options: BatchOptions | None = None) -> BatchOutcome:
        options = options or BatchOptions()
        tasks = list(tasks)

        ids = [t.identifier for t in tasks]
        if len(set(ids)) != len(ids):
            dupes = sorted({i for i in ids if ids.count(i) > 1})
            raise ValueError(f"Duplicate recipes in batch: {dupes}")

        started_at = datetime.now(timezone.utc)
        t0 = self._clock()
        deadline = None if options.timeout is None else t0 + options.timeout

        logger.info(
            f"[batch] running {len(tasks)} recipe(s) (max {options.max_concurrency} concurrent, "
            f"stop_on_first_error={options.stop_on_first_error})"
        )

        pending: Deque[BatchTask] = deque(tasks)
        in_flight: Dict[Future, BatchTask] = {}
        results: Dict[str, BatchResult] = {}
        stop = threading.Event()
        error: Optional[EngineError] = None

        try:
            pool = ThreadPoolExecutor(max_workers=options.max_concurrency, thread_name_prefix="recipeci-batch")
        except (RuntimeError, ValueError) as e:
            return self._outcome({}, EngineError(f"could not start worker pool: {e}"), ids, started_at, t0, self._clock)

        with pool:
            while pending or in_flight:
                # budget spent while the last wait returned: start nothing new
                if deadline is not None and pending and not stop.is_set() and self._clock() >= deadline:
                    stop.set()
                    error = error or BatchTimeoutError(
                        message=f"{len(pending)} recipe(s) not started, {len(in_flight)} allowed to finish",
                        timeout=options.timeout or 0.0,
                    )
                    logger.warning(f"[batch] {error}")

                # top up free slots unless we have been told to stop
                while pending and len(in_flight) < options.max_concurrency and not stop.is_set():
                    task = pending.popleft()
                    try:
                        fut = pool.submit(self._run_task, task, options, stop)
                    except RuntimeError as e:
                        stop.set()
                        error = error or EngineError(f"could not schedule {task.identifier}: {e}")
                        break
                    in_flight[fut] = task

                if not in_flight:
                    break

                remaining = None if deadline is None else max(0.0, deadline - self._clock())
                done, _ = wait(list(in_flight), timeout=remaining, return_when=FIRST_COMPLETED)

                if not done:
                    # out of time: stop dequeuing and let in-flight recipes finish
                    stop.set()
                    if error is None:
                        error = BatchTimeoutError(
                            message=f"{len(pending)} recipe(s) not started, {len(in_flight)} allowed to finish",
                            timeout=options.timeout or 0.0,
                        )
                    logger.warning(f"[batch] {error}")
                    done, _ = wait(list(in_flight))

                for fut in done:
                    task = in_flight.pop(fut)
                    result = fut.result()
                    if result is None:
                        continue
                    results[task.identifier] = result

                    if result.execution_error is not None and options.stop_on_first_error and not stop.is_set():
                        stop.set()
                        error = BatchStoppedError(
                            message=result.execution_error.message,
                            identifier=task.identifier,
                        )
                        logger.warning(f"[batch] stopping: {task.identifier} failed, {len(pending)} not started")

        outcome = self._outcome(results, error, ids, started_at, t0, self._clock)
        log_batch_summary(outcome)
        return outcome

    @staticmethod
    def _outcome(results, error, ids, started_at, t0, clock=time.monotonic) -> BatchOutcome:
        # keep request order for readers of the mapping
        ordered = {i: results[i] for i in ids if i in results}
        return BatchOutcome(
            results=MappingProxyType(ordered),
            error=error,
            requested=tuple(ids),
            started_at=started_at,
            elapsed=clock() - t0,
        )


def log_batch_summary(outcome: BatchOutcome) -> None:
    c = outcome.counts()
    logger.info(
        f"[batch] finished in {outcome.elapsed:.1f}s: {c['updated']} updated, {c['unchanged']} unchanged, "
        f"{c['failed']} failed, {c['not_attempted']} not attempted"
    )
    for name in outcome.failed:
        logger.error(f"[batch]   failed: {name}")
    if outcome.error is not None:
        logger.error(f"[batch] {outcome.error}")
