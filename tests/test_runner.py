from __future__ import annotations

import pytest

from fakes import FakeTool
from recipeci.config import BatchOptions
from recipeci.errors import BatchStoppedError, BatchTimeoutError, TaskExecutionError
from recipeci.model import BatchTask
from recipeci.runner import BatchEngine, tasks_for

RECIPES = [f"R{i}.recipe" for i in range(1, 6)]


def test_all_tasks_run_without_stop():
    tool = FakeTool(failures={"R2.recipe", "R4.recipe"}, delay=0.01)
    outcome = BatchEngine(tool).run_batch(tasks_for(RECIPES), BatchOptions(max_concurrency=3))

    assert len(outcome.results) == len(RECIPES)
    assert outcome.error is None
    assert sorted(outcome.failed) == ["R2.recipe", "R4.recipe"]
    assert outcome.not_attempted == []
    assert list(outcome.results) == RECIPES  # request order


def test_stop_on_first_error_scenario():
    # five tasks, two workers, the third fails
    tool = FakeTool(failures={"R3.recipe"}, delay=0.05, delays={"R3.recipe": 0.0})
    outcome = BatchEngine(tool).run_batch(
        tasks_for(RECIPES),
        BatchOptions(max_concurrency=2, stop_on_first_error=True),
    )

    assert 3 <= len(outcome.results) <= 5
    assert outcome.results["R3.recipe"].execution_error is not None
    assert isinstance(outcome.error, BatchStoppedError)
    assert outcome.error.identifier == "R3.recipe"
    # every absent identifier was never attempted
    for name in outcome.not_attempted:
        assert name not in tool.ran
    assert set(tool.ran) == set(outcome.results)


def test_stop_on_first_error_with_sequential_run_skips_the_rest():
    tool = FakeTool(failures={"R2.recipe"})
    outcome = BatchEngine(tool).run_batch(
        tasks_for(RECIPES),
        BatchOptions(max_concurrency=1, stop_on_first_error=True),
    )

    assert list(outcome.results) == ["R1.recipe", "R2.recipe"]
    assert outcome.not_attempted == ["R3.recipe", "R4.recipe", "R5.recipe"]
    with pytest.raises(BatchStoppedError):
        outcome.raise_for_error()


def test_concurrency_is_bounded():
    tool = FakeTool(delay=0.05)
    BatchEngine(tool).run_batch(tasks_for([f"T{i}" for i in range(8)]), BatchOptions(max_concurrency=2))
    assert tool.max_active <= 2
    assert len(tool.ran) == 8


def test_timeout_lets_in_flight_finish():
    tool = FakeTool(delay=0.4)
    outcome = BatchEngine(tool).run_batch(
        tasks_for(["A", "B", "C", "D"]),
        BatchOptions(max_concurrency=1, timeout=0.1),
    )

    assert isinstance(outcome.error, BatchTimeoutError)
    assert list(outcome.results) == ["A.recipe"]
    assert outcome.results["A.recipe"].ok
    assert outcome.not_attempted == ["B.recipe", "C.recipe", "D.recipe"]


def test_failure_output_is_captured():
    tool = FakeTool(failures={"R1.recipe"})
    outcome = BatchEngine(tool).run_batch(tasks_for(["R1"]), BatchOptions())

    result = outcome.results["R1.recipe"]
    assert isinstance(result.execution_error, TaskExecutionError)
    assert result.execution_error.exit_code == 1
    assert result.output == "R1.recipe exploded"
    assert result.status == "failed"


def test_plain_exception_is_wrapped():
    class Boom:
        def execute_recipe(self, identifier, overrides_dir, verbose_level):
            raise RuntimeError("no disk")

    outcome = BatchEngine(Boom()).run_batch(tasks_for(["X"]))
    err = outcome.results["X.recipe"].execution_error
    assert err.message == "no disk"
    assert err.exit_code is None
    assert outcome.results["X.recipe"].output == ""


def test_duplicate_tasks_rejected():
    with pytest.raises(ValueError):
        BatchEngine(FakeTool()).run_batch(tasks_for(["A", "A.recipe"]))


@pytest.mark.parametrize("kwargs", [{"max_concurrency": 0}, {"timeout": 0}, {"timeout": -5}])
def test_invalid_options(kwargs):
    with pytest.raises(ValueError):
        BatchOptions(**kwargs)


def test_rerun_gives_same_outcome():
    tool = FakeTool(failures={"R2.recipe"})
    engine = BatchEngine(tool)
    first = engine.run_batch(tasks_for(RECIPES), BatchOptions(max_concurrency=2))
    second = engine.run_batch(tasks_for(RECIPES), BatchOptions(max_concurrency=2))

    assert {k: r.ok for k, r in first.results.items()} == {k: r.ok for k, r in second.results.items()}


def test_task_options_reach_executor():
    tool = FakeTool()
    tasks = [BatchTask(identifier="A.recipe", overrides_dir="/tmp/overrides", verbose_level=1)]
    BatchEngine(tool).run_batch(tasks, BatchOptions(verbose_level=2))
    assert tool.calls == [("A.recipe", "/tmp/overrides", 2)]


def test_empty_batch():
    outcome = BatchEngine(FakeTool()).run_batch([])
    assert outcome.results == {}
    assert outcome.error is None


def test_counts():
    tool = FakeTool(outputs={"A.recipe": "Downloaded foo.dmg"}, failures={"C.recipe"})
    outcome = BatchEngine(tool).run_batch(tasks_for(["A", "B", "C"]))
    assert outcome.counts() == {"total": 3, "updated": 1, "unchanged": 1, "failed": 1, "not_attempted": 0}
    assert outcome.succeeded == ["A.recipe", "B.recipe"]


def test_no_new_task_starts_once_budget_is_spent():
    # the first wait returns in time, the next scheduling pass is past the deadline
    ticks = iter([0.0, 0.0, 0.0])
    tool = FakeTool()
    engine = BatchEngine(tool, clock=lambda: next(ticks, 100.0))

    outcome = engine.run_batch(tasks_for(["A", "B", "C"]), BatchOptions(max_concurrency=1, timeout=10))

    assert tool.ran == ["A.recipe"]
    assert list(outcome.results) == ["A.recipe"]
    assert outcome.not_attempted == ["B.recipe", "C.recipe"]
    assert isinstance(outcome.error, BatchTimeoutError)
