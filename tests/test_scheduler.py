"""Tests for the bounded worker pool."""

import random
import threading
import time
from pathlib import Path

import pytest

from metaenc.models import Outcome, Task
from metaenc.scheduler import WorkerPool, run_tasks


def _tasks(n):
    return [Task(Path(f"{i}.wav"), Path(f"{i}.flac"), "flac", (), f"task {i}") for i in range(n)]


def _slow_ok(task):
    time.sleep(random.uniform(0, 0.01))
    return Outcome(task.description)


@pytest.mark.parametrize("workers", [1, 3, 16])
def test_every_task_yields_one_outcome(workers):
    tasks = _tasks(25)
    seen = []

    delivered = run_tasks(tasks, workers, _slow_ok, seen.append)

    assert delivered == 25
    assert sorted(o.description for o in seen) == sorted(t.description for t in tasks)


def test_reporter_runs_sequentially_on_calling_thread():
    caller = threading.get_ident()
    report_threads = set()
    invoke_threads = set()
    in_report = threading.Lock()

    def invoke(task):
        invoke_threads.add(threading.get_ident())
        time.sleep(0.005)
        return Outcome(task.description)

    def report(outcome):
        assert in_report.acquire(blocking=False)
        report_threads.add(threading.get_ident())
        in_report.release()

    run_tasks(_tasks(20), 4, invoke, report)

    assert report_threads == {caller}
    assert caller not in invoke_threads


def test_concurrency_is_bounded():
    running = 0
    peak = 0
    lock = threading.Lock()

    def invoke(task):
        nonlocal running, peak
        with lock:
            running += 1
            peak = max(peak, running)
        time.sleep(0.02)
        with lock:
            running -= 1
        return Outcome(task.description)

    run_tasks(_tasks(12), 3, invoke, lambda o: None)

    assert 1 <= peak <= 3


def test_outcome_is_reported_after_invoke_returns():
    finished = set()

    def invoke(task):
        time.sleep(0.005)
        finished.add(task.description)
        return Outcome(task.description)

    def report(outcome):
        assert outcome.description in finished

    assert run_tasks(_tasks(10), 2, invoke, report) == 10


def test_failures_are_delivered_like_successes():
    from metaenc.errors import NonZeroExit

    def invoke(task):
        if task.description.endswith(("1", "3")):
            return Outcome(task.description, NonZeroExit("error: ffmpeg: boom", 1))
        return Outcome(task.description)

    seen = []
    run_tasks(_tasks(5), 2, invoke, seen.append)

    assert sorted(o.description for o in seen if not o.ok) == ["task 1", "task 3"]
    assert len(seen) == 5


def test_empty_task_list():
    assert run_tasks([], 4, _slow_ok, lambda o: None) == 0


@pytest.mark.parametrize("workers", [0, -1])
def test_invalid_worker_count(workers):
    with pytest.raises(ValueError):
        run_tasks(_tasks(1), workers, _slow_ok, lambda o: None)


def test_preset_stop_event_submits_nothing():
    stop = threading.Event()
    stop.set()
    calls = []

    assert run_tasks(_tasks(5), 2, lambda t: calls.append(t) or Outcome(t.description), lambda o: None, stop_event=stop) == 0
    assert calls == []


def test_invoke_exception_propagates():
    def invoke(task):
        raise RuntimeError("bug")

    with pytest.raises(RuntimeError, match="bug"):
        run_tasks(_tasks(3), 2, invoke, lambda o: None)


def test_interrupt_in_reporter_calls_hook_and_reraises():
    hook = []

    def report(outcome):
        raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        run_tasks(_tasks(10), 2, _slow_ok, report, on_interrupt=lambda: hook.append(True))

    assert hook == [True]


def test_outcomes_rejects_zero_window():
    pool = WorkerPool(1)
    try:
        with pytest.raises(ValueError):
            list(pool.outcomes(_slow_ok, _tasks(1), window=0))
    finally:
        pool.shutdown()
