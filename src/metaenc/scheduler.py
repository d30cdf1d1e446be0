"""Worker pool for running encode tasks (standard library threads).

Tasks are submitted through a bounded window so only O(workers) futures are in
flight. Results come back to the calling thread, which is the only consumer:
the reporter is therefore called sequentially and never needs locking, while
delivery order across tasks follows completion order.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, Future, wait, FIRST_COMPLETED
from typing import Any, Callable, Iterable, Iterator, Optional, Set
import threading

from loguru import logger

from .models import Outcome, Task


class WorkerPool:
    def __init__(self, max_workers: int) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._exe = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="metaenc-worker")
        self._max_workers = max_workers

    def outcomes(
        self,
        invoke: Callable[[Task], Outcome],
        tasks: Iterable[Task],
        window: int,
        *,
        stop_event: Optional[threading.Event] = None,
    ) -> Iterator[Outcome]:
        """Yield each task's outcome as its encode finishes.

        At most ``window`` tasks are submitted but not yet consumed. Once
        ``stop_event`` is set no further task is started; those already running
        are still waited for and yielded.
        """
        if window < 1:
            raise ValueError("window must be >= 1")

        logger.debug(f"encode window: {window} tasks ({window / self._max_workers:.1f}x {self._max_workers} workers)")

        queued = iter(tasks)
        running: Set[Future] = set()

        def start_next() -> bool:
            if stop_event is not None and stop_event.is_set():
                return False
            task = next(queued, None)
            if task is None:
                return False
            running.add(self._exe.submit(invoke, task))
            return True

        while len(running) < window and start_next():
            pass

        while running:
            finished, _ = wait(running, return_when=FIRST_COMPLETED)
            for fut in finished:
                running.remove(fut)
                yield fut.result()
                if len(running) < window:
                    start_next()

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        self._exe.shutdown(wait=wait, cancel_futures=cancel_futures)


def run_tasks(
    tasks: Iterable[Task],
    workers: int,
    invoke: Callable[[Task], Outcome],
    report: Callable[[Outcome], None],
    *,
    stop_event: Optional[threading.Event] = None,
    on_interrupt: Optional[Callable[[], Any]] = None,
) -> int:
    """Run every task once on a pool of ``workers`` threads.

    ``report`` receives each outcome on the calling thread, one at a time.
    Returns the number of outcomes delivered, which equals the number of tasks
    unless ``stop_event`` was set during the run.
    """
    if workers < 1:
        raise ValueError("workers must be >= 1")

    stop = stop_event or threading.Event()
    pool = WorkerPool(workers)
    delivered = 0
    try:
        for outcome in pool.outcomes(invoke, tasks, window=workers * 2, stop_event=stop):
            report(outcome)
            delivered += 1
    except KeyboardInterrupt:
        stop.set()
        logger.warning("Interrupted; stopping in-flight encodes")
        if on_interrupt is not None:
            on_interrupt()
        raise
    finally:
        pool.shutdown(wait=True, cancel_futures=stop.is_set())
    return delivered
