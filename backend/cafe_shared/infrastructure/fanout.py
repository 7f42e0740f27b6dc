"""
Fan-out/join helpers.

Independent blocking tasks run on a ThreadPoolExecutor and every task reports
exactly one TaskResult. Results come back in submission order; nothing is
written to shared error variables from worker threads.

Usage:
    from cafe_shared.infrastructure.fanout import Deadline, run_fanout, collect

    deadline = Deadline(settings.fanout_timeout_seconds)
    results = run_fanout(
        [("items", load_items), ("discount", load_discount)],
        deadline=deadline,
        max_workers=settings.fanout_max_workers,
    )
    values = collect(results)   # raises FanoutError if any task failed
"""

from __future__ import annotations

import concurrent.futures
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, TypeVar

from cafe_shared.config.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class DeadlineExceeded(Exception):
    """The deadline attached to an operation expired."""

    def __init__(self, stage: str, timeout: float):
        super().__init__(f"deadline of {timeout}s exceeded at '{stage}'")
        self.stage = stage
        self.timeout = timeout


class FanoutError(Exception):
    """One or more fan-out tasks failed. ``failures`` maps task name -> error."""

    def __init__(self, failures: dict[str, BaseException]):
        names = ", ".join(failures)
        super().__init__(f"fan-out tasks failed: {names}")
        self.failures = failures

    @property
    def first_stage(self) -> str:
        return next(iter(self.failures))

    def describe(self) -> dict[str, str]:
        return {name: repr(err) for name, err in self.failures.items()}


@dataclass(frozen=True)
class TaskResult(Generic[T]):
    """Outcome of one task: either ``value`` or ``error`` is set."""

    name: str
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Deadline:
    """Monotonic deadline shared by all steps of one operation."""

    def __init__(self, seconds: float):
        self.timeout = seconds
        self._expires_at = time.monotonic() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at

    def check(self, stage: str) -> None:
        """Raise DeadlineExceeded if the deadline has passed."""
        if self.expired:
            raise DeadlineExceeded(stage, self.timeout)


def _run_one(name: str, fn: Callable[[], T]) -> TaskResult[T]:
    try:
        return TaskResult(name=name, value=fn())
    except Exception as exc:
        logger.warning("Fan-out task failed", task=name, error=repr(exc))
        return TaskResult(name=name, error=exc)


def _run_before_deadline(
    name: str, fn: Callable[[], T], deadline: Deadline | None
) -> TaskResult[T]:
    if deadline is not None and deadline.expired:
        logger.warning("Fan-out task skipped after deadline", task=name, timeout=deadline.timeout)
        return TaskResult(name=name, error=DeadlineExceeded(name, deadline.timeout))
    return _run_one(name, fn)


def run_inline(tasks: Iterable[tuple[str, Callable[[], Any]]]) -> list[TaskResult]:
    """
    Run tasks one after another in the calling thread.

    Used for steps that share one database transaction; a failing task does not
    stop the remaining ones, so every step still reports its own result.
    """
    return [_run_one(name, fn) for name, fn in tasks]


def run_fanout(
    tasks: Iterable[tuple[str, Callable[[], Any]]],
    deadline: Deadline | None = None,
    max_workers: int = 4,
) -> list[TaskResult]:
    """
    Run independent blocking tasks concurrently and join on all of them.

    Tasks still running when the deadline expires are reported with a
    DeadlineExceeded error. With ``max_workers <= 1`` the tasks run inline and
    tasks not yet started when the deadline expires are reported the same way.
    """
    task_list = list(tasks)
    if not task_list:
        return []
    if max_workers <= 1 or len(task_list) == 1:
        return [_run_before_deadline(name, fn, deadline) for name, fn in task_list]

    timeout = deadline.remaining() if deadline is not None else None
    executor = concurrent.futures.ThreadPoolExecutor(
        max_workers=min(max_workers, len(task_list)),
        thread_name_prefix="fanout",
    )
    try:
        futures = [executor.submit(_run_one, name, fn) for name, fn in task_list]
        done, _ = concurrent.futures.wait(futures, timeout=timeout)

        results: list[TaskResult] = []
        for (name, _fn), future in zip(task_list, futures):
            if future in done:
                results.append(future.result())
            else:
                future.cancel()
                logger.warning("Fan-out task timed out", task=name, timeout=timeout)
                results.append(
                    TaskResult(name=name, error=DeadlineExceeded(name, deadline.timeout))
                )
        return results
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def collect(results: list[TaskResult]) -> dict[str, Any]:
    """
    Combine task results deterministically.

    Returns ``{name: value}`` when every task succeeded, otherwise raises
    FanoutError listing every failed task in submission order.
    """
    failures = {r.name: r.error for r in results if not r.ok}
    if failures:
        raise FanoutError(failures)  # type: ignore[arg-type]
    return {r.name: r.value for r in results}
