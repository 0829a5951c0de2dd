"""Bounded-concurrency batch scheduler with ordered, separator-delimited output."""

from __future__ import annotations

import logging
import os
import signal
import threading
import time
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from brew_change.models import BatchRunSummary, PackageTask, TaskResult, TaskStatus
from brew_change.render import RenderedOutput, render_failure

logger = logging.getLogger(__name__)

SEPARATOR = "---"
EXIT_CODE_INTERRUPTED = 130

Unit = Callable[[PackageTask], RenderedOutput]
Emit = Callable[[str], None]
Progress = Callable[[int, int, TaskResult], None]


@dataclass(slots=True)
class BatchCancelledError(Exception):
    """Run interrupted; outputs already emitted stay, the rest are dropped."""

    message: str
    flushed: int = 0
    code: str = "cancelled"

    def __str__(self) -> str:
        return self.message


def _load_average() -> float | None:
    try:
        return os.getloadavg()[0]
    except (AttributeError, OSError):
        return None


def partition(tasks: Sequence[PackageTask], size: int) -> list[list[PackageTask]]:
    """Consecutive batches of at most ``size`` tasks."""

    size = max(1, size)
    return [list(tasks[start : start + size]) for start in range(0, len(tasks), size)]


class BatchScheduler:
    """Run units of work in batches of ``job_limit`` and emit results in input order.

    Units run on worker threads and hand results back only through their
    futures. After a batch joins, its outputs are emitted by index, then the
    scheduler pauses once to stay under upstream rate limits.
    """

    def __init__(  # noqa: PLR0913
        self,
        unit: Unit,
        *,
        job_limit: int,
        rate_limit_delay_seconds: float = 1.0,
        load_threshold: float = 4.0,
        stop_event: threading.Event | None = None,
        emit: Emit | None = None,
        on_progress: Progress | None = None,
        sleep: Callable[[float], None] | None = None,
        load_average: Callable[[], float | None] = _load_average,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._unit = unit
        self.job_limit = max(1, job_limit)
        self.rate_limit_delay_seconds = rate_limit_delay_seconds
        self.load_threshold = load_threshold
        self.stop_event = stop_event or threading.Event()
        self._emit = emit or (lambda _text: None)
        self._on_progress = on_progress
        self._sleep = sleep
        self._load_average = load_average
        self._clock = clock

    def effective_job_limit(self) -> int:
        """Job limit halved (minimum 1) while the 1-minute load average is high."""

        load = self._load_average()
        if load is not None and load > self.load_threshold:
            adjusted = max(1, self.job_limit // 2)
            logger.warning(
                "High system load (%.2f), reducing parallel jobs from %s to %s",
                load,
                self.job_limit,
                adjusted,
            )
            return adjusted
        return self.job_limit

    def run(self, tasks: Sequence[PackageTask]) -> BatchRunSummary:
        started = self._clock()
        job_limit = self.effective_job_limit()
        summary = BatchRunSummary(job_limit=job_limit)
        emitted_any = False
        offset = 0
        with self._signal_handlers():
            try:
                for batch in partition(tasks, job_limit):
                    results = self._run_batch(batch, offset=offset, total=len(tasks))
                    offset += len(batch)
                    summary.batches += 1
                    for result in results:
                        if result.output.strip():
                            if emitted_any:
                                self._emit(SEPARATOR)
                            self._emit(result.output)
                            emitted_any = True
                        summary.results.append(result)
                    self._pause()
                    summary.rate_limit_pauses += 1
            except KeyboardInterrupt as error:
                self.stop_event.set()
                raise BatchCancelledError(
                    message="Interrupted, stopping remaining packages",
                    flushed=len(summary.results),
                ) from error
        summary.elapsed_seconds = self._clock() - started
        return summary

    def _run_batch(
        self,
        batch: list[PackageTask],
        *,
        offset: int,
        total: int,
    ) -> list[TaskResult]:
        slots: list[TaskResult | None] = [None] * len(batch)
        pool = ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="brew-change")
        interrupted = False
        try:
            futures: dict[Future[TaskResult], int] = {
                pool.submit(self._execute, offset + position, task): position
                for position, task in enumerate(batch)
            }
            for completed, future in enumerate(as_completed(futures), start=1):
                result = future.result()
                slots[futures[future]] = result
                if self._on_progress is not None:
                    self._on_progress(offset + completed, total, result)
        except KeyboardInterrupt:
            interrupted = True
            self.stop_event.set()
            raise
        finally:
            pool.shutdown(wait=not interrupted, cancel_futures=True)
        return [slot for slot in slots if slot is not None]

    def _execute(self, index: int, task: PackageTask) -> TaskResult:
        if self.stop_event.is_set():
            return TaskResult(index=index, task=task, output="", status=TaskStatus.FAILED)
        try:
            rendered = self._unit(task)
        except Exception:  # noqa: BLE001
            logger.warning("Failed to process package %s", task.name, exc_info=True)
            return TaskResult(
                index=index,
                task=task,
                output=render_failure(task),
                status=TaskStatus.FAILED,
            )
        return TaskResult(index=index, task=task, output=rendered.text, status=rendered.status)

    def _pause(self) -> None:
        delay = self.rate_limit_delay_seconds
        if self._sleep is not None:
            self._sleep(delay)
            return
        if delay > 0 and self.stop_event.wait(delay):
            raise KeyboardInterrupt

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        signums = [signal.SIGTERM]
        if hasattr(signal, "SIGHUP"):
            signums.append(signal.SIGHUP)
        originals: dict[int, Any] = {}

        def _handler(signum: int, _: object | None) -> None:
            logger.debug("Received %s, cancelling run", signal.Signals(signum).name)
            self.stop_event.set()
            raise KeyboardInterrupt

        try:
            for signum in signums:
                originals[signum] = signal.signal(signum, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            pass
        try:
            yield
        finally:
            for signum, original in originals.items():
                signal.signal(signum, original)
