from __future__ import annotations

import heapq
import itertools
import threading
import time
from typing import Any, Callable, List, Tuple

import pytest

from models import ExitStatus, JobState


class ManualDispatcher:
    """Runs posted callbacks only when the test asks it to.

    ``call_later`` uses a virtual clock advanced by ``advance``; ``call_soon``
    is thread-safe so real reader threads can post into it.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: List[Tuple[float, int, Callable[..., Any], tuple]] = []
        self._seq = itertools.count()
        self._cond = threading.Condition()

    def call_soon(self, fn: Callable[..., Any], *args: Any) -> None:
        with self._cond:
            heapq.heappush(self._queue, (self.now, next(self._seq), fn, args))
            self._cond.notify_all()

    def call_later(self, delay_s: float, fn: Callable[..., Any], *args: Any) -> None:
        with self._cond:
            heapq.heappush(self._queue, (self.now + delay_s, next(self._seq), fn, args))
            self._cond.notify_all()

    @property
    def pending(self) -> int:
        with self._cond:
            return len(self._queue)

    def run_pending(self) -> int:
        """Run every callback due at the current virtual time, including ones they post."""
        ran = 0
        while True:
            with self._cond:
                if not self._queue or self._queue[0][0] > self.now:
                    return ran
                _, _, fn, args = heapq.heappop(self._queue)
            fn(*args)
            ran += 1

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            self.run_pending()
            with self._cond:
                if not self._queue or self._queue[0][0] > target:
                    break
                self.now = self._queue[0][0]
        self.now = target
        self.run_pending()

    def run_until(self, predicate: Callable[[], bool], timeout: float = 10.0) -> None:
        deadline = time.monotonic() + timeout
        while not predicate():
            self.run_pending()
            if predicate():
                return
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise AssertionError("condition not reached before timeout")
            with self._cond:
                if not self._queue or self._queue[0][0] > self.now:
                    self._cond.wait(timeout=min(remaining, 0.05))


@pytest.fixture
def dispatcher() -> ManualDispatcher:
    return ManualDispatcher()


class FakeJob:
    """Stands in for a ProcessJob; tests drive its callbacks directly."""

    _ids = itertools.count(1)

    def __init__(self, argv, on_stdout, on_stderr, on_exit) -> None:  # noqa: ANN001
        self.job_id = next(self._ids)
        self.argv = list(argv)
        self.on_stdout = on_stdout
        self.on_stderr = on_stderr
        self.on_exit = on_exit
        self.state = JobState.RUNNING
        self.stop_calls = 0

    def stop(self) -> None:
        self.stop_calls += 1

    def emit(self, data: bytes | str) -> None:
        self.on_stdout(data.encode("utf-8") if isinstance(data, str) else data)

    def emit_stderr(self, data: bytes | str) -> None:
        self.on_stderr(data.encode("utf-8") if isinstance(data, str) else data)

    def exit(self, returncode: int = 0) -> None:
        self.state = JobState.EXITED
        self.on_exit(ExitStatus(returncode=returncode, stop_requested=self.stop_calls > 0))


class FakeLauncher:
    def __init__(self) -> None:
        self.jobs: List[FakeJob] = []
        self.fail_with: Exception | None = None

    def spawn(self, argv, on_stdout, on_stderr, on_exit, cwd=None) -> FakeJob:  # noqa: ANN001
        if self.fail_with is not None:
            raise self.fail_with
        job = FakeJob(argv, on_stdout, on_stderr, on_exit)
        self.jobs.append(job)
        return job

    @property
    def last(self) -> FakeJob:
        return self.jobs[-1]


class RecordingSink:
    def __init__(self) -> None:
        self.lines: List[str] = []
        self.calls: List[Tuple[str, int, Any, List[str]]] = []

    def line_count(self) -> int:
        return len(self.lines)

    def set_lines(self, start: int, end, lines) -> None:  # noqa: ANN001
        stop = len(self.lines) if end is None else min(end, len(self.lines))
        self.lines[start:stop] = list(lines)
        self.calls.append(("set", start, end, list(lines)))

    def append_lines(self, lines) -> None:  # noqa: ANN001
        self.lines.extend(lines)
        self.calls.append(("append", len(self.lines), None, list(lines)))


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture(autouse=True)
def _no_ambient_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
