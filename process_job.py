"""External process wrapper with streamed output and a single exit event."""

from __future__ import annotations

import itertools
import subprocess
import threading
from typing import IO, List, Optional, Sequence

from errors import SpawnError
from interfaces import ChunkCallback, Dispatcher, ExitCallback
from logger import log
from models import ExitStatus, JobState

_CHUNK_SIZE = 4096
_job_ids = itertools.count(1)


class ProcessJob:
    """One spawned command.

    Reader threads never call the owner's callbacks directly; every chunk and
    the final exit status are posted to the dispatcher in arrival order, so
    ``on_exit`` is always delivered after the last chunk.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        argv: Sequence[str],
        on_stdout: ChunkCallback,
        on_stderr: ChunkCallback,
        on_exit: ExitCallback,
        cwd: Optional[str] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._argv = list(argv)
        self._cwd = cwd
        self._on_stdout = on_stdout
        self._on_stderr = on_stderr
        self._on_exit = on_exit
        self._job_id = next(_job_ids)
        self._state = JobState.SPAWNED
        self._lock = threading.Lock()
        self._stop_requested = False
        self._exit_status: Optional[ExitStatus] = None
        self._readers: List[threading.Thread] = []

        if not self._argv:
            raise SpawnError(self._argv, "empty command")
        try:
            self._proc = subprocess.Popen(
                self._argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
                bufsize=0,
            )
        except (OSError, ValueError) as exc:
            raise SpawnError(self._argv, str(exc)) from exc
        log.debug("job %d spawned pid=%d: %s", self._job_id, self._proc.pid, self._argv[0])

    @property
    def job_id(self) -> int:
        return self._job_id

    @property
    def argv(self) -> List[str]:
        return list(self._argv)

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def exit_status(self) -> Optional[ExitStatus]:
        return self._exit_status

    def start(self) -> None:
        if self._state != JobState.SPAWNED:
            return
        self._readers = [
            self._start_thread(self._pump, self._proc.stdout, self._on_stdout, "stdout"),
            self._start_thread(self._pump, self._proc.stderr, self._on_stderr, "stderr"),
        ]
        self._start_thread(self._wait, None, None, "wait")
        self._state = JobState.RUNNING

    def stop(self) -> None:
        """Send SIGTERM. Exit is still reported through ``on_exit``."""
        with self._lock:
            if self._stop_requested or self._proc.poll() is not None:
                return
            self._stop_requested = True
        log.debug("job %d: terminate requested", self._job_id)
        try:
            self._proc.terminate()
        except ProcessLookupError:
            pass

    # ------------------------------------------------------------------
    # Worker threads
    # ------------------------------------------------------------------

    def _start_thread(self, target, stream, callback, label: str) -> threading.Thread:  # noqa: ANN001
        thread = threading.Thread(
            target=target,
            args=(stream, callback),
            daemon=True,
            name=f"job-{self._job_id}-{label}",
        )
        thread.start()
        return thread

    def _pump(self, stream: Optional[IO[bytes]], callback: ChunkCallback) -> None:
        if stream is None:
            return
        try:
            while True:
                chunk = stream.read(_CHUNK_SIZE)
                if not chunk:
                    break
                self._dispatcher.call_soon(callback, chunk)
        except (OSError, ValueError) as exc:
            log.warning("job %d: output stream error: %s", self._job_id, exc)
        finally:
            stream.close()

    def _wait(self, _stream: None, _callback: None) -> None:
        for reader in self._readers:
            reader.join()
        returncode = self._proc.wait()
        with self._lock:
            status = ExitStatus(returncode=returncode, stop_requested=self._stop_requested)
        self._dispatcher.call_soon(self._finish, status)

    def _finish(self, status: ExitStatus) -> None:
        self._exit_status = status
        self._state = JobState.EXITED
        log.debug("job %d exited: %s", self._job_id, status.describe())
        self._on_exit(status)


class ProcessLauncher:
    """Spawns ProcessJobs whose callbacks run on ``dispatcher``."""

    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher

    def spawn(
        self,
        argv: Sequence[str],
        on_stdout: ChunkCallback,
        on_stderr: ChunkCallback,
        on_exit: ExitCallback,
        cwd: Optional[str] = None,
    ) -> ProcessJob:
        job = ProcessJob(self._dispatcher, argv, on_stdout, on_stderr, on_exit, cwd=cwd)
        job.start()
        return job
