"""State-machine based recording -> transcription orchestration.

    IDLE --start--> RECORDING --recorder exit--> TRANSCRIBING --response--> IDLE

``stop()`` only signals the recorder; the move to TRANSCRIBING happens when
the recorder job reports its exit, so the WAV file is complete by then.
"""

from __future__ import annotations

import os
import tempfile
from functools import partial
from pathlib import Path
from typing import Callable, Optional, Protocol

from errors import RECORDER_ERROR, SPAWN_ERROR, SpawnError, make_error
from interfaces import Dispatcher, ExitCallback, Job
from logger import log
from models import ErrorInfo, ExitStatus, SessionState

StateCallback = Callable[[SessionState, SessionState], None]
DoneCallback = Callable[[str, Optional[ErrorInfo]], None]


class Recorder(Protocol):
    def start(self, wav_path: str, on_exit: ExitCallback) -> Job: ...

    def stop(self) -> None: ...

    def last_error_line(self) -> str: ...


class Transcriber(Protocol):
    def transcribe(self, wav_path: str, on_result: DoneCallback) -> Optional[Job]: ...


class RecordingPipeline:
    def __init__(
        self,
        dispatcher: Dispatcher,
        recorder: Recorder,
        transcriber: Transcriber,
        on_state_change: Optional[StateCallback] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._recorder = recorder
        self._transcriber = transcriber
        self._on_state_change = on_state_change

        self._state = SessionState.IDLE
        self._session_id = 0
        self._wav_path: Optional[str] = None
        self._job: Optional[Job] = None
        self._on_done: Optional[DoneCallback] = None
        self._discard = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def wav_path(self) -> Optional[str]:
        return self._wav_path

    def start(self, on_done: DoneCallback) -> bool:
        """Begin recording. Returns False (and does nothing) unless idle."""
        if self._state != SessionState.IDLE:
            return False
        self._session_id += 1
        self._discard = False
        try:
            fd, path = tempfile.mkstemp(prefix="nya_voice_", suffix=".wav")
            os.close(fd)
        except OSError as exc:
            log.error("could not create recording file: %s", exc)
            self._dispatcher.call_soon(
                on_done, "", make_error(RECORDER_ERROR, f"could not create recording file: {exc}")
            )
            return False
        self._wav_path = path
        self._on_done = on_done

        try:
            self._job = self._recorder.start(
                path, partial(self._handle_recorder_exit, self._session_id)
            )
        except SpawnError as exc:
            log.error("recorder failed to start: %s", exc)
            self._remove_audio()
            self._on_done = None
            self._dispatcher.call_soon(on_done, "", make_error(SPAWN_ERROR, str(exc)))
            return False

        self._transition(SessionState.RECORDING)
        return True

    def stop(self) -> None:
        if self._state != SessionState.RECORDING:
            return
        self._recorder.stop()

    def toggle(self, on_done: DoneCallback) -> SessionState:
        if self._state == SessionState.IDLE:
            self.start(on_done)
        elif self._state == SessionState.RECORDING:
            self.stop()
        return self._state

    def cancel(self) -> None:
        """Abandon the current session; ``on_done`` still fires, with empty text."""
        if self._state == SessionState.IDLE:
            return
        self._discard = True
        if self._state == SessionState.RECORDING:
            self._recorder.stop()
        elif self._job is not None:
            self._job.stop()

    def shutdown(self) -> None:
        """Cancel and delete the recording now.

        The recorder exit may never be delivered once the event loop stops, so
        the WAV is removed here rather than in ``_complete``.
        """
        self.cancel()
        self._remove_audio()

    # ------------------------------------------------------------------
    # Job callbacks (already on the dispatcher)
    # ------------------------------------------------------------------

    def _handle_recorder_exit(self, session_id: int, status: ExitStatus) -> None:
        if session_id != self._session_id or self._state != SessionState.RECORDING:
            return
        if not (status.ok or status.stopped_by_caller):
            detail = status.describe()
            stderr_line = self._recorder.last_error_line()
            if stderr_line:
                detail = f"{detail}: {stderr_line}"
            self._complete("", make_error(RECORDER_ERROR, detail))
            return
        if self._discard:
            self._complete("", None)
            return

        if not self._wav_path:
            self._complete("", make_error(RECORDER_ERROR, "recording file is gone"))
            return

        self._transition(SessionState.TRANSCRIBING)
        self._job = self._transcriber.transcribe(
            self._wav_path, partial(self._handle_transcript, self._session_id)
        )

    def _handle_transcript(self, session_id: int, text: str, error: Optional[ErrorInfo]) -> None:
        if session_id != self._session_id or self._state != SessionState.TRANSCRIBING:
            return
        if self._discard:
            text, error = "", None
        self._complete(text, error)

    def _complete(self, text: str, error: Optional[ErrorInfo]) -> None:
        self._remove_audio()
        self._job = None
        callback = self._on_done
        self._on_done = None
        if error is not None:
            log.warning("voice input failed: %s", error.message)
        self._transition(SessionState.IDLE)
        if callback is not None:
            callback(text, error)

    def _remove_audio(self) -> None:
        path, self._wav_path = self._wav_path, None
        if not path:
            return
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as exc:
            log.warning("could not remove recording %s: %s", path, exc)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        log.debug("voice state %s -> %s", from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
