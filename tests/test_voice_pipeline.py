from __future__ import annotations

import os
from pathlib import Path

from errors import RECORDER_ERROR, SPAWN_ERROR, TRANSPORT_ERROR, SpawnError, make_error
from models import ErrorInfo, ExitStatus, SessionState
from voice_pipeline import RecordingPipeline


class FakeRecorder:
    def __init__(self) -> None:
        self.started_with: list[str] = []
        self.on_exit = None
        self.stopped = 0
        self.fail_with: Exception | None = None
        self.error_line = ""

    def start(self, wav_path: str, on_exit):  # noqa: ANN001, ANN201
        if self.fail_with is not None:
            raise self.fail_with
        self.started_with.append(wav_path)
        self.on_exit = on_exit
        return object()

    def stop(self) -> None:
        self.stopped += 1

    def last_error_line(self) -> str:
        return self.error_line

    def exit(self, returncode: int, stop_requested: bool = False) -> None:
        assert self.on_exit is not None
        self.on_exit(ExitStatus(returncode=returncode, stop_requested=stop_requested))


class FakeJob:
    def __init__(self) -> None:
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class FakeTranscriber:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.on_result = None
        self.job = FakeJob()

    def transcribe(self, wav_path: str, on_result):  # noqa: ANN001, ANN201
        self.calls.append(wav_path)
        self.on_result = on_result
        return self.job

    def respond(self, text: str, error: ErrorInfo | None = None) -> None:
        assert self.on_result is not None
        self.on_result(text, error)


class _Done:
    def __init__(self) -> None:
        self.calls: list[tuple[str, ErrorInfo | None]] = []

    def __call__(self, text: str, error: ErrorInfo | None) -> None:
        self.calls.append((text, error))


def _pipeline(dispatcher, transitions=None):  # noqa: ANN001, ANN202
    recorder = FakeRecorder()
    transcriber = FakeTranscriber()
    pipeline = RecordingPipeline(
        dispatcher,
        recorder,
        transcriber,
        on_state_change=(lambda f, t: transitions.append((f, t))) if transitions is not None else None,
    )
    return pipeline, recorder, transcriber


def test_happy_path_records_then_transcribes(dispatcher) -> None:  # noqa: ANN001
    transitions: list[tuple[SessionState, SessionState]] = []
    pipeline, recorder, transcriber = _pipeline(dispatcher, transitions)
    done = _Done()

    assert pipeline.start(done) is True
    wav = Path(recorder.started_with[0])
    assert wav.exists()
    assert pipeline.state == SessionState.RECORDING

    pipeline.stop()
    assert recorder.stopped == 1
    assert pipeline.state == SessionState.RECORDING  # waits for the recorder to exit

    recorder.exit(-15, stop_requested=True)
    assert pipeline.state == SessionState.TRANSCRIBING
    assert transcriber.calls == [str(wav)]

    transcriber.respond("hello nya")

    assert done.calls == [("hello nya", None)]
    assert pipeline.state == SessionState.IDLE
    assert not wav.exists()
    assert transitions == [
        (SessionState.IDLE, SessionState.RECORDING),
        (SessionState.RECORDING, SessionState.TRANSCRIBING),
        (SessionState.TRANSCRIBING, SessionState.IDLE),
    ]


def test_trapped_termination_after_stop_still_transcribes(dispatcher) -> None:  # noqa: ANN001
    pipeline, recorder, transcriber = _pipeline(dispatcher)
    pipeline.start(_Done())
    pipeline.stop()

    recorder.exit(255, stop_requested=True)

    assert pipeline.state == SessionState.TRANSCRIBING
    assert len(transcriber.calls) == 1


def test_clean_recorder_exit_transcribes(dispatcher) -> None:  # noqa: ANN001
    pipeline, recorder, transcriber = _pipeline(dispatcher)
    pipeline.start(_Done())

    recorder.exit(0)

    assert pipeline.state == SessionState.TRANSCRIBING


def test_recorder_failure_skips_transcription(dispatcher) -> None:  # noqa: ANN001
    pipeline, recorder, transcriber = _pipeline(dispatcher)
    recorder.error_line = "default: No such device"
    done = _Done()
    pipeline.start(done)
    wav = Path(recorder.started_with[0])

    recorder.exit(1)

    assert pipeline.state == SessionState.IDLE
    assert transcriber.calls == []
    [(text, error)] = done.calls
    assert text == ""
    assert error is not None and error.code == RECORDER_ERROR
    assert "No such device" in error.message
    assert not wav.exists()


def test_transcription_failure_cleans_up(dispatcher) -> None:  # noqa: ANN001
    pipeline, recorder, transcriber = _pipeline(dispatcher)
    done = _Done()
    pipeline.start(done)
    wav = Path(recorder.started_with[0])
    pipeline.stop()
    recorder.exit(-15, stop_requested=True)

    transcriber.respond("", make_error(TRANSPORT_ERROR, "malformed transcription response"))

    assert done.calls[0][1].code == TRANSPORT_ERROR
    assert pipeline.state == SessionState.IDLE
    assert not wav.exists()


def test_start_is_rejected_unless_idle(dispatcher) -> None:  # noqa: ANN001
    pipeline, recorder, _ = _pipeline(dispatcher)
    assert pipeline.start(_Done()) is True
    assert pipeline.start(_Done()) is False
    assert len(recorder.started_with) == 1

    pipeline.stop()
    recorder.exit(-15, stop_requested=True)
    assert pipeline.start(_Done()) is False  # transcribing


def test_stop_is_noop_unless_recording(dispatcher) -> None:  # noqa: ANN001
    pipeline, recorder, _ = _pipeline(dispatcher)
    pipeline.stop()
    assert recorder.stopped == 0


def test_spawn_failure_reports_error_and_stays_idle(dispatcher, tmp_path, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr("tempfile.tempdir", str(tmp_path))
    pipeline, recorder, _ = _pipeline(dispatcher)
    recorder.fail_with = SpawnError(["ffmpeg"], "No such file or directory")
    done = _Done()

    assert pipeline.start(done) is False
    assert pipeline.state == SessionState.IDLE
    assert os.listdir(tmp_path) == []

    dispatcher.run_pending()
    assert done.calls[0][1].code == SPAWN_ERROR


def test_toggle_starts_then_stops(dispatcher) -> None:  # noqa: ANN001
    pipeline, recorder, _ = _pipeline(dispatcher)
    done = _Done()

    assert pipeline.toggle(done) == SessionState.RECORDING
    assert pipeline.toggle(done) == SessionState.RECORDING
    assert recorder.stopped == 1


def test_cancel_while_recording_discards_audio(dispatcher) -> None:  # noqa: ANN001
    pipeline, recorder, transcriber = _pipeline(dispatcher)
    done = _Done()
    pipeline.start(done)
    wav = Path(recorder.started_with[0])

    pipeline.cancel()
    recorder.exit(-15, stop_requested=True)

    assert transcriber.calls == []
    assert done.calls == [("", None)]
    assert pipeline.state == SessionState.IDLE
    assert not wav.exists()


def test_cancel_while_transcribing_stops_upload(dispatcher) -> None:  # noqa: ANN001
    pipeline, recorder, transcriber = _pipeline(dispatcher)
    done = _Done()
    pipeline.start(done)
    pipeline.stop()
    recorder.exit(-15, stop_requested=True)

    pipeline.cancel()
    assert transcriber.job.stopped
    transcriber.respond("", make_error(TRANSPORT_ERROR, "curl terminated by signal 15"))

    assert done.calls == [("", None)]
    assert pipeline.state == SessionState.IDLE


def test_stale_recorder_exit_is_ignored(dispatcher) -> None:  # noqa: ANN001
    pipeline, recorder, transcriber = _pipeline(dispatcher)
    pipeline.start(_Done())
    stale_exit = recorder.on_exit
    recorder.exit(1)  # first session fails

    done = _Done()
    pipeline.start(done)
    stale_exit(ExitStatus(returncode=0))

    assert pipeline.state == SessionState.RECORDING
    assert transcriber.calls == []
    assert done.calls == []


def test_temp_file_failure_reports_error(dispatcher, monkeypatch) -> None:  # noqa: ANN001
    def _no_space(*args, **kwargs):  # noqa: ANN002, ANN003, ANN202
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("tempfile.mkstemp", _no_space)
    pipeline, recorder, _ = _pipeline(dispatcher)
    done = _Done()

    assert pipeline.start(done) is False
    assert pipeline.state == SessionState.IDLE
    assert recorder.started_with == []

    dispatcher.run_pending()
    [(text, error)] = done.calls
    assert text == ""
    assert error is not None and error.code == RECORDER_ERROR
    assert "No space left" in error.message


def test_failure_exit_after_stop_is_still_an_error(dispatcher) -> None:  # noqa: ANN001
    pipeline, recorder, transcriber = _pipeline(dispatcher)
    recorder.error_line = "Invalid argument"
    done = _Done()
    pipeline.start(done)
    pipeline.stop()

    recorder.exit(1, stop_requested=True)

    assert transcriber.calls == []
    assert done.calls[0][1].code == RECORDER_ERROR
    assert pipeline.state == SessionState.IDLE


def test_missing_recording_file_is_an_error(dispatcher) -> None:  # noqa: ANN001
    pipeline, recorder, transcriber = _pipeline(dispatcher)
    done = _Done()
    pipeline.start(done)
    pipeline._remove_audio()

    recorder.exit(0)

    assert transcriber.calls == []
    assert done.calls[0][1].code == RECORDER_ERROR
    assert pipeline.state == SessionState.IDLE


def test_shutdown_removes_recording_immediately(dispatcher) -> None:  # noqa: ANN001
    pipeline, recorder, transcriber = _pipeline(dispatcher)
    done = _Done()
    pipeline.start(done)
    wav = Path(recorder.started_with[0])

    pipeline.shutdown()

    assert recorder.stopped == 1
    assert not wav.exists()
    assert pipeline.wav_path is None

    recorder.exit(-15, stop_requested=True)  # if the loop still delivers it
    assert done.calls == [("", None)]
    assert transcriber.calls == []


def test_shutdown_while_transcribing(dispatcher) -> None:  # noqa: ANN001
    pipeline, recorder, transcriber = _pipeline(dispatcher)
    pipeline.start(_Done())
    wav = Path(recorder.started_with[0])
    pipeline.stop()
    recorder.exit(-15, stop_requested=True)

    pipeline.shutdown()

    assert transcriber.job.stopped
    assert not wav.exists()
