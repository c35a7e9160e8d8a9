"""Microphone recorder adapter backed by an ffmpeg Process Job."""

from __future__ import annotations

import sys
from typing import List, Optional

from interfaces import ExitCallback, Job, JobLauncher
from logger import log

SAMPLE_RATE = 16000


def record_command(wav_path: str, platform: Optional[str] = None, ffmpeg: str = "ffmpeg") -> List[str]:
    """ffmpeg argv capturing the default input device as 16 kHz mono PCM."""
    platform = platform or sys.platform
    if platform == "darwin":
        source = ["-f", "avfoundation", "-i", ":0"]
    elif platform.startswith("win"):
        source = ["-f", "dshow", "-i", "audio=default"]
    else:
        # PulseAudio, which also covers PipeWire-pulse and WSLg
        source = ["-f", "pulse", "-i", "default"]
    return [
        ffmpeg, "-y", "-hide_banner", "-loglevel", "error",
        *source,
        "-ar", str(SAMPLE_RATE), "-ac", "1", "-acodec", "pcm_s16le",
        wav_path,
    ]


class FfmpegRecorder:
    def __init__(
        self,
        launcher: JobLauncher,
        ffmpeg: str = "ffmpeg",
        platform: Optional[str] = None,
    ) -> None:
        self._launcher = launcher
        self._ffmpeg = ffmpeg
        self._platform = platform
        self._job: Optional[Job] = None
        self._stderr = bytearray()

    @property
    def job(self) -> Optional[Job]:
        return self._job

    def start(self, wav_path: str, on_exit: ExitCallback) -> Job:
        """Start capturing into ``wav_path``. Raises SpawnError if ffmpeg cannot run."""
        self._stderr = bytearray()
        argv = record_command(wav_path, platform=self._platform, ffmpeg=self._ffmpeg)
        self._job = self._launcher.spawn(
            argv,
            on_stdout=lambda _chunk: None,
            on_stderr=self._stderr.extend,
            on_exit=on_exit,
        )
        log.info("recording started -> %s", wav_path)
        return self._job

    def stop(self) -> None:
        # ffmpeg flushes and finalises the WAV header on SIGTERM
        if self._job is not None:
            self._job.stop()

    def last_error_line(self) -> str:
        lines = self._stderr.decode("utf-8", errors="replace").splitlines()
        return next((line.strip() for line in reversed(lines) if line.strip()), "")
