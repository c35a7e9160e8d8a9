"""Speech-to-text adapter using an OpenAI-compatible /audio/transcriptions endpoint.

The recorded WAV is uploaded as a multipart form by a one-shot curl job and
the single JSON response is parsed for its ``text`` field.
"""

from __future__ import annotations

import json
from typing import Callable, List, Mapping, Optional

from credentials import resolve_api_key
from errors import CONFIGURATION_ERROR, SPAWN_ERROR, TRANSPORT_ERROR, SpawnError, make_error
from interfaces import Dispatcher, Job, JobLauncher
from logger import log
from models import ChatSettings, ErrorInfo, ExitStatus

ResultCallback = Callable[[str, Optional[ErrorInfo]], None]


def transcribe_command(
    base_url: str,
    api_key: str,
    model: str,
    wav_path: str,
    curl: str = "curl",
) -> List[str]:
    return [
        curl, "-sS",
        base_url.rstrip("/") + "/audio/transcriptions",
        "-H", f"Authorization: Bearer {api_key}",
        "-F", f"model={model}",
        "-F", f"file=@{wav_path};type=audio/wav",
        "-F", "response_format=json",
    ]


def parse_transcription(raw: str) -> str:
    """Return the trimmed ``text`` of a transcription response.

    Raises ValueError when the body is not a JSON object with a string
    ``text``; API error bodies (``{"error": {...}}``) surface their message.
    """
    decoded = json.loads(raw)
    if not isinstance(decoded, dict):
        raise ValueError("response is not a JSON object")
    text = decoded.get("text")
    if isinstance(text, str):
        return text.strip()
    error = decoded.get("error")
    if isinstance(error, dict) and error.get("message"):
        raise ValueError(str(error["message"]))
    raise ValueError("response has no text field")


class WhisperTranscriber:
    def __init__(
        self,
        dispatcher: Dispatcher,
        launcher: JobLauncher,
        settings: Optional[ChatSettings] = None,
        environ: Optional[Mapping[str, str]] = None,
        curl: str = "curl",
        settings_provider: Optional[Callable[[], ChatSettings]] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._launcher = launcher
        self.settings = settings or ChatSettings()
        self._settings_provider = settings_provider
        self._environ = environ
        self._curl = curl

    def transcribe(self, wav_path: str, on_result: ResultCallback) -> Optional[Job]:
        """Upload ``wav_path``; ``on_result(text, error)`` fires once on the dispatcher."""
        settings = self._settings_provider() if self._settings_provider else self.settings
        api_key = resolve_api_key(settings.api_key, settings.env_file, self._environ)
        if not api_key:
            self._dispatcher.call_soon(on_result, "", make_error(CONFIGURATION_ERROR))
            return None

        stdout = bytearray()
        stderr = bytearray()

        def _on_exit(status: ExitStatus) -> None:
            if not status.ok:
                detail = f"curl {status.describe()}"
                tail = stderr.decode("utf-8", errors="replace").strip().splitlines()
                if tail:
                    detail = f"{detail}: {tail[-1]}"
                on_result("", make_error(TRANSPORT_ERROR, detail))
                return
            try:
                text = parse_transcription(stdout.decode("utf-8", errors="replace"))
            except ValueError as exc:
                on_result("", make_error(TRANSPORT_ERROR, f"malformed transcription response: {exc}"))
                return
            log.info("transcription finished (%d chars)", len(text))
            on_result(text, None)

        argv = transcribe_command(settings.base_url, api_key, settings.whisper_model, wav_path, curl=self._curl)
        try:
            job = self._launcher.spawn(
                argv,
                on_stdout=stdout.extend,
                on_stderr=stderr.extend,
                on_exit=_on_exit,
            )
        except SpawnError as exc:
            self._dispatcher.call_soon(on_result, "", make_error(SPAWN_ERROR, str(exc)))
            return None
        log.info("transcription started: model=%s", settings.whisper_model)
        return job
