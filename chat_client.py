"""Streaming chat-completion client driven by a curl Process Job.

Works against any OpenAI-compatible ``/chat/completions`` endpoint; point
``ChatSettings.base_url`` elsewhere for local or proxy servers.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Union

from credentials import resolve_api_key
from errors import CONFIGURATION_ERROR, SPAWN_ERROR, TRANSPORT_ERROR, SpawnError, make_error
from event_decoder import LineDecoder
from interfaces import Dispatcher, Job, JobLauncher
from latch import Latch
from logger import log
from models import ChatMessage, ChatSettings, CompletionResult, ErrorInfo, ExitStatus, StreamEventKind

TokenCallback = Callable[[str], None]
DoneCallback = Callable[[str, Optional[ErrorInfo]], None]
MessageLike = Union[ChatMessage, Mapping[str, str]]


def build_request_body(messages: Sequence[MessageLike], model: str) -> str:
    payload = {
        "model": model,
        "messages": [_message_dict(m) for m in messages],
        "stream": True,
    }
    return json.dumps(payload, ensure_ascii=False)


def _message_dict(message: MessageLike) -> Dict[str, str]:
    if isinstance(message, ChatMessage):
        return message.to_dict()
    return {"role": str(message["role"]), "content": str(message["content"])}


def chat_command(base_url: str, api_key: str, payload_path: str, curl: str = "curl") -> List[str]:
    return [
        curl, "-sS", "-N",
        base_url.rstrip("/") + "/chat/completions",
        "-H", "Content-Type: application/json",
        "-H", f"Authorization: Bearer {api_key}",
        "--data-binary", f"@{payload_path}",
    ]


def write_payload(body: str) -> str:
    """Write the request body to a temp file; curl reads it with ``@path``."""
    fd, path = tempfile.mkstemp(prefix="nya_chat_", suffix=".json")
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(body)
    return path


def remove_file(path: Optional[str]) -> None:
    if not path:
        return
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as exc:
        log.warning("could not remove temp file %s: %s", path, exc)


class CompletionRequest:
    """State of one ``stream`` call.

    ``on_done`` may be triggered by the ``[DONE]`` marker or by the job exit,
    whichever comes first; the latch makes the second trigger a no-op.
    """

    def __init__(self, on_token: TokenCallback, on_done: DoneCallback) -> None:
        self._on_token = on_token
        self._on_done = on_done
        self._latch = Latch()
        self._decoder = LineDecoder()
        self._stderr = bytearray()
        self.result = CompletionResult()
        self.job: Optional[Job] = None
        self.payload_path: Optional[str] = None

    @property
    def done(self) -> bool:
        return self._latch.fired

    @property
    def malformed_lines(self) -> int:
        return self._decoder.malformed

    def handle_stdout(self, chunk: bytes) -> None:
        if self._latch.fired:
            return
        for event in self._decoder.feed(chunk):
            if event.kind is StreamEventKind.TOKEN:
                self.result.text += event.text
                self._on_token(event.text)
            elif event.kind is StreamEventKind.END:
                self.finish(None)
                return

    def handle_stderr(self, chunk: bytes) -> None:
        self._stderr.extend(chunk)

    def handle_exit(self, status: ExitStatus) -> None:
        error = None
        if not status.ok:
            detail = f"curl {status.describe()}"
            stderr_tail = self._stderr_tail()
            if stderr_tail:
                detail = f"{detail}: {stderr_tail}"
            error = make_error(TRANSPORT_ERROR, detail)
        # Any unterminated line left in the decoder is dropped with it.
        self.finish(error)

    def finish(self, error: Optional[ErrorInfo]) -> None:
        if not self._latch.fire():
            return
        remove_file(self.payload_path)
        self.result.error = error
        if error is not None:
            log.warning("chat completion failed: %s", error.message)
        else:
            log.info("chat completion finished (%d chars)", len(self.result.text))
        self._on_done(self.result.text, error)

    def abandon(self) -> bool:
        """Stop the job and delete the payload without calling ``on_done``.

        Returns False if the request had already finished.
        """
        if not self._latch.fire():
            return False
        remove_file(self.payload_path)
        if self.job is not None:
            self.job.stop()
        log.info("chat completion abandoned after %d chars", len(self.result.text))
        return True

    def _stderr_tail(self) -> str:
        lines = self._stderr.decode("utf-8", errors="replace").splitlines()
        for line in reversed(lines):
            if line.strip():
                return line.strip()
        return ""


class StreamingChatClient:
    def __init__(
        self,
        dispatcher: Dispatcher,
        launcher: JobLauncher,
        environ: Optional[Mapping[str, str]] = None,
        curl: str = "curl",
    ) -> None:
        self._dispatcher = dispatcher
        self._launcher = launcher
        self._environ = environ
        self._curl = curl

    def stream(
        self,
        messages: Sequence[MessageLike],
        settings: Optional[ChatSettings],
        on_token: TokenCallback,
        on_done: DoneCallback,
    ) -> CompletionRequest:
        """Start one streaming completion.

        ``on_token`` receives each text increment and ``on_done(full_text,
        error)`` fires exactly once, always on the dispatcher.
        """
        if not messages:
            raise ValueError("messages must not be empty")
        settings = settings or ChatSettings()
        request = CompletionRequest(on_token, on_done)

        api_key = resolve_api_key(settings.api_key, settings.env_file, self._environ)
        if not api_key:
            self._dispatcher.call_soon(request.finish, make_error(CONFIGURATION_ERROR))
            return request

        try:
            request.payload_path = write_payload(build_request_body(messages, settings.model))
        except OSError as exc:
            self._dispatcher.call_soon(
                request.finish,
                make_error(TRANSPORT_ERROR, f"could not write request payload: {exc}"),
            )
            return request

        argv = chat_command(settings.base_url, api_key, request.payload_path, curl=self._curl)
        try:
            request.job = self._launcher.spawn(
                argv,
                on_stdout=request.handle_stdout,
                on_stderr=request.handle_stderr,
                on_exit=request.handle_exit,
            )
        except SpawnError as exc:
            self._dispatcher.call_soon(request.finish, make_error(SPAWN_ERROR, str(exc)))
            return request

        log.info("chat completion started: model=%s messages=%d", settings.model, len(messages))
        return request
