"""Chat panel orchestration: history, transcript rendering, avatar state, voice input."""

from __future__ import annotations

from typing import Callable, List, Optional

from animator import Animator
from chat_client import CompletionRequest, StreamingChatClient
from frames import BASE
from interfaces import LineSink
from logger import log
from models import ChatMessage, ChatSettings, ErrorInfo, Role, SessionState
from voice_pipeline import RecordingPipeline

USER_PREFIX = "  [you] "
ASSISTANT_PREFIX = "  [nya~] "
STATUS_PREFIX = "  "
PROMPT_MARKER = "> "

DEFAULT_SYSTEM_PROMPT = (
    "You are Nya, a cheerful and knowledgeable coding assistant who speaks like a VTuber. "
    "You're enthusiastic, caring, and give clear practical advice. "
    "Occasionally use 'nya~' naturally. Keep replies concise and focused on the user's code."
)

BusyCallback = Callable[[bool], None]


def wrap_message(prefix: str, text: str, width: int) -> List[str]:
    """Hard-wrap ``text`` to ``width`` columns.

    The prefix appears on the first line and continuation lines are indented
    to match. Blank paragraphs are kept once the first line has been written.
    """
    indent = " " * len(prefix)
    result: List[str] = []
    used_prefix = False
    for paragraph in text.split("\n"):
        if not paragraph:
            if used_prefix:
                result.append("")
            continue
        remaining = paragraph
        while remaining:
            lead = indent if used_prefix else prefix
            used_prefix = True
            avail = max(1, width - len(lead))
            result.append(lead + remaining[:avail])
            remaining = remaining[avail:]
    return result or [prefix]


class ChatController:
    def __init__(
        self,
        client: StreamingChatClient,
        animator: Animator,
        sink: LineSink,
        settings_provider: Callable[[], ChatSettings],
        pipeline: Optional[RecordingPipeline] = None,
        width: int = 56,
        system_prompt: Optional[str] = None,
        context_provider: Optional[Callable[[], str]] = None,
        on_busy_change: Optional[BusyCallback] = None,
    ) -> None:
        self._client = client
        self._animator = animator
        self._sink = sink
        self._settings_provider = settings_provider
        self._pipeline = pipeline
        self._width = width
        self._system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT
        self._context_provider = context_provider
        self._on_busy_change = on_busy_change

        self._history: List[ChatMessage] = []
        self._initialized = False
        self._open = False
        self._streaming = False
        self._response_start = 0
        self._response_text = ""
        self._request: Optional[CompletionRequest] = None

    @property
    def history(self) -> List[ChatMessage]:
        return list(self._history)

    @property
    def streaming(self) -> bool:
        return self._streaming

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        if self._open:
            return
        if not self._initialized:
            self._initialized = True
            separator = STATUS_PREFIX + "─" * max(1, self._width - len(STATUS_PREFIX))
            self._sink.set_lines(0, None, [*BASE, separator])
        self._open = True
        self._animator.bind(self._sink, 0)
        self._animator.start_state("idle")

    def close(self) -> None:
        self.cancel()
        self._animator.stop()
        self._open = False

    def cancel(self) -> bool:
        """Abandon the reply being streamed. Partial text stays on screen, not in history."""
        request, self._request = self._request, None
        if not self._streaming or request is None:
            return False
        request.abandon()
        self._set_streaming(False)
        self._animator.start_state("idle")
        self._replace_reply(self._response_text, "(cancelled)")
        return True

    def build_messages(self) -> List[ChatMessage]:
        system = self._system_prompt
        if self._context_provider is not None:
            context = self._context_provider().strip()
            if context:
                system = f"{system}\n\n--- Current Context ---\n{context}"
        return [ChatMessage(Role.SYSTEM, system), *self._history]

    def submit(self, raw_text: str) -> bool:
        """Send a user message. Returns False while a reply is streaming or for blank input."""
        if self._streaming:
            return False
        text = raw_text[len(PROMPT_MARKER):] if raw_text.startswith(PROMPT_MARKER) else raw_text
        text = text.strip()
        if not text:
            return False

        self._history.append(ChatMessage(Role.USER, text))
        self._sink.append_lines(wrap_message(USER_PREFIX, text, self._width))
        self._response_start = self._sink.line_count()
        self._response_text = ""
        self._sink.append_lines([ASSISTANT_PREFIX])

        self._set_streaming(True)
        self._animator.start_state("thinking")
        self._request = self._client.stream(
            self.build_messages(),
            self._settings_provider(),
            self._handle_token,
            self._handle_done,
        )
        return True

    def start_voice(self) -> bool:
        if self._pipeline is None or self._pipeline.state != SessionState.IDLE:
            return False
        started = self._pipeline.start(self._handle_transcript)
        if started:
            self._append_status("(listening...)")
        return started

    def stop_voice(self) -> None:
        if self._pipeline is not None:
            self._pipeline.stop()

    def toggle_voice(self) -> SessionState:
        if self._pipeline is None:
            return SessionState.IDLE
        if self._pipeline.state == SessionState.IDLE:
            self.start_voice()
        else:
            self.stop_voice()
        return self._pipeline.state

    # ------------------------------------------------------------------
    # Callbacks (dispatcher thread)
    # ------------------------------------------------------------------

    def _handle_token(self, token: str) -> None:
        if not self._response_text:
            self._animator.start_state("talking")
        self._response_text += token
        self._sink.set_lines(
            self._response_start, None, wrap_message(ASSISTANT_PREFIX, self._response_text, self._width)
        )

    def _handle_done(self, full_text: str, error: Optional[ErrorInfo]) -> None:
        self._set_streaming(False)
        self._request = None
        self._animator.start_state("idle")
        if error is not None:
            self._replace_reply(full_text, f"(error: {error.message})")
            return
        self._history.append(ChatMessage(Role.ASSISTANT, full_text))
        self._sink.append_lines([""])

    def _handle_transcript(self, text: str, error: Optional[ErrorInfo]) -> None:
        if error is not None:
            self._append_status(f"(voice error: {error.message})")
            return
        if not text:
            self._append_status("(heard nothing)")
            return
        if not self.submit(text):
            log.info("transcript arrived while a reply is streaming")
            self._append_status(f"(busy, not sent: {text})")

    def _replace_reply(self, text: str, note: str) -> None:
        shown = f"{text}\n{note}" if text else note
        self._sink.set_lines(self._response_start, None, wrap_message(ASSISTANT_PREFIX, shown, self._width))

    def _append_status(self, message: str) -> None:
        # Lines below the streaming reply would be overwritten by the next token.
        if self._streaming:
            log.info("status while streaming: %s", message)
            return
        self._sink.append_lines(wrap_message(STATUS_PREFIX, message, self._width))

    def _set_streaming(self, value: bool) -> None:
        self._streaming = value
        if self._on_busy_change:
            self._on_busy_change(value)
