"""Shared error codes and user-facing messages."""

from __future__ import annotations

from typing import Optional, Sequence

from models import ErrorInfo

CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
TRANSPORT_ERROR = "TRANSPORT_ERROR"
SPAWN_ERROR = "SPAWN_ERROR"
MALFORMED_EVENT = "MALFORMED_EVENT"
RECORDER_ERROR = "RECORDER_ERROR"

ERROR_MESSAGES = {
    CONFIGURATION_ERROR: "No API key. Set OPENAI_API_KEY in .env, the environment, or the config file.",
    TRANSPORT_ERROR: "Request failed, please retry.",
    SPAWN_ERROR: "Could not start an external program.",
    MALFORMED_EVENT: "Skipped an unreadable stream line.",
    RECORDER_ERROR: "Recorder failed. Is a microphone available?",
}


class SpawnError(RuntimeError):
    """Raised synchronously when an external command cannot be started."""

    def __init__(self, argv: Sequence[str], reason: str) -> None:
        self.argv = list(argv)
        self.reason = reason
        program = self.argv[0] if self.argv else "<empty command>"
        super().__init__(f"failed to start {program}: {reason}")


def make_error(code: str, detail: Optional[str] = None) -> ErrorInfo:
    message = ERROR_MESSAGES.get(code, code)
    if detail:
        message = f"{message} ({detail})"
    return ErrorInfo(code=code, message=message)
