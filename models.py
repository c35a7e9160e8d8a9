"""Core data models for the app."""

from __future__ import annotations

import os
import signal
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

# Exit codes a program may report after handling the SIGTERM we sent: clean
# shutdown, ffmpeg's 255, and the shell convention 128 + SIGTERM. On Windows
# terminate() is TerminateProcess, which leaves exit code 1.
STOP_EXIT_CODES = frozenset({0, 255, 128 + signal.SIGTERM} | ({1} if os.name == "nt" else set()))


class SessionState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    TRANSCRIBING = "TRANSCRIBING"


class JobState(str, Enum):
    SPAWNED = "SPAWNED"
    RUNNING = "RUNNING"
    EXITED = "EXITED"


class StreamEventKind(str, Enum):
    TOKEN = "token"
    END = "end"
    SKIP = "skip"


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ExitStatus:
    """How a Process Job ended.

    ``stop_requested`` is only set when the caller signalled the process while
    it looked alive. The exit still has to look like a reaction to SIGTERM to
    count as caller-initiated: a program that fails on its own right as it is
    being stopped, or one that had already exited when ``poll()`` could not
    reap it, keeps its own status.
    """

    returncode: int
    stop_requested: bool = False

    @property
    def signal(self) -> Optional[int]:
        if self.returncode < 0:
            return -self.returncode
        return None

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def stopped_by_caller(self) -> bool:
        if not self.stop_requested:
            return False
        return self.signal == signal.SIGTERM or self.returncode in STOP_EXIT_CODES

    def describe(self) -> str:
        if self.signal is not None:
            return f"terminated by signal {self.signal}"
        return f"exit code {self.returncode}"


@dataclass(frozen=True)
class StreamEvent:
    kind: StreamEventKind
    text: str = ""


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class ErrorInfo:
    code: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class CompletionResult:
    text: str = ""
    error: Optional[ErrorInfo] = None


@dataclass
class ChatSettings:
    api_key: str = ""
    model: str = "gpt-4o"
    base_url: str = "https://api.openai.com/v1"
    whisper_model: str = "whisper-1"
    env_file: Optional[str] = None


@dataclass(frozen=True)
class Frame:
    # 1-indexed line number -> replacement text
    patch: Dict[int, str] = field(default_factory=dict)
    ms: int = 100
