"""Protocol interfaces shared by the streaming, voice and animation components."""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, Sequence

from models import ChatSettings, ExitStatus, JobState

ChunkCallback = Callable[[bytes], None]
ExitCallback = Callable[[ExitStatus], None]


class Dispatcher(Protocol):
    def call_soon(self, fn: Callable[..., Any], *args: Any) -> None: ...

    def call_later(self, delay_s: float, fn: Callable[..., Any], *args: Any) -> None: ...


class LineSink(Protocol):
    def line_count(self) -> int: ...

    def set_lines(self, start: int, end: Optional[int], lines: Sequence[str]) -> None: ...

    def append_lines(self, lines: Sequence[str]) -> None: ...


class Job(Protocol):
    @property
    def job_id(self) -> int: ...

    @property
    def state(self) -> JobState: ...

    def stop(self) -> None: ...


class JobLauncher(Protocol):
    def spawn(
        self,
        argv: Sequence[str],
        on_stdout: ChunkCallback,
        on_stderr: ChunkCallback,
        on_exit: ExitCallback,
        cwd: Optional[str] = None,
    ) -> Job: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...

    def get_model(self) -> str: ...

    def set_model(self, model: str) -> None: ...

    def get_system_prompt(self) -> str: ...

    def get_chat_settings(self) -> ChatSettings: ...
