"""Generation-counter based avatar animation.

Every scheduled tick carries the generation that was current when it was
scheduled. ``start_state`` and ``stop`` bump the counter first, so all
previously scheduled ticks become no-ops and their chains end on their own;
nothing ever cancels a timer.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence

from frames import BASE, STATES, apply_patch
from interfaces import Dispatcher, LineSink
from logger import log
from models import Frame


class Animator:
    def __init__(
        self,
        dispatcher: Dispatcher,
        base: Sequence[str] = BASE,
        states: Optional[Mapping[str, Sequence[Frame]]] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._base: List[str] = list(base)
        self._states: Dict[str, List[Frame]] = {
            name: list(frames) for name, frames in (STATES if states is None else states).items()
        }
        self._sink: Optional[LineSink] = None
        self._offset = 0
        self._generation = 0
        self._running = False
        self._current_state: Optional[str] = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def current_state(self) -> Optional[str]:
        return self._current_state

    def bind(self, sink: LineSink, offset: int = 0) -> None:
        """Render into ``sink`` starting at 0-indexed line ``offset``."""
        self._sink = sink
        self._offset = offset

    def start_state(self, name: str) -> None:
        """Loop the frames of ``name`` until stop() or another start_state()."""
        self._generation += 1
        self._running = True
        self._current_state = name
        frames = self._states.get(name)
        if not frames:
            log.debug("unknown animation state %r, showing base portrait", name)
            self._render({})
            return
        self._tick(frames, 0, self._generation)

    def stop(self) -> None:
        self._generation += 1
        self._running = False
        self._current_state = None
        self._render({})

    def _tick(self, frames: List[Frame], index: int, generation: int) -> None:
        if generation != self._generation:
            return
        frame = frames[index]
        self._render(frame.patch)
        next_index = (index + 1) % len(frames)
        self._dispatcher.call_later(frame.ms / 1000.0, self._tick, frames, next_index, generation)

    def _render(self, patch: Mapping[int, str]) -> None:
        if self._sink is None:
            return
        lines = apply_patch(self._base, patch)
        self._sink.set_lines(self._offset, self._offset + len(lines), lines)
