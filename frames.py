"""Avatar portrait and animation states.

Frames are sparse patches over ``BASE``: a patch only lists the 1-indexed
lines that differ, and an empty patch shows the base portrait.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Sequence

from models import Frame

BASE: List[str] = [
    "    /\\_____/\\    ",
    "   /  ◕   ◕  \\   ",
    "  (  ( ‿  )  )  ",
    "   \\   ╰─╯  /   ",
    "    ╰───────╯   ",
    "  ╭──╮   ╭──╮  ",
    "  │  ╰───╯  │  ",
    "  ╰────┬────╯  ",
    "        │       ",
    "       ─┴─      ",
]

_EYES_HALF = "   /  ─   ─  \\   "
_EYES_SHUT = "   /  .   .  \\   "
_EYES_WIDE = "   /  ◎   ◎  \\   "
_GASP = "  (  ( ▽  )  )  "

STATES: Dict[str, List[Frame]] = {
    # open for 3s, then a quick blink
    "idle": [
        Frame({}, 3000),
        Frame({2: _EYES_HALF}, 80),
        Frame({2: _EYES_SHUT}, 50),
        Frame({2: _EYES_HALF}, 80),
        Frame({}, 3000),
    ],
    "thinking": [
        Frame({2: "   /  ◕   .  \\   ", 3: "  (  ( .   )  )  "}, 300),
        Frame({2: "   /  .   ◕  \\   ", 3: "  (  ( ..  )  )  "}, 300),
        Frame({2: "   /  ◕   .  \\   ", 3: "  (  ( ... )  )  "}, 300),
        Frame({2: "   /  .   ◕  \\   ", 3: "  (  ( ..  )  )  "}, 300),
    ],
    "talking": [
        Frame({3: "  (  ( ᴗ  )  )  "}, 120),
        Frame({3: "  (  ( ─  )  )  "}, 120),
    ],
    "surprised": [
        Frame({2: _EYES_WIDE, 3: _GASP}, 200),
        Frame({}, 150),
        Frame({2: _EYES_WIDE, 3: _GASP}, 200),
        Frame({}, 150),
    ],
    "happy_react": [
        Frame({2: "  ✦/  ♡   ♡  \\✦  ", 3: "  (  ( ‿  )  )  "}, 150),
        Frame({2: "  ✧/  ◕   ◕  \\✧  ", 3: "  (  ( ᵕ  )  )  "}, 150),
    ],
}


def apply_patch(base: Sequence[str], patch: Mapping[int, str]) -> List[str]:
    return [patch.get(number, line) for number, line in enumerate(base, start=1)]
