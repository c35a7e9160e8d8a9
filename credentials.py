"""API key lookup: explicit setting, then environment, then a local .env file."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values

API_KEY_VAR = "OPENAI_API_KEY"


def read_env_file(path: Optional[str], key: str = API_KEY_VAR) -> Optional[str]:
    if not path or not Path(path).is_file():
        return None
    value = dotenv_values(path).get(key)
    return value or None


def resolve_api_key(
    explicit: Optional[str],
    env_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    environ = os.environ if environ is None else environ
    if explicit and explicit.strip():
        return explicit.strip()
    from_env = environ.get(API_KEY_VAR, "").strip()
    if from_env:
        return from_env
    return read_env_file(env_file)
