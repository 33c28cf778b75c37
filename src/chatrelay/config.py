"""Process configuration for the chat relay.

Everything is read from environment variables (optionally seeded from a
``.env`` file by the API entrypoint). Tests pass an explicit mapping instead
of touching ``os.environ``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple


DEFAULT_ALLOWED_ORIGINS: Tuple[str, ...] = (
    "http://localhost:8080",
    "http://localhost:5173",
    "https://k-artz-app.vercel.app",
    "https://www.kartzsignage.com",
    "https://kartzsignage.com",
)

DEFAULT_ASSISTANT_NAME = "K'artz Assistant"
# src/chatrelay/config.py -> project root
PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_SYSTEM_PROMPT_PATH = str(PROJECT_ROOT / "secure_prompts" / "system_prompt.txt")


def _split_origins(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return DEFAULT_ALLOWED_ORIGINS
    origins = tuple(part.strip() for part in raw.split(",") if part.strip())
    return origins or DEFAULT_ALLOWED_ORIGINS


def _float(raw: Optional[str], default: float) -> float:
    try:
        return float(raw) if raw not in (None, "") else default
    except ValueError:
        return default


def _int(raw: Optional[str], default: int) -> int:
    try:
        return int(raw) if raw not in (None, "") else default
    except ValueError:
        return default


@dataclass(frozen=True)
class RelaySettings:
    port: int = 5000
    allowed_origins: Tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    system_prompt_path: str = DEFAULT_SYSTEM_PROMPT_PATH
    assistant_name: str = DEFAULT_ASSISTANT_NAME
    generation_timeout: float = 30.0
    store_impl: str = "memory"
    mongo_url: str = "mongodb://localhost:27017"
    mongo_db: str = "kartz"
    model_provider: Optional[str] = None
    env: Mapping[str, str] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "RelaySettings":
        source = os.environ if env is None else env
        provider = (source.get("RELAY_MODEL_PROVIDER") or "").strip().lower() or None
        return cls(
            port=_int(source.get("PORT"), 5000),
            allowed_origins=_split_origins(source.get("RELAY_ALLOWED_ORIGINS")),
            system_prompt_path=source.get("RELAY_SYSTEM_PROMPT_PATH") or DEFAULT_SYSTEM_PROMPT_PATH,
            assistant_name=source.get("RELAY_ASSISTANT_NAME") or DEFAULT_ASSISTANT_NAME,
            generation_timeout=_float(source.get("RELAY_GENERATION_TIMEOUT"), 30.0),
            store_impl=(source.get("RELAY_STORE_IMPL") or "memory").strip().lower(),
            mongo_url=source.get("MONGO_URL") or "mongodb://localhost:27017",
            mongo_db=source.get("MONGO_DB") or "kartz",
            model_provider=provider,
            env=dict(source),
        )
