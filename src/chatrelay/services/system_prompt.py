from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import logging

from ..errors import SystemPromptMissingError


logger = logging.getLogger("chatrelay.prompt")

PROMPT_TEMPLATE = "{system}\n\nClient Question: {content}\n{assistant_name} Answer:"


@dataclass(frozen=True)
class SystemPrompt:
    """The system instruction, read once at startup and shared read-only."""

    text: str
    assistant_name: str

    def build(self, content: str) -> str:
        return PROMPT_TEMPLATE.format(system=self.text, content=content, assistant_name=self.assistant_name)


def load_system_prompt(path: str | Path, assistant_name: str) -> SystemPrompt:
    prompt_path = Path(path)
    try:
        text = prompt_path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.critical("Could not load system prompt file path=%s", prompt_path)
        raise SystemPromptMissingError(f"System prompt not readable: {prompt_path}") from exc
    if not text.strip():
        logger.critical("System prompt file is empty path=%s", prompt_path)
        raise SystemPromptMissingError(f"System prompt is empty: {prompt_path}")
    logger.info("system_prompt_loaded", extra={"path": str(prompt_path), "chars": len(text)})
    return SystemPrompt(text=text, assistant_name=assistant_name)
