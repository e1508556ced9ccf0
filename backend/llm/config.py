from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class LLMConfig:
    api_key: str = os.getenv("GROQ_API_KEY", "")
    model: str = os.getenv("LLM_MODEL", "llama-3.3-70b-versatile")
    timeout: float = 10.0
    ranker_timeout: float = 4.0  # runs inline in a user-facing search
    max_tokens: int = 1024
    enabled: bool = _env_flag("LLM_ENABLED", True)
    relevance_ranking_enabled: bool = _env_flag("LLM_RELEVANCE_RANKING_ENABLED", False)


DEFAULT_LLM_CONFIG = LLMConfig()
