from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


def _clean_url(raw: str | None) -> str:
    return (raw or "").strip().strip('"').strip("'").strip()


@dataclass(frozen=True)
class McpConfig:
    url: str = _clean_url(os.getenv("PLACES_MCP_URL"))
    api_key: str = os.getenv("PLACES_MCP_API_KEY", "")
    timeout: float = 10.0
    tools_ttl_seconds: float = 300.0
    retry_delay_seconds: float = 0.4

    @property
    def is_configured(self) -> bool:
        return self.url.startswith(("http://", "https://"))


DEFAULT_MCP_CONFIG = McpConfig()
