from __future__ import annotations

import json
import logging
from typing import Any, Callable

from groq import Groq

from .config import DEFAULT_LLM_CONFIG, LLMConfig

logger = logging.getLogger(__name__)

# (system_prompt, user_payload, temperature) -> raw assistant text
CompletionFn = Callable[[str, dict[str, Any], float], str]


def is_available(config: LLMConfig = DEFAULT_LLM_CONFIG) -> bool:
    return config.enabled and bool(config.api_key)


def complete_json(
    system_prompt: str,
    payload: dict[str, Any],
    temperature: float = 0.0,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
    timeout: float | None = None,
) -> str:
    """
    Send a system prompt plus a JSON-serialized user payload to Groq.

    Returns the raw assistant text; the caller extracts and validates JSON.
    Raises on any API failure.
    """
    client = Groq(api_key=config.api_key, timeout=timeout or config.timeout)
    response = client.chat.completions.create(
        model=config.model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": json.dumps(payload, default=str)},
        ],
        max_tokens=config.max_tokens,
        temperature=temperature,
        response_format={"type": "json_object"},
    )
    content = response.choices[0].message.content or ""
    logger.debug("Groq completion received (%d chars)", len(content))
    return content


def make_completion(config: LLMConfig = DEFAULT_LLM_CONFIG, timeout: float | None = None) -> CompletionFn:
    """Bind a config and timeout into a ``CompletionFn``."""
    def _complete(system_prompt: str, payload: dict[str, Any], temperature: float) -> str:
        return complete_json(system_prompt, payload, temperature, config=config, timeout=timeout)

    return _complete
