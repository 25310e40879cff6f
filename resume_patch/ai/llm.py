from __future__ import annotations

import json
import logging
import os
import time
from functools import lru_cache
from typing import Any

import openai
from openai import OpenAI

from resume_patch.core.config import settings
from resume_patch.core.errors import (
    CollaboratorError,
    CollaboratorTimeout,
    InvalidResponseError,
    MissingCredentialsError,
)

from .config import load_ai_config

logger = logging.getLogger(__name__)


def _looks_like_placeholder(value: str) -> bool:
    lower = value.strip().lower()
    return lower.startswith("your_") or lower.startswith("replace_") or lower in {"changeme", "todo"}


def llm_enabled() -> bool:
    if not settings.llm_enabled:
        return False
    if load_ai_config().provider != "openai":
        return False
    api_key = (os.getenv("OPENAI_API_KEY") or "").strip()
    if not api_key or _looks_like_placeholder(api_key):
        return False
    return True


@lru_cache(maxsize=1)
def _client() -> OpenAI:
    cfg = load_ai_config()
    return OpenAI(
        api_key=(os.getenv("OPENAI_API_KEY") or "").strip(),
        base_url=cfg.base_url,
        timeout=cfg.timeout_s,
        max_retries=cfg.max_retries,
    )


def _model() -> str:
    return load_ai_config().model


def json_completion(
    *,
    system_prompt: str,
    user_prompt: str,
    temperature: float = 0.2,
    max_output_tokens: int = 900,
    purpose: str = "unknown",
) -> dict[str, Any]:
    """Run one JSON-mode chat completion and return the parsed object.

    Raises MissingCredentialsError before any network call when the LLM is not configured,
    CollaboratorTimeout on client timeouts and InvalidResponseError when the reply is not a
    JSON object.
    """
    if not llm_enabled():
        raise MissingCredentialsError("OpenAI is not configured (OPENAI_API_KEY missing or LLM disabled).")

    started = time.perf_counter()
    try:
        response = _client().chat.completions.create(
            model=_model(),
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
            response_format={"type": "json_object"},
            max_tokens=max_output_tokens,
        )
    except openai.APITimeoutError as exc:
        raise CollaboratorTimeout(f"LLM call '{purpose}' timed out", details={"purpose": purpose}) from exc
    except openai.OpenAIError as exc:
        logger.warning("llm_json_failed model=%s purpose=%s prompt_len=%s: %s", _model(), purpose, len(user_prompt), exc)
        raise CollaboratorError(f"LLM call '{purpose}' failed: {exc}", details={"purpose": purpose}) from exc

    latency_ms = int((time.perf_counter() - started) * 1000)
    content = response.choices[0].message.content if response.choices else ""
    if not content:
        raise InvalidResponseError(f"LLM call '{purpose}' returned an empty response", details={"purpose": purpose})

    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as exc:
        raise InvalidResponseError(f"LLM call '{purpose}' returned invalid JSON", details={"purpose": purpose}) from exc

    if not isinstance(parsed, dict):
        raise InvalidResponseError(f"LLM call '{purpose}' returned a non-object payload", details={"purpose": purpose})

    logger.info("llm_json_completion model=%s purpose=%s latency_ms=%s", _model(), purpose, latency_ms)
    return parsed
