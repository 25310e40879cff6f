import os
from dataclasses import dataclass

from resume_patch.core.config import settings


@dataclass(frozen=True)
class AIConfig:
    provider: str
    model: str
    base_url: str | None
    timeout_s: float
    max_retries: int


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, "") or default)
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, "") or default)
    except ValueError:
        return default


def load_ai_config() -> AIConfig:
    """Read the classifier settings on every call so tests can flip AI_PROVIDER."""
    provider = os.getenv("AI_PROVIDER", "openai").strip().lower()
    model = (os.getenv("AI_MODEL") or os.getenv("OPENAI_MODEL") or "gpt-4o-mini").strip()
    return AIConfig(
        provider=provider,
        model=model,
        base_url=(os.getenv("OPENAI_BASE_URL") or "").strip() or None,
        timeout_s=_float_env("LLM_TIMEOUT_S", settings.collaborator_timeout_s),
        max_retries=_int_env("OPENAI_MAX_RETRIES", 2),
    )
