from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    log_level: str
    sentry_dsn: str | None
    llm_enabled: bool
    collaborator_timeout_s: float
    workflow_max_retries: int
    max_skill_groups: int
    max_proposals: int
    output_path: str
    allow_disk: bool
    max_resume_bytes: int
    supported_resume_formats: tuple[str, ...]
    jd_fetch_timeout_s: float
    render_theme: str


settings = Settings(
    log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
    sentry_dsn=_get_env("SENTRY_DSN"),
    llm_enabled=_get_env_bool("RESUME_PATCH_LLM_ENABLED", True),
    collaborator_timeout_s=_get_env_float("COLLABORATOR_TIMEOUT_S", 10.0),
    workflow_max_retries=_get_env_int("WORKFLOW_MAX_RETRIES", 2),
    max_skill_groups=_get_env_int("MAX_SKILL_GROUPS", 4),
    max_proposals=_get_env_int("MAX_PROPOSALS", 15),
    output_path=_get_env("OUTPUT_PATH", "optimized-resume") or "optimized-resume",
    allow_disk=_get_env_bool("ALLOW_DISK", False),
    max_resume_bytes=_get_env_int("MAX_RESUME_BYTES", 10 * 1024 * 1024),
    supported_resume_formats=_get_env_list("SUPPORTED_RESUME_FORMATS", [".pdf", ".json", ".txt", ".docx"]),
    jd_fetch_timeout_s=_get_env_float("JD_FETCH_TIMEOUT_S", 10.0),
    render_theme=_get_env("RENDER_THEME", "straightforward") or "straightforward",
)

if settings.max_skill_groups < 1:
    raise RuntimeError("MAX_SKILL_GROUPS must be at least 1.")

if settings.workflow_max_retries < 0:
    raise RuntimeError("WORKFLOW_MAX_RETRIES must not be negative.")

if settings.collaborator_timeout_s <= 0:
    raise RuntimeError("COLLABORATOR_TIMEOUT_S must be greater than 0.")
