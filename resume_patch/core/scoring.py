from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_SCORING_PATH = Path(__file__).with_name("scoring.yaml")
KNOWN_SECTIONS = ("category_resolver", "dedupe", "consolidation", "analysis", "suggestions")

_cache: dict[str, Any] | None = None


def scoring_config_path() -> Path:
    override = (os.getenv("SCORING_CONFIG_PATH") or "").strip()
    return Path(override) if override else DEFAULT_SCORING_PATH


def _load(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise RuntimeError(f"Scoring config not found at '{path}'. Set SCORING_CONFIG_PATH or restore the packaged file.")
    try:
        parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise RuntimeError(f"Failed to read scoring config '{path}': {exc}") from exc
    except yaml.YAMLError as exc:
        raise RuntimeError(f"Invalid YAML in scoring config '{path}': {exc}") from exc

    if not isinstance(parsed, dict):
        raise RuntimeError(f"Invalid scoring config '{path}': expected a top-level mapping.")
    for section in KNOWN_SECTIONS:
        if section in parsed and not isinstance(parsed[section], dict):
            raise RuntimeError(f"Invalid scoring config '{path}': '{section}' must be a mapping.")
    unknown = sorted(set(parsed) - set(KNOWN_SECTIONS))
    if unknown:
        logger.warning("scoring_config_unknown_sections path=%s sections=%s", path, ",".join(unknown))
    return parsed


def get_scoring_config() -> dict[str, Any]:
    """Resolver weights, dedupe, consolidation, analysis and suggestion knobs, loaded once."""
    global _cache
    if _cache is None:
        _cache = _load(scoring_config_path())
    return _cache


def reset_scoring_config_cache() -> None:
    global _cache
    _cache = None


def get_scoring_value(path: str, default: Any = None) -> Any:
    """Dot-path lookup, e.g. 'category_resolver.weights.exact_member'. Missing keys give `default`."""
    current: Any = get_scoring_config()
    for key in path.split(".") if path else ():
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current if path else default


def get_scoring_number(path: str, default: float) -> float:
    value = get_scoring_value(path, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RuntimeError(f"Scoring config value '{path}' must be a number, got {value!r}.")
    return float(value)
