from __future__ import annotations

import json
import logging
from pathlib import Path

from resume_patch.schemas.document import normalize_keyword

logger = logging.getLogger(__name__)

SYNONYMS_PATH = Path(__file__).with_name("synonyms.json")


class SynonymTaxonomy:
    """Skill taxonomy backed by a flat variant -> canonical name JSON map."""

    def __init__(self, synonyms_path: str | Path | None = None) -> None:
        path = Path(synonyms_path) if synonyms_path else SYNONYMS_PATH
        with path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
        self._canonical = {normalize_keyword(str(variant)): str(name) for variant, name in raw.items()}
        logger.debug("taxonomy_loaded path=%s variants=%s", path, len(self._canonical))

    def canonical_name(self, raw: str) -> str | None:
        return self._canonical.get(normalize_keyword(raw))

    def canonical_key(self, raw: str) -> str:
        name = self.canonical_name(raw)
        return normalize_keyword(name) if name else normalize_keyword(raw)
