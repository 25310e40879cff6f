from __future__ import annotations

from typing import Protocol


class SkillTaxonomy(Protocol):
    """Maps spelling variants of a skill ("k8s", "React.js") onto one canonical name."""

    def canonical_name(self, raw: str) -> str | None: ...

    def canonical_key(self, raw: str) -> str: ...
