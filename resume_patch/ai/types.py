from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from resume_patch.schemas.patch import PatchProposal


@dataclass(frozen=True)
class CategoryHint:
    """What a classifier sees of a skill group: its name and a sample of its keywords."""

    name: str
    keywords: tuple[str, ...]


class Classifier(Protocol):
    """Black-box keyword/category/ranking capability.

    Implementations raise CollaboratorError subclasses (timeout, invalid response,
    missing credentials) and never return partial data.
    """

    def extract_keywords(self, text: str, *, limit: int = 20) -> list[str]: ...

    def assign_category(self, keyword: str, groups: Sequence[CategoryHint]) -> int | None: ...

    def rank_proposals(
        self, proposals: Sequence[PatchProposal], job_description: str, limit: int
    ) -> list[int]: ...
