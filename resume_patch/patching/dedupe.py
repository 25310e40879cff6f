from __future__ import annotations

import logging
from typing import Iterable

from resume_patch.core.scoring import get_scoring_number
from resume_patch.schemas.document import normalize_keyword
from resume_patch.schemas.patch import PatchProposal, patch_kind

logger = logging.getLogger(__name__)


def _overlaps(left: str, right: str, *, min_chars: int) -> bool:
    shorter, longer = sorted((left, right), key=len)
    if len(shorter) < min_chars:
        return False
    return shorter in longer


def dedupe_proposals(proposals: Iterable[PatchProposal], *, min_overlap_chars: int | None = None) -> list[PatchProposal]:
    """Drop near-duplicate proposals, keeping the earliest of each cluster.

    Duplicates are either the same type with an equal value (case-insensitive) or two
    proposals of the same kind whose values contain one another. Skill and keyword
    additions count as one kind, so "React" suppresses a later keyword "React.js".
    """
    if min_overlap_chars is None:
        min_overlap_chars = int(get_scoring_number("dedupe.min_overlap_chars", 1))

    kept: list[PatchProposal] = []
    seen: list[tuple[str, str, str]] = []
    for proposal in proposals:
        value = normalize_keyword(proposal.value)
        kind = patch_kind(proposal.type)
        duplicate_of = None
        for seen_type, seen_kind, seen_value in seen:
            if seen_type == proposal.type and seen_value == value:
                duplicate_of = seen_value
                break
            if seen_kind == kind and value and seen_value and _overlaps(value, seen_value, min_chars=min_overlap_chars):
                duplicate_of = seen_value
                break
        if duplicate_of is not None:
            logger.debug("proposal_deduped id=%s duplicate_of=%s", proposal.id, duplicate_of)
            continue
        seen.append((proposal.type, kind, value))
        kept.append(proposal)
    return kept
