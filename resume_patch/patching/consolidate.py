from __future__ import annotations

import logging

from resume_patch.core.scoring import get_scoring_number
from resume_patch.schemas.document import SkillGroup, normalize_keyword

logger = logging.getLogger(__name__)


def group_similarity(left: SkillGroup, right: SkillGroup, *, name_bonus: float) -> float:
    left_set = {normalize_keyword(item) for item in left.keywords}
    right_set = {normalize_keyword(item) for item in right.keywords}
    union = left_set | right_set
    score = len(left_set & right_set) / len(union) if union else 0.0
    left_name, right_name = normalize_keyword(left.name), normalize_keyword(right.name)
    if left_name and right_name and (left_name in right_name or right_name in left_name):
        score += name_bonus
    return score


def consolidate_groups(
    groups: list[SkillGroup], max_groups: int, *, name_bonus: float | None = None
) -> list[SkillGroup]:
    """Merge skill groups down to at most `max_groups` without losing a keyword.

    The largest `max_groups - 1` groups (at least one) survive verbatim and keep their
    document order; each other group is folded into the surviving group it resembles most.
    Returns new group objects; the input list is not modified.
    """
    if max_groups < 1:
        raise ValueError("max_groups must be at least 1")
    if len(groups) <= max_groups:
        return [group.model_copy(deep=True) for group in groups]

    if name_bonus is None:
        name_bonus = get_scoring_number("consolidation.name_containment_bonus", 0.2)

    keep_count = max(max_groups - 1, 1)
    ranked = sorted(range(len(groups)), key=lambda index: (-len(groups[index].keywords), index))
    kept_indices = sorted(ranked[:keep_count])
    kept = {index: groups[index].model_copy(deep=True) for index in kept_indices}
    present = {normalize_keyword(keyword) for index in kept_indices for keyword in kept[index].keywords}

    for index in sorted(ranked[keep_count:]):
        source = groups[index]
        target_index = kept_indices[0]
        best = float("-inf")
        for candidate in kept_indices:
            score = group_similarity(source, kept[candidate], name_bonus=name_bonus)
            if score > best:
                target_index, best = candidate, score

        target = kept[target_index]
        merged = list(target.keywords)
        for keyword in source.keywords:
            key = normalize_keyword(keyword)
            if key in present:
                continue
            present.add(key)
            merged.append(keyword)
        target.keywords = merged
        logger.info(
            "skill_groups_merged source=%s target=%s score=%.2f", source.name, target.name, best
        )

    return [kept[index] for index in kept_indices]
