from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Protocol, Sequence

from resume_patch.ai.types import CategoryHint, Classifier
from resume_patch.core.calls import call_with_timeout
from resume_patch.core.errors import CollaboratorError
from resume_patch.core.scoring import get_scoring_number
from resume_patch.schemas.document import normalize_keyword

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+")


class GroupLike(Protocol):
    name: str
    keywords: list[str]


@dataclass(frozen=True)
class ResolverWeights:
    exact_member: float = 100
    substring: float = 50
    shared_token: float = 10
    name_token_overlap: float = 25

    @classmethod
    def from_config(cls) -> "ResolverWeights":
        return cls(
            exact_member=get_scoring_number("category_resolver.weights.exact_member", 100),
            substring=get_scoring_number("category_resolver.weights.substring", 50),
            shared_token=get_scoring_number("category_resolver.weights.shared_token", 10),
            name_token_overlap=get_scoring_number("category_resolver.weights.name_token_overlap", 25),
        )


def tokenize(text: str) -> set[str]:
    return set(_TOKEN_RE.findall((text or "").lower()))


def score_group(keyword: str, group: GroupLike, weights: ResolverWeights) -> float:
    key = normalize_keyword(keyword)
    members = [normalize_keyword(item) for item in group.keywords if item]
    score = 0.0
    if key in members:
        score += weights.exact_member
    if key and any(key in member or member in key for member in members):
        score += weights.substring

    key_tokens = tokenize(key)
    member_tokens: set[str] = set()
    for member in members:
        member_tokens |= tokenize(member)
    score += weights.shared_token * len(key_tokens & member_tokens)
    score += weights.name_token_overlap * len(key_tokens & tokenize(group.name))
    return score


def best_group_index(keyword: str, groups: Sequence[GroupLike], weights: ResolverWeights) -> int:
    best_index = 0
    best_score = float("-inf")
    for index, group in enumerate(groups):
        score = score_group(keyword, group, weights)
        if score > best_score:
            best_index, best_score = index, score
    return best_index


def exact_or_name_match(keyword: str, groups: Sequence[GroupLike]) -> int | None:
    key = normalize_keyword(keyword)
    if not key:
        return None
    for index, group in enumerate(groups):
        if any(normalize_keyword(item) == key for item in group.keywords):
            return index
    for index, group in enumerate(groups):
        if key in normalize_keyword(group.name):
            return index
    return None


class CategoryResolver:
    """Picks the skill group that should receive a new keyword.

    Decision order: exact member, group-name hint, advisory classifier, similarity
    scoring. Always returns a valid index; an empty group list yields 0 so the caller
    can synthesize the first group.
    """

    def __init__(
        self,
        classifier: Classifier | None = None,
        *,
        weights: ResolverWeights | None = None,
        sample_size: int | None = None,
    ) -> None:
        self._classifier = classifier
        self._weights = weights or ResolverWeights.from_config()
        self._sample_size = sample_size or int(get_scoring_number("category_resolver.classifier_keyword_sample", 8))
        self._hints: dict[str, int | None] = {}
        self._hints_only = False

    @property
    def weights(self) -> ResolverWeights:
        return self._weights

    def hints_for(self, groups: Sequence[GroupLike]) -> list[CategoryHint]:
        return [
            CategoryHint(name=group.name, keywords=tuple(group.keywords[: self._sample_size])) for group in groups
        ]

    def resolve(self, keyword: str, groups: Sequence[GroupLike], *, use_classifier: bool = True) -> int:
        if not groups:
            return 0

        matched = exact_or_name_match(keyword, groups)
        if matched is not None:
            return matched

        if use_classifier and len(groups) > 1:
            advised = self._advice(keyword, groups)
            if advised is not None:
                return advised

        return best_group_index(keyword, groups, self._weights)

    def _advice(self, keyword: str, groups: Sequence[GroupLike]) -> int | None:
        key = normalize_keyword(keyword)
        if key in self._hints:
            index = self._hints[key]
        elif self._classifier is None or self._hints_only:
            return None
        else:
            try:
                index = self._classifier.assign_category(keyword, self.hints_for(groups))
            except CollaboratorError as exc:
                logger.info("category_classifier_ignored keyword=%s error=%s", keyword, exc)
                return None
        if index is None or isinstance(index, bool) or not isinstance(index, int):
            return None
        if not 0 <= index < len(groups):
            logger.info("category_classifier_out_of_range keyword=%s index=%s groups=%s", keyword, index, len(groups))
            return None
        return index

    async def prefetch_hints(
        self, keywords: Sequence[str], groups: Sequence[GroupLike], *, timeout_s: float | None = None
    ) -> dict[str, int | None]:
        """Ask the classifier about every keyword concurrently and cache the answers.

        Failures are recorded as no hint. Hints only describe the groups as they are now;
        the resolver still validates each index against the groups it is given later.
        """
        if self._classifier is None:
            return {}
        # From here on the resolver never calls the classifier inline.
        self._hints_only = True
        if len(groups) <= 1:
            return {}
        pending = [keyword for keyword in dict.fromkeys(keywords) if exact_or_name_match(keyword, groups) is None]
        if not pending:
            return {}

        hints = self.hints_for(groups)
        results = await asyncio.gather(
            *(
                call_with_timeout("assign_category", self._classifier.assign_category, keyword, hints, timeout_s=timeout_s)
                for keyword in pending
            ),
            return_exceptions=True,
        )
        for keyword, result in zip(pending, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, CollaboratorError):
                logger.info("category_hint_failed keyword=%s code=%s", keyword, result.code)
                self._hints[normalize_keyword(keyword)] = None
            elif isinstance(result, BaseException):
                raise result
            else:
                self._hints[normalize_keyword(keyword)] = result
        return dict(self._hints)
