from __future__ import annotations

from typing import Any, Sequence

from resume_patch.core.errors import InvalidResponseError
from resume_patch.schemas.document import unique_keywords
from resume_patch.schemas.patch import PatchProposal

from .llm import json_completion
from .types import CategoryHint

_KEYWORD_SYSTEM_PROMPT = """You are a recruiting assistant for technical roles. Extract concise, high-signal technical keywords and multi-word phrases from the text.
Rules:
- Focus on technologies, frameworks, languages, cloud services, data stores and methodologies.
- Preserve multi-word tech names as a single phrase (e.g. "Ruby on Rails", "Next.js", "CI/CD").
- Prefer canonical names and casing (e.g. "PostgreSQL", "Node.js").
- Exclude soft skills, role labels and generic business terms.
- Return at most {limit} items, most important first.
Output strict JSON: {{"keywords": [{{"phrase": string, "weight": number}}]}}"""

_CATEGORY_SYSTEM_PROMPT = """You organise resume skills into existing categories.
Pick the single best existing category for the new skill.
Output strict JSON: {"index": <zero-based category index>}"""

_RANK_SYSTEM_PROMPT = """You are an expert resume optimization specialist.
Select the patches that would most improve the resume's match for the job, considering priority,
impact on match score, relevance to the requirements and specificity.
Output strict JSON: {"selected": [<1-based patch numbers, best first>]}"""


def _coerce_index(value: Any, *, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise InvalidResponseError(f"classifier returned a non-numeric '{field}'")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidResponseError(f"classifier returned a non-numeric '{field}'") from exc


class OpenAIClassifier:
    def __init__(self, *, temperature: float = 0.1) -> None:
        self._temperature = temperature

    def extract_keywords(self, text: str, *, limit: int = 20) -> list[str]:
        if not (text or "").strip():
            return []
        payload = json_completion(
            system_prompt=_KEYWORD_SYSTEM_PROMPT.format(limit=limit),
            user_prompt=f"Text:\n\n{text[:12000]}\n\nReturn only JSON as specified.",
            temperature=self._temperature,
            purpose="extract_keywords",
        )
        raw = payload.get("keywords")
        if not isinstance(raw, list):
            raise InvalidResponseError("classifier response is missing a 'keywords' list")

        phrases: list[str] = []
        for item in raw:
            if isinstance(item, str):
                phrases.append(item)
            elif isinstance(item, dict) and item.get("phrase"):
                phrases.append(str(item["phrase"]))
        return unique_keywords(phrases)[:limit]

    def assign_category(self, keyword: str, groups: Sequence[CategoryHint]) -> int | None:
        if not groups:
            return None
        listing = "\n".join(
            f"{index}. {group.name}: {', '.join(group.keywords)}" for index, group in enumerate(groups)
        )
        payload = json_completion(
            system_prompt=_CATEGORY_SYSTEM_PROMPT,
            user_prompt=f"Categories:\n{listing}\n\nNew skill: {keyword}",
            temperature=0.0,
            max_output_tokens=50,
            purpose="assign_category",
        )
        if payload.get("index") is None:
            return None
        return _coerce_index(payload["index"], field="index")

    def rank_proposals(self, proposals: Sequence[PatchProposal], job_description: str, limit: int) -> list[int]:
        listing = "\n".join(
            f"{position}. {proposal.description or proposal.value} ({proposal.priority} priority, {proposal.impact})"
            for position, proposal in enumerate(proposals, start=1)
        )
        payload = json_completion(
            system_prompt=_RANK_SYSTEM_PROMPT,
            user_prompt=(
                f"JOB DESCRIPTION:\n{job_description[:8000]}\n\n"
                f"AVAILABLE PATCHES:\n{listing}\n\n"
                f"Select the top {limit} patches."
            ),
            temperature=self._temperature,
            max_output_tokens=200,
            purpose="rank_proposals",
        )
        selected = payload.get("selected")
        if not isinstance(selected, list):
            raise InvalidResponseError("classifier response is missing a 'selected' list")

        indices: list[int] = []
        for item in selected:
            index = _coerce_index(item, field="selected") - 1
            if 0 <= index < len(proposals) and index not in indices:
                indices.append(index)
        if not indices:
            raise InvalidResponseError("classifier selected no valid patches")
        return indices[:limit]
