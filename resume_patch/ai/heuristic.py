from __future__ import annotations

import re
from collections import Counter
from typing import Sequence

from resume_patch.schemas.patch import PRIORITY_ORDER, PatchProposal

from .types import CategoryHint

_WORD_RE = re.compile(r"[A-Za-z][A-Za-z0-9+#./-]{0,}")
_CHUNK_RE = re.compile(r"[;,()\n]|(?<!\w)[.!?](?:\s|$)|\s(?:and|or|with|including)\s")
_SOFT_HINTS = {
    "communication",
    "collaboration",
    "teamwork",
    "adaptability",
    "ownership",
    "leadership",
    "detail-oriented",
    "self-starter",
    "passionate",
    "motivated",
}
_GENERIC_STOP = {
    "ability",
    "experience",
    "requirements",
    "responsibilities",
    "work",
    "role",
    "team",
    "skills",
    "strong",
    "knowledge",
    "familiarity",
    "years",
    "plus",
    "building",
    "using",
    "developer",
    "engineer",
    "senior",
    "junior",
    "product",
    "culture",
}
KNOWN_TECH = {
    "python",
    "java",
    "javascript",
    "typescript",
    "go",
    "golang",
    "rust",
    "ruby",
    "php",
    "scala",
    "kotlin",
    "swift",
    "c++",
    "c#",
    "sql",
    "nosql",
    "react",
    "react.js",
    "next.js",
    "vue",
    "angular",
    "node.js",
    "express",
    "django",
    "flask",
    "fastapi",
    "spring",
    "rails",
    "ruby on rails",
    "graphql",
    "rest",
    "grpc",
    "html",
    "css",
    "tailwind",
    "docker",
    "kubernetes",
    "terraform",
    "ansible",
    "aws",
    "azure",
    "gcp",
    "google cloud",
    "linux",
    "git",
    "ci/cd",
    "jenkins",
    "github actions",
    "postgresql",
    "postgres",
    "mysql",
    "mongodb",
    "redis",
    "elasticsearch",
    "kafka",
    "rabbitmq",
    "spark",
    "airflow",
    "snowflake",
    "pandas",
    "numpy",
    "pytorch",
    "tensorflow",
    "scikit-learn",
    "machine learning",
    "deep learning",
    "llm",
    "langchain",
    "microservices",
    "agile",
    "scrum",
    "tdd",
    "system design",
    "distributed systems",
}


def _tokens(text: str) -> list[str]:
    output: list[str] = []
    for token in _WORD_RE.findall(text or ""):
        cleaned = token.lower().strip(".,;:()[]{}")
        if cleaned:
            output.append(cleaned)
    return output


def _normalize_phrase(phrase: str) -> str:
    return re.sub(r"\s+", " ", (phrase or "").strip().lower())


def is_hard_skill(phrase: str) -> bool:
    lower = _normalize_phrase(phrase)
    if not lower or lower in _SOFT_HINTS or lower in _GENERIC_STOP:
        return False
    if lower in KNOWN_TECH:
        return True
    if len(lower) > 2 and re.search(r"[+#]|\w\.\w|/", lower):
        return True
    return False


def candidate_phrases(text: str) -> list[str]:
    """Hard-skill phrases in order of appearance, repeats included."""
    clean = _normalize_phrase(text)
    found: list[tuple[int, str]] = []
    for known in KNOWN_TECH:
        if " " in known or "/" in known:
            for match in re.finditer(rf"(?<![\w]){re.escape(known)}(?![\w])", clean):
                found.append((match.start(), known))

    offset = 0
    for chunk in _CHUNK_RE.split(text or ""):
        if chunk is None:
            continue
        position = clean.find(_normalize_phrase(chunk), offset) if chunk.strip() else -1
        if position >= 0:
            offset = position
        for word in _tokens(chunk):
            if word in _GENERIC_STOP or " " in word:
                continue
            if is_hard_skill(word) and "/" not in word:
                found.append((max(position, 0), word))

    found.sort(key=lambda item: item[0])
    return [phrase for _, phrase in found]


def display_form(phrase: str, text: str) -> str:
    match = re.search(rf"(?<![\w]){re.escape(phrase)}(?![\w])", text or "", re.IGNORECASE)
    return match.group(0) if match else phrase


class HeuristicClassifier:
    """Deterministic stand-in for the LLM classifier; always available."""

    def extract_keywords(self, text: str, *, limit: int = 20) -> list[str]:
        phrases = candidate_phrases(text)
        counts = Counter(phrases)
        first_seen: dict[str, int] = {}
        for index, phrase in enumerate(phrases):
            first_seen.setdefault(phrase, index)
        ranked = sorted(counts, key=lambda phrase: (-counts[phrase], first_seen[phrase]))
        return [display_form(phrase, text) for phrase in ranked[:limit]]

    def assign_category(self, keyword: str, groups: Sequence[CategoryHint]) -> int | None:
        # No opinion; the resolver's similarity scoring decides.
        return None

    def rank_proposals(self, proposals: Sequence[PatchProposal], job_description: str, limit: int) -> list[int]:
        ordered = sorted(
            range(len(proposals)),
            key=lambda index: (
                PRIORITY_ORDER.get(proposals[index].priority, len(PRIORITY_ORDER)),
                -proposals[index].confidence,
                index,
            ),
        )
        return ordered[:limit]
