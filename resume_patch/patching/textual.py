from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

from resume_patch.schemas.document import TextSections, format_skill_line, normalize_keyword
from resume_patch.schemas.patch import PATCH_TYPES, PatchProposal

from .categories import ResolverWeights, best_group_index, exact_or_name_match

SkillsFormat = Literal["empty", "flat", "grouped"]

_GROUP_LINE_RE = re.compile(r"^\s*(?:[•\-*·▪]\s*)?(?P<name>[^:,\n]{1,60}?)\s*:\s*(?P<items>.*?)\s*$")
_MISSING_SKILLS_RE = re.compile(r"Add missing skills:\s*(?P<skills>.+)", re.IGNORECASE)


@dataclass
class SkillLine:
    name: str
    keywords: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TextualResult:
    """What a textual edit changed: the section, its new text and the appended pieces."""

    section: str
    updated: str
    changes: dict[str, Any]
    fragment: str = ""
    added_items: tuple[str, ...] = ()


@dataclass(frozen=True)
class TextualFailure:
    reason: str


TextualOutcome = TextualResult | TextualFailure


def split_items(text: str) -> list[str]:
    items: list[str] = []
    for raw in (text or "").split(","):
        item = raw.strip().rstrip(".").strip()
        if item:
            items.append(item)
    return items


def detect_skills_format(text: str) -> SkillsFormat:
    lines = [line for line in (text or "").splitlines() if line.strip()]
    if not lines:
        return "empty"
    if any(_GROUP_LINE_RE.match(line) for line in lines):
        return "grouped"
    return "flat"


def parse_grouped_skills(text: str) -> list[SkillLine | str]:
    """Group lines become SkillLine entries; any other non-blank line is kept verbatim."""
    entries: list[SkillLine | str] = []
    for line in (text or "").splitlines():
        if not line.strip():
            continue
        match = _GROUP_LINE_RE.match(line)
        if match:
            entries.append(SkillLine(name=match.group("name").strip(), keywords=split_items(match.group("items"))))
        else:
            entries.append(line.rstrip())
    return entries


def unique_skill_lines(lines: list[SkillLine]) -> tuple[list[SkillLine], list[str]]:
    """Keep each keyword on the first line that lists it; returns the lines and the dropped repeats."""
    seen: set[str] = set()
    dropped: list[str] = []
    unique: list[SkillLine] = []
    for line in lines:
        keywords: list[str] = []
        for keyword in line.keywords:
            key = normalize_keyword(keyword)
            if key in seen:
                dropped.append(keyword)
                continue
            seen.add(key)
            keywords.append(keyword)
        unique.append(SkillLine(name=line.name, keywords=keywords))
    return unique, dropped


def render_grouped_skills(entries: list[SkillLine | str]) -> str:
    return "\n".join(
        format_skill_line(entry.name, entry.keywords) if isinstance(entry, SkillLine) else entry for entry in entries
    )


def existing_skill_items(text: str) -> set[str]:
    if detect_skills_format(text) == "grouped":
        items: set[str] = set()
        for entry in parse_grouped_skills(text):
            if isinstance(entry, SkillLine):
                items.update(normalize_keyword(item) for item in entry.keywords)
            else:
                items.update(normalize_keyword(item) for item in split_items(entry))
        return items
    return {normalize_keyword(item) for item in split_items(text)}


def add_skills_text(text: str, keywords: list[str], weights: ResolverWeights) -> tuple[str, list[str], dict[str, str]]:
    """Add keywords to skills text in its own format. Returns (text, added, keyword -> group)."""
    existing = existing_skill_items(text)
    fresh: list[str] = []
    for keyword in keywords:
        key = normalize_keyword(keyword)
        if key and key not in existing:
            existing.add(key)
            fresh.append(" ".join(keyword.split()))
    if not fresh:
        return text, [], {}

    placement: dict[str, str] = {}
    if detect_skills_format(text) == "grouped":
        entries = parse_grouped_skills(text)
        groups = [entry for entry in entries if isinstance(entry, SkillLine)]
        for keyword in fresh:
            index = exact_or_name_match(keyword, groups)
            if index is None:
                index = best_group_index(keyword, groups, weights)
            groups[index].keywords.append(keyword)
            placement[keyword] = groups[index].name
        return render_grouped_skills(entries), fresh, placement

    current = (text or "").strip().rstrip(".")
    updated = ", ".join([current, *fresh]) if current else ", ".join(fresh)
    return updated, fresh, placement


def sentence_fragment(current: str, value: str) -> str:
    stripped = (current or "").rstrip()
    if not stripped:
        return value
    return (" " if stripped.endswith((".", "!", "?")) else ". ") + value


def emphasis_fragment(label: str, value: str) -> str:
    return f" ({label}: {value})"


def _contains(text: str, value: str) -> bool:
    needle = normalize_keyword(value.rstrip(" ."))
    return bool(needle) and needle in normalize_keyword(text)


def _skills(proposal: PatchProposal, sections: TextSections, weights: ResolverWeights) -> TextualOutcome:
    keyword = proposal.value.strip()
    if not keyword:
        return TextualFailure("empty skill value")
    current = sections.skills
    updated, added, placement = add_skills_text(current, [keyword], weights)
    if not added:
        return TextualFailure(f"'{keyword}' already exists in skills")
    changes: dict[str, Any] = {"added": keyword}
    if placement:
        changes["group"] = placement[added[0]]
    return TextualResult(section="skills", updated=updated, changes=changes, added_items=tuple(added))


def _append(section: str, proposal: PatchProposal, sections: TextSections, *, label: str | None = None) -> TextualOutcome:
    value = proposal.value.strip()
    if not value:
        return TextualFailure("empty value")
    current = sections.read(section)
    if _contains(current, value):
        return TextualFailure(f"text already exists in {section}")
    if label:
        fragment = emphasis_fragment(label, value)
        changes = {"emphasized": value}
    else:
        fragment = sentence_fragment(current, value)
        changes = {"added": value}
    updated = current.rstrip() + fragment if current.strip() else fragment.strip()
    return TextualResult(section=section, updated=updated, changes=changes, fragment=fragment)


def _enhance_section(proposal: PatchProposal, sections: TextSections, weights: ResolverWeights) -> TextualOutcome:
    section = "skills" if "skills" in proposal.action else "experience"
    label = "Key achievement" if "emphasize" in proposal.action else None
    return _append(section, proposal, sections, label=label)


def _enhance_experience(proposal: PatchProposal, sections: TextSections, weights: ResolverWeights) -> TextualOutcome:
    label = "Key achievement" if "emphasize" in proposal.action else None
    return _append("experience", proposal, sections, label=label)


def _align_experience(proposal: PatchProposal, sections: TextSections, weights: ResolverWeights) -> TextualOutcome:
    label = "Relevant to target role" if "emphasize" in proposal.action else None
    return _append("experience", proposal, sections, label=label)


def _role_enhancement(proposal: PatchProposal, sections: TextSections, weights: ResolverWeights) -> TextualOutcome:
    return _append("experience", proposal, sections)


def _add_content(proposal: PatchProposal, sections: TextSections, weights: ResolverWeights) -> TextualOutcome:
    if "project" not in proposal.action:
        return _append("experience", proposal, sections)
    value = proposal.value.strip()
    if not value:
        return TextualFailure("empty value")
    current = sections.projects
    if _contains(current, value):
        return TextualFailure("text already exists in projects")
    fragment = f"\n{value}" if current.strip() else value
    return TextualResult(
        section="projects", updated=current.rstrip() + fragment, changes={"added": value}, fragment=fragment
    )


def _recommendation(proposal: PatchProposal, sections: TextSections, weights: ResolverWeights) -> TextualOutcome:
    match = _MISSING_SKILLS_RE.search(proposal.value)
    if not match:
        return TextualFailure("Recommendation type not supported")
    requested = split_items(match.group("skills"))
    updated, added, _ = add_skills_text(sections.skills, requested, weights)
    if not added:
        return TextualFailure("all recommended skills already exist in skills")
    return TextualResult(section="skills", updated=updated, changes={"added": added}, added_items=tuple(added))


_Handler = Callable[[PatchProposal, TextSections, ResolverWeights], TextualOutcome]

_HANDLERS: dict[str, _Handler] = {
    "add_skill": _skills,
    "add_keyword": _skills,
    "enhance_section": _enhance_section,
    "enhance_experience": _enhance_experience,
    "align_experience": _align_experience,
    "role_enhancement": _role_enhancement,
    "add_content": _add_content,
    "recommendation_based": _recommendation,
}

if set(_HANDLERS) != set(PATCH_TYPES):
    raise RuntimeError(f"Textual handlers out of sync with patch types: {sorted(set(PATCH_TYPES) ^ set(_HANDLERS))}")


def apply_textual(
    proposal: PatchProposal, sections: TextSections, *, weights: ResolverWeights | None = None
) -> TextualOutcome:
    """Compute a textual edit against the flattened view. Pure: `sections` is not modified."""
    return _HANDLERS[proposal.type](proposal, sections, weights or ResolverWeights.from_config())
