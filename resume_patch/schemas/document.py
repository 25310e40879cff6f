from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SECTION_NAMES = ("basics", "experience", "education", "skills", "projects")
ADDITIONAL_SKILLS_LABEL = "Additional"
ADDITIONAL_SKILLS_KEY = "additional_skills"


def normalize_keyword(value: str) -> str:
    return " ".join((value or "").split()).lower()


def unique_keywords(values: list[Any]) -> list[str]:
    output: list[str] = []
    seen: set[str] = set()
    for value in values:
        text = " ".join(str(value or "").split())
        key = text.lower()
        if not key or key in seen:
            continue
        seen.add(key)
        output.append(text)
    return output


def format_skill_line(name: str, keywords: list[str]) -> str:
    return f"• {name}: {', '.join(keywords)}."


class Basics(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    label: str | None = None
    email: str | None = None
    phone: str | None = None
    url: str | None = None
    summary: str | None = None
    location: dict[str, Any] = Field(default_factory=dict)
    profiles: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("location", mode="before")
    @classmethod
    def _coerce_location(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, str):
            return {"address": value} if value.strip() else {}
        return value


class WorkEntry(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str | None = None
    company: str | None = None
    position: str | None = None
    location: str | None = None
    url: str | None = None
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")
    summary: str = ""
    highlights: list[str] = Field(default_factory=list)

    @field_validator("summary", mode="before")
    @classmethod
    def _coerce_summary(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("highlights", mode="before")
    @classmethod
    def _coerce_highlights(cls, value: Any) -> Any:
        if value is None:
            return []
        return value

    @property
    def employer(self) -> str | None:
        return self.name or self.company


class EducationEntry(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    institution: str | None = None
    area: str | None = None
    study_type: str | None = Field(default=None, alias="studyType")
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")
    score: str | None = None
    url: str | None = None
    courses: list[str] = Field(default_factory=list)


class SkillGroup(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = "Skills"
    level: str | None = None
    keywords: list[str] = Field(default_factory=list)

    @field_validator("keywords", mode="before")
    @classmethod
    def _dedupe_keywords(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return unique_keywords(list(value))

    def has_keyword(self, keyword: str) -> bool:
        target = normalize_keyword(keyword)
        return any(normalize_keyword(item) == target for item in self.keywords)


class Project(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str | None = None
    description: str | None = None
    url: str | None = None
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")
    highlights: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)


class TextSections(BaseModel):
    """Flattened per-section text used by the textual fallback and the plain-text export."""

    basics: str = ""
    experience: str = ""
    education: str = ""
    skills: str = ""
    projects: str = ""

    def read(self, section: str) -> str:
        if section not in SECTION_NAMES:
            raise ValueError(f"Unknown resume section '{section}'")
        return getattr(self, section)

    def write(self, section: str, text: str) -> None:
        if section not in SECTION_NAMES:
            raise ValueError(f"Unknown resume section '{section}'")
        setattr(self, section, text)

    def is_empty(self) -> bool:
        return not any(self.read(name).strip() for name in SECTION_NAMES)

    def joined(self) -> str:
        return "\n".join(self.read(name) for name in SECTION_NAMES if self.read(name).strip())


class Document(BaseModel):
    """Structured resume in JSON Resume shape; skill groups serialise under `skills`."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    basics: Basics = Field(default_factory=Basics)
    work: list[WorkEntry] = Field(default_factory=list)
    education: list[EducationEntry] = Field(default_factory=list)
    skill_groups: list[SkillGroup] = Field(default_factory=list, alias="skills")
    projects: list[Project] = Field(default_factory=list)
    # Textual-fallback additions: text fragments keyed by section, plus loose skill keywords.
    annotations: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("skill_groups", mode="before")
    @classmethod
    def _group_flat_skills(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        groups: list[Any] = []
        loose: list[str] = []
        for item in value:
            if isinstance(item, str):
                loose.append(item)
            elif isinstance(item, dict) and not item.get("keywords") and item.get("name"):
                loose.append(str(item["name"]))
            elif item is not None:
                groups.append(item)
        if loose:
            groups.append({"name": "Skills", "keywords": loose})
        return groups

    @model_validator(mode="after")
    def _enforce_global_keyword_uniqueness(self) -> "Document":
        seen: set[str] = set()
        for group in self.skill_groups:
            kept: list[str] = []
            for keyword in group.keywords:
                key = normalize_keyword(keyword)
                if key in seen:
                    continue
                seen.add(key)
                kept.append(keyword)
            if len(kept) != len(group.keywords):
                group.keywords = kept
        return self

    def find_keyword_group(self, keyword: str) -> int | None:
        for index, group in enumerate(self.skill_groups):
            if group.has_keyword(keyword):
                return index
        return None

    def all_keywords(self) -> list[str]:
        return [keyword for group in self.skill_groups for keyword in group.keywords]

    def latest_work_index(self) -> int | None:
        return len(self.work) - 1 if self.work else None

    def is_empty(self) -> bool:
        return not (
            self.work
            or self.education
            or self.skill_groups
            or self.projects
            or self.basics.name
            or self.basics.summary
        )

    def to_text_sections(self) -> TextSections:
        basics = " ".join(
            part for part in (self.basics.name, self.basics.email, self.basics.phone, self.basics.summary) if part
        )
        experience = "\n".join(
            " ".join(
                part
                for part in (entry.position, entry.employer, entry.location, entry.summary, " ".join(entry.highlights))
                if part
            )
            for entry in self.work
        )
        education = "\n".join(
            " ".join(part for part in (entry.institution, entry.area, entry.study_type) if part)
            for entry in self.education
        )
        skill_lines = [format_skill_line(group.name, group.keywords) for group in self.skill_groups if group.keywords]
        projects = "\n".join(
            ": ".join(part for part in (project.name, project.description) if part)
            + "".join(f"\n- {highlight}" for highlight in project.highlights)
            for project in self.projects
        )

        sections = TextSections(
            basics=basics,
            experience=experience,
            education=education,
            skills="\n".join(skill_lines),
            projects=projects,
        )
        loose_skills = self.annotations.get(ADDITIONAL_SKILLS_KEY) or []
        if loose_skills:
            line = format_skill_line(ADDITIONAL_SKILLS_LABEL, loose_skills)
            sections.skills = f"{sections.skills}\n{line}" if sections.skills else line
        for section, fragments in self.annotations.items():
            if not fragments or section not in SECTION_NAMES:
                continue
            current = sections.read(section)
            sections.write(section, (current + "".join(fragments)) if current else "".join(fragments).strip())
        return sections

    def loose_skills(self) -> list[str]:
        return list(self.annotations.get(ADDITIONAL_SKILLS_KEY) or [])

    def to_json_resume(self) -> dict[str, Any]:
        payload = self.model_dump(by_alias=True, exclude_none=True, exclude={"annotations"})
        if self.annotations:
            meta = dict(payload.get("meta") or {})
            meta["textualEdits"] = {key: list(value) for key, value in self.annotations.items() if value}
            payload["meta"] = meta
        return payload


class ResumeContent(BaseModel):
    """What the parse stage hands to the rest of the pipeline.

    A structured `document` is preferred; when parsing could only recover free text the
    document is None and all edits go through the flattened `sections`.
    """

    source: str = "memory"
    document: Document | None = None
    sections: TextSections = Field(default_factory=TextSections)
    original_sections: TextSections = Field(default_factory=TextSections)
    raw_text: str | None = None

    @property
    def structured(self) -> bool:
        return self.document is not None

    def text_view(self) -> TextSections:
        if self.document is not None:
            return self.document.to_text_sections()
        return self.sections.model_copy()

    def is_empty(self) -> bool:
        if self.document is not None:
            return self.document.is_empty()
        return self.sections.is_empty()

    @classmethod
    def from_document(cls, document: Document, *, source: str = "memory") -> "ResumeContent":
        view = document.to_text_sections()
        return cls(source=source, document=document, sections=view, original_sections=view.model_copy())

    @classmethod
    def from_sections(cls, sections: TextSections, *, source: str, raw_text: str | None = None) -> "ResumeContent":
        return cls(
            source=source,
            document=None,
            sections=sections,
            original_sections=sections.model_copy(),
            raw_text=raw_text,
        )
