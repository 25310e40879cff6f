from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError as ModelValidationError

from resume_patch.ai.llm import json_completion
from resume_patch.core.errors import CollaboratorError, ProcessingError
from resume_patch.schemas.document import SECTION_NAMES, Document, ResumeContent, TextSections

from .text_utils import is_bullet_like, is_contact_or_url, normalize_line, section_for_heading, strip_bullet_prefix

logger = logging.getLogger(__name__)


class ResumeParser(Protocol):
    def __call__(self, text: str, *, source: str) -> ResumeContent: ...


def document_from_json_resume(payload: Any, *, source: str = "memory") -> ResumeContent:
    if not isinstance(payload, dict):
        raise ProcessingError("JSON resume must be an object", details={"source": source})
    try:
        document = Document.model_validate(payload)
    except ModelValidationError as exc:
        raise ProcessingError(f"Invalid JSON resume: {exc.error_count()} validation error(s)", details={"source": source}) from exc
    return ResumeContent.from_document(document, source=source)


def load_json_resume(path: Path) -> ResumeContent:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ProcessingError(f"Failed to read '{path}': {exc}", details={"path": str(path)}) from exc
    except json.JSONDecodeError as exc:
        raise ProcessingError(f"'{path}' is not valid JSON: {exc.msg}", details={"path": str(path)}) from exc
    return document_from_json_resume(payload, source=str(path))


def split_sections(text: str) -> TextSections:
    """Split free resume text into the five flattened sections by heading lines.

    Lines before the first heading (name, contact details, summary) land in basics.
    Bullets are kept as plain lines so later edits can append to them.
    """
    buckets: dict[str, list[str]] = {name: [] for name in SECTION_NAMES}
    current = "basics"
    for raw_line in (text or "").splitlines():
        line = normalize_line(raw_line)
        if not line:
            continue
        heading = section_for_heading(line)
        if heading is not None:
            current = heading
            continue
        if current != "basics" and is_contact_or_url(line) and not buckets[current]:
            buckets["basics"].append(line)
            continue
        buckets[current].append(strip_bullet_prefix(line) if is_bullet_like(line) and current != "skills" else line)

    return TextSections(
        basics=" ".join(buckets["basics"]),
        experience="\n".join(buckets["experience"]),
        education="\n".join(buckets["education"]),
        skills="\n".join(buckets["skills"]),
        projects="\n".join(buckets["projects"]),
    )


class HeuristicResumeParser:
    """Free text -> flattened sections; edits then go through the textual fallback."""

    def __call__(self, text: str, *, source: str) -> ResumeContent:
        sections = split_sections(text)
        if sections.is_empty():
            raise ProcessingError("Resume text contained no recognizable content", details={"source": source})
        logger.info(
            "resume_parsed_heuristic source=%s sections=%s",
            source,
            ",".join(name for name in SECTION_NAMES if sections.read(name).strip()),
        )
        return ResumeContent.from_sections(sections, source=source, raw_text=text)


_PARSE_SYSTEM_PROMPT = """You are a resume parser. Return only valid JSON that conforms to JSON Resume v1.0.0.
Top-level keys (omit empty): basics, work[], education[], skills[], projects[].
Rules:
- work: set both name and company to the employer; include position, startDate, endDate, summary, highlights[].
- Copy bullet lines into highlights verbatim; do not paraphrase or drop metrics.
- skills: array of {name, keywords[]}. When the text groups skills under labels ("Backend: Python, FastAPI"),
  emit one object per label with that exact name and only concrete tools in keywords.
- Never put category labels into keywords. Do not fabricate data."""


class LLMResumeParser:
    """Free text -> structured JSON Resume via the JSON completion helper.

    Falls back to the heuristic splitter when the model is unavailable or its output does
    not validate.
    """

    def __init__(self, fallback: ResumeParser | None = None) -> None:
        self._fallback = fallback or HeuristicResumeParser()

    def __call__(self, text: str, *, source: str) -> ResumeContent:
        try:
            payload = json_completion(
                system_prompt=_PARSE_SYSTEM_PROMPT,
                user_prompt=f"Resume text:\n\n{text[:150000]}",
                temperature=0.0,
                max_output_tokens=4000,
                purpose="parse_resume",
            )
            content = document_from_json_resume(payload, source=source)
        except (CollaboratorError, ProcessingError) as exc:
            logger.warning("resume_llm_parse_failed source=%s error=%s", source, exc)
            return self._fallback(text, source=source)

        if content.is_empty():
            logger.warning("resume_llm_parse_empty source=%s", source)
            return self._fallback(text, source=source)
        content.raw_text = text
        logger.info("resume_parsed_llm source=%s work=%s groups=%s", source, len(content.document.work), len(content.document.skill_groups))
        return content
