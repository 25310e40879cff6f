from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from resume_patch.core.errors import ProcessingError
from resume_patch.parsing.text_utils import find_email, find_phone
from resume_patch.patching.textual import SkillLine, detect_skills_format, parse_grouped_skills, split_items
from resume_patch.schemas.document import SECTION_NAMES, Document, ResumeContent, TextSections
from resume_patch.schemas.patch import PatchOutcome

logger = logging.getLogger(__name__)

JSON_FILENAME = "resume.json"
TEXT_FILENAME = "summary.txt"
REPORT_FILENAME = "patchReport.md"


class RenderedResume(BaseModel):
    html: str | None = None
    pdf: bytes | None = None


class Renderer(Protocol):
    def __call__(self, json_resume: dict[str, Any], theme: str) -> RenderedResume: ...


class ExportArtifacts(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    json_resume: dict[str, Any]
    text_summary: str
    patch_report: str
    rendered: RenderedResume | None = None
    render_error: str | None = None
    output_path: str | None = None
    files: dict[str, str] = Field(default_factory=dict)
    exported_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def _skills_from_text(text: str) -> list[dict[str, Any]]:
    fmt = detect_skills_format(text)
    if fmt == "empty":
        return []
    if fmt == "flat":
        return [{"name": "Skills", "keywords": split_items(text)}]
    groups: list[dict[str, Any]] = []
    loose: list[str] = []
    for entry in parse_grouped_skills(text):
        if isinstance(entry, SkillLine):
            groups.append({"name": entry.name, "keywords": entry.keywords})
        else:
            loose.extend(split_items(entry))
    if loose:
        groups.append({"name": "Skills", "keywords": loose})
    return groups


def document_from_sections(sections: TextSections) -> Document:
    """Best-effort JSON Resume for a resume that only exists as flattened text."""
    basics: dict[str, Any] = {"summary": sections.basics} if sections.basics else {}
    email = find_email(sections.basics)
    phone = find_phone(sections.basics)
    if email:
        basics["email"] = email
    if phone:
        basics["phone"] = phone
    payload: dict[str, Any] = {"basics": basics}
    if sections.experience.strip():
        payload["work"] = [{"summary": sections.experience}]
    if sections.education.strip():
        payload["education"] = [{"institution": line} for line in sections.education.splitlines() if line.strip()]
    payload["skills"] = _skills_from_text(sections.skills)
    if sections.projects.strip():
        payload["projects"] = [{"name": line} for line in sections.projects.splitlines() if line.strip()]
    return Document.model_validate(payload)


def _outcome_time(outcomes: list[PatchOutcome]) -> str | None:
    latest = max((outcome.at for outcome in outcomes), default=None)
    return latest.isoformat() if latest else None


def build_json_resume(
    content: ResumeContent, applied: list[PatchOutcome], failed: list[PatchOutcome]
) -> dict[str, Any]:
    document = content.document if content.document is not None else document_from_sections(content.sections)
    payload = document.to_json_resume()
    meta = dict(payload.get("meta") or {})
    meta.update(
        {
            "patched": bool(applied),
            "patchedAt": _outcome_time(applied + failed),
            "appliedPatches": len(applied),
            "failedPatches": len(failed),
            "originalSections": [name for name in SECTION_NAMES if content.original_sections.read(name).strip()],
            "patchedSections": sorted({outcome.section for outcome in applied if outcome.section}),
        }
    )
    payload["meta"] = meta
    return payload


def build_text_summary(content: ResumeContent, applied: list[PatchOutcome]) -> str:
    sections = content.text_view()
    lines = ["OPTIMIZED RESUME SUMMARY", "=" * 50, ""]
    for name in SECTION_NAMES:
        text = sections.read(name).strip()
        if text:
            lines.extend([f"{name.upper()}:", text, ""])
    if applied:
        lines.extend(["APPLIED PATCHES:", "=" * 30])
        for index, outcome in enumerate(applied, start=1):
            proposal = outcome.proposal
            lines.append(f"{index}. {proposal.description or proposal.value}")
            lines.append(f"   Type: {proposal.type}, Priority: {proposal.priority}, Mode: {outcome.mode}")
            lines.append(f"   Applied: {outcome.at.isoformat()}")
            lines.append("")
    return "\n".join(lines)


def _format_change(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    return str(value)


def build_patch_report(
    content: ResumeContent,
    applied: list[PatchOutcome],
    failed: list[PatchOutcome],
    *,
    skipped: int = 0,
    consolidation: dict[str, Any] | None = None,
) -> str:
    lines = [
        "# Resume Optimization Report",
        "",
        f"**Generated:** {datetime.now(timezone.utc).isoformat()}",
        f"**Original Resume:** {content.source}",
        "",
        "## Summary",
        "",
        f"- **Total Patches Applied:** {len(applied)}",
        f"- **Patches Failed:** {len(failed)}",
        f"- **Patches Skipped:** {skipped}",
    ]
    if consolidation:
        lines.append(
            f"- **Skill Groups Consolidated:** {consolidation.get('groups_before')} -> {consolidation.get('groups_after')}"
        )
    lines.append("")

    if applied:
        lines.extend(["## Applied Patches", ""])
        for index, outcome in enumerate(applied, start=1):
            proposal = outcome.proposal
            lines.extend(
                [
                    f"### {index}. {proposal.description or proposal.value}",
                    "",
                    f"- **Type:** {proposal.type}",
                    f"- **Priority:** {proposal.priority}",
                    f"- **Impact:** {proposal.impact or 'Unknown'}",
                    f"- **Mode:** {outcome.mode}",
                    f"- **Section:** {outcome.section}",
                    f"- **Applied:** {outcome.at.isoformat()}",
                    "",
                ]
            )
            if outcome.changes:
                lines.append("**Changes Made:**")
                lines.extend(f"- {key}: {_format_change(value)}" for key, value in outcome.changes.items())
                lines.append("")

    if failed:
        lines.extend(["## Failed Patches", ""])
        for index, outcome in enumerate(failed, start=1):
            proposal = outcome.proposal
            lines.extend(
                [
                    f"### {index}. {proposal.description or proposal.value}",
                    "",
                    f"- **Type:** {proposal.type}",
                    f"- **Reason:** {outcome.reason}",
                    f"- **Failed:** {outcome.at.isoformat()}",
                    "",
                ]
            )

    lines.extend(
        [
            "## Next Steps",
            "",
            "1. Review the applied patches for accuracy",
            "2. Customize the resume further based on specific job requirements",
            "3. Consider additional optimizations based on failed patches",
            "",
        ]
    )
    return "\n".join(lines)


def write_artifacts(artifacts: ExportArtifacts, output_path: str | Path) -> dict[str, str]:
    """Write the export files under `output_path`. OSError becomes ProcessingError."""
    out_dir = Path(output_path)
    files: dict[str, str] = {}
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        json_path = out_dir / JSON_FILENAME
        json_path.write_text(json.dumps(artifacts.json_resume, indent=2, ensure_ascii=False, default=str), encoding="utf-8")
        files["json"] = str(json_path)

        text_path = out_dir / TEXT_FILENAME
        text_path.write_text(artifacts.text_summary, encoding="utf-8")
        files["text"] = str(text_path)

        report_path = out_dir / REPORT_FILENAME
        report_path.write_text(artifacts.patch_report, encoding="utf-8")
        files["patchReport"] = str(report_path)

        if artifacts.rendered is not None and artifacts.rendered.html:
            html_path = out_dir / "resume.html"
            html_path.write_text(artifacts.rendered.html, encoding="utf-8")
            files["html"] = str(html_path)
        if artifacts.rendered is not None and artifacts.rendered.pdf:
            pdf_path = out_dir / "resume.pdf"
            pdf_path.write_bytes(artifacts.rendered.pdf)
            files["pdf"] = str(pdf_path)
    except OSError as exc:
        raise ProcessingError(f"Export failed: {exc}", details={"output_path": str(out_dir)}) from exc

    logger.info("export_written output_path=%s files=%s", out_dir, ",".join(files))
    return files
