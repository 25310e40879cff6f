from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from pydantic import ValidationError as ModelValidationError

from resume_patch.core.config import settings
from resume_patch.schemas.document import ADDITIONAL_SKILLS_KEY, Document, ResumeContent, SkillGroup, TextSections
from resume_patch.schemas.patch import PatchOutcome, PatchProposal, sort_by_priority

from .categories import CategoryResolver
from .consolidate import consolidate_groups
from .structural import NoMapping, PatchPathError, StructuralFailure, apply_ops, plan_structural
from .textual import (
    SkillLine,
    TextualFailure,
    TextualResult,
    apply_textual,
    detect_skills_format,
    parse_grouped_skills,
    render_grouped_skills,
    unique_skill_lines,
)

logger = logging.getLogger(__name__)


@dataclass
class PatchBatchResult:
    content: ResumeContent
    applied: list[PatchOutcome] = field(default_factory=list)
    failed: list[PatchOutcome] = field(default_factory=list)
    consolidation: dict[str, Any] = field(default_factory=dict)


class PatchEngine:
    """Applies approved proposals one at a time, then bounds the skill-group count.

    Structured documents go through the structural planner first; proposals without a
    structural mapping, and every proposal on an unstructured resume, use the textual
    fallback. Each proposal is all-or-nothing; there is no rollback across proposals.
    """

    def __init__(self, resolver: CategoryResolver | None = None, *, max_skill_groups: int | None = None) -> None:
        self.resolver = resolver or CategoryResolver()
        self.max_skill_groups = max_skill_groups or settings.max_skill_groups

    def apply_batch(self, proposals: Sequence[PatchProposal], content: ResumeContent) -> PatchBatchResult:
        working = content.model_copy(deep=True)
        result = PatchBatchResult(content=working)

        for proposal in sort_by_priority(list(proposals)):
            outcome = self.apply_one(proposal, working)
            if outcome.status == "applied":
                result.applied.append(outcome)
                logger.info("patch_applied id=%s mode=%s section=%s", proposal.id, outcome.mode, outcome.section)
            else:
                result.failed.append(outcome)
                logger.info("patch_failed id=%s mode=%s reason=%s", proposal.id, outcome.mode, outcome.reason)

        result.consolidation = self.consolidate(working)
        if working.document is not None:
            working.sections = working.document.to_text_sections()
        return result

    def apply_one(self, proposal: PatchProposal, content: ResumeContent) -> PatchOutcome:
        """Apply a single proposal to `content` in place and return its outcome record."""
        document = content.document
        if document is None:
            return self._apply_textual_sections(proposal, content)

        plan = plan_structural(proposal, document, self.resolver)
        if isinstance(plan, NoMapping):
            return self._apply_textual_document(proposal, content, document)
        if isinstance(plan, StructuralFailure):
            return PatchOutcome(proposal=proposal, status="failed", mode="structural", reason=plan.reason)

        try:
            updated = apply_ops(document, plan.ops)
        except (PatchPathError, ModelValidationError) as exc:
            return PatchOutcome(
                proposal=proposal,
                status="failed",
                mode="structural",
                section=plan.section,
                reason=f"invalid edit: {exc}",
                ops=list(plan.ops),
            )
        if updated.model_dump() == document.model_dump():
            return PatchOutcome(
                proposal=proposal,
                status="failed",
                mode="structural",
                section=plan.section,
                reason="edit had no effect",
                ops=list(plan.ops),
            )
        content.document = updated
        return PatchOutcome(
            proposal=proposal,
            status="applied",
            mode="structural",
            section=plan.section,
            changes=plan.changes,
            ops=list(plan.ops),
        )

    def _apply_textual_document(self, proposal: PatchProposal, content: ResumeContent, document: Document) -> PatchOutcome:
        outcome = apply_textual(proposal, document.to_text_sections(), weights=self.resolver.weights)
        if isinstance(outcome, TextualFailure):
            return PatchOutcome(proposal=proposal, status="failed", mode="textual", reason=outcome.reason)

        annotations = {key: list(items) for key, items in document.annotations.items()}
        if outcome.added_items:
            annotations.setdefault(ADDITIONAL_SKILLS_KEY, []).extend(outcome.added_items)
        else:
            annotations.setdefault(outcome.section, []).append(outcome.fragment)
        content.document = document.model_copy(update={"annotations": annotations})
        return self._textual_applied(proposal, outcome)

    def _apply_textual_sections(self, proposal: PatchProposal, content: ResumeContent) -> PatchOutcome:
        outcome = apply_textual(proposal, content.sections, weights=self.resolver.weights)
        if isinstance(outcome, TextualFailure):
            return PatchOutcome(proposal=proposal, status="failed", mode="textual", reason=outcome.reason)
        content.sections.write(outcome.section, outcome.updated)
        return self._textual_applied(proposal, outcome)

    @staticmethod
    def _textual_applied(proposal: PatchProposal, outcome: TextualResult) -> PatchOutcome:
        return PatchOutcome(
            proposal=proposal, status="applied", mode="textual", section=outcome.section, changes=outcome.changes
        )

    def consolidate(self, content: ResumeContent) -> dict[str, Any]:
        if content.document is not None:
            groups = content.document.skill_groups
            if len(groups) <= self.max_skill_groups:
                return {}
            merged = consolidate_groups(groups, self.max_skill_groups)
            content.document = content.document.model_copy(update={"skill_groups": merged})
            return self._consolidation_summary(groups, merged)
        return self._consolidate_text(content.sections)

    def _consolidate_text(self, sections: TextSections) -> dict[str, Any]:
        if detect_skills_format(sections.skills) != "grouped":
            return {}
        entries = parse_grouped_skills(sections.skills)
        lines = [entry for entry in entries if isinstance(entry, SkillLine)]
        if len(lines) <= self.max_skill_groups:
            return {}
        lines, repeated = unique_skill_lines(lines)
        groups = [SkillGroup(name=line.name, keywords=line.keywords) for line in lines]
        merged = consolidate_groups(groups, self.max_skill_groups)
        rebuilt: list[SkillLine | str] = [SkillLine(name=group.name, keywords=list(group.keywords)) for group in merged]
        rebuilt.extend(entry for entry in entries if isinstance(entry, str))
        sections.skills = render_grouped_skills(rebuilt)
        summary = self._consolidation_summary(groups, merged)
        if repeated:
            summary["repeated_keywords"] = repeated
        return summary

    @staticmethod
    def _consolidation_summary(before: list[SkillGroup], after: list[SkillGroup]) -> dict[str, Any]:
        logger.info("skill_groups_consolidated before=%s after=%s", len(before), len(after))
        return {
            "groups_before": len(before),
            "groups_after": len(after),
            "kept": [group.name for group in after],
            "merged": [group.name for group in before if group.name not in {kept.name for kept in after}],
        }
