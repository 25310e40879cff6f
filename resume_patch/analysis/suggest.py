from __future__ import annotations

import logging
import re
from typing import Protocol

from resume_patch.ai.heuristic import HeuristicClassifier
from resume_patch.ai.types import Classifier
from resume_patch.core.calls import call_with_timeout
from resume_patch.core.errors import CollaboratorError, ProcessingError
from resume_patch.core.scoring import get_scoring_number
from resume_patch.parsing.jd import JobDescription
from resume_patch.patching.dedupe import dedupe_proposals
from resume_patch.patching.textual import existing_skill_items
from resume_patch.schemas.document import ResumeContent, normalize_keyword
from resume_patch.schemas.patch import PatchProposal, sort_by_priority

from .analyze import Analysis

logger = logging.getLogger(__name__)

_LEADERSHIP_RE = re.compile(r"\b(lead|leading|mentor|mentoring|ownership|architect)\w*\b", re.IGNORECASE)
_PROJECT_MARKERS = ("project", "achievement")


class CandidateGenerator(Protocol):
    def __call__(self, content: ResumeContent, job: JobDescription, analysis: Analysis) -> list[PatchProposal]: ...


def _mentions(text: str, keyword: str) -> bool:
    return bool(re.search(rf"(?<![\w]){re.escape(keyword)}(?![\w])", text or "", re.IGNORECASE))


class HeuristicCandidateGenerator:
    """Rule-based proposals from the gap analysis; needs no external service."""

    def __call__(self, content: ResumeContent, job: JobDescription, analysis: Analysis) -> list[PatchProposal]:
        sections = content.text_view()
        proposals: list[PatchProposal] = []

        skill_proposals = self._skill_proposals(analysis, sections.skills)
        proposals.extend(skill_proposals)

        thin_chars = int(get_scoring_number("suggestions.thin_skills_chars", 100))
        common = analysis.keyword_analysis.common
        if len(sections.skills) < thin_chars and len(skill_proposals) < 3 and common:
            proposals.append(
                PatchProposal.build(
                    "enhance_section",
                    f"Hands-on with {', '.join(common[:5])}",
                    priority="medium",
                    action="expand_skills_description",
                    confidence=0.7,
                    impact="Medium impact on match score",
                    description="Enhance skills section with more specific technologies",
                    category="content_enhancement",
                )
            )

        experience = analysis.experience_match
        if not experience.match and experience.job_years > experience.resume_years:
            focus = ", ".join(analysis.keyword_analysis.job[:3]) or "the target role"
            proposals.append(
                PatchProposal.build(
                    "enhance_experience",
                    f"Delivered production work centred on {focus}",
                    priority="medium",
                    action="emphasize_relevant_experience",
                    confidence=0.8,
                    impact="Medium impact on match score",
                    description=(
                        f"Highlight relevant experience to compensate for "
                        f"{experience.job_years - experience.resume_years} year gap"
                    ),
                    category="experience_optimization",
                )
            )

        if sections.experience.strip():
            proposals.extend(self._alignment_proposals(analysis, sections.experience))
            if _LEADERSHIP_RE.search(job.content) and not _LEADERSHIP_RE.search(sections.experience):
                proposals.append(
                    PatchProposal.build(
                        "role_enhancement",
                        "Mentored engineers and led technical design decisions",
                        priority="low",
                        action="enhance_role",
                        confidence=0.6,
                        impact="Medium impact on match score",
                        description="Surface leadership the role asks for",
                        category="leadership_enhancement",
                    )
                )

        if not any(marker in sections.experience.lower() for marker in _PROJECT_MARKERS):
            stack = ", ".join(analysis.keyword_analysis.job[:3])
            value = "Relevant project: delivered a scalable solution with measurable outcomes"
            proposals.append(
                PatchProposal.build(
                    "add_content",
                    f"{value} using {stack}" if stack else value,
                    priority="low",
                    action="add_project_section",
                    confidence=0.6,
                    impact="Low impact on match score",
                    description="Add project-based experience and achievements",
                    category="content_addition",
                )
            )

        for recommendation in analysis.recommendations:
            if recommendation.type != "add_skills":
                continue
            proposals.append(
                PatchProposal.build(
                    "recommendation_based",
                    recommendation.description,
                    priority=recommendation.priority,
                    action="follow_recommendation",
                    confidence=0.8,
                    impact=recommendation.impact,
                    description=recommendation.description,
                    category="analysis_recommendation",
                )
            )

        proposals.extend(self._keyword_proposals(analysis, skill_proposals, sections.joined()))
        return proposals

    def _skill_proposals(self, analysis: Analysis, skills_text: str) -> list[PatchProposal]:
        limit = int(get_scoring_number("suggestions.max_skill_proposals", 8))
        present = existing_skill_items(skills_text)
        proposals: list[PatchProposal] = []
        for gap in analysis.skill_gaps:
            if len(proposals) >= limit:
                break
            if len(gap) < 2 or normalize_keyword(gap) in present:
                continue
            proposals.append(
                PatchProposal.build(
                    "add_skill",
                    gap,
                    priority="high",
                    action="add_to_skills_section",
                    confidence=0.9,
                    impact="High impact on match score",
                    description=f"Add specific technology: {gap}",
                    category="technical_skills",
                )
            )
        return proposals

    def _alignment_proposals(self, analysis: Analysis, experience_text: str) -> list[PatchProposal]:
        limit = int(get_scoring_number("suggestions.max_alignment_proposals", 3))
        proposals: list[PatchProposal] = []
        for keyword in analysis.keyword_analysis.common:
            if len(proposals) >= limit:
                break
            if _mentions(experience_text, keyword):
                continue
            proposals.append(
                PatchProposal.build(
                    "align_experience",
                    f"Applied {keyword} in day-to-day delivery",
                    priority="medium",
                    action="add_technology_mention",
                    confidence=0.7,
                    impact="Medium impact on match score",
                    description=f"Mention {keyword} in recent experience",
                    category="technology_alignment",
                )
            )
        return proposals

    def _keyword_proposals(
        self, analysis: Analysis, skill_proposals: list[PatchProposal], resume_text: str
    ) -> list[PatchProposal]:
        limit = int(get_scoring_number("suggestions.max_keyword_proposals", 5))
        covered = [normalize_keyword(proposal.value) for proposal in skill_proposals]
        proposals: list[PatchProposal] = []
        for keyword in analysis.keyword_analysis.missing:
            if len(proposals) >= limit:
                break
            key = normalize_keyword(keyword)
            if len(key) < 3 or any(key in skill or skill in key for skill in covered) or _mentions(resume_text, keyword):
                continue
            proposals.append(
                PatchProposal.build(
                    "add_keyword",
                    keyword,
                    priority="low",
                    action="add_keyword_to_content",
                    confidence=0.5,
                    impact="Low impact on keyword matching",
                    description=f"Add keyword: {keyword}",
                    category="keyword_optimization",
                )
            )
        return proposals


async def limit_proposals(
    proposals: list[PatchProposal],
    job: JobDescription,
    classifier: Classifier,
    max_proposals: int,
    *,
    timeout_s: float | None = None,
) -> list[PatchProposal]:
    """Keep at most `max_proposals`, letting the classifier pick; priority order on failure."""
    if len(proposals) <= max_proposals:
        return proposals
    try:
        indices = await call_with_timeout(
            "rank_proposals", classifier.rank_proposals, proposals, job.content, max_proposals, timeout_s=timeout_s
        )
    except CollaboratorError as exc:
        logger.warning("proposal_ranking_fallback code=%s error=%s", exc.code, exc)
        indices = HeuristicClassifier().rank_proposals(proposals, job.content, max_proposals)

    selected: list[PatchProposal] = []
    for index in indices:
        if isinstance(index, int) and 0 <= index < len(proposals) and proposals[index] not in selected:
            selected.append(proposals[index])
    if not selected:
        return proposals[:max_proposals]
    return selected[:max_proposals]


async def suggest_patches(
    content: ResumeContent,
    job: JobDescription,
    analysis: Analysis,
    *,
    generator: CandidateGenerator,
    classifier: Classifier,
    max_proposals: int,
    timeout_s: float | None = None,
) -> list[PatchProposal]:
    try:
        proposals = await call_with_timeout("candidate_generator", generator, content, job, analysis, timeout_s=timeout_s)
    except CollaboratorError as exc:
        if isinstance(generator, HeuristicCandidateGenerator):
            raise ProcessingError(f"candidate generation failed: {exc}", details={"cause": exc.code}) from exc
        logger.warning("candidate_generation_fallback code=%s error=%s", exc.code, exc)
        return await suggest_patches(
            content,
            job,
            analysis,
            generator=HeuristicCandidateGenerator(),
            classifier=classifier,
            max_proposals=max_proposals,
            timeout_s=timeout_s,
        )

    unique = dedupe_proposals(proposals)
    ordered = sort_by_priority(unique)
    limited = await limit_proposals(ordered, job, classifier, max_proposals, timeout_s=timeout_s)
    logger.info(
        "proposals_generated raw=%s unique=%s kept=%s high=%s",
        len(proposals),
        len(unique),
        len(limited),
        sum(1 for proposal in limited if proposal.priority == "high"),
    )
    return limited
