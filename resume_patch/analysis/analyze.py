from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from functools import partial
from typing import Literal

from pydantic import BaseModel, Field

from resume_patch.ai.heuristic import HeuristicClassifier
from resume_patch.ai.types import Classifier
from resume_patch.core.calls import call_with_timeout
from resume_patch.core.errors import CollaboratorError, ProcessingError
from resume_patch.core.scoring import get_scoring_number
from resume_patch.parsing.jd import JobDescription
from resume_patch.schemas.document import Document, ResumeContent, TextSections, unique_keywords
from resume_patch.taxonomy import SkillTaxonomy, default_taxonomy

logger = logging.getLogger(__name__)

_YEARS_RE = re.compile(r"(\d+)\s*\+?\s*(?:years?|yrs?)\s*(?:of\s+)?(?:\w+\s+){0,3}?(?:experience|exp)\b", re.IGNORECASE)
_YEAR_PREFIX_RE = re.compile(r"^(\d{4})")


class KeywordAnalysis(BaseModel):
    resume: list[str] = Field(default_factory=list)
    job: list[str] = Field(default_factory=list)
    common: list[str] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)


class ExperienceMatch(BaseModel):
    match: bool
    reason: str
    resume_years: int = 0
    job_years: int = 0


class Recommendation(BaseModel):
    type: Literal["add_skills", "expand_skills"]
    priority: Literal["high", "medium", "low"]
    description: str
    impact: str


class Analysis(BaseModel):
    match_score: float = Field(ge=0.0, le=1.0)
    keyword_analysis: KeywordAnalysis
    skill_gaps: list[str] = Field(default_factory=list)
    experience_match: ExperienceMatch
    recommendations: list[Recommendation] = Field(default_factory=list)
    keyword_source: Literal["classifier", "heuristic"] = "heuristic"
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def extract_years(text: str) -> int:
    match = _YEARS_RE.search(text or "")
    return int(match.group(1)) if match else 0


def years_from_work(document: Document | None, *, now: datetime | None = None) -> int:
    """Span from the earliest start year to the latest end year (open-ended roles run to now)."""
    if document is None or not document.work:
        return 0
    current_year = (now or datetime.now(timezone.utc)).year
    starts: list[int] = []
    ends: list[int] = []
    for entry in document.work:
        start = _YEAR_PREFIX_RE.match(entry.start_date or "")
        if not start:
            continue
        starts.append(int(start.group(1)))
        end = _YEAR_PREFIX_RE.match(entry.end_date or "")
        ends.append(int(end.group(1)) if end else current_year)
    if not starts:
        return 0
    return max(0, max(ends) - min(starts))


def analyze_experience(content: ResumeContent, sections: TextSections, job: JobDescription) -> ExperienceMatch:
    job_years = extract_years(job.sections.get("experience", "")) or extract_years(job.content)
    resume_years = max(extract_years(f"{sections.basics}\n{sections.experience}"), years_from_work(content.document))
    if job_years == 0:
        return ExperienceMatch(match=True, reason="No years-of-experience requirement found", resume_years=resume_years)
    if resume_years >= job_years:
        return ExperienceMatch(
            match=True, reason="Experience requirements met", resume_years=resume_years, job_years=job_years
        )
    return ExperienceMatch(
        match=False,
        reason=f"Need {job_years - resume_years} more years of experience",
        resume_years=resume_years,
        job_years=job_years,
    )


def _mentions(text: str, keyword: str) -> bool:
    return bool(re.search(rf"(?<![\w]){re.escape(keyword)}(?![\w])", text or "", re.IGNORECASE))


def compare_keywords(
    resume_keywords: list[str],
    job_keywords: list[str],
    resume_text: str,
    taxonomy: SkillTaxonomy,
) -> KeywordAnalysis:
    resume_keys = {taxonomy.canonical_key(item) for item in resume_keywords}
    common: list[str] = []
    missing: list[str] = []
    for keyword in job_keywords:
        if taxonomy.canonical_key(keyword) in resume_keys or _mentions(resume_text, keyword):
            common.append(keyword)
        else:
            missing.append(keyword)
    return KeywordAnalysis(resume=resume_keywords, job=job_keywords, common=common, missing=missing)


def build_recommendations(sections: TextSections, skill_gaps: list[str]) -> list[Recommendation]:
    recommendations: list[Recommendation] = []
    if skill_gaps:
        recommendations.append(
            Recommendation(
                type="add_skills",
                priority="high",
                description=f"Add missing skills: {', '.join(skill_gaps[:5])}",
                impact="High impact on match score",
            )
        )
    if len(sections.skills) < int(get_scoring_number("suggestions.thin_skills_chars", 100)):
        recommendations.append(
            Recommendation(
                type="expand_skills",
                priority="low",
                description="Expand skills section with specific tech and tools matching the job description",
                impact="Low impact on match score",
            )
        )
    return recommendations


def _filter_keywords(keywords: list[str]) -> list[str]:
    min_chars = int(get_scoring_number("analysis.keyword_filter_min_chars", 2))
    limit = int(get_scoring_number("analysis.max_keywords", 20))
    return [item for item in unique_keywords(keywords) if len(item) >= min_chars][:limit]


async def extract_keywords(
    classifier: Classifier, text: str, *, timeout_s: float | None = None
) -> tuple[list[str], Literal["classifier", "heuristic"]]:
    """Classifier keywords, or the heuristic extractor's when the classifier fails."""
    limit = int(get_scoring_number("analysis.max_keywords", 20))
    if not isinstance(classifier, HeuristicClassifier):
        try:
            keywords = await call_with_timeout(
                "extract_keywords", partial(classifier.extract_keywords, text, limit=limit), timeout_s=timeout_s
            )
            return _filter_keywords(keywords), "classifier"
        except CollaboratorError as exc:
            logger.warning("keyword_extraction_fallback code=%s error=%s", exc.code, exc)
    return _filter_keywords(HeuristicClassifier().extract_keywords(text, limit=limit)), "heuristic"


async def analyze(
    content: ResumeContent,
    job: JobDescription,
    classifier: Classifier,
    *,
    taxonomy: SkillTaxonomy | None = None,
    timeout_s: float | None = None,
) -> Analysis:
    if content.is_empty():
        raise ProcessingError("Resume content not available for analysis")
    if not job.content.strip():
        raise ProcessingError("Job description content not available for analysis")

    taxonomy = taxonomy or default_taxonomy()
    sections = content.text_view()
    resume_text = sections.joined()

    job_keywords, job_source = await extract_keywords(classifier, job.content, timeout_s=timeout_s)
    resume_keywords, resume_source = await extract_keywords(classifier, resume_text, timeout_s=timeout_s)
    if content.document is not None:
        resume_keywords = unique_keywords(resume_keywords + content.document.all_keywords())

    keyword_analysis = compare_keywords(resume_keywords, job_keywords, resume_text, taxonomy)
    skill_gaps = list(keyword_analysis.missing)
    match_score = round(len(keyword_analysis.common) / len(job_keywords), 2) if job_keywords else 0.0

    analysis = Analysis(
        match_score=match_score,
        keyword_analysis=keyword_analysis,
        skill_gaps=skill_gaps,
        experience_match=analyze_experience(content, sections, job),
        recommendations=build_recommendations(sections, skill_gaps),
        keyword_source="classifier" if job_source == resume_source == "classifier" else "heuristic",
    )
    logger.info(
        "analysis_done match_score=%s gaps=%s recommendations=%s source=%s",
        analysis.match_score,
        len(skill_gaps),
        len(analysis.recommendations),
        analysis.keyword_source,
    )
    return analysis
