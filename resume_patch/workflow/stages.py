from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable

from pydantic import ValidationError as ModelValidationError

from resume_patch.ai.heuristic import HeuristicClassifier
from resume_patch.ai.types import Classifier
from resume_patch.analysis.analyze import analyze
from resume_patch.analysis.suggest import CandidateGenerator, HeuristicCandidateGenerator, suggest_patches
from resume_patch.approval.gate import ApprovalGate, Reviewer
from resume_patch.core.calls import call_with_timeout
from resume_patch.core.config import settings
from resume_patch.core.errors import CollaboratorError, ProcessingError, ValidationError
from resume_patch.export.exporter import (
    ExportArtifacts,
    Renderer,
    build_json_resume,
    build_patch_report,
    build_text_summary,
    document_from_sections,
    write_artifacts,
)
from resume_patch.parsing.extract import ExtractedText, TextExtractor, extract_text, validate_resume_file
from resume_patch.parsing.jd import JobDescriptionSource, JobFetcher, build_job_description, fetch_job_description
from resume_patch.parsing.resume_parser import (
    HeuristicResumeParser,
    ResumeParser,
    document_from_json_resume,
    load_json_resume,
)
from resume_patch.patching.categories import CategoryResolver
from resume_patch.patching.engine import PatchEngine
from resume_patch.schemas.document import Document, ResumeContent
from resume_patch.schemas.patch import SKILL_PATCH_TYPES
from resume_patch.taxonomy import SkillTaxonomy

from .state import RETRY_TARGETS, WorkflowOptions, WorkflowState

logger = logging.getLogger(__name__)

ResumeSource = str | Path | Document | dict


@dataclass
class Collaborators:
    """External capabilities a run talks to. Every field has a local default."""

    classifier: Classifier = field(default_factory=HeuristicClassifier)
    extractor: TextExtractor = extract_text
    parser: ResumeParser = field(default_factory=HeuristicResumeParser)
    fetcher: JobFetcher | None = None
    generator: CandidateGenerator = field(default_factory=HeuristicCandidateGenerator)
    reviewer: Reviewer | None = None
    renderer: Renderer | None = None
    taxonomy: SkillTaxonomy | None = None


@dataclass
class StageContext:
    resume_source: ResumeSource
    jd_source: Any
    options: WorkflowOptions
    collaborators: Collaborators
    job_source: JobDescriptionSource | None = None


StageAction = Callable[[WorkflowState, StageContext], Awaitable[None]]


def describe_source(source: Any) -> str:
    if isinstance(source, (str, Path)):
        return str(source)
    if isinstance(source, Document):
        return "document"
    return type(source).__name__


async def run_start(state: WorkflowState, ctx: StageContext) -> None:
    source = ctx.resume_source
    if isinstance(source, (str, Path)):
        validate_resume_file(source)
    elif not isinstance(source, (Document, dict)):
        raise ValidationError(
            f"Unsupported resume source type: {type(source).__name__}", details={"type": type(source).__name__}
        )

    if ctx.jd_source is None:
        raise ValidationError("A job description (text or URL) is required")
    try:
        ctx.job_source = JobDescriptionSource.coerce(ctx.jd_source)
    except (ModelValidationError, TypeError, AttributeError) as exc:
        raise ValidationError(f"Invalid job description source: {exc}") from exc

    if not ctx.options.auto_apply and ctx.collaborators.reviewer is None:
        raise ValidationError("A reviewer is required unless auto_apply is enabled")

    state.resume_source = describe_source(source)
    state.log(
        "inputs validated",
        resume=state.resume_source,
        jd=("url" if ctx.job_source.url else "text"),
        auto_apply=ctx.options.auto_apply,
    )


async def _parse_file(path: Path, ctx: StageContext) -> ResumeContent:
    timeout_s = ctx.options.collaborator_timeout_s
    if path.suffix.lower() == ".json":
        try:
            return await call_with_timeout("json_loader", load_json_resume, path, timeout_s=timeout_s)
        except CollaboratorError as exc:
            raise ProcessingError(
                f"Resume loading failed: {exc}", code=exc.code, details={"path": str(path), "cause": exc.code}
            ) from exc

    try:
        extracted = await call_with_timeout("text_extractor", ctx.collaborators.extractor, path, timeout_s=timeout_s)
    except CollaboratorError as exc:
        raise ProcessingError(
            f"Text extraction failed: {exc}", code=exc.code, details={"path": str(path), "cause": exc.code}
        ) from exc
    text = extracted.text if isinstance(extracted, ExtractedText) else str(extracted or "")
    if not text.strip():
        raise ProcessingError(f"No text could be extracted from '{path}'", details={"path": str(path)})

    try:
        return await call_with_timeout(
            "resume_parser", partial(ctx.collaborators.parser, text, source=str(path)), timeout_s=timeout_s
        )
    except CollaboratorError as exc:
        raise ProcessingError(
            f"Resume parsing failed: {exc}", code=exc.code, details={"path": str(path), "cause": exc.code}
        ) from exc


async def run_parse(state: WorkflowState, ctx: StageContext) -> None:
    source = ctx.resume_source
    if isinstance(source, Document):
        content = ResumeContent.from_document(source.model_copy(deep=True))
    elif isinstance(source, dict):
        content = document_from_json_resume(source)
    else:
        content = await _parse_file(Path(source), ctx)

    if content.is_empty():
        raise ProcessingError("Parsed resume is empty", details={"source": state.resume_source})
    state.content = content
    state.log("resume parsed", structured=content.structured, source=content.source)


async def run_fetch_jd(state: WorkflowState, ctx: StageContext) -> None:
    source = ctx.job_source
    if source is None:
        raise ProcessingError("Job description source was not validated")

    if source.url:
        fetcher = ctx.collaborators.fetcher or partial(
            fetch_job_description, timeout_s=min(settings.jd_fetch_timeout_s, ctx.options.collaborator_timeout_s)
        )
        try:
            text = await call_with_timeout(
                "job_fetcher", fetcher, source.url, timeout_s=ctx.options.collaborator_timeout_s
            )
        except CollaboratorError as exc:
            raise ProcessingError(f"Job description fetch failed: {exc}", details={"url": source.url}) from exc
    else:
        text = source.text or ""

    if not (text or "").strip():
        raise ProcessingError("Job description text is empty", details={"source": "url" if source.url else "text"})
    state.job = build_job_description(source, text)
    state.log("job description ready", source=state.job.source, length=state.job.length)


async def run_analyze(state: WorkflowState, ctx: StageContext) -> None:
    if state.content is None or state.job is None:
        raise ProcessingError("Analysis needs both a parsed resume and a job description")
    state.analysis = await analyze(
        state.content,
        state.job,
        ctx.collaborators.classifier,
        taxonomy=ctx.collaborators.taxonomy,
        timeout_s=ctx.options.collaborator_timeout_s,
    )
    state.log(
        "analysis complete",
        match_score=state.analysis.match_score,
        gaps=len(state.analysis.skill_gaps),
    )


async def run_suggest(state: WorkflowState, ctx: StageContext) -> None:
    if state.content is None or state.job is None or state.analysis is None:
        raise ProcessingError("Suggestions need the analysis results")
    state.proposals = await suggest_patches(
        state.content,
        state.job,
        state.analysis,
        generator=ctx.collaborators.generator,
        classifier=ctx.collaborators.classifier,
        max_proposals=ctx.options.max_proposals,
        timeout_s=ctx.options.collaborator_timeout_s,
    )
    state.log("proposals generated", count=len(state.proposals))


async def run_approve(state: WorkflowState, ctx: StageContext) -> None:
    gate = ApprovalGate(ctx.collaborators.reviewer, auto_apply=ctx.options.auto_apply)
    if ctx.options.auto_apply:
        result = gate.review(state.proposals)
    else:
        result = await asyncio.to_thread(gate.review, state.proposals)
    state.approved = result.approved
    state.skipped = result.skipped
    state.approval_decisions = list(result.decisions)
    state.log("approval complete", mode=result.mode, approved=len(result.approved), skipped=len(result.skipped))


async def run_apply(state: WorkflowState, ctx: StageContext) -> None:
    if state.content is None:
        raise ProcessingError("No resume content to patch")

    classifier = ctx.collaborators.classifier
    resolver = CategoryResolver(None if isinstance(classifier, HeuristicClassifier) else classifier)
    document = state.content.document
    if document is not None:
        keywords = [proposal.value for proposal in state.approved if proposal.type in SKILL_PATCH_TYPES]
        if keywords:
            await resolver.prefetch_hints(keywords, document.skill_groups, timeout_s=ctx.options.collaborator_timeout_s)

    engine = PatchEngine(resolver, max_skill_groups=ctx.options.max_skill_groups)
    batch = engine.apply_batch(state.approved, state.content)
    state.content = batch.content
    state.applied_patches = batch.applied
    state.failed_patches = batch.failed
    state.consolidation = batch.consolidation
    state.final_document = _final_document(state.content)
    state.log(
        "patches applied",
        applied=len(batch.applied),
        failed=len(batch.failed),
        consolidated=bool(batch.consolidation),
    )


def _final_document(content: ResumeContent) -> Document:
    if content.document is not None:
        return content.document.model_copy(deep=True)
    return document_from_sections(content.sections)


async def run_export(state: WorkflowState, ctx: StageContext) -> None:
    if state.content is None:
        raise ProcessingError("No resume content to export")
    if state.final_document is None:
        state.final_document = _final_document(state.content)

    artifacts = ExportArtifacts(
        json_resume=build_json_resume(state.content, state.applied_patches, state.failed_patches),
        text_summary=build_text_summary(state.content, state.applied_patches),
        patch_report=build_patch_report(
            state.content,
            state.applied_patches,
            state.failed_patches,
            skipped=len(state.skipped),
            consolidation=state.consolidation,
        ),
    )

    renderer = ctx.collaborators.renderer
    if renderer is not None:
        try:
            artifacts.rendered = await call_with_timeout(
                "renderer", renderer, artifacts.json_resume, ctx.options.theme, timeout_s=ctx.options.collaborator_timeout_s
            )
        except CollaboratorError as exc:
            artifacts.render_error = str(exc)
            state.log("render skipped", code=exc.code)

    if ctx.options.allow_disk:
        artifacts.files = await asyncio.to_thread(write_artifacts, artifacts, ctx.options.output_path)
        artifacts.output_path = ctx.options.output_path

    state.export_artifacts = artifacts
    state.log("export complete", files=len(artifacts.files), rendered=artifacts.rendered is not None)


async def run_retry(state: WorkflowState, ctx: StageContext) -> None:
    state.retry_count += 1
    target = RETRY_TARGETS[state.stage]
    state.stage_retries[target] = state.stage_retries.get(target, 0) + 1
    state.log("retrying", attempt=state.retry_count, cleared=len(state.errors))
    state.errors.clear()


async def run_error(state: WorkflowState, ctx: StageContext) -> None:
    state.log("run failed", failed_stage=state.failed_stage, errors=len(state.error_history))


STAGE_ACTIONS: dict[str, StageAction] = {
    "start": run_start,
    "parse": run_parse,
    "retry_parse": run_retry,
    "fetch_jd": run_fetch_jd,
    "retry_fetch": run_retry,
    "analyze": run_analyze,
    "suggest": run_suggest,
    "approve": run_approve,
    "apply": run_apply,
    "export": run_export,
    "error": run_error,
}
