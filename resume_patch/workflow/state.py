from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from resume_patch.analysis.analyze import Analysis
from resume_patch.core.config import settings
from resume_patch.export.exporter import ExportArtifacts
from resume_patch.parsing.jd import JobDescription
from resume_patch.schemas.document import Document, ResumeContent
from resume_patch.schemas.patch import PatchOutcome, PatchProposal

logger = logging.getLogger(__name__)

Stage = Literal[
    "start",
    "parse",
    "retry_parse",
    "fetch_jd",
    "retry_fetch",
    "analyze",
    "suggest",
    "approve",
    "apply",
    "export",
    "error",
    "end",
]

RETRY_TARGETS: dict[str, Stage] = {"retry_parse": "parse", "retry_fetch": "fetch_jd"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    auto_apply: bool = False
    allow_disk: bool = settings.allow_disk
    output_path: str = settings.output_path
    max_skill_groups: int = Field(default=settings.max_skill_groups, ge=1)
    max_proposals: int = Field(default=settings.max_proposals, ge=1)
    max_retries: int = Field(default=settings.workflow_max_retries, ge=0)
    collaborator_timeout_s: float = Field(default=settings.collaborator_timeout_s, gt=0)
    theme: str = settings.render_theme


class LogEntry(BaseModel):
    at: datetime = Field(default_factory=_now)
    stage: str
    message: str
    fields: dict[str, Any] = Field(default_factory=dict)


class ErrorRecord(BaseModel):
    at: datetime = Field(default_factory=_now)
    stage: str
    code: str
    message: str


class WorkflowState(BaseModel):
    """Everything one run knows. Owned by a single pipeline and never shared between runs."""

    run_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    stage: Stage = "start"
    failed_stage: Stage | None = None
    errors: list[str] = Field(default_factory=list)
    error_history: list[ErrorRecord] = Field(default_factory=list)
    retry_count: int = 0
    stage_retries: dict[str, int] = Field(default_factory=dict)
    processing_log: list[LogEntry] = Field(default_factory=list)
    step_timings: dict[str, int] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=_now)
    finished_at: datetime | None = None

    resume_source: str = ""
    content: ResumeContent | None = None
    job: JobDescription | None = None
    analysis: Analysis | None = None
    proposals: list[PatchProposal] = Field(default_factory=list)
    approved: list[PatchProposal] = Field(default_factory=list)
    skipped: list[PatchProposal] = Field(default_factory=list)
    approval_decisions: list[dict[str, Any]] = Field(default_factory=list)
    applied_patches: list[PatchOutcome] = Field(default_factory=list)
    failed_patches: list[PatchOutcome] = Field(default_factory=list)
    consolidation: dict[str, Any] = Field(default_factory=dict)
    final_document: Document | None = None
    export_artifacts: ExportArtifacts | None = None

    def log(self, message: str, **fields: Any) -> None:
        self.processing_log.append(LogEntry(stage=self.stage, message=message, fields=fields))
        if fields:
            logger.info(
                "workflow_%s run_id=%s %s", self.stage, self.run_id, " ".join(f"{k}={v}" for k, v in fields.items())
            )
        else:
            logger.info("workflow_%s run_id=%s message=%s", self.stage, self.run_id, message)

    def record_error(self, code: str, message: str) -> None:
        self.errors.append(message)
        self.error_history.append(ErrorRecord(stage=self.stage, code=code, message=message))
        self.processing_log.append(LogEntry(stage=self.stage, message=f"error: {message}", fields={"code": code}))
        logger.warning("workflow_error run_id=%s stage=%s code=%s error=%s", self.run_id, self.stage, code, message)


class RunResult(BaseModel):
    document: Document
    content: ResumeContent
    applied_patches: list[PatchOutcome]
    failed_patches: list[PatchOutcome]
    skipped: list[PatchProposal]
    proposals: list[PatchProposal]
    analysis: Analysis | None
    job: JobDescription | None
    export_artifacts: ExportArtifacts | None
    retry_count: int
    processing_log: list[LogEntry]

    @classmethod
    def from_state(cls, state: WorkflowState) -> "RunResult":
        return cls(
            document=state.final_document,
            content=state.content,
            applied_patches=state.applied_patches,
            failed_patches=state.failed_patches,
            skipped=state.skipped,
            proposals=state.proposals,
            analysis=state.analysis,
            job=state.job,
            export_artifacts=state.export_artifacts,
            retry_count=state.retry_count,
            processing_log=state.processing_log,
        )
