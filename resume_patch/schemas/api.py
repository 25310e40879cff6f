from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from .patch import PatchOutcome, PatchProposal

ReviewDecision = Literal["apply", "skip"]


class OptimizeRequest(BaseModel):
    resume: dict[str, Any]
    job_description_text: str | None = Field(default=None, max_length=50000)
    job_description_url: str | None = Field(default=None, max_length=2000)
    auto_apply: bool = False
    decisions: dict[str, ReviewDecision] = Field(default_factory=dict)
    max_skill_groups: int | None = Field(default=None, ge=1, le=20)
    max_proposals: int | None = Field(default=None, ge=1, le=50)

    @model_validator(mode="after")
    def _one_job_source(self) -> "OptimizeRequest":
        has_text = bool((self.job_description_text or "").strip())
        has_url = bool((self.job_description_url or "").strip())
        if has_text == has_url:
            raise ValueError("Provide exactly one of job_description_text or job_description_url")
        return self

    def job_source(self) -> dict[str, str]:
        if self.job_description_url:
            return {"url": self.job_description_url.strip()}
        return {"text": self.job_description_text or ""}


class PatchOutcomeView(BaseModel):
    id: str
    type: str
    value: str
    status: str
    mode: str | None = None
    section: str | None = None
    reason: str | None = None
    changes: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_outcome(cls, outcome: PatchOutcome) -> "PatchOutcomeView":
        return cls(
            id=outcome.proposal.id,
            type=outcome.proposal.type,
            value=outcome.proposal.value,
            status=outcome.status,
            mode=outcome.mode,
            section=outcome.section,
            reason=outcome.reason,
            changes=outcome.changes,
        )


class OptimizeResponse(BaseModel):
    resume: dict[str, Any]
    match_score: float | None = None
    proposals: list[PatchProposal] = Field(default_factory=list)
    applied_patches: list[PatchOutcomeView] = Field(default_factory=list)
    failed_patches: list[PatchOutcomeView] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    patch_report: str = ""
    retry_count: int = 0
