from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator

PatchType = Literal[
    "add_skill",
    "add_keyword",
    "enhance_section",
    "enhance_experience",
    "align_experience",
    "role_enhancement",
    "add_content",
    "recommendation_based",
]
Priority = Literal["high", "medium", "low"]
OutcomeStatus = Literal["applied", "failed"]
PatchMode = Literal["structural", "textual"]

PATCH_TYPES: tuple[str, ...] = get_args(PatchType)
SKILL_PATCH_TYPES = frozenset({"add_skill", "add_keyword"})
PRIORITY_ORDER: dict[str, int] = {"high": 0, "medium": 1, "low": 2}

_ID_SLUG_RE = re.compile(r"[^a-z0-9]+")


def proposal_id(patch_type: str, value: str) -> str:
    slug = _ID_SLUG_RE.sub("_", (value or "").strip().lower()).strip("_")
    return f"{patch_type}:{slug or 'empty'}"


def patch_kind(patch_type: str) -> str:
    """Types that compete for the same slot; skill-like proposals are one kind."""
    return "skill" if patch_type in SKILL_PATCH_TYPES else patch_type


class EditOp(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["add", "replace"]
    path: str
    value: Any = None

    @field_validator("path")
    @classmethod
    def _validate_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("path must be a JSON pointer starting with '/'")
        return value


class PatchProposal(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: PatchType
    priority: Priority = "medium"
    value: str
    action: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    impact: str = ""
    description: str = ""
    category: str | None = None
    ops: tuple[EditOp, ...] | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @classmethod
    def build(cls, patch_type: str, value: str, **fields: Any) -> "PatchProposal":
        fields.setdefault("description", f"{patch_type.replace('_', ' ').capitalize()}: {value}")
        return cls(id=proposal_id(patch_type, value), type=patch_type, value=value, **fields)


class PatchOutcome(BaseModel):
    """Audit record for one approved proposal after the Apply stage."""

    proposal: PatchProposal
    status: OutcomeStatus
    mode: PatchMode | None = None
    section: str | None = None
    reason: str | None = None
    changes: dict[str, Any] = Field(default_factory=dict)
    ops: list[EditOp] = Field(default_factory=list)
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def id(self) -> str:
        return self.proposal.id


def sort_by_priority(proposals: list[PatchProposal]) -> list[PatchProposal]:
    return sorted(proposals, key=lambda proposal: PRIORITY_ORDER.get(proposal.priority, len(PRIORITY_ORDER)))
