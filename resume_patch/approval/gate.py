from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, Mapping, Protocol, Sequence

from resume_patch.core.errors import ProcessingError
from resume_patch.schemas.patch import PatchProposal

logger = logging.getLogger(__name__)

Decision = Literal["apply", "skip", "inspect", "approve_all", "skip_all"]
ApprovalStatus = Literal["pending", "applied", "skipped"]

DECISIONS: frozenset[str] = frozenset({"apply", "skip", "inspect", "approve_all", "skip_all"})
FINAL_DECISIONS: frozenset[str] = frozenset({"apply", "skip"})


class Reviewer(Protocol):
    def decide(self, proposal: PatchProposal, position: int, total: int) -> str: ...

    def decide_after_inspect(self, proposal: PatchProposal, details: dict[str, Any]) -> str: ...


class ScriptedReviewer:
    """Replays a fixed sequence of responses; skips once the script runs out."""

    def __init__(self, decisions: Iterable[str], after_inspect: Iterable[str] = ()) -> None:
        self._decisions = deque(decisions)
        self._after_inspect = deque(after_inspect)

    def decide(self, proposal: PatchProposal, position: int, total: int) -> str:
        return self._decisions.popleft() if self._decisions else "skip"

    def decide_after_inspect(self, proposal: PatchProposal, details: dict[str, Any]) -> str:
        return self._after_inspect.popleft() if self._after_inspect else "skip"


class DecisionMapReviewer:
    """Looks decisions up by proposal id, e.g. from an API request body."""

    def __init__(self, decisions: Mapping[str, str], *, default: str = "skip") -> None:
        self._decisions = dict(decisions)
        self._default = default

    def decide(self, proposal: PatchProposal, position: int, total: int) -> str:
        return self._decisions.get(proposal.id, self._default)

    def decide_after_inspect(self, proposal: PatchProposal, details: dict[str, Any]) -> str:
        decision = self._decisions.get(proposal.id, self._default)
        return decision if decision in FINAL_DECISIONS else self._default


@dataclass
class ApprovalResult:
    proposals: list[PatchProposal]
    statuses: list[ApprovalStatus]
    decisions: list[dict[str, Any]] = field(default_factory=list)
    mode: str = "interactive"

    @property
    def approved(self) -> list[PatchProposal]:
        return [proposal for proposal, status in zip(self.proposals, self.statuses) if status == "applied"]

    @property
    def skipped(self) -> list[PatchProposal]:
        return [proposal for proposal, status in zip(self.proposals, self.statuses) if status == "skipped"]


def inspect_details(proposal: PatchProposal) -> dict[str, Any]:
    details = proposal.model_dump(exclude={"ops"}, exclude_none=True)
    if proposal.ops:
        details["ops"] = [op.model_dump() for op in proposal.ops]
    return details


class ApprovalGate:
    """Moves every proposal from pending to applied or skipped.

    Per-item responses are apply, skip and inspect (followed by apply or skip). The bulk
    responses approve_all and skip_all switch the gate to reviewing_all, which settles the
    current and all remaining pending proposals at once.
    """

    def __init__(self, reviewer: Reviewer | None = None, *, auto_apply: bool = False) -> None:
        if not auto_apply and reviewer is None:
            raise ProcessingError("A reviewer is required when auto-apply is disabled.")
        self._reviewer = reviewer
        self._auto_apply = auto_apply

    def review(self, proposals: Sequence[PatchProposal]) -> ApprovalResult:
        items = list(proposals)
        if self._auto_apply:
            logger.info("approval_auto_apply count=%s", len(items))
            return ApprovalResult(proposals=items, statuses=["applied"] * len(items), mode="auto")

        statuses: list[ApprovalStatus] = ["pending"] * len(items)
        result = ApprovalResult(proposals=items, statuses=statuses)
        control = "reviewing"
        total = len(items)

        for position, proposal in enumerate(items):
            if control == "reviewing_all":
                break
            decision = self._reviewer.decide(proposal, position + 1, total)
            if decision not in DECISIONS:
                raise ProcessingError(
                    f"Unknown approval response '{decision}' for {proposal.id}", details={"proposal": proposal.id}
                )

            if decision == "inspect":
                decision = self._reviewer.decide_after_inspect(proposal, inspect_details(proposal))
                if decision not in FINAL_DECISIONS:
                    raise ProcessingError(
                        f"Expected apply or skip after inspecting {proposal.id}, got '{decision}'",
                        details={"proposal": proposal.id},
                    )
                result.decisions.append({"id": proposal.id, "decision": decision, "inspected": True})
            else:
                result.decisions.append({"id": proposal.id, "decision": decision})

            if decision in FINAL_DECISIONS:
                statuses[position] = "applied" if decision == "apply" else "skipped"
                continue

            control = "reviewing_all"
            bulk: ApprovalStatus = "applied" if decision == "approve_all" else "skipped"
            result.mode = decision
            for index in range(position, total):
                if statuses[index] == "pending":
                    statuses[index] = bulk
            logger.info("approval_bulk decision=%s settled=%s", decision, total - position)

        logger.info(
            "approval_done applied=%s skipped=%s",
            statuses.count("applied"),
            statuses.count("skipped"),
        )
        return result
