import logging

from fastapi import APIRouter, HTTPException, status

from resume_patch.ai.factory import get_classifier
from resume_patch.approval.gate import DecisionMapReviewer
from resume_patch.core.errors import WorkflowError
from resume_patch.schemas.api import OptimizeRequest, OptimizeResponse, PatchOutcomeView
from resume_patch.workflow.graph import run_async
from resume_patch.workflow.stages import Collaborators
from resume_patch.workflow.state import WorkflowOptions

router = APIRouter()
logger = logging.getLogger(__name__)


def _options(payload: OptimizeRequest) -> WorkflowOptions:
    overrides = {
        key: value
        for key, value in {
            "max_skill_groups": payload.max_skill_groups,
            "max_proposals": payload.max_proposals,
        }.items()
        if value is not None
    }
    # The API never writes to disk.
    return WorkflowOptions(auto_apply=payload.auto_apply, allow_disk=False, **overrides)


@router.post("/optimize", response_model=OptimizeResponse)
async def optimize(payload: OptimizeRequest):
    collaborators = Collaborators(
        classifier=get_classifier(),
        reviewer=None if payload.auto_apply else DecisionMapReviewer(payload.decisions),
    )
    try:
        result = await run_async(payload.resume, payload.job_source(), _options(payload), collaborators=collaborators)
    except WorkflowError as exc:
        logger.info("optimize_failed stage=%s retry_count=%s", exc.stage, exc.retry_count)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={**exc.to_dict(), "stage": exc.stage, "errors": exc.errors, "retry_count": exc.retry_count},
        ) from exc

    artifacts = result.export_artifacts
    return OptimizeResponse(
        resume=artifacts.json_resume if artifacts else result.document.to_json_resume(),
        match_score=result.analysis.match_score if result.analysis else None,
        proposals=result.proposals,
        applied_patches=[PatchOutcomeView.from_outcome(outcome) for outcome in result.applied_patches],
        failed_patches=[PatchOutcomeView.from_outcome(outcome) for outcome in result.failed_patches],
        skipped=[proposal.id for proposal in result.skipped],
        patch_report=artifacts.patch_report if artifacts else "",
        retry_count=result.retry_count,
    )
