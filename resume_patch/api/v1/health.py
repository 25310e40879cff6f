from fastapi import APIRouter

from resume_patch.ai.config import load_ai_config
from resume_patch.ai.llm import llm_enabled

router = APIRouter()


@router.get("/health", summary="Health Check", description="Service status and the active classifier.")
async def health_check():
    return {
        "status": "healthy",
        "classifier": "openai" if llm_enabled() else "heuristic",
        "provider": load_ai_config().provider,
    }
