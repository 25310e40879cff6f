import logging

from resume_patch.ai.config import load_ai_config
from resume_patch.ai.heuristic import HeuristicClassifier
from resume_patch.ai.llm import llm_enabled
from resume_patch.ai.openai_classifier import OpenAIClassifier
from resume_patch.ai.types import Classifier

logger = logging.getLogger(__name__)


def get_classifier() -> Classifier:
    cfg = load_ai_config()

    if cfg.provider == "heuristic":
        return HeuristicClassifier()

    if cfg.provider == "openai":
        if not llm_enabled():
            logger.info("classifier_fallback provider=openai reason=llm_not_configured")
            return HeuristicClassifier()
        return OpenAIClassifier()

    raise ValueError(f"Unsupported AI_PROVIDER='{cfg.provider}'")
