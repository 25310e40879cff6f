from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, TypeVar

from resume_patch.core.config import settings
from resume_patch.core.errors import CollaboratorError, CollaboratorTimeout, ResumePatchError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_with_timeout(name: str, func: Callable[..., T], *args: Any, timeout_s: float | None = None) -> T:
    """Run a blocking collaborator call in a worker thread under a caller-level cap.

    Timeouts become CollaboratorTimeout. Errors from the resume_patch taxonomy pass through
    unchanged and anything else becomes CollaboratorError.
    """
    limit = timeout_s if timeout_s is not None else settings.collaborator_timeout_s
    started = time.perf_counter()
    try:
        result = await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=limit)
    except asyncio.TimeoutError as exc:
        logger.warning("collaborator_timeout name=%s timeout_s=%s", name, limit)
        raise CollaboratorTimeout(
            f"{name} did not respond within {limit:g}s", details={"collaborator": name, "timeout_s": limit}
        ) from exc
    except ResumePatchError:
        raise
    except Exception as exc:
        logger.warning("collaborator_failed name=%s error=%s", name, exc)
        raise CollaboratorError(f"{name} failed: {exc}", details={"collaborator": name}) from exc

    logger.debug("collaborator_ok name=%s latency_ms=%s", name, int((time.perf_counter() - started) * 1000))
    return result
