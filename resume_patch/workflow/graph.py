from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError as ModelValidationError

from resume_patch.core.errors import ResumePatchError, ValidationError, WorkflowError

from .stages import STAGE_ACTIONS, Collaborators, ResumeSource, StageContext
from .state import RETRY_TARGETS, RunResult, Stage, WorkflowOptions, WorkflowState

logger = logging.getLogger(__name__)

_RETRYABLE: dict[str, Stage] = {"parse": "retry_parse", "fetch_jd": "retry_fetch"}


def next_stage(state: WorkflowState, *, max_retries: int) -> Stage:
    """Transition out of the stage that just ran, based on its errors and outputs."""
    stage = state.stage
    failed = bool(state.errors)

    if stage == "error":
        return "end"
    if stage in RETRY_TARGETS:
        return RETRY_TARGETS[stage]
    if stage in _RETRYABLE and failed:
        return _RETRYABLE[stage] if state.retry_count < max_retries else "error"
    if failed:
        return "error"

    transitions: dict[str, Stage] = {
        "start": "parse",
        "parse": "fetch_jd",
        "fetch_jd": "analyze",
        "analyze": "suggest",
        "approve": "apply",
        "apply": "export",
        "export": "end",
    }
    if stage == "suggest":
        return "approve" if state.proposals else "export"
    return transitions[stage]


class Pipeline:
    """One resume optimisation run: a fresh state driven through the stage graph."""

    def __init__(
        self,
        resume_source: ResumeSource,
        jd_source: Any,
        options: WorkflowOptions | None = None,
        collaborators: Collaborators | None = None,
    ) -> None:
        self.options = options or WorkflowOptions()
        self.state = WorkflowState()
        self.context = StageContext(
            resume_source=resume_source,
            jd_source=jd_source,
            options=self.options,
            collaborators=collaborators or Collaborators(),
        )
        self._last_exception: BaseException | None = None

    async def run(self) -> RunResult:
        state = self.state
        logger.info("workflow_started run_id=%s", state.run_id)
        try:
            while state.stage != "end":
                await self._execute(state.stage)
                following = next_stage(state, max_retries=self.options.max_retries)
                if following == "error" and state.failed_stage is None:
                    state.failed_stage = state.stage
                state.stage = following
        except asyncio.CancelledError:
            state.failed_stage = state.failed_stage or state.stage
            state.record_error("cancelled", "cancelled")
            state.stage = "error"
            state.finished_at = datetime.now(timezone.utc)
            logger.warning("workflow_cancelled run_id=%s stage=%s", state.run_id, state.failed_stage)
            raise

        state.finished_at = datetime.now(timezone.utc)
        if state.failed_stage is not None:
            messages = [record.message for record in state.error_history]
            last = messages[-1] if messages else "unknown error"
            logger.error(
                "workflow_failed run_id=%s stage=%s retry_count=%s error=%s",
                state.run_id,
                state.failed_stage,
                state.retry_count,
                last,
            )
            raise WorkflowError(
                f"Workflow failed at '{state.failed_stage}': {last}",
                stage=state.failed_stage,
                errors=messages,
                retry_count=state.retry_count,
                state=state,
            ) from self._last_exception

        logger.info(
            "workflow_completed run_id=%s applied=%s failed=%s retry_count=%s",
            state.run_id,
            len(state.applied_patches),
            len(state.failed_patches),
            state.retry_count,
        )
        return RunResult.from_state(state)

    async def _execute(self, stage: Stage) -> None:
        state = self.state
        started = time.perf_counter()
        try:
            await STAGE_ACTIONS[stage](state, self.context)
        except ResumePatchError as exc:
            self._last_exception = exc
            state.record_error(exc.code, str(exc))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("workflow_stage_crashed run_id=%s stage=%s", state.run_id, stage)
            self._last_exception = exc
            state.record_error("unexpected_error", f"{type(exc).__name__}: {exc}")
        finally:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            state.step_timings[stage] = state.step_timings.get(stage, 0) + elapsed_ms


def _coerce_options(options: WorkflowOptions | dict | None) -> WorkflowOptions:
    if options is None:
        return WorkflowOptions()
    if isinstance(options, WorkflowOptions):
        return options
    try:
        return WorkflowOptions.model_validate(options)
    except ModelValidationError as exc:
        raise ValidationError(f"Invalid workflow options: {exc.error_count()} error(s)", details={"errors": exc.errors()}) from exc


async def run_async(
    resume_source: ResumeSource,
    jd_source: Any,
    options: WorkflowOptions | dict | None = None,
    *,
    collaborators: Collaborators | None = None,
) -> RunResult:
    """Run the whole workflow. Raises WorkflowError when the run ends in the error state."""
    try:
        resolved = _coerce_options(options)
    except ValidationError as exc:
        raise WorkflowError(
            f"Workflow failed at 'start': {exc}", stage="start", errors=[str(exc)], retry_count=0
        ) from exc
    pipeline = Pipeline(resume_source, jd_source, resolved, collaborators)
    return await pipeline.run()


def run(
    resume_source: ResumeSource,
    jd_source: Any,
    options: WorkflowOptions | dict | None = None,
    *,
    collaborators: Collaborators | None = None,
) -> RunResult:
    return asyncio.run(run_async(resume_source, jd_source, options, collaborators=collaborators))
