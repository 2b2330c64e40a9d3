# /orchestrator/pipeline/executor.py

"""
Sequential stage executor.

A stage is an `async def stage(context) -> dict` that reads the current
ProcessingContext and returns a patch of the fields it wants to change. The
executor folds the patches into successive contexts:

- fields absent from a patch keep their previous value
- dict fields (business_info, flags, capabilities, ...) are shallow-merged
- every other field present in the patch is replaced

Stages never mutate the context they receive. The first stage that raises
aborts the run with PipelineAbortedError; no later stage runs.
"""

import time
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List

from pydantic import BaseModel

from orchestrator.models.context import ProcessingContext
from orchestrator.utils.metrics import pipeline_stage_counter, pipeline_duration_histogram

logger = logging.getLogger(__name__)

Patch = Dict[str, Any]
Stage = Callable[[ProcessingContext], Awaitable[Patch]]


class PipelineAbortedError(Exception):
    """Raised when a stage fails; carries the last successfully merged context."""

    def __init__(self, pipeline: str, stage: str, context: ProcessingContext, cause: Exception):
        super().__init__(f"Pipeline '{pipeline}' aborted at stage '{stage}': {cause}")
        self.pipeline = pipeline
        self.stage = stage
        self.context = context
        self.cause = cause


def stage_name(stage: Stage) -> str:
    return getattr(stage, "stage_name", None) or getattr(stage, "__name__", repr(stage))


def _as_plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    return value


def merge_patch(context: ProcessingContext, patch: Patch) -> ProcessingContext:
    """Returns a new context with `patch` merged in. Unknown fields raise a ValidationError."""
    if not patch:
        return context

    merged = context.model_dump()
    for field, value in patch.items():
        value = _as_plain(value)
        current = merged.get(field)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[field] = {**current, **value}
        elif isinstance(value, list):
            merged[field] = [_as_plain(item) for item in value]
        else:
            merged[field] = value
    return ProcessingContext.model_validate(merged)


def append_items(context: ProcessingContext, field: str, items: Iterable[Any]) -> Patch:
    """Patch extending an accumulator field; earlier entries are always kept."""
    return {field: [*getattr(context, field), *items]}


def gated(flag: str, stage: Stage, expected: bool = True) -> Stage:
    """Wraps `stage` so it only runs when `context.flags[flag] == expected`."""
    async def _gated(context: ProcessingContext) -> Patch:
        if context.flags.get(flag, False) != expected:
            return {}
        return await stage(context)

    _gated.stage_name = stage_name(stage)
    return _gated


async def run_pipeline(stages: List[Stage], context: ProcessingContext, name: str) -> ProcessingContext:
    started = time.perf_counter()
    try:
        for stage in stages:
            current = stage_name(stage)
            try:
                patch = await stage(context)
                context = merge_patch(context, patch or {})
            except Exception as e:
                pipeline_stage_counter.labels(pipeline=name, stage=current, status="failed").inc()
                logger.exception(f"Stage '{current}' of pipeline '{name}' failed for session {context.session_id}")
                raise PipelineAbortedError(name, current, context, e) from e
            pipeline_stage_counter.labels(pipeline=name, stage=current, status="success").inc()
        return context
    finally:
        pipeline_duration_histogram.labels(pipeline=name).observe(time.perf_counter() - started)
