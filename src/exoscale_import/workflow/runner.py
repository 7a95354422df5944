"""Sequential step runner with reverse-order rollback.

Runs the import steps strictly in order:

  upload_image -> register_template -> delete_image

After every step the runner checks the state's stop markers. When the import
stops early (error, cancellation or halt) the steps that completed are
compensated in reverse order, then :func:`resolve_outcome` turns the state
into the caller-visible result.
"""

from __future__ import annotations

import asyncio
from typing import Sequence

from ..artifacts import Template
from ..errors import (
    ImportCancelledError,
    ImportFailedError,
    ImportHaltedError,
    InternalConsistencyError,
)
from ..observability.logging import get_logger
from .state import ImportState
from .step import Step, StepAction

logger = get_logger(__name__)


class StepRunner:
    """Drives an ordered list of steps over one ImportState."""

    def __init__(self, steps: Sequence[Step]) -> None:
        self._steps = tuple(steps)

    @property
    def steps(self) -> tuple[Step, ...]:
        return self._steps

    async def run(
        self,
        state: ImportState,
        cancel: asyncio.Event | None = None,
    ) -> ImportState:
        """Execute every step until one stops the import, then roll back.

        Cancellation of the running task is re-raised once rollback is done.
        """
        completed: list[Step] = []

        for step in self._steps:
            if cancel is not None and cancel.is_set():
                state.cancelled = True
                logger.info('import_cancelled_before_step', step=step.name)
                break

            logger.info('step_started', step=step.name)
            try:
                action = await self._run_step(step, state, cancel)
            except asyncio.CancelledError:
                # The task itself was cancelled: compensate, then let the
                # cancellation reach the caller.
                state.cancelled = True
                logger.warning('step_interrupted', step=step.name)
                await self._rollback(state, completed)
                raise

            if action is StepAction.HALT:
                # A halt without an explicit marker is still a stop.
                state.halted = True
                logger.info(
                    'step_halted',
                    step=step.name,
                    error=str(state.error) if state.error else None,
                    cancelled=state.cancelled,
                )
                break

            completed.append(step)
            logger.info('step_completed', step=step.name)
            if state.is_stopped():
                break

        if state.is_stopped():
            await self._rollback(state, completed)

        return state

    async def _run_step(
        self,
        step: Step,
        state: ImportState,
        cancel: asyncio.Event | None,
    ) -> StepAction:
        try:
            return await step.run(state, cancel)
        except Exception as exc:
            state.fail(exc)
            logger.error('step_raised', step=step.name, exc_info=True)
            return StepAction.HALT

    async def _rollback(self, state: ImportState, completed: list[Step]) -> None:
        logger.info(
            'rollback_started',
            steps=[s.name for s in reversed(completed)],
            outputs=sorted(state.outputs()),
        )
        for step in reversed(completed):
            try:
                await step.cleanup(state)
            except Exception as exc:
                # Never masks the original failure already in state.error.
                state.cleanup_errors.append((step.name, exc))
                logger.warning('step_cleanup_failed', step=step.name, exc_info=True)
        logger.info('rollback_finished', cleanup_errors=len(state.cleanup_errors))


def resolve_outcome(state: ImportState) -> Template:
    """Translate a finished ImportState into a template or a classified error.

    Priority: error, cancelled, halted, template.
    """
    if state.error is not None:
        raise ImportFailedError(state.error, template=state.template) from state.error
    if state.cancelled:
        raise ImportCancelledError()
    if state.halted:
        raise ImportHaltedError()
    if state.template is not None:
        return state.template
    raise InternalConsistencyError(
        'import finished without an error, cancellation, halt or template'
    )
