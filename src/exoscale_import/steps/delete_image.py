"""Remove the temporary image object once the template holds its own copy."""

from __future__ import annotations

import asyncio

from ..observability.logging import get_logger
from ..providers.protocols import ObjectNotFoundError
from ..workflow.cancellation import StepCancelled, run_cancellable
from ..workflow.state import ImportState
from ..workflow.step import StepAction

logger = get_logger(__name__)


class DeleteImageStep:
    """Deletes ``uploaded_object``. An already-absent object is success."""

    name = 'delete_image'

    async def run(
        self,
        state: ImportState,
        cancel: asyncio.Event | None,
    ) -> StepAction:
        uploaded = state.uploaded_object
        if uploaded is None:
            return StepAction.CONTINUE

        log = logger.bind(step=self.name, bucket=uploaded.bucket, key=uploaded.key)
        try:
            await run_cancellable(
                state.providers.storage.delete_object(uploaded.bucket, uploaded.key),
                cancel,
            )
        except ObjectNotFoundError:
            log.info('uploaded_image_already_absent')
        except StepCancelled:
            state.cancelled = True
            log.info('image_delete_cancelled')
            return StepAction.HALT
        except Exception as exc:
            # A leaked object keeps costing money; the caller must see it.
            state.fail(exc)
            log.error('image_delete_failed', error=str(exc))
            return StepAction.HALT
        else:
            log.info('uploaded_image_removed')
        return StepAction.CONTINUE

    async def cleanup(self, state: ImportState) -> None:
        return None
