"""Step contract shared by every import step."""

from __future__ import annotations

import asyncio
import enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .state import ImportState


class StepAction(enum.Enum):
    """What the runner should do after a step's forward action."""

    CONTINUE = 'continue'
    HALT = 'halt'


@runtime_checkable
class Step(Protocol):
    """A unit of forward work plus its compensation.

    ``run`` never raises: failures are recorded in the state (``error`` or
    ``cancelled``) and reported by returning ``StepAction.HALT``.
    ``cleanup`` runs during rollback only for steps whose ``run`` returned
    ``CONTINUE``; it must be a no-op when there is nothing to undo.
    """

    name: str

    async def run(
        self,
        state: ImportState,
        cancel: asyncio.Event | None,
    ) -> StepAction: ...

    async def cleanup(self, state: ImportState) -> None: ...
