"""Shared state passed between import steps.

One ImportState exists per import. Steps read the outputs of earlier steps
and add their own; the runner reads the error/cancelled/halted markers and
the final template back out of it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..artifacts import BuildArtifact, Template, UploadedObjectRef
from ..providers.protocols import ProviderHandles
from ..settings import ImportSettings


@dataclass(slots=True)
class ImportState:
    """Mutable state bag for one import run.

    Stage outputs:
        uploaded_object: set by the upload step.
        template: set by the register step.

    Markers (once any is set, no further step runs):
        error: first failure recorded by a step.
        cancelled: the caller cancelled the import.
        halted: a step asked to stop.
    """

    settings: ImportSettings
    providers: ProviderHandles
    artifact: BuildArtifact

    uploaded_object: UploadedObjectRef | None = None
    template: Template | None = None

    error: BaseException | None = None
    cancelled: bool = False
    halted: bool = False

    cleanup_errors: list[tuple[str, BaseException]] = field(default_factory=list)

    def is_stopped(self) -> bool:
        return self.error is not None or self.cancelled or self.halted

    def fail(self, exc: BaseException) -> None:
        """Record a failure. The first recorded error wins."""
        if self.error is None:
            self.error = exc

    def outputs(self) -> dict[str, Any]:
        """Stage outputs produced so far, keyed by field name."""
        produced: dict[str, Any] = {}
        if self.uploaded_object is not None:
            produced['uploaded_object'] = self.uploaded_object
        if self.template is not None:
            produced['template'] = self.template
        return produced
