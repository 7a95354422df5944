"""Error taxonomy for template imports.

Callers only ever see subclasses of :class:`TemplateImportError`. Steps never
raise across the runner boundary; the runner translates what they record in
the import state into one of these.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .artifacts import Template


class TemplateImportError(Exception):
    """Base error for every caller-visible import outcome."""


class UnsupportedArtifactError(TemplateImportError, ValueError):
    """Input artifact comes from a producer this importer does not accept."""

    def __init__(self, builder_id: str, message: str | None = None) -> None:
        self.builder_id = builder_id
        super().__init__(
            message
            or (
                f'unsupported artifact type {builder_id!r}: only artifacts from '
                'QEMU/file builders and the Artifice post-processor can be imported'
            )
        )


class SettingsValidationError(TemplateImportError, ValueError):
    """Raised when import settings are missing or invalid."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__(f'invalid settings: {"; ".join(problems)}')


class ImportFailedError(TemplateImportError):
    """A step failed; ``cause`` holds the original error.

    ``template`` is set when registration succeeded before a later step
    failed, so the caller still learns about the template that exists.
    """

    def __init__(
        self,
        cause: BaseException,
        *,
        template: Template | None = None,
    ) -> None:
        self.cause = cause
        self.template = template
        super().__init__(f'template import failed: {cause}')


class ImportCancelledError(TemplateImportError):
    """The caller cancelled the import."""

    def __init__(self, message: str = 'template import cancelled') -> None:
        super().__init__(message)


class ImportHaltedError(TemplateImportError):
    """A step halted the import without an error."""

    def __init__(self, message: str = 'template import halted') -> None:
        super().__init__(message)


class InternalConsistencyError(TemplateImportError, RuntimeError):
    """The workflow finished without a resolvable outcome."""


# ── Step-level errors (recorded in state, wrapped by ImportFailedError) ──


class TemplateRegistrationError(Exception):
    """The compute provider reported a terminal registration failure."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f'template registration failed: {detail}')


class TemplateRegistrationTimeout(Exception):
    """Registration was still pending when the deadline was reached."""

    def __init__(self, operation_id: str, timeout_seconds: float) -> None:
        self.operation_id = operation_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f'template registration operation {operation_id!r} still pending '
            f'after {timeout_seconds:g}s'
        )
