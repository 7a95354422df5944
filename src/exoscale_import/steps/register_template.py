"""Register the uploaded image as a compute template.

Registration is asynchronous on the provider side: the create call returns
an operation that is polled until it succeeds, fails, or the deadline
(``api_timeout_seconds``) passes. The wait between polls blocks on the
cancel event so a cancellation stops polling immediately.
"""

from __future__ import annotations

import asyncio

from ..artifacts import Template, UploadedObjectRef
from ..errors import (
    InternalConsistencyError,
    TemplateRegistrationError,
    TemplateRegistrationTimeout,
)
from ..observability.logging import get_logger
from ..providers.protocols import ComputeProvider, OperationHandle, TemplateSpec
from ..settings import ImportSettings
from ..workflow.cancellation import StepCancelled, run_cancellable, wait_cancellable
from ..workflow.state import ImportState
from ..workflow.step import StepAction

logger = get_logger(__name__)


def build_template_spec(settings: ImportSettings, uploaded: UploadedObjectRef) -> TemplateSpec:
    return TemplateSpec(
        name=settings.template_name,
        zone=settings.template_zone,
        url=uploaded.url,
        checksum=uploaded.checksum,
        description=settings.template_description,
        boot_mode=settings.template_boot_mode,
        default_user=settings.template_username,
        password_enabled=not settings.template_disable_password,
        ssh_key_enabled=not settings.template_disable_sshkey,
        build=settings.template_build,
        version=settings.template_version,
        maintainer=settings.template_maintainer,
    )


class RegisterTemplateStep:
    """Creates the template from ``uploaded_object`` and records ``template``.

    Cleanup is a no-op: a registered template is a deliverable in its own
    right and is never deleted automatically.
    """

    name = 'register_template'

    async def run(
        self,
        state: ImportState,
        cancel: asyncio.Event | None,
    ) -> StepAction:
        uploaded = state.uploaded_object
        if uploaded is None:
            state.fail(InternalConsistencyError('no uploaded image to register'))
            return StepAction.HALT

        settings = state.settings
        compute = state.providers.compute
        spec = build_template_spec(settings, uploaded)
        log = logger.bind(step=self.name, template_name=spec.name, zone=spec.zone)

        try:
            handle = await run_cancellable(compute.create_template_from_object(spec), cancel)
            log.info('template_registration_submitted', operation_id=handle.id)
            template = await self._wait_for_completion(compute, handle, settings, cancel)
        except StepCancelled:
            state.cancelled = True
            log.info('template_registration_cancelled')
            return StepAction.HALT
        except Exception as exc:
            state.fail(exc)
            log.error('template_registration_failed', error=str(exc))
            return StepAction.HALT

        state.template = template
        log.info('template_registered', template_id=template.id)
        return StepAction.CONTINUE

    async def cleanup(self, state: ImportState) -> None:
        return None

    async def _wait_for_completion(
        self,
        compute: ComputeProvider,
        handle: OperationHandle,
        settings: ImportSettings,
        cancel: asyncio.Event | None,
    ) -> Template:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + settings.api_timeout_seconds

        while True:
            status = await run_cancellable(compute.poll_operation(handle), cancel)

            if status.state == 'succeeded' and status.template is not None:
                return status.template
            if status.state == 'failed':
                raise TemplateRegistrationError(status.detail or 'unknown error')
            if status.state != 'pending':
                raise TemplateRegistrationError(
                    f'operation {handle.id} reported {status.state!r} without a template'
                )

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise TemplateRegistrationTimeout(handle.id, settings.api_timeout_seconds)

            logger.debug('template_registration_pending', operation_id=handle.id)
            if await wait_cancellable(cancel, min(settings.poll_interval_seconds, remaining)):
                raise StepCancelled()
