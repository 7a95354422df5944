"""Template import post-processor: the single entry point of the importer.

Given a build artifact, it:
  1. Rejects artifacts from unsupported producers before any remote call.
  2. Builds the compute and storage clients once for the run (unless they
     were injected).
  3. Runs upload_image -> register_template -> delete_image over a fresh
     ImportState, with reverse-order rollback on failure or cancellation.
  4. Returns a TemplateArtifact, or raises the classified error.
"""

from __future__ import annotations

import asyncio
import uuid
from types import MappingProxyType

import httpx

from .artifacts import BuildArtifact, TemplateArtifact, validate_artifact
from .errors import TemplateImportError
from .observability.logging import get_logger, import_id_ctx
from .providers.compute_provider import ExoscaleComputeProvider
from .providers.exoscale_client import ExoscaleClient
from .providers.protocols import ProviderHandles
from .providers.sos_storage import SOSObjectStorage
from .settings import ImportSettings
from .steps import DeleteImageStep, RegisterTemplateStep, UploadImageStep
from .workflow.runner import StepRunner, resolve_outcome
from .workflow.state import ImportState
from .workflow.step import Step

logger = get_logger(__name__)

# Per-request timeout of the compute API client. Registration itself is
# bounded by ImportSettings.api_timeout_seconds.
_HTTP_TIMEOUT_SECONDS = 60.0


class TemplateImportPostProcessor:
    """Imports build artifacts as compute templates.

    Providers are built from the settings on first use and reused for every
    import made through this instance; call :meth:`aclose` (or use the
    instance as an async context manager) to release the HTTP client.
    """

    def __init__(
        self,
        settings: ImportSettings,
        *,
        providers: ProviderHandles | None = None,
    ) -> None:
        settings.require_valid()
        self._settings = settings
        self._providers = providers
        self._owns_providers = providers is None
        self._http_client: httpx.AsyncClient | None = None

    @property
    def settings(self) -> ImportSettings:
        return self._settings

    async def __aenter__(self) -> TemplateImportPostProcessor:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Release the HTTP client; providers built here are rebuilt on next use."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
        if self._owns_providers:
            self._providers = None

    def build_steps(self) -> list[Step]:
        """Ordered steps for one import; ``skip_clean`` keeps the uploaded image."""
        steps: list[Step] = [UploadImageStep(), RegisterTemplateStep()]
        if not self._settings.skip_clean:
            steps.append(DeleteImageStep())
        return steps

    def provider_handles(self) -> ProviderHandles:
        """Return the injected providers, or build the Exoscale/SOS ones."""
        if self._providers is None:
            self._http_client = httpx.AsyncClient(timeout=_HTTP_TIMEOUT_SECONDS)
            client = ExoscaleClient(
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                base_url=self._settings.compute_endpoint,
                http_client=self._http_client,
                timeout_seconds=_HTTP_TIMEOUT_SECONDS,
            )
            self._providers = ProviderHandles(
                compute=ExoscaleComputeProvider(client),
                storage=SOSObjectStorage.from_settings(self._settings),
            )
        return self._providers

    async def post_process(
        self,
        artifact: BuildArtifact,
        *,
        cancel: asyncio.Event | None = None,
    ) -> TemplateArtifact:
        """Import *artifact* and return the registered template.

        Raises:
            UnsupportedArtifactError: artifact producer not supported; nothing ran.
            ImportFailedError: a step failed (rollback already done).
            ImportCancelledError: *cancel* was set (rollback already done).
            ImportHaltedError: a step halted the import.
            InternalConsistencyError: the run ended without any outcome.
            asyncio.CancelledError: the calling task was cancelled; rollback
                runs before it propagates.
        """
        validate_artifact(artifact)

        token = import_id_ctx.set(uuid.uuid4().hex[:12])
        try:
            providers = self.provider_handles()
            state = ImportState(
                settings=self._settings,
                providers=providers,
                artifact=artifact,
            )
            runner = StepRunner(self.build_steps())

            logger.info(
                'template_import_started',
                builder_id=artifact.builder_id,
                template_name=self._settings.template_name,
                zone=self._settings.template_zone,
                steps=[s.name for s in runner.steps],
            )
            await runner.run(state, cancel)
            try:
                template = resolve_outcome(state)
            except TemplateImportError as exc:
                logger.error(
                    'template_import_unsuccessful',
                    outcome=type(exc).__name__,
                    error=str(exc),
                    cleanup_errors=[name for name, _ in state.cleanup_errors],
                )
                raise
            logger.info('template_import_finished', template_id=template.id)

            return TemplateArtifact(
                template=template,
                compute=providers.compute,
                outputs=MappingProxyType(state.outputs()),
            )
        finally:
            import_id_ctx.reset(token)


async def import_template(
    artifact: BuildArtifact,
    settings: ImportSettings,
    *,
    cancel: asyncio.Event | None = None,
    providers: ProviderHandles | None = None,
) -> TemplateArtifact:
    """One-shot import with a throwaway post-processor.

    The HTTP client is closed on return, so call ``destroy()`` on the result
    only when *providers* were injected; otherwise keep a
    :class:`TemplateImportPostProcessor` open instead.
    """
    async with TemplateImportPostProcessor(settings, providers=providers) as processor:
        return await processor.post_process(artifact, cancel=cancel)
