"""Upload the build artifact's disk image to object storage."""

from __future__ import annotations

import asyncio
import re
import secrets
from datetime import datetime, timezone
from pathlib import Path

from ..artifacts import UploadedObjectRef, compute_md5
from ..observability.logging import get_logger
from ..providers.protocols import ObjectNotFoundError, ObjectStorage
from ..workflow.cancellation import StepCancelled, run_cancellable
from ..workflow.state import ImportState
from ..workflow.step import StepAction

logger = get_logger(__name__)

_SLUG_RE = re.compile(r'[^a-z0-9]+')

DEFAULT_IMAGE_EXTENSION = 'qcow2'


def _slugify(value: str) -> str:
    return _SLUG_RE.sub('-', value.lower()).strip('-')


def generate_object_key(
    template_name: str,
    image_path: Path,
    *,
    now: datetime | None = None,
    token: str | None = None,
) -> str:
    """Object key unique per run: ``<name>-<UTC timestamp>-<random>.<ext>``."""
    slug = _slugify(template_name) or 'template'
    stamp = (now or datetime.now(timezone.utc)).strftime('%Y%m%dT%H%M%SZ')
    suffix = token or secrets.token_hex(4)
    ext = image_path.suffix.lstrip('.') or DEFAULT_IMAGE_EXTENSION
    return f'{slug}-{stamp}-{suffix}.{ext}'


class UploadImageStep:
    """Pushes the image to ``image_bucket`` and records ``uploaded_object``.

    If the transfer started but failed or was cancelled, the partial key is
    deleted before halting. Cleanup deletes the uploaded object.
    """

    name = 'upload_image'

    async def run(
        self,
        state: ImportState,
        cancel: asyncio.Event | None,
    ) -> StepAction:
        settings = state.settings
        storage = state.providers.storage
        bucket = settings.image_bucket
        image = state.artifact.image_path
        key = generate_object_key(settings.template_name, image)
        log = logger.bind(step=self.name, bucket=bucket, key=key)

        try:
            checksum = await run_cancellable(asyncio.to_thread(compute_md5, image), cancel)
            size = image.stat().st_size
        except StepCancelled:
            state.cancelled = True
            log.info('upload_cancelled')
            return StepAction.HALT
        except OSError as exc:
            state.fail(exc)
            log.error('image_unreadable', path=str(image), error=str(exc))
            return StepAction.HALT

        log.info('image_upload_started', path=str(image), size_bytes=size)
        try:
            await run_cancellable(storage.put_object(bucket, key, image), cancel)
            url = await run_cancellable(
                storage.presign_url(bucket, key, settings.presign_expiry_seconds),
                cancel,
            )
        except StepCancelled:
            state.cancelled = True
            log.info('upload_cancelled')
            await self._discard(state, storage, bucket, key)
            return StepAction.HALT
        except asyncio.CancelledError:
            log.info('upload_interrupted')
            await self._discard(state, storage, bucket, key)
            raise
        except Exception as exc:
            state.fail(exc)
            log.error('image_upload_failed', error=str(exc))
            await self._discard(state, storage, bucket, key)
            return StepAction.HALT

        state.uploaded_object = UploadedObjectRef(
            bucket=bucket,
            key=key,
            url=url,
            checksum=checksum,
            size_bytes=size,
        )
        log.info('image_uploaded', checksum=checksum)
        return StepAction.CONTINUE

    async def cleanup(self, state: ImportState) -> None:
        uploaded = state.uploaded_object
        if uploaded is None:
            return
        try:
            await state.providers.storage.delete_object(uploaded.bucket, uploaded.key)
        except ObjectNotFoundError:
            logger.info('uploaded_image_already_absent', step=self.name, object=str(uploaded))
            return
        logger.info('uploaded_image_removed', step=self.name, object=str(uploaded))

    async def _discard(
        self,
        state: ImportState,
        storage: ObjectStorage,
        bucket: str,
        key: str,
    ) -> None:
        """Best-effort removal of a partially uploaded object."""
        try:
            await storage.delete_object(bucket, key)
        except ObjectNotFoundError:
            pass
        except Exception as exc:
            state.cleanup_errors.append((self.name, exc))
            logger.warning(
                'partial_upload_discard_failed',
                step=self.name,
                bucket=bucket,
                key=key,
                exc_info=True,
            )
