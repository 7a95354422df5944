"""SOSObjectStorage: ObjectStorage backed by Exoscale Object Storage (SOS).

SOS speaks the S3 protocol, so this wraps a boto3 S3 client configured with
path-style addressing and the zone's SOS endpoint. boto3 is blocking; every
call runs in a worker thread so the event loop (and cancellation) stays
responsive.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .._version import USER_AGENT
from .protocols import ObjectNotFoundError, StorageError

if TYPE_CHECKING:
    from ..settings import ImportSettings

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound", "NoSuchBucket"})

# Disk images are large; use multipart above 64 MiB.
_TRANSFER_CONFIG = TransferConfig(
    multipart_threshold=64 * 1024 * 1024,
    multipart_chunksize=64 * 1024 * 1024,
)


def build_s3_client(settings: ImportSettings) -> Any:
    """Create a boto3 S3 client for the zone's SOS endpoint."""
    return boto3.client(
        "s3",
        endpoint_url=settings.resolved_sos_endpoint,
        region_name=settings.template_zone,
        aws_access_key_id=settings.api_key,
        aws_secret_access_key=settings.api_secret,
        config=Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
            retries={"max_attempts": 5, "mode": "standard"},
            user_agent_extra=USER_AGENT,
        ),
    )


class UploadAborted(StorageError):
    """The transfer was stopped because the caller cancelled it."""

    def __init__(self) -> None:
        super().__init__("upload aborted", code="Aborted")


class _AbortCheck:
    """Transfer progress callback that stops the upload once *abort* is set.

    boto3 invokes it from its transfer threads as chunks are sent; raising
    fails the transfer.
    """

    def __init__(self, abort: threading.Event) -> None:
        self._abort = abort

    def __call__(self, bytes_transferred: int) -> None:
        if self._abort.is_set():
            raise UploadAborted()


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class SOSObjectStorage:
    """ObjectStorage backed by an S3-compatible boto3 client.

    Conforms to the ObjectStorage protocol defined in protocols.py:
    - put_object(bucket, key, source) -> None
    - delete_object(bucket, key) -> None (raises ObjectNotFoundError)
    - presign_url(bucket, key, expires_in) -> str
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: ImportSettings) -> SOSObjectStorage:
        return cls(build_s3_client(settings))

    async def put_object(self, bucket: str, key: str, source: Path) -> None:
        """Stream *source* to ``bucket/key`` (multipart for large files).

        Cancelling the caller stops the transfer at the next chunk (an
        unfinished multipart upload is aborted by the transfer manager) and
        re-raises only after the worker thread has returned, so a delete
        issued afterwards sees whatever reached the bucket.
        """
        logger.info(
            "Uploading object: bucket=%s key=%s source=%s",
            bucket,
            key,
            source,
            extra={"bucket": bucket, "key": key},
        )
        abort = threading.Event()
        worker = asyncio.ensure_future(
            asyncio.to_thread(self._upload, bucket, key, source, abort)
        )
        try:
            await asyncio.shield(worker)
        except asyncio.CancelledError:
            abort.set()
            await asyncio.wait({worker})
            if worker.exception() is not None:
                logger.info(
                    "Upload stopped: bucket=%s key=%s reason=%s",
                    bucket,
                    key,
                    worker.exception(),
                    extra={"bucket": bucket, "key": key},
                )
            raise

    def _upload(self, bucket: str, key: str, source: Path, abort: threading.Event) -> None:
        with open(source, "rb") as fh:
            try:
                self._client.upload_fileobj(
                    fh,
                    bucket,
                    key,
                    Config=_TRANSFER_CONFIG,
                    Callback=_AbortCheck(abort),
                )
            except S3UploadFailedError as exc:
                raise StorageError(f"upload of {bucket}/{key} failed: {exc}") from exc
            except ClientError as exc:
                raise self._translate(exc, bucket, key) from exc
            except BotoCoreError as exc:
                raise StorageError(f"upload of {bucket}/{key} failed: {exc}") from exc

    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete ``bucket/key``.

        S3 reports success when deleting a missing key, so existence is
        checked first; a missing object raises ObjectNotFoundError.
        """
        await asyncio.to_thread(self._delete, bucket, key)

    def _delete(self, bucket: str, key: str) -> None:
        try:
            self._client.head_object(Bucket=bucket, Key=key)
            self._client.delete_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            raise self._translate(exc, bucket, key) from exc
        except BotoCoreError as exc:
            raise StorageError(f"delete of {bucket}/{key} failed: {exc}") from exc
        logger.info(
            "Object deleted: bucket=%s key=%s",
            bucket,
            key,
            extra={"bucket": bucket, "key": key},
        )

    async def presign_url(self, bucket: str, key: str, expires_in: int) -> str:
        """Return a time-limited GET URL the compute provider can download from."""
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"unable to presign {bucket}/{key}: {exc}") from exc

    @staticmethod
    def _translate(exc: ClientError, bucket: str, key: str) -> StorageError:
        code = _error_code(exc)
        if code in _NOT_FOUND_CODES:
            return ObjectNotFoundError(bucket, key)
        message = exc.response.get("Error", {}).get("Message", "") or str(exc)
        return StorageError(f"{bucket}/{key}: {code or 'error'}: {message}", code=code or None)
