"""Provider protocol interfaces for dependency injection.

These protocols define the contracts that concrete implementations (SOS and
the Exoscale compute API for real imports, in-memory fakes for tests) must
satisfy. The post-processor accepts any implementation matching them.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Protocol, runtime_checkable

from ..artifacts import Template


# ── Storage ──────────────────────────────────────────────────────────


class StorageError(Exception):
    """Object storage request failed."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        self.code = code
        super().__init__(message)


class ObjectNotFoundError(StorageError):
    """The object (or bucket) does not exist."""

    def __init__(self, bucket: str, key: str) -> None:
        self.bucket = bucket
        self.key = key
        super().__init__(f"object not found: {bucket}/{key}", code="NoSuchKey")


@runtime_checkable
class ObjectStorage(Protocol):
    """S3-style object storage holding the temporary image."""

    async def put_object(self, bucket: str, key: str, source: Path) -> None: ...
    async def delete_object(self, bucket: str, key: str) -> None: ...
    async def presign_url(self, bucket: str, key: str, expires_in: int) -> str: ...


# ── Compute ──────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class TemplateSpec:
    """Parameters of a create-template-from-object request."""

    name: str
    zone: str
    url: str
    checksum: str
    description: str = ""
    boot_mode: str = "legacy"
    default_user: str = ""
    password_enabled: bool = True
    ssh_key_enabled: bool = True
    build: str = ""
    version: str = ""
    maintainer: str = ""


@dataclass(frozen=True, slots=True)
class OperationHandle:
    """Reference to an asynchronous provider-side operation."""

    id: str
    zone: str


@dataclass(frozen=True, slots=True)
class OperationStatus:
    """Snapshot of an operation: pending, succeeded(template) or failed(detail)."""

    state: Literal["pending", "succeeded", "failed"]
    template: Template | None = None
    detail: str | None = None

    @classmethod
    def pending(cls) -> OperationStatus:
        return cls(state="pending")

    @classmethod
    def succeeded(cls, template: Template) -> OperationStatus:
        return cls(state="succeeded", template=template)

    @classmethod
    def failed(cls, detail: str) -> OperationStatus:
        return cls(state="failed", detail=detail)


@runtime_checkable
class ComputeProvider(Protocol):
    """Compute provider able to register templates from stored objects."""

    async def create_template_from_object(self, spec: TemplateSpec) -> OperationHandle: ...
    async def poll_operation(self, handle: OperationHandle) -> OperationStatus: ...
    async def delete_template(self, template_id: str) -> None: ...


@dataclass(frozen=True, slots=True)
class ProviderHandles:
    """Clients built once per import and shared read-only by every step."""

    compute: ComputeProvider
    storage: ObjectStorage
