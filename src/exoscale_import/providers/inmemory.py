"""In-memory provider implementations for tests and dry runs.

They satisfy the provider protocols but keep everything in dicts (no
network, no persistence across restarts) and record every call so tests
can assert on the exact sequence of remote side effects.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path

from ..artifacts import Template
from .protocols import (
    ObjectNotFoundError,
    OperationHandle,
    OperationStatus,
    StorageError,
    TemplateSpec,
)


class InMemoryObjectStorage:
    """Test object storage that tracks calls."""

    def __init__(
        self,
        *,
        put_fails: bool = False,
        delete_fails: bool = False,
        put_gate: asyncio.Event | None = None,
    ) -> None:
        self.put_fails = put_fails
        self.delete_fails = delete_fails
        # When given, put_object blocks until the gate is set.
        self.put_gate = put_gate
        self.objects: dict[tuple[str, str], bytes] = {}
        self.calls: list[tuple[str, str, str]] = []

    async def put_object(self, bucket: str, key: str, source: Path) -> None:
        self.calls.append(('put_object', bucket, key))
        data = Path(source).read_bytes()
        if self.put_fails:
            raise StorageError('upload failed', code='InternalError')
        if self.put_gate is not None:
            await self.put_gate.wait()
        self.objects[(bucket, key)] = data

    async def delete_object(self, bucket: str, key: str) -> None:
        self.calls.append(('delete_object', bucket, key))
        if self.delete_fails:
            raise StorageError('Access Denied', code='AccessDenied')
        if (bucket, key) not in self.objects:
            raise ObjectNotFoundError(bucket, key)
        del self.objects[(bucket, key)]

    async def presign_url(self, bucket: str, key: str, expires_in: int) -> str:
        return f'https://sos.invalid/{bucket}/{key}?expires={expires_in}'

    def has_object(self, bucket: str, key: str) -> bool:
        return (bucket, key) in self.objects


class InMemoryComputeProvider:
    """Test compute provider with scripted registration outcomes.

    Each registration reports ``pending`` for ``pending_polls`` polls, then
    succeeds, or fails with ``failure_detail`` when one is given.
    ``always_pending`` keeps the operation pending forever.
    """

    def __init__(
        self,
        *,
        template_id: str = 'tmpl-123',
        pending_polls: int = 1,
        failure_detail: str | None = None,
        always_pending: bool = False,
        create_fails: bool = False,
        poll_fails: bool = False,
    ) -> None:
        self.template_id = template_id
        self.pending_polls = pending_polls
        self.failure_detail = failure_detail
        self.always_pending = always_pending
        self.create_fails = create_fails
        self.poll_fails = poll_fails
        self.templates: dict[str, Template] = {}
        self.calls: list[tuple[str, str]] = []
        self._operations: dict[str, tuple[TemplateSpec, int]] = {}

    async def create_template_from_object(self, spec: TemplateSpec) -> OperationHandle:
        self.calls.append(('create_template_from_object', spec.name))
        if self.create_fails:
            raise RuntimeError('template registration rejected')
        op_id = f'op-{len(self._operations) + 1}'
        self._operations[op_id] = (spec, 0)
        return OperationHandle(id=op_id, zone=spec.zone)

    async def poll_operation(self, handle: OperationHandle) -> OperationStatus:
        self.calls.append(('poll_operation', handle.id))
        if self.poll_fails:
            raise RuntimeError('operation lookup failed')
        spec, polls = self._operations[handle.id]
        self._operations[handle.id] = (spec, polls + 1)

        if self.always_pending or polls < self.pending_polls:
            return OperationStatus.pending()
        if self.failure_detail is not None:
            return OperationStatus.failed(self.failure_detail)

        template = Template(
            id=self.template_id,
            name=spec.name,
            zone=spec.zone,
            checksum=spec.checksum,
            created_at=datetime.now(timezone.utc).isoformat(),
            status='succeeded',
            description=spec.description,
            boot_mode=spec.boot_mode,
            default_user=spec.default_user,
        )
        self.templates[template.id] = template
        return OperationStatus.succeeded(template)

    async def delete_template(self, template_id: str) -> None:
        self.calls.append(('delete_template', template_id))
        self.templates.pop(template_id, None)
