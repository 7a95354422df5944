"""ExoscaleComputeProvider: real ComputeProvider backed by the Exoscale API.

Implements the ComputeProvider protocol using ExoscaleClient for template
registration, operation polling and explicit template deletion.
"""

from __future__ import annotations

import logging
from typing import Any

from ..artifacts import Template
from .exoscale_client import ExoscaleClient, ExoscaleNotFoundError
from .protocols import OperationHandle, OperationStatus, TemplateSpec

logger = logging.getLogger(__name__)

_PENDING_STATES = frozenset({"pending"})
_SUCCESS_STATES = frozenset({"success"})
_FAILURE_STATES = frozenset({"failure", "timeout"})


def build_template_payload(spec: TemplateSpec) -> dict[str, Any]:
    """Translate a TemplateSpec into the API's register-template body.

    Empty optional strings are omitted rather than sent blank.
    """
    payload: dict[str, Any] = {
        "name": spec.name,
        "url": spec.url,
        "checksum": spec.checksum,
        "boot-mode": spec.boot_mode,
        "password-enabled": spec.password_enabled,
        "ssh-key-enabled": spec.ssh_key_enabled,
    }
    optional = {
        "description": spec.description,
        "default-user": spec.default_user,
        "build": spec.build,
        "version": spec.version,
        "maintainer": spec.maintainer,
    }
    payload.update({k: v for k, v in optional.items() if v})
    return payload


def template_from_payload(data: dict[str, Any], *, zone: str) -> Template:
    """Map an API template object onto :class:`Template`."""
    size = data.get("size")
    return Template(
        id=str(data["id"]),
        name=data.get("name", ""),
        zone=zone,
        checksum=data.get("checksum", ""),
        created_at=data.get("created-at"),
        status="succeeded",
        description=data.get("description", ""),
        boot_mode=data.get("boot-mode", ""),
        default_user=data.get("default-user", ""),
        size_bytes=int(size) if size is not None else None,
    )


class ExoscaleComputeProvider:
    """ComputeProvider backed by the Exoscale v2 API.

    Conforms to the ComputeProvider protocol defined in protocols.py:
    - create_template_from_object(spec) -> OperationHandle
    - poll_operation(handle) -> OperationStatus
    - delete_template(template_id) -> None
    """

    def __init__(self, client: ExoscaleClient) -> None:
        self._client = client

    async def create_template_from_object(self, spec: TemplateSpec) -> OperationHandle:
        """Submit a registration and return a handle on the pending operation."""
        logger.info(
            "Registering template: name=%s zone=%s",
            spec.name,
            spec.zone,
            extra={"template_name": spec.name, "zone": spec.zone},
        )
        operation = await self._client.register_template(build_template_payload(spec))
        return OperationHandle(id=str(operation["id"]), zone=spec.zone)

    async def poll_operation(self, handle: OperationHandle) -> OperationStatus:
        """Fetch the operation once and classify it.

        On success the referenced template is looked up so the caller gets
        its full identity.
        """
        operation = await self._client.get_operation(handle.id)
        state = operation.get("state", "")

        if state in _PENDING_STATES:
            return OperationStatus.pending()

        if state in _SUCCESS_STATES:
            reference = operation.get("reference") or {}
            template_id = reference.get("id")
            if not template_id:
                return OperationStatus.failed(
                    f"operation {handle.id} succeeded without a template reference"
                )
            data = await self._client.get_template(template_id)
            return OperationStatus.succeeded(template_from_payload(data, zone=handle.zone))

        if state in _FAILURE_STATES:
            detail = operation.get("message") or operation.get("reason") or state
            return OperationStatus.failed(str(detail))

        return OperationStatus.failed(
            f"operation {handle.id} returned unexpected state {state!r}"
        )

    async def delete_template(self, template_id: str) -> None:
        """Delete a template by ID.

        Silently succeeds if the template doesn't exist (idempotent).
        """
        try:
            await self._client.delete_template(template_id)
        except ExoscaleNotFoundError:
            logger.info(
                "Template already deleted: id=%s",
                template_id,
                extra={"template_id": template_id},
            )
