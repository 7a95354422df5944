"""Input build artifacts, uploaded-object references and template results.

The importer accepts artifacts from a small allow-list of upstream
producers and hands back a :class:`TemplateArtifact` describing the
registered template.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping

from .errors import UnsupportedArtifactError

if TYPE_CHECKING:
    from .providers.protocols import ComputeProvider


QEMU_BUILDER_ID = "transcend.qemu"
FILE_BUILDER_ID = "packer.file"
ARTIFICE_BUILDER_ID = "packer.post-processor.artifice"

SUPPORTED_BUILDER_IDS = frozenset({QEMU_BUILDER_ID, FILE_BUILDER_ID, ARTIFICE_BUILDER_ID})

BUILDER_ID = "packer.post-processor.exoscale-import"

_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True, slots=True)
class BuildArtifact:
    """Output of an upstream build: who produced it and which files it holds."""

    builder_id: str
    files: tuple[str, ...] = ()

    @property
    def image_path(self) -> Path:
        """The disk image to import (the artifact's first file)."""
        if not self.files:
            raise UnsupportedArtifactError(
                self.builder_id,
                f"artifact from {self.builder_id!r} contains no files to import",
            )
        return Path(self.files[0])


def validate_artifact(artifact: BuildArtifact) -> None:
    """Reject artifacts from producers outside the allow-list."""
    if artifact.builder_id not in SUPPORTED_BUILDER_IDS:
        raise UnsupportedArtifactError(artifact.builder_id)
    # Touch image_path so an empty artifact fails before any remote call.
    artifact.image_path


def compute_md5(path: Path) -> str:
    """Compute MD5 hex digest for a file (the checksum template registration expects)."""
    h = hashlib.md5(usedforsecurity=False)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


@dataclass(frozen=True, slots=True)
class UploadedObjectRef:
    """Location of the temporary image object in object storage."""

    bucket: str
    key: str
    url: str = ""
    checksum: str = ""
    size_bytes: int = 0

    def __str__(self) -> str:
        return f"{self.bucket}/{self.key}"


@dataclass(frozen=True, slots=True)
class Template:
    """A compute template as reported by the provider."""

    id: str
    name: str
    zone: str
    checksum: str = ""
    created_at: str | None = None  # ISO-8601
    status: str = "succeeded"
    description: str = ""
    boot_mode: str = ""
    default_user: str = ""
    size_bytes: int | None = None


@dataclass(slots=True)
class TemplateArtifact:
    """Result of a successful import.

    The template is a deliverable in its own right: the importer never
    removes it. Call :meth:`destroy` to delete it explicitly.
    """

    template: Template
    compute: ComputeProvider | None = None
    outputs: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    builder_id: str = BUILDER_ID

    @property
    def id(self) -> str:
        return self.template.id

    @property
    def files(self) -> tuple[str, ...]:
        return ()

    def string(self) -> str:
        t = self.template
        return f"{t.name} @ {t.zone} (ID: {t.id})"

    def __str__(self) -> str:
        return self.string()

    def state(self, name: str) -> Any:
        """Return a workflow output recorded for this import, or ``None``."""
        return self.outputs.get(name)

    async def destroy(self) -> None:
        """Delete the template from the compute provider."""
        if self.compute is None:
            raise RuntimeError("no compute provider attached to this artifact")
        await self.compute.delete_template(self.template.id)
