"""Build artifact validation, checksums and the template result artifact."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from exoscale_import.artifacts import (
    ARTIFICE_BUILDER_ID,
    BUILDER_ID,
    FILE_BUILDER_ID,
    QEMU_BUILDER_ID,
    BuildArtifact,
    Template,
    TemplateArtifact,
    UploadedObjectRef,
    compute_md5,
    validate_artifact,
)
from exoscale_import.errors import UnsupportedArtifactError
from exoscale_import.providers.inmemory import InMemoryComputeProvider


class TestValidateArtifact:
    @pytest.mark.parametrize(
        'builder_id', [QEMU_BUILDER_ID, FILE_BUILDER_ID, ARTIFICE_BUILDER_ID],
    )
    def test_supported_producers_accepted(self, builder_id):
        validate_artifact(BuildArtifact(builder_id=builder_id, files=('disk.qcow2',)))

    def test_unknown_producer_rejected(self):
        with pytest.raises(UnsupportedArtifactError) as exc_info:
            validate_artifact(BuildArtifact(builder_id='mitchellh.amazonebs', files=('x',)))
        assert exc_info.value.builder_id == 'mitchellh.amazonebs'
        assert 'mitchellh.amazonebs' in str(exc_info.value)

    def test_artifact_without_files_rejected(self):
        with pytest.raises(UnsupportedArtifactError, match='no files'):
            validate_artifact(BuildArtifact(builder_id=QEMU_BUILDER_ID))

    def test_unsupported_artifact_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_artifact(BuildArtifact(builder_id='nope', files=('x',)))


class TestImagePath:
    def test_first_file_is_the_image(self):
        artifact = BuildArtifact(builder_id=QEMU_BUILDER_ID, files=('a.qcow2', 'b.log'))
        assert artifact.image_path == Path('a.qcow2')


class TestComputeMd5:
    def test_matches_hashlib(self, tmp_path):
        path = tmp_path / 'disk.img'
        data = b'x' * (3 * 1024 * 1024 + 17)
        path.write_bytes(data)
        assert compute_md5(path) == hashlib.md5(data).hexdigest()

    def test_missing_file_raises_os_error(self, tmp_path):
        with pytest.raises(OSError):
            compute_md5(tmp_path / 'missing.img')


class TestUploadedObjectRef:
    def test_str_is_bucket_slash_key(self):
        ref = UploadedObjectRef(bucket='tmp', key='my-template-1.img')
        assert str(ref) == 'tmp/my-template-1.img'


class TestTemplateArtifact:
    def _template(self) -> Template:
        return Template(id='tmpl-123', name='my-template', zone='ch-gva-2')

    def test_describes_template(self):
        result = TemplateArtifact(template=self._template())
        assert result.id == 'tmpl-123'
        assert result.builder_id == BUILDER_ID
        assert result.files == ()
        assert result.string() == 'my-template @ ch-gva-2 (ID: tmpl-123)'
        assert str(result) == result.string()

    def test_state_exposes_outputs(self):
        ref = UploadedObjectRef(bucket='tmp', key='k')
        result = TemplateArtifact(template=self._template(), outputs={'uploaded_object': ref})
        assert result.state('uploaded_object') == ref
        assert result.state('missing') is None

    @pytest.mark.asyncio
    async def test_destroy_deletes_template_explicitly(self):
        compute = InMemoryComputeProvider()
        result = TemplateArtifact(template=self._template(), compute=compute)

        await result.destroy()

        assert compute.calls == [('delete_template', 'tmpl-123')]

    @pytest.mark.asyncio
    async def test_destroy_without_provider_raises(self):
        with pytest.raises(RuntimeError):
            await TemplateArtifact(template=self._template()).destroy()
