"""Pytest configuration for exoscale_import tests."""
import sys
import threading
import time
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest
from botocore.exceptions import ClientError

from exoscale_import.artifacts import FILE_BUILDER_ID, BuildArtifact
from exoscale_import.providers.inmemory import (
    InMemoryComputeProvider,
    InMemoryObjectStorage,
)
from exoscale_import.providers.protocols import ProviderHandles
from exoscale_import.settings import ImportSettings
from exoscale_import.workflow.state import ImportState


@pytest.fixture
def image_file(tmp_path):
    """A small local disk image named like a real build output."""
    path = tmp_path / 'disk.img'
    path.write_bytes(b'QFI\xfb' + b'\x00' * 4092)
    return path


@pytest.fixture
def settings():
    """Valid settings with poll timings short enough for tests."""
    return ImportSettings(
        api_key='EXO0123456789abcdef',
        api_secret='s3cr3t-api-secret-value',
        template_zone='ch-gva-2',
        image_bucket='tmp',
        template_name='my-template',
        poll_interval_seconds=0.01,
        api_timeout_seconds=5.0,
    )


@pytest.fixture
def artifact(image_file):
    return BuildArtifact(builder_id=FILE_BUILDER_ID, files=(str(image_file),))


@pytest.fixture
def storage():
    return InMemoryObjectStorage()


@pytest.fixture
def compute():
    return InMemoryComputeProvider()


@pytest.fixture
def make_state(settings, artifact, storage, compute):
    """Build an ImportState over the in-memory providers."""

    def _make(**overrides):
        return ImportState(
            settings=overrides.pop('settings', settings),
            providers=ProviderHandles(
                compute=overrides.pop('compute', compute),
                storage=overrides.pop('storage', storage),
            ),
            artifact=overrides.pop('artifact', artifact),
            **overrides,
        )

    return _make


class SlowS3Client:
    """boto3-shaped S3 client whose uploads land only after a delay.

    The transfer sends ``chunks`` pieces ``chunk_seconds`` apart and reports
    each one to the ``Callback`` (unless ``report_progress`` is false), the
    way boto3's transfer manager does. The key exists only once every chunk
    has been sent.
    """

    def __init__(self, *, chunks=30, chunk_seconds=0.01, report_progress=True):
        self._chunks = chunks
        self._chunk_seconds = chunk_seconds
        self._report_progress = report_progress
        self.objects: set[tuple[str, str]] = set()
        self.calls: list[tuple[str, str, str]] = []
        self.upload_returned = threading.Event()

    def upload_fileobj(self, fileobj, bucket, key, Config=None, Callback=None):
        self.calls.append(('upload_fileobj', bucket, key))
        try:
            for _ in range(self._chunks):
                time.sleep(self._chunk_seconds)
                if Callback is not None and self._report_progress:
                    Callback(1024)
            fileobj.read()
            self.objects.add((bucket, key))
        finally:
            self.upload_returned.set()

    def head_object(self, Bucket, Key):
        self.calls.append(('head_object', Bucket, Key))
        if (Bucket, Key) not in self.objects:
            raise ClientError({'Error': {'Code': '404', 'Message': 'Not Found'}}, 'HeadObject')
        return {}

    def delete_object(self, Bucket, Key):
        self.calls.append(('delete_object', Bucket, Key))
        self.objects.discard((Bucket, Key))
        return {}

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        return f"https://sos.test/{Params['Bucket']}/{Params['Key']}?X-Amz-Expires={ExpiresIn}"


@pytest.fixture
def make_slow_s3():
    """Factory for SlowS3Client; keyword arguments tune the transfer."""
    return SlowS3Client
