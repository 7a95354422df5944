"""SOSObjectStorage tests against a stubbed boto3 S3 client."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError
from botocore.stub import Stubber

from exoscale_import._version import USER_AGENT
from exoscale_import.providers.protocols import (
    ObjectNotFoundError,
    ObjectStorage,
    StorageError,
)
from exoscale_import.providers.sos_storage import (
    SOSObjectStorage,
    UploadAborted,
    build_s3_client,
)


@pytest.fixture
def s3_client(settings):
    return build_s3_client(settings)


class TestClientConfiguration:
    def test_uses_zone_endpoint_and_region(self, s3_client):
        assert s3_client.meta.endpoint_url == 'https://sos-ch-gva-2.exo.io'
        assert s3_client.meta.region_name == 'ch-gva-2'

    def test_uses_path_style_addressing(self, s3_client):
        assert s3_client.meta.config.s3['addressing_style'] == 'path'

    def test_user_agent_names_the_importer(self, s3_client):
        assert s3_client.meta.config.user_agent_extra == USER_AGENT

    def test_satisfies_object_storage_protocol(self, s3_client):
        assert isinstance(SOSObjectStorage(s3_client), ObjectStorage)


class TestPresign:
    @pytest.mark.asyncio
    async def test_presigned_url_is_path_style(self, s3_client):
        storage = SOSObjectStorage(s3_client)

        url = await storage.presign_url('tmp', 'my-template-1.img', 3600)

        assert url.startswith('https://sos-ch-gva-2.exo.io/tmp/my-template-1.img?')
        assert 'X-Amz-Expires=3600' in url


class TestDelete:
    @pytest.mark.asyncio
    async def test_deletes_existing_object(self, s3_client):
        storage = SOSObjectStorage(s3_client)
        with Stubber(s3_client) as stub:
            stub.add_response('head_object', {}, {'Bucket': 'tmp', 'Key': 'k.img'})
            stub.add_response('delete_object', {}, {'Bucket': 'tmp', 'Key': 'k.img'})

            await storage.delete_object('tmp', 'k.img')

            stub.assert_no_pending_responses()

    @pytest.mark.asyncio
    async def test_missing_object_raises_not_found(self, s3_client):
        storage = SOSObjectStorage(s3_client)
        with Stubber(s3_client) as stub:
            stub.add_client_error(
                'head_object',
                service_error_code='404',
                http_status_code=404,
                expected_params={'Bucket': 'tmp', 'Key': 'gone.img'},
            )

            with pytest.raises(ObjectNotFoundError) as exc_info:
                await storage.delete_object('tmp', 'gone.img')

        assert exc_info.value.bucket == 'tmp'
        assert exc_info.value.key == 'gone.img'

    @pytest.mark.asyncio
    async def test_access_denied_is_storage_error(self, s3_client):
        storage = SOSObjectStorage(s3_client)
        with Stubber(s3_client) as stub:
            stub.add_response('head_object', {}, {'Bucket': 'tmp', 'Key': 'k.img'})
            stub.add_client_error(
                'delete_object',
                service_error_code='AccessDenied',
                service_message='Access Denied',
                http_status_code=403,
            )

            with pytest.raises(StorageError) as exc_info:
                await storage.delete_object('tmp', 'k.img')

        assert not isinstance(exc_info.value, ObjectNotFoundError)
        assert exc_info.value.code == 'AccessDenied'
        assert 'Access Denied' in str(exc_info.value)


class TestPut:
    @pytest.mark.asyncio
    async def test_streams_file_to_bucket_and_key(self, image_file):
        client = MagicMock()
        storage = SOSObjectStorage(client)

        await storage.put_object('tmp', 'k.img', image_file)

        call = client.upload_fileobj.call_args
        assert call.args[1:] == ('tmp', 'k.img')
        assert call.args[0].name == str(image_file)

    @pytest.mark.asyncio
    async def test_upload_failure_is_storage_error(self, image_file):
        client = MagicMock()
        client.upload_fileobj.side_effect = S3UploadFailedError('Failed to upload: 500')
        storage = SOSObjectStorage(client)

        with pytest.raises(StorageError, match='upload of tmp/k.img failed'):
            await storage.put_object('tmp', 'k.img', image_file)

    @pytest.mark.asyncio
    async def test_missing_bucket_is_not_found(self, image_file):
        client = MagicMock()
        client.upload_fileobj.side_effect = ClientError(
            {'Error': {'Code': 'NoSuchBucket', 'Message': 'no bucket'}}, 'PutObject',
        )
        storage = SOSObjectStorage(client)

        with pytest.raises(ObjectNotFoundError):
            await storage.put_object('tmp', 'k.img', image_file)

    @pytest.mark.asyncio
    async def test_missing_source_raises_os_error(self, tmp_path):
        storage = SOSObjectStorage(MagicMock())

        with pytest.raises(OSError):
            await storage.put_object('tmp', 'k.img', tmp_path / 'missing.img')


class TestPutCancellation:
    @pytest.mark.asyncio
    async def test_cancel_stops_transfer_before_key_lands(self, image_file, make_slow_s3):
        s3 = make_slow_s3()
        storage = SOSObjectStorage(s3)
        upload = asyncio.ensure_future(storage.put_object('tmp', 'k.img', image_file))
        await asyncio.sleep(0.05)

        upload.cancel()
        with pytest.raises(asyncio.CancelledError):
            await upload

        assert s3.upload_returned.is_set()
        assert s3.objects == set()

    @pytest.mark.asyncio
    async def test_cancel_returns_only_after_worker_thread(self, image_file, make_slow_s3):
        s3 = make_slow_s3(report_progress=False)
        storage = SOSObjectStorage(s3)
        upload = asyncio.ensure_future(storage.put_object('tmp', 'k.img', image_file))
        await asyncio.sleep(0.05)

        upload.cancel()
        with pytest.raises(asyncio.CancelledError):
            await upload

        # The transfer ignored the abort and completed; a delete now sees it.
        assert s3.upload_returned.is_set()
        assert s3.objects == {('tmp', 'k.img')}
        await storage.delete_object('tmp', 'k.img')
        assert s3.objects == set()

    @pytest.mark.asyncio
    async def test_abort_without_cancel_never_fires(self, image_file, make_slow_s3):
        s3 = make_slow_s3(chunks=3)
        storage = SOSObjectStorage(s3)

        await storage.put_object('tmp', 'k.img', image_file)

        assert s3.objects == {('tmp', 'k.img')}

    def test_aborted_upload_is_storage_error(self):
        exc = UploadAborted()
        assert isinstance(exc, StorageError)
        assert exc.code == 'Aborted'
