"""DeleteImageStep tests: idempotent removal of the temporary object."""

from __future__ import annotations

import asyncio

import pytest

from exoscale_import.artifacts import UploadedObjectRef
from exoscale_import.providers.inmemory import InMemoryObjectStorage
from exoscale_import.providers.protocols import StorageError
from exoscale_import.steps.delete_image import DeleteImageStep
from exoscale_import.workflow.step import StepAction

_UPLOADED = UploadedObjectRef(bucket='tmp', key='my-template-1.img')


class TestRun:
    @pytest.mark.asyncio
    async def test_deletes_uploaded_object(self, make_state, storage):
        storage.objects[('tmp', 'my-template-1.img')] = b'data'
        state = make_state(uploaded_object=_UPLOADED)

        action = await DeleteImageStep().run(state, None)

        assert action is StepAction.CONTINUE
        assert storage.objects == {}
        assert state.error is None

    @pytest.mark.asyncio
    async def test_already_absent_twice_is_idempotent(self, make_state, storage):
        state = make_state(uploaded_object=_UPLOADED)
        step = DeleteImageStep()

        first = await step.run(state, None)
        second = await step.run(state, None)

        assert first is StepAction.CONTINUE
        assert second is StepAction.CONTINUE
        assert state.error is None
        assert storage.calls == [
            ('delete_object', 'tmp', 'my-template-1.img'),
            ('delete_object', 'tmp', 'my-template-1.img'),
        ]

    @pytest.mark.asyncio
    async def test_permission_failure_is_error(self, make_state):
        storage = InMemoryObjectStorage(delete_fails=True)
        state = make_state(storage=storage, uploaded_object=_UPLOADED)

        action = await DeleteImageStep().run(state, None)

        assert action is StepAction.HALT
        assert isinstance(state.error, StorageError)
        assert state.error.code == 'AccessDenied'

    @pytest.mark.asyncio
    async def test_nothing_uploaded_is_noop(self, make_state, storage):
        action = await DeleteImageStep().run(make_state(), None)

        assert action is StepAction.CONTINUE
        assert storage.calls == []

    @pytest.mark.asyncio
    async def test_cancelled_before_delete(self, make_state, storage):
        cancel = asyncio.Event()
        cancel.set()
        state = make_state(uploaded_object=_UPLOADED)

        action = await DeleteImageStep().run(state, cancel)

        assert action is StepAction.HALT
        assert state.cancelled is True
        assert storage.calls == []
