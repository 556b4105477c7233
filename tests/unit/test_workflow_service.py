"""Unit tests for WorkflowService over the in-memory repository."""

import pytest

from diagram_store.adapters import FakeRepository
from diagram_store.domain import InvalidKeyError
from diagram_store.domain.components import canvas_components_adapter
from diagram_store.service_layer import WorkflowService


def _components(*raw):
    return canvas_components_adapter.validate_python(list(raw))


def _line(component_id: int, **extra):
    return {
        "id": component_id,
        "componentType": "Line",
        "lineAttr": {"start": {"x": 0, "y": 0}, "end": {"x": 1, "y": 1}},
        **extra,
    }


class TestWorkflowService:
    @pytest.mark.asyncio
    async def test_create_assigns_identifiers_in_order(self):
        service = WorkflowService(FakeRepository())

        created = await service.create(_components(_line(1), _line(2)))

        assert [entry.value["id"] for entry in created] == [1, 2]
        assert created[0].key != created[1].key
        assert len(await service.list()) == 2

    @pytest.mark.asyncio
    async def test_list_returns_stored_documents(self):
        service = WorkflowService(FakeRepository())
        await service.create(_components(_line(1, _id="abc")))

        assert await service.list() == [
            {
                "_id": "abc",
                "id": 1,
                "componentType": "Line",
                "lineAttr": {"start": {"x": 0.0, "y": 0.0}, "end": {"x": 1.0, "y": 1.0}},
            }
        ]

    @pytest.mark.asyncio
    async def test_update_merges_by_identity(self):
        service = WorkflowService(FakeRepository())
        await service.create(_components(_line(1, _id="abc")))

        updated = await service.update(_components(_line(5, _id="abc")))

        assert updated[0].value["id"] == 5
        assert (await service.list())[0]["id"] == 5

    @pytest.mark.asyncio
    async def test_update_without_identity_rejected(self):
        service = WorkflowService(FakeRepository(upsert=True))
        with pytest.raises(InvalidKeyError):
            await service.update(_components(_line(1)))

    @pytest.mark.asyncio
    async def test_update_upserts_when_repository_does(self):
        service = WorkflowService(FakeRepository(upsert=True))
        await service.update(_components(_line(1, _id="new")))
        assert [document["_id"] for document in await service.list()] == ["new"]

    @pytest.mark.asyncio
    async def test_delete_reports_each_id(self):
        service = WorkflowService(FakeRepository())
        await service.create(_components(_line(1, _id="a")))

        assert await service.delete(["a", "b"]) == [True, False]
        assert await service.list() == []
