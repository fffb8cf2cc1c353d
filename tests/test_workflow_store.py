"""Tests for the workflow document stores."""

import threading
from datetime import datetime, timedelta

import pytest

from diagflow.core.document import import_document
from diagflow.core.exceptions import StorageError
from diagflow.storage.workflow_store import MAX_SAVED_VERSIONS, InMemoryWorkflowStore, SqlWorkflowStore


@pytest.fixture(params=["memory", "sql"])
def store(request, temp_db):
    """Every store implementation must honour the same contract."""
    if request.param == "memory":
        return InMemoryWorkflowStore()
    return SqlWorkflowStore(temp_db)


def _document(raw, name=None, folder=None, created_at=None):
    document = import_document(raw)
    if name:
        document.metadata.name = name
    if folder:
        document.metadata.folder = folder
    if created_at:
        document.metadata.created_at = created_at
    return document


class TestWorkflowStore:
    """Contract tests run against every store."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, store, dishwasher_document):
        document = _document(dishwasher_document)
        await store.save(document)

        loaded = await store.load("Dishwasher not draining", "dishwashers")
        assert loaded is not None
        assert [node.id for node in loaded.nodes] == [node.id for node in document.nodes]
        assert loaded.edges == document.edges
        assert loaded.node_counter == 7
        assert loaded.metadata.appliance == "dishwasher"

    @pytest.mark.asyncio
    async def test_load_missing_returns_none(self, store):
        assert await store.load("Nope", "default") is None

    @pytest.mark.asyncio
    async def test_last_write_wins_and_created_at_is_kept(self, store, dishwasher_document):
        original_created = datetime(2024, 1, 1, 12, 0, 0)
        await store.save(_document(dishwasher_document, created_at=original_created))

        revised = _document(dishwasher_document, created_at=original_created + timedelta(days=3))
        revised.nodes[0].title = "Begin here"
        stored = await store.save(revised)

        assert stored.metadata.created_at == original_created
        loaded = await store.load("Dishwasher not draining", "dishwashers")
        assert loaded.nodes[0].title == "Begin here"
        assert loaded.metadata.created_at == original_created
        assert len(await store.list_workflows()) == 1

    @pytest.mark.asyncio
    async def test_same_name_in_different_folders(self, store, dishwasher_document):
        await store.save(_document(dishwasher_document, folder="kitchen"))
        await store.save(_document(dishwasher_document, folder="laundry"))

        summaries = await store.list_workflows()
        assert sorted(summary.folder for summary in summaries) == ["kitchen", "laundry"]

        kitchen = await store.list_workflows(folder="kitchen")
        assert len(kitchen) == 1
        assert kitchen[0].node_count == 6

    @pytest.mark.asyncio
    async def test_delete(self, store, yes_no_document):
        await store.save(_document(yes_no_document, name="Yes or no"))

        assert await store.delete("Yes or no", "default") is True
        assert await store.delete("Yes or no", "default") is False
        assert await store.load("Yes or no", "default") is None
        assert await store.list_versions("Yes or no", "default") == []

    @pytest.mark.asyncio
    async def test_each_save_bumps_version(self, store, dishwasher_document):
        first = await store.save(_document(dishwasher_document), description="Initial draft")
        revised = _document(dishwasher_document)
        revised.nodes[0].title = "Begin here"
        second = await store.save(revised, description="Reworded start")

        assert first.metadata.version == 1
        assert second.metadata.version == 2
        assert (await store.load("Dishwasher not draining", "dishwashers")).metadata.version == 2

        versions = await store.list_versions("Dishwasher not draining", "dishwashers")
        assert [(v.version, v.description) for v in versions] == [(2, "Reworded start"), (1, "Initial draft")]
        assert versions[0].node_count == 6

    @pytest.mark.asyncio
    async def test_load_earlier_version(self, store, dishwasher_document):
        await store.save(_document(dishwasher_document))
        revised = _document(dishwasher_document)
        revised.nodes[0].title = "Begin here"
        await store.save(revised)

        original = await store.load_version("Dishwasher not draining", "dishwashers", 1)
        assert original.nodes[0].title == "Begin"
        assert await store.load_version("Dishwasher not draining", "dishwashers", 9) is None

    @pytest.mark.asyncio
    async def test_saved_versions_are_capped(self, store, yes_no_document):
        for _ in range(MAX_SAVED_VERSIONS + 5):
            await store.save(_document(yes_no_document, name="Busy"))

        versions = await store.list_versions("Busy", "default")
        assert len(versions) == MAX_SAVED_VERSIONS
        assert versions[0].version == MAX_SAVED_VERSIONS + 5
        assert versions[-1].version == 6
        assert await store.load_version("Busy", "default", 5) is None


class TestSqlWorkflowStore:
    """SQL specific behaviour."""

    @pytest.mark.asyncio
    async def test_persists_across_store_instances(self, temp_db, dishwasher_document):
        await SqlWorkflowStore(temp_db).save(_document(dishwasher_document))

        loaded = await SqlWorkflowStore(temp_db).load("Dishwasher not draining", "dishwashers")
        assert loaded is not None

    @pytest.mark.asyncio
    async def test_database_errors_become_storage_errors(self, temp_db, dishwasher_document):
        store = SqlWorkflowStore(temp_db, create_schema=False)

        with pytest.raises(StorageError):
            await store.save(_document(dishwasher_document))

    @pytest.mark.asyncio
    async def test_queries_run_in_thread_pool(self, temp_db, monkeypatch):
        store = SqlWorkflowStore(temp_db)
        query_threads = []
        original = store._list_workflows

        def recording(folder):
            query_threads.append(threading.get_ident())
            return original(folder)

        monkeypatch.setattr(store, "_list_workflows", recording)
        assert await store.list_workflows() == []
        assert query_threads and query_threads[0] != threading.get_ident()
