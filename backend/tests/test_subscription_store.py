"""
Subscription store: transactional writes, cascade delete/restore, import/export,
and state handling on failure. MongoDB is mocked.
"""
import json
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pymongo.errors import OperationFailure

from conftest import cursor
from database import RECYCLED_SUBSCRIPTIONS, SUBSCRIPTIONS, TASKS
from models import SubscriptionForm
from services.export_service import ExportFormat
from services.store_errors import (
    ImportValidationError, NotFoundError, StoreError, SubscriptionValidationError,
)
from services.subscription_builder import SubscriptionDraft, build_subscription
from services.subscription_store import SubscriptionStore, summarize_subscriptions
from utils import messages


START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_db():
    collections = {
        SUBSCRIPTIONS: MagicMock(),
        RECYCLED_SUBSCRIPTIONS: MagicMock(),
        TASKS: MagicMock(),
    }
    for coll in collections.values():
        coll.find = MagicMock(return_value=cursor([]))
        coll.find_one = AsyncMock(return_value=None)
        coll.insert_one = AsyncMock()
        coll.insert_many = AsyncMock()
        coll.replace_one = AsyncMock()
        coll.update_one = AsyncMock(return_value=MagicMock(matched_count=1))
        coll.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
        coll.delete_many = AsyncMock(return_value=MagicMock(deleted_count=0))
    db = MagicMock()
    db.__getitem__.side_effect = collections.__getitem__
    return db, collections


def stored_subscription(**overrides):
    doc = {
        "id": "sub-1",
        "clientId": "c1",
        "clientName": "شركة الأفق",
        "duration": 3,
        "startDate": START,
        "endDate": datetime(2024, 4, 1, tzinfo=timezone.utc),
        "totalPrice": 60.0,
        "websiteServices": [],
        "designServices": [{"type": "post", "price": 10, "monthlyInstances": 2}],
        "managementServices": [],
        "advertisingServices": [],
        "manualTasks": [],
        "tier": "regular",
        "status": "active",
        "createdAt": START,
    }
    doc.update(overrides)
    return doc


def design_draft(subscription_id="sub-1", **form_overrides):
    data = {
        "clientId": "c1",
        "clientName": "شركة الأفق",
        "duration": 3,
        "startDate": "2024-01-01",
        "designServices": [{"type": "post", "price": 10, "monthlyInstances": 2}],
    }
    data.update(form_overrides)
    return build_subscription(SubscriptionForm(**data), subscription_id=subscription_id)


@pytest.fixture
def store():
    return SubscriptionStore()


@pytest.fixture
def mocked(mongo_client):
    db, collections = make_db()
    with patch("services.subscription_store.database.get_db", return_value=db), \
            patch("services.subscription_store.database.get_client", return_value=mongo_client):
        yield db, collections


class TestFetch:

    @pytest.mark.asyncio
    async def test_fetch_converts_dates(self, store, mocked):
        _, collections = mocked
        collections[SUBSCRIPTIONS].find.return_value = cursor([stored_subscription()])

        subs = await store.fetch_subscriptions()

        assert subs[0]["startDate"] == "2024-01-01"
        assert subs[0]["createdAt"] == "2024-01-01T00:00:00.000+00:00"
        assert store.state.subscriptions == subs
        assert store.state.is_loading is False
        assert store.state.error is None

    @pytest.mark.asyncio
    async def test_fetch_failure_keeps_previous_state(self, store, mocked):
        _, collections = mocked
        store.state.subscriptions = [{"id": "old"}]
        collections[SUBSCRIPTIONS].find.return_value.to_list = AsyncMock(side_effect=OperationFailure("down"))

        with pytest.raises(StoreError) as exc:
            await store.fetch_subscriptions()

        assert exc.value.message == messages.FETCH_SUBSCRIPTIONS_FAILED
        assert store.state.subscriptions == [{"id": "old"}]
        assert store.state.error == messages.FETCH_SUBSCRIPTIONS_FAILED
        assert store.state.is_loading is False

    @pytest.mark.asyncio
    async def test_recycled_listing_hides_stashed_tasks(self, store, mocked):
        _, collections = mocked
        await store.fetch_recycled_subscriptions()
        projection = collections[RECYCLED_SUBSCRIPTIONS].find.call_args[0][1]
        assert projection == {"_id": 0, "recycledTasks": 0}


class TestAddSubscription:

    @pytest.mark.asyncio
    async def test_subscription_and_tasks_in_one_transaction(self, store, mocked, session):
        _, collections = mocked
        collections[SUBSCRIPTIONS].find.return_value = cursor([stored_subscription()])
        draft = design_draft()

        subscription_id = await store.add_subscription_and_tasks(draft)

        assert subscription_id == "sub-1"
        assert session.committed is True
        doc = collections[SUBSCRIPTIONS].insert_one.call_args[0][0]
        assert doc["startDate"] == START
        assert isinstance(doc["createdAt"], datetime)
        assert collections[SUBSCRIPTIONS].insert_one.call_args.kwargs["session"] is session

        task_docs = collections[TASKS].insert_many.call_args[0][0]
        assert len(task_docs) == 6
        assert all(t["subscriptionId"] == "sub-1" for t in task_docs)
        assert all(t["schedulingType"] == "automatic" for t in task_docs)
        assert task_docs[1]["dueDate"] == datetime(2024, 1, 16, tzinfo=timezone.utc)
        assert collections[TASKS].insert_many.call_args.kwargs["session"] is session

        # state rebuilt from the store
        assert [s["id"] for s in store.state.subscriptions] == ["sub-1"]

    @pytest.mark.asyncio
    async def test_no_task_insert_without_automatic_tasks(self, store, mocked):
        _, collections = mocked
        draft = design_draft(designServices=[], websiteServices=[{"type": "store", "price": 5}])

        await store.add_subscription_and_tasks(draft)

        collections[SUBSCRIPTIONS].insert_one.assert_awaited_once()
        collections[TASKS].insert_many.assert_not_called()

    @pytest.mark.asyncio
    async def test_manual_tasks_stay_embedded(self, store, mocked):
        _, collections = mocked
        draft = design_draft(designServices=[{
            "type": "post", "price": 10, "monthlyInstances": 2, "schedulingType": "manual",
        }])

        await store.add_subscription_and_tasks(draft)

        doc = collections[SUBSCRIPTIONS].insert_one.call_args[0][0]
        assert len(doc["manualTasks"]) == 6
        collections[TASKS].insert_many.assert_not_called()

    @pytest.mark.asyncio
    async def test_task_insert_failure_aborts_and_keeps_state(self, store, mocked, session):
        _, collections = mocked
        store.state.subscriptions = [{"id": "existing"}]
        collections[TASKS].insert_many.side_effect = OperationFailure("write conflict")

        with pytest.raises(StoreError) as exc:
            await store.add_subscription_and_tasks(design_draft())

        assert exc.value.message == messages.ADD_SUBSCRIPTION_FAILED
        assert session.aborted is True
        assert store.state.subscriptions == [{"id": "existing"}]
        assert store.state.error == messages.ADD_SUBSCRIPTION_FAILED
        assert store.state.is_loading is False

    @pytest.mark.asyncio
    async def test_invalid_dates_rejected_before_any_write(self, store):
        draft = SubscriptionDraft(subscription={
            "id": "sub-x", "clientName": "x", "startDate": "someday", "endDate": "",
        })
        get_db = MagicMock()
        with patch("services.subscription_store.database.get_db", get_db):
            with pytest.raises(SubscriptionValidationError):
                await store.add_subscription_and_tasks(draft)

        get_db.assert_not_called()
        assert store.state.error == messages.INVALID_SUBSCRIPTION_DATES

    @pytest.mark.asyncio
    async def test_tier_recomputed_from_services(self, store, mocked):
        _, collections = mocked
        draft = design_draft(
            websiteServices=[{"type": "store", "price": 5}],
            advertisingServices=[{"type": "ad", "price": 5}],
        )
        draft.subscription["tier"] = "gold"

        await store.add_subscription_and_tasks(draft)

        assert collections[SUBSCRIPTIONS].insert_one.call_args[0][0]["tier"] == "silver"


class TestUpdate:

    @pytest.mark.asyncio
    async def test_update_recomputes_tier(self, store, mocked):
        _, collections = mocked
        subscription = {
            "id": "sub-1",
            "clientName": "x",
            "startDate": "2024-01-01",
            "endDate": "2024-04-01",
            "websiteServices": [{"type": "store", "price": 1}],
            "designServices": [{"type": "post", "price": 1}],
            "managementServices": [],
            "advertisingServices": [],
            "tier": "regular",
        }

        result = await store.update_subscription(subscription)

        assert result["tier"] == "bronze"
        query, update = collections[SUBSCRIPTIONS].update_one.call_args[0]
        assert query == {"id": "sub-1"}
        assert update["$set"]["tier"] == "bronze"
        assert update["$set"]["startDate"] == START
        assert "createdAt" not in update["$set"]

    @pytest.mark.asyncio
    async def test_update_missing_subscription(self, store, mocked):
        _, collections = mocked
        collections[SUBSCRIPTIONS].update_one.return_value = MagicMock(matched_count=0)

        with pytest.raises(NotFoundError):
            await store.update_subscription({"id": "nope", "startDate": "2024-01-01"})

    @pytest.mark.asyncio
    async def test_toggle_manual_task(self, store, mocked):
        _, collections = mocked
        manual = {
            "id": "sub-1-manual-mgmt-account-1", "description": "مهمة يدوية: x - 1 من 2",
            "clientId": "c1", "subscriptionId": "sub-1", "dueDate": "", "status": "pending",
            "serviceCategory": "management", "serviceType": "account",
            "schedulingType": "manual", "isDeleted": False, "completedAt": None,
        }
        collections[SUBSCRIPTIONS].find_one.return_value = stored_subscription(manualTasks=[manual])

        result = await store.toggle_manual_task("sub-1", manual["id"])
        task = result["manualTasks"][0]
        assert task["status"] == "completed"
        assert task["completedAt"]

        collections[SUBSCRIPTIONS].find_one.return_value = stored_subscription(manualTasks=[task])
        result = await store.toggle_manual_task("sub-1", manual["id"])
        assert result["manualTasks"][0]["status"] == "pending"
        assert result["manualTasks"][0]["completedAt"] is None

    @pytest.mark.asyncio
    async def test_edit_unknown_manual_task(self, store, mocked):
        _, collections = mocked
        collections[SUBSCRIPTIONS].find_one.return_value = stored_subscription()

        with pytest.raises(NotFoundError) as exc:
            await store.edit_manual_task("sub-1", "missing", "new text")
        assert exc.value.message == messages.MANUAL_TASK_NOT_FOUND
        collections[SUBSCRIPTIONS].update_one.assert_not_called()


class TestRecycleBin:

    @pytest.mark.asyncio
    async def test_delete_moves_subscription_and_cascades_tasks(self, store, mocked, session):
        _, collections = mocked
        task_docs = [
            {"id": "t1", "subscriptionId": "sub-1", "dueDate": START},
            {"id": "t2", "subscriptionId": "sub-1", "dueDate": START},
        ]
        collections[SUBSCRIPTIONS].find_one.return_value = stored_subscription()
        collections[TASKS].find.return_value = cursor(task_docs)
        collections[TASKS].delete_many.return_value = MagicMock(deleted_count=2)

        removed = await store.delete_subscription("sub-1")

        assert removed == 2
        assert session.committed is True
        query, moved = collections[RECYCLED_SUBSCRIPTIONS].replace_one.call_args[0]
        assert query == {"id": "sub-1"}
        assert moved["status"] == "deleted"
        assert isinstance(moved["deletedAt"], datetime)
        assert moved["recycledTasks"] == task_docs
        collections[SUBSCRIPTIONS].delete_one.assert_awaited_once()
        collections[TASKS].delete_many.assert_awaited_once()
        assert collections[TASKS].delete_many.call_args[0][0] == {"subscriptionId": "sub-1"}

    @pytest.mark.asyncio
    async def test_delete_missing_subscription(self, store, mocked, session):
        _, collections = mocked

        with pytest.raises(NotFoundError):
            await store.delete_subscription("ghost")

        assert session.aborted is True
        collections[TASKS].delete_many.assert_not_called()
        assert store.state.error == messages.SUBSCRIPTION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete_failure_keeps_state(self, store, mocked):
        _, collections = mocked
        store.state.subscriptions = [{"id": "sub-1"}]
        collections[SUBSCRIPTIONS].find_one.return_value = stored_subscription()
        collections[TASKS].delete_many.side_effect = OperationFailure("boom")

        with pytest.raises(StoreError):
            await store.delete_subscription("sub-1")

        assert store.state.subscriptions == [{"id": "sub-1"}]
        assert store.state.error == messages.DELETE_SUBSCRIPTION_FAILED

    @pytest.mark.asyncio
    async def test_restore_reinserts_stashed_tasks(self, store, mocked, session):
        _, collections = mocked
        stashed = [{"id": "t1", "subscriptionId": "sub-1", "dueDate": START}]
        collections[RECYCLED_SUBSCRIPTIONS].find_one.return_value = stored_subscription(
            status="deleted", deletedAt=START, recycledTasks=stashed,
        )

        restored = await store.restore_subscription("sub-1")

        assert restored == 1
        assert session.committed is True
        moved = collections[SUBSCRIPTIONS].replace_one.call_args[0][1]
        assert moved["status"] == "active"
        assert moved["deletedAt"] is None
        assert "recycledTasks" not in moved
        collections[TASKS].insert_many.assert_awaited_once()
        assert collections[TASKS].insert_many.call_args[0][0] == stashed
        collections[RECYCLED_SUBSCRIPTIONS].delete_one.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_restore_missing(self, store, mocked):
        with pytest.raises(NotFoundError) as exc:
            await store.restore_subscription("ghost")
        assert exc.value.message == messages.RECYCLED_NOT_FOUND

    @pytest.mark.asyncio
    async def test_purge(self, store, mocked):
        _, collections = mocked
        await store.purge_recycled_subscription("sub-1")
        collections[RECYCLED_SUBSCRIPTIONS].delete_one.assert_awaited_once_with({"id": "sub-1"})

        collections[RECYCLED_SUBSCRIPTIONS].delete_one.return_value = MagicMock(deleted_count=0)
        with pytest.raises(NotFoundError):
            await store.purge_recycled_subscription("sub-1")


class TestImportExport:

    @pytest.mark.asyncio
    async def test_invalid_import_writes_nothing(self, store):
        get_db = MagicMock()
        with patch("services.subscription_store.database.get_db", get_db):
            with pytest.raises(ImportValidationError):
                await store.import_subscriptions({"not": "a list"})
        get_db.assert_not_called()
        assert store.state.error == messages.IMPORT_NOT_ARRAY

    @pytest.mark.asyncio
    async def test_import_upserts_every_record(self, store, mocked, session):
        _, collections = mocked
        payload = [
            {"id": "a", "clientName": "A", "startDate": "2024-01-01", "duration": 1},
            {"clientName": "B", "startDate": "2024-02-01"},
        ]

        count = await store.import_subscriptions(payload)

        assert count == 2
        assert session.committed is True
        calls = collections[SUBSCRIPTIONS].replace_one.call_args_list
        assert len(calls) == 2
        assert calls[0][0][0] == {"id": "a"}
        assert calls[0].kwargs["upsert"] is True
        assert calls[0][0][1]["startDate"] == START
        assert isinstance(calls[1][0][1]["createdAt"], datetime)

    @pytest.mark.asyncio
    async def test_export_without_subscriptions(self, store, mocked):
        with pytest.raises(NotFoundError) as exc:
            await store.export_subscriptions(ExportFormat.JSON)
        assert exc.value.message == messages.NO_ACTIVE_SUBSCRIPTIONS

    @pytest.mark.asyncio
    async def test_export_json(self, store, mocked):
        _, collections = mocked
        collections[SUBSCRIPTIONS].find.return_value = cursor([stored_subscription()])

        export = await store.export_subscriptions(ExportFormat.JSON)

        data = json.loads(export.content)
        assert data[0]["id"] == "sub-1"
        assert data[0]["startDate"] == "2024-01-01"

    @pytest.mark.asyncio
    async def test_export_formatter_failure(self, store, mocked):
        _, collections = mocked
        collections[SUBSCRIPTIONS].find.return_value = cursor([stored_subscription()])

        with patch("services.subscription_store.export_service.export_subscriptions",
                   side_effect=ValueError("bad font")):
            with pytest.raises(StoreError) as exc:
                await store.export_subscriptions(ExportFormat.PDF)
        assert exc.value.message == messages.EXPORT_FAILED


def test_summary():
    subscriptions = [
        {"id": "a", "tier": "gold", "endDate": "2024-01-12",
         "manualTasks": [{"status": "completed"}, {"status": "pending"}]},
        {"id": "b", "tier": "regular", "endDate": "2024-06-01", "manualTasks": []},
        {"id": "c", "tier": "gold", "status": "expired", "endDate": "2023-12-01", "manualTasks": []},
    ]
    tasks = [
        {"status": "completed"},
        {"status": "completed"},
        {"status": "pending", "isDeleted": True},
    ]

    summary = summarize_subscriptions(subscriptions, tasks, today=date(2024, 1, 10))

    assert summary["total"] == 3
    assert summary["tiers"] == {"gold": 1, "silver": 0, "bronze": 0, "regular": 1}
    assert summary["expiring_soon"] == ["a"]
    assert summary["tasks"] == {"total": 4, "completed": 3, "performance": "good"}
