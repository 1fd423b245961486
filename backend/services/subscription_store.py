"""Subscription Store - transactional persistence of subscriptions and their tasks.

Collections:
- subscriptions: active subscriptions, each embedding its manual tasks
- recycledSubscriptions: soft-deleted subscriptions awaiting restore or purge
- tasks: automatic tasks, linked to their subscription by subscriptionId

Every multi-document write (create + tasks, delete + cascade, restore, import)
runs inside one MongoDB transaction, so a failure never leaves a subscription
without its tasks or the other way round. After each successful write the
in-memory state is rebuilt from the store rather than patched.

Failures are logged, recorded on ``state.error`` as a user-facing message and
raised as ``StoreError``; the cached lists are only replaced by a successful
fetch.
"""
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional
import logging

from pymongo.errors import PyMongoError

from database import database, SUBSCRIPTIONS, RECYCLED_SUBSCRIPTIONS, TASKS
from models import SubscriptionStatus, TaskStatus
from services import export_service
from services.export_service import ExportFile, ExportFormat
from services.store_errors import NotFoundError, StoreError, SubscriptionValidationError
from services.subscription_builder import SubscriptionDraft
from services.tier_classifier import tier_for
from utils import messages
from utils.formatting import calculate_performance, is_expiring_soon
from utils.timestamps import (
    document_to_subscription, now_utc, parse_date, subscription_to_document,
    task_to_document, to_iso_timestamp,
)

logger = logging.getLogger(__name__)

# Automatic tasks removed with a subscription ride along in its recycled
# document so that restoring it can put them back.
RECYCLED_TASKS_FIELD = "recycledTasks"


@dataclass
class SubscriptionState:
    subscriptions: List[Dict[str, Any]] = field(default_factory=list)
    recycled_subscriptions: List[Dict[str, Any]] = field(default_factory=list)
    is_loading: bool = False
    error: Optional[str] = None


class SubscriptionStore:
    """Owns the in-memory subscription state; the only code allowed to mutate it."""

    def __init__(self):
        self.state = SubscriptionState()

    def reset(self):
        self.state = SubscriptionState()

    def _get_db(self):
        return database.get_db()

    @asynccontextmanager
    async def _transaction(self):
        client = database.get_client()
        async with await client.start_session() as session:
            async with session.start_transaction():
                yield session

    def _begin(self):
        self.state.is_loading = True
        self.state.error = None

    def _done(self):
        self.state.is_loading = False

    def _record_error(self, message: str):
        self.state.error = message
        self.state.is_loading = False

    def _fail(self, message: str, exc: Exception) -> StoreError:
        logger.error(f"{message} ({exc})")
        self._record_error(message)
        return StoreError(message)

    async def _refresh(self, recycled: bool = False):
        """Rebuild the cache after a committed write. A failed refetch is
        already recorded on state.error by the fetch itself."""
        try:
            await self.fetch_subscriptions()
            if recycled:
                await self.fetch_recycled_subscriptions()
        except StoreError as e:
            logger.warning(f"Refetch after write failed: {e.message}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_subscriptions(self) -> List[Dict[str, Any]]:
        self._begin()
        db = self._get_db()
        try:
            docs = await db[SUBSCRIPTIONS].find({}, {"_id": 0}).to_list(length=None)
        except PyMongoError as e:
            raise self._fail(messages.FETCH_SUBSCRIPTIONS_FAILED, e)
        self.state.subscriptions = [document_to_subscription(doc) for doc in docs]
        self._done()
        return self.state.subscriptions

    async def fetch_recycled_subscriptions(self) -> List[Dict[str, Any]]:
        self._begin()
        db = self._get_db()
        try:
            docs = await db[RECYCLED_SUBSCRIPTIONS].find(
                {}, {"_id": 0, RECYCLED_TASKS_FIELD: 0}
            ).to_list(length=None)
        except PyMongoError as e:
            raise self._fail(messages.FETCH_RECYCLED_FAILED, e)
        self.state.recycled_subscriptions = [document_to_subscription(doc) for doc in docs]
        self._done()
        return self.state.recycled_subscriptions

    async def get_subscription(self, subscription_id: str) -> Dict[str, Any]:
        db = self._get_db()
        try:
            doc = await db[SUBSCRIPTIONS].find_one({"id": subscription_id}, {"_id": 0})
        except PyMongoError as e:
            raise self._fail(messages.FETCH_SUBSCRIPTIONS_FAILED, e)
        if not doc:
            raise NotFoundError(messages.SUBSCRIPTION_NOT_FOUND)
        return document_to_subscription(doc)

    # ------------------------------------------------------------------
    # Create / update
    # ------------------------------------------------------------------

    async def add_subscription_and_tasks(self, draft: SubscriptionDraft) -> str:
        """Insert the subscription and its automatic tasks in one commit."""
        subscription = dict(draft.subscription)
        subscription_id = subscription["id"]

        if parse_date(subscription.get("startDate")) is None or parse_date(subscription.get("endDate")) is None:
            logger.error(
                f"Rejecting subscription {subscription_id}: invalid dates "
                f"start={subscription.get('startDate')!r} end={subscription.get('endDate')!r}"
            )
            self._record_error(messages.INVALID_SUBSCRIPTION_DATES)
            raise SubscriptionValidationError(messages.INVALID_SUBSCRIPTION_DATES)

        subscription["tier"] = tier_for(subscription).value
        subscription["status"] = SubscriptionStatus.ACTIVE.value
        subscription.setdefault("createdAt", to_iso_timestamp(now_utc()))
        subscription.setdefault("manualTasks", [t.model_dump(mode="json") for t in draft.manual_tasks])

        doc = subscription_to_document(subscription)
        task_docs = [
            task_to_document({
                **task.model_dump(mode="json"),
                "subscriptionId": subscription_id,
                "schedulingType": "automatic",
            })
            for task in draft.automatic_tasks
        ]

        self._begin()
        db = self._get_db()
        try:
            async with self._transaction() as session:
                await db[SUBSCRIPTIONS].insert_one(doc, session=session)
                if task_docs:
                    await db[TASKS].insert_many(task_docs, session=session)
        except PyMongoError as e:
            raise self._fail(messages.ADD_SUBSCRIPTION_FAILED, e)

        logger.info(
            f"Subscription {subscription_id} created with {len(task_docs)} automatic "
            f"and {len(subscription['manualTasks'])} manual tasks"
        )
        self._done()
        await self._refresh()
        return subscription_id

    async def update_subscription(self, subscription: Dict[str, Any]) -> Dict[str, Any]:
        """Write back an edited subscription; the tier is recomputed from its services."""
        subscription = dict(subscription)
        subscription_id = subscription["id"]
        subscription["tier"] = tier_for(subscription).value
        doc = subscription_to_document(subscription)
        if doc.get("createdAt") is None:
            # never overwrite the original creation time with null
            doc.pop("createdAt", None)

        self._begin()
        db = self._get_db()
        try:
            result = await db[SUBSCRIPTIONS].update_one({"id": subscription_id}, {"$set": doc})
        except PyMongoError as e:
            raise self._fail(messages.UPDATE_SUBSCRIPTION_FAILED, e)
        if result.matched_count == 0:
            self._record_error(messages.SUBSCRIPTION_NOT_FOUND)
            raise NotFoundError(messages.SUBSCRIPTION_NOT_FOUND)

        self._done()
        await self._refresh()
        return subscription

    async def _update_manual_task(self, subscription_id: str, task_id: str, change) -> Dict[str, Any]:
        subscription = await self.get_subscription(subscription_id)
        tasks = subscription.get("manualTasks") or []
        if not any(task.get("id") == task_id for task in tasks):
            self._record_error(messages.MANUAL_TASK_NOT_FOUND)
            raise NotFoundError(messages.MANUAL_TASK_NOT_FOUND)
        subscription["manualTasks"] = [
            change(dict(task)) if task.get("id") == task_id else task for task in tasks
        ]
        return await self.update_subscription(subscription)

    async def toggle_manual_task(self, subscription_id: str, task_id: str) -> Dict[str, Any]:
        """Flip a manual task between pending and completed."""
        def toggle(task):
            if task.get("status") == TaskStatus.PENDING.value:
                task["status"] = TaskStatus.COMPLETED.value
                task["completedAt"] = to_iso_timestamp(now_utc())
            else:
                task["status"] = TaskStatus.PENDING.value
                task["completedAt"] = None
            return task

        return await self._update_manual_task(subscription_id, task_id, toggle)

    async def edit_manual_task(self, subscription_id: str, task_id: str, description: str) -> Dict[str, Any]:
        def edit(task):
            task["description"] = description
            return task

        return await self._update_manual_task(subscription_id, task_id, edit)

    # ------------------------------------------------------------------
    # Recycle bin
    # ------------------------------------------------------------------

    async def _transfer(
        self,
        session,
        source: str,
        target: str,
        subscription_id: str,
        changes: Dict[str, Any],
        strip: tuple = (),
    ) -> Optional[Dict[str, Any]]:
        """Move one subscription document between collections within ``session``.

        ``changes`` are applied and ``strip`` fields dropped on the moved copy.
        Returns the source document as it was read, or None if it is missing.
        """
        db = self._get_db()
        doc = await db[source].find_one({"id": subscription_id}, {"_id": 0}, session=session)
        if doc is None:
            return None
        moved = {key: value for key, value in doc.items() if key not in strip}
        moved.update(changes)
        await db[target].replace_one({"id": subscription_id}, moved, upsert=True, session=session)
        await db[source].delete_one({"id": subscription_id}, session=session)
        return doc

    async def delete_subscription(self, subscription_id: str) -> int:
        """Move a subscription to the recycle bin and drop its automatic tasks.

        Returns the number of automatic tasks removed.
        """
        self._begin()
        db = self._get_db()
        try:
            async with self._transaction() as session:
                tasks = await db[TASKS].find(
                    {"subscriptionId": subscription_id}, {"_id": 0}, session=session
                ).to_list(length=None)
                moved = await self._transfer(
                    session, SUBSCRIPTIONS, RECYCLED_SUBSCRIPTIONS, subscription_id,
                    {
                        "status": SubscriptionStatus.DELETED.value,
                        "deletedAt": now_utc(),
                        RECYCLED_TASKS_FIELD: tasks,
                    },
                )
                if moved is None:
                    raise NotFoundError(messages.SUBSCRIPTION_NOT_FOUND)
                result = await db[TASKS].delete_many({"subscriptionId": subscription_id}, session=session)
        except NotFoundError as e:
            self._record_error(e.message)
            raise
        except PyMongoError as e:
            raise self._fail(messages.DELETE_SUBSCRIPTION_FAILED, e)

        logger.info(f"Subscription {subscription_id} recycled, {result.deleted_count} automatic tasks removed")
        self._done()
        await self._refresh(recycled=True)
        return result.deleted_count

    async def restore_subscription(self, subscription_id: str) -> int:
        """Move a subscription back from the recycle bin, with the tasks it had.

        Returns the number of automatic tasks restored.
        """
        self._begin()
        db = self._get_db()
        try:
            async with self._transaction() as session:
                restored = await self._transfer(
                    session, RECYCLED_SUBSCRIPTIONS, SUBSCRIPTIONS, subscription_id,
                    {"status": SubscriptionStatus.ACTIVE.value, "deletedAt": None},
                    strip=(RECYCLED_TASKS_FIELD,),
                )
                if restored is None:
                    raise NotFoundError(messages.RECYCLED_NOT_FOUND)
                tasks = restored.get(RECYCLED_TASKS_FIELD) or []
                if tasks:
                    await db[TASKS].insert_many(tasks, session=session)
        except NotFoundError as e:
            self._record_error(e.message)
            raise
        except PyMongoError as e:
            raise self._fail(messages.RESTORE_SUBSCRIPTION_FAILED, e)

        logger.info(f"Subscription {subscription_id} restored with {len(tasks)} automatic tasks")
        self._done()
        await self._refresh(recycled=True)
        return len(tasks)

    async def purge_recycled_subscription(self, subscription_id: str) -> None:
        """Permanently remove a subscription from the recycle bin."""
        self._begin()
        db = self._get_db()
        try:
            result = await db[RECYCLED_SUBSCRIPTIONS].delete_one({"id": subscription_id})
        except PyMongoError as e:
            raise self._fail(messages.PURGE_SUBSCRIPTION_FAILED, e)
        if result.deleted_count == 0:
            self._record_error(messages.RECYCLED_NOT_FOUND)
            raise NotFoundError(messages.RECYCLED_NOT_FOUND)

        logger.info(f"Recycled subscription {subscription_id} purged")
        self._done()
        try:
            await self.fetch_recycled_subscriptions()
        except StoreError as e:
            logger.warning(f"Refetch after purge failed: {e.message}")

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    async def import_subscriptions(self, payload: Any) -> int:
        """Import a JSON array of subscriptions as one batch (upsert by id)."""
        try:
            records = export_service.parse_import(payload)
        except SubscriptionValidationError as e:
            self._record_error(e.message)
            raise

        created_at = to_iso_timestamp(now_utc())
        docs = []
        for record in records:
            if not record.get("createdAt"):
                record["createdAt"] = created_at
            docs.append(subscription_to_document(record))

        self._begin()
        db = self._get_db()
        try:
            async with self._transaction() as session:
                for doc in docs:
                    await db[SUBSCRIPTIONS].replace_one({"id": doc["id"]}, doc, upsert=True, session=session)
        except PyMongoError as e:
            raise self._fail(messages.IMPORT_FAILED, e)

        logger.info(messages.IMPORT_SUCCESS.format(count=len(docs)))
        self._done()
        await self._refresh()
        return len(docs)

    async def export_subscriptions(self, fmt: ExportFormat) -> ExportFile:
        """Export the current active subscriptions, fetched fresh from the store."""
        subscriptions = await self.fetch_subscriptions()
        if not subscriptions:
            self._record_error(messages.NO_ACTIVE_SUBSCRIPTIONS)
            raise NotFoundError(messages.NO_ACTIVE_SUBSCRIPTIONS)
        self._begin()
        try:
            export = export_service.export_subscriptions(subscriptions, fmt)
        except Exception as e:
            raise self._fail(messages.EXPORT_FAILED, e)
        self._done()
        return export


def is_active(subscription: Dict[str, Any]) -> bool:
    return (subscription.get("status") or SubscriptionStatus.ACTIVE.value) == SubscriptionStatus.ACTIVE.value


def summarize_subscriptions(
    subscriptions: List[Dict[str, Any]],
    tasks: List[Dict[str, Any]],
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Dashboard read model: tier counts of active subscriptions, expiring subscriptions and task performance."""
    tiers = {"gold": 0, "silver": 0, "bronze": 0, "regular": 0}
    for subscription in filter(is_active, subscriptions):
        tier = subscription.get("tier") or "regular"
        tiers[tier] = tiers.get(tier, 0) + 1

    all_tasks = [t for t in tasks if not t.get("isDeleted")]
    for subscription in subscriptions:
        all_tasks.extend(subscription.get("manualTasks") or [])
    completed = sum(1 for t in all_tasks if t.get("status") == TaskStatus.COMPLETED.value)

    return {
        "total": len(subscriptions),
        "tiers": tiers,
        "expiring_soon": [
            s["id"] for s in subscriptions if is_expiring_soon(s.get("endDate"), today)
        ],
        "tasks": {
            "total": len(all_tasks),
            "completed": completed,
            "performance": calculate_performance(completed, len(all_tasks)),
        },
    }


subscription_store = SubscriptionStore()
