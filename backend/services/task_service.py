"""Automatic task collection: listing and status changes.

Automatic tasks are created and cascade-deleted by the subscription store;
this service only reads and updates them individually.
"""
from typing import Any, Dict, List, Optional
import logging

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from database import database, TASKS
from models import TaskStatus
from services.store_errors import NotFoundError, StoreError
from utils import messages
from utils.timestamps import document_to_task, now_utc, to_iso_timestamp

logger = logging.getLogger(__name__)


class TaskService:

    def _get_db(self):
        return database.get_db()

    async def list_tasks(
        self,
        subscription_id: Optional[str] = None,
        status: Optional[TaskStatus] = None,
        include_deleted: bool = False,
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        if subscription_id:
            query["subscriptionId"] = subscription_id
        if status:
            query["status"] = TaskStatus(status).value
        if not include_deleted:
            query["isDeleted"] = {"$ne": True}

        db = self._get_db()
        try:
            docs = await db[TASKS].find(query, {"_id": 0}).sort("dueDate", 1).to_list(length=None)
        except PyMongoError as e:
            logger.error(f"Error fetching tasks: {e}")
            raise StoreError(messages.FETCH_TASKS_FAILED)
        return [document_to_task(doc) for doc in docs]

    async def _update(self, task_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        db = self._get_db()
        try:
            doc = await db[TASKS].find_one_and_update(
                {"id": task_id},
                {"$set": changes},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error(f"Error updating task {task_id}: {e}")
            raise StoreError(messages.UPDATE_TASK_FAILED)
        if doc is None:
            raise NotFoundError(messages.TASK_NOT_FOUND)
        return document_to_task(doc)

    async def update_task_status(self, task_id: str, status: TaskStatus) -> Dict[str, Any]:
        status = TaskStatus(status)
        completed_at = to_iso_timestamp(now_utc()) if status == TaskStatus.COMPLETED else None
        task = await self._update(task_id, {"status": status.value, "completedAt": completed_at})
        logger.info(f"Task {task_id} status -> {status.value}")
        return task

    async def soft_delete_task(self, task_id: str) -> Dict[str, Any]:
        task = await self._update(task_id, {"isDeleted": True})
        logger.info(f"Task {task_id} marked deleted")
        return task


task_service = TaskService()
