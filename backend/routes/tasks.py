from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from middleware import require_auth
from models import TaskStatus, TaskStatusUpdate, UserProfile
from services.store_errors import NotFoundError, StoreError
from services.task_service import task_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/tasks", tags=["tasks"])


def _http_error(e: StoreError) -> HTTPException:
    code = status.HTTP_404_NOT_FOUND if isinstance(e, NotFoundError) else status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=e.message)


@router.get("")
async def list_tasks(
    subscription_id: Optional[str] = None,
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    include_deleted: bool = False,
    user: UserProfile = Depends(require_auth),
) -> List[dict]:
    try:
        return await task_service.list_tasks(subscription_id, status_filter, include_deleted)
    except StoreError as e:
        raise _http_error(e)


@router.patch("/{task_id}/status")
async def update_task_status(task_id: str, data: TaskStatusUpdate, user: UserProfile = Depends(require_auth)):
    try:
        return await task_service.update_task_status(task_id, data.status)
    except StoreError as e:
        raise _http_error(e)


@router.delete("/{task_id}")
async def delete_task(task_id: str, user: UserProfile = Depends(require_auth)):
    try:
        return await task_service.soft_delete_task(task_id)
    except StoreError as e:
        raise _http_error(e)
