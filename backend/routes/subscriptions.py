"""Subscription Routes - create, edit, recycle bin, export/import."""
from typing import Any, List, Optional
from urllib.parse import quote
import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from middleware import require_auth
from models import ManualTaskEdit, SubscriptionForm, SubscriptionUpdate, Tier, UserProfile
from services.export_service import ExportFormat
from services.store_errors import NotFoundError, StoreError, SubscriptionValidationError
from services.subscription_builder import build_subscription
from services.subscription_store import is_active, subscription_store, summarize_subscriptions
from services.task_service import task_service
from utils import messages

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


def _http_error(e: StoreError) -> HTTPException:
    if isinstance(e, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, SubscriptionValidationError):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=e.message)


@router.get("")
async def list_subscriptions(
    tier: Optional[Tier] = Query(None),
    user: UserProfile = Depends(require_auth),
) -> List[dict]:
    """All subscriptions, or the active ones of a single tier when `tier` is given."""
    try:
        subscriptions = await subscription_store.fetch_subscriptions()
    except StoreError as e:
        raise _http_error(e)
    if tier is None:
        return subscriptions
    return [s for s in subscriptions if s.get("tier") == tier.value and is_active(s)]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_subscription(form: SubscriptionForm, user: UserProfile = Depends(require_auth)):
    """Create a subscription and generate its task schedule."""
    draft = build_subscription(form)
    try:
        subscription_id = await subscription_store.add_subscription_and_tasks(draft)
    except StoreError as e:
        raise _http_error(e)

    logger.info(f"Subscription {subscription_id} created by {user.id}")
    return {
        "id": subscription_id,
        "subscription": draft.subscription,
        "automatic_tasks": len(draft.automatic_tasks),
        "manual_tasks": len(draft.manual_tasks),
    }


@router.get("/summary")
async def subscriptions_summary(user: UserProfile = Depends(require_auth)):
    try:
        subscriptions = await subscription_store.fetch_subscriptions()
        tasks = await task_service.list_tasks()
    except StoreError as e:
        raise _http_error(e)
    return summarize_subscriptions(subscriptions, tasks)


@router.get("/recycled")
async def list_recycled(user: UserProfile = Depends(require_auth)) -> List[dict]:
    try:
        return await subscription_store.fetch_recycled_subscriptions()
    except StoreError as e:
        raise _http_error(e)


@router.post("/recycled/{subscription_id}/restore")
async def restore_subscription(subscription_id: str, user: UserProfile = Depends(require_auth)):
    try:
        restored_tasks = await subscription_store.restore_subscription(subscription_id)
    except StoreError as e:
        raise _http_error(e)
    return {"id": subscription_id, "restored_tasks": restored_tasks}


@router.delete("/recycled/{subscription_id}")
async def purge_subscription(subscription_id: str, user: UserProfile = Depends(require_auth)):
    try:
        await subscription_store.purge_recycled_subscription(subscription_id)
    except StoreError as e:
        raise _http_error(e)
    logger.info(f"Subscription {subscription_id} purged by {user.id}")
    return {"id": subscription_id, "purged": True}


@router.get("/export")
async def export_subscriptions(
    format: ExportFormat = Query(ExportFormat.JSON),
    user: UserProfile = Depends(require_auth),
):
    """Download active subscriptions as JSON, Excel or PDF."""
    try:
        export = await subscription_store.export_subscriptions(format)
    except StoreError as e:
        raise _http_error(e)

    return StreamingResponse(
        iter([export.content]),
        media_type=export.media_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(export.filename)}"}
    )


@router.post("/import")
async def import_subscriptions(payload: Any = Body(...), user: UserProfile = Depends(require_auth)):
    """Import a JSON array of subscriptions; an invalid file imports nothing."""
    try:
        count = await subscription_store.import_subscriptions(payload)
    except StoreError as e:
        raise _http_error(e)
    return {"imported": count, "message": messages.IMPORT_SUCCESS.format(count=count)}


@router.get("/{subscription_id}")
async def get_subscription(subscription_id: str, user: UserProfile = Depends(require_auth)):
    try:
        return await subscription_store.get_subscription(subscription_id)
    except StoreError as e:
        raise _http_error(e)


@router.put("/{subscription_id}")
async def update_subscription(
    subscription_id: str,
    data: SubscriptionUpdate,
    user: UserProfile = Depends(require_auth),
):
    try:
        subscription = await subscription_store.get_subscription(subscription_id)
        subscription.update(data.model_dump(mode="json", exclude_unset=True))
        return await subscription_store.update_subscription(subscription)
    except StoreError as e:
        raise _http_error(e)


@router.delete("/{subscription_id}")
async def delete_subscription(subscription_id: str, user: UserProfile = Depends(require_auth)):
    """Move a subscription to the recycle bin, removing its automatic tasks."""
    try:
        removed_tasks = await subscription_store.delete_subscription(subscription_id)
    except StoreError as e:
        raise _http_error(e)
    logger.info(f"Subscription {subscription_id} recycled by {user.id}")
    return {"id": subscription_id, "removed_tasks": removed_tasks}


@router.post("/{subscription_id}/manual-tasks/{task_id}/toggle")
async def toggle_manual_task(subscription_id: str, task_id: str, user: UserProfile = Depends(require_auth)):
    try:
        return await subscription_store.toggle_manual_task(subscription_id, task_id)
    except StoreError as e:
        raise _http_error(e)


@router.patch("/{subscription_id}/manual-tasks/{task_id}")
async def edit_manual_task(
    subscription_id: str,
    task_id: str,
    data: ManualTaskEdit,
    user: UserProfile = Depends(require_auth),
):
    try:
        return await subscription_store.edit_manual_task(subscription_id, task_id, data.description)
    except StoreError as e:
        raise _http_error(e)
