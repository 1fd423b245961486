"""Recurring task schedules for design and management services.

Automatic services get their instances spread evenly over the subscription
window; manual services get numbered placeholders with no due date.
"""
from datetime import timedelta
from typing import Iterable, List
import logging
import uuid

from models import SchedulingType, ServiceCategory, Task, TaskStatus
from utils.timestamps import parse_date

logger = logging.getLogger(__name__)

MANUAL_PREFIX = "مهمة يدوية: "
MANUAL_ID_SEGMENT = {
    ServiceCategory.DESIGN.value: "design",
    ServiceCategory.MANAGEMENT.value: "mgmt",
}


def instance_label(index: int, total: int) -> str:
    return f"{index + 1} من {total}"


def service_description(verb: str, service_type: str, platforms: Iterable[str]) -> str:
    names = [getattr(p, "value", p) for p in platforms or []]
    return f"{verb} {service_type} ({', '.join(names)})"


def generate_tasks(
    subscription_id: str,
    client_id: str,
    client_name: str,
    service_category: str,
    service_type: str,
    total_instances: int,
    start_date: str,
    end_date: str,
    base_description: str,
) -> List[Task]:
    """Spread ``total_instances`` automatic tasks evenly from start to end date.

    ``interval = max(1, total_days // total_instances)`` and task ``i`` is due
    ``start + i * interval`` days. When there are more instances than days the
    interval stays at 1, so late tasks can run past ``end_date``.

    Bad input never raises: it is logged and an empty list is returned.
    """
    if not subscription_id or not client_id or not start_date or not end_date:
        logger.error("Missing required parameters for task generation")
        return []

    if total_instances <= 0:
        return []

    start = parse_date(start_date)
    end = parse_date(end_date)
    if start is None or end is None:
        logger.error(f"Invalid date format: start={start_date!r} end={end_date!r}")
        return []

    if start > end:
        logger.error(f"Start date {start} must be before end date {end}")
        return []

    category = getattr(service_category, "value", service_category)
    total_days = (end - start).days
    interval = max(1, total_days // total_instances)

    tasks = []
    for i in range(total_instances):
        due = start + timedelta(days=i * interval)
        tasks.append(Task(
            id=f"{subscription_id}-{category}-{service_type}-{i}-{uuid.uuid4().hex[:12]}",
            description=f"{base_description} - {instance_label(i, total_instances)}",
            clientId=client_id,
            clientName=client_name,
            subscriptionId=subscription_id,
            dueDate=due.isoformat(),
            status=TaskStatus.PENDING,
            serviceCategory=category,
            serviceType=service_type,
            isDeleted=False,
            schedulingType=SchedulingType.AUTOMATIC,
        ))

    logger.info(
        f"Generated {len(tasks)} {category}/{service_type} tasks for subscription "
        f"{subscription_id} every {interval} day(s)"
    )
    return tasks


def build_manual_tasks(
    subscription_id: str,
    client_id: str,
    client_name: str,
    service_category: str,
    service_type: str,
    total_instances: int,
    base_description: str,
) -> List[Task]:
    """Numbered placeholder tasks for manually scheduled services (no due date)."""
    category = getattr(service_category, "value", service_category)
    segment = MANUAL_ID_SEGMENT.get(category, category)
    return [
        Task(
            id=f"{subscription_id}-manual-{segment}-{service_type}-{i + 1}",
            description=f"{MANUAL_PREFIX}{base_description} - {instance_label(i, total_instances)}",
            clientId=client_id,
            clientName=client_name,
            subscriptionId=subscription_id,
            dueDate="",
            status=TaskStatus.PENDING,
            serviceCategory=category,
            serviceType=service_type,
            isDeleted=False,
            schedulingType=SchedulingType.MANUAL,
        )
        for i in range(max(0, total_instances))
    ]
