"""Builds a complete subscription (price, end date, task split) from form input."""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional
import logging
import uuid

from models import (
    SchedulingType, ServiceCategory, SubscriptionForm, SubscriptionStatus, Task,
)
from services.task_generator import build_manual_tasks, generate_tasks, service_description
from services.tier_classifier import tier_for
from utils.timestamps import now_utc, parse_date, to_iso_timestamp

logger = logging.getLogger(__name__)

DESIGN_VERB = "تصميم"
MANAGEMENT_VERB = "إدارة"


@dataclass
class SubscriptionDraft:
    """A subscription ready to persist, with its automatic tasks kept apart.

    ``subscription`` already embeds ``manual_tasks`` under ``manualTasks``.
    """
    subscription: dict
    automatic_tasks: List[Task] = field(default_factory=list)
    manual_tasks: List[Task] = field(default_factory=list)


def add_months(start: date, months: int) -> date:
    """
    Add calendar months, clamping the day to the target month
    (e.g. Jan 31 + 1 month => Feb 28/29).
    """
    y = start.year + (start.month - 1 + months) // 12
    m = (start.month - 1 + months) % 12 + 1
    if m == 12:
        next_month = date(y + 1, 1, 1)
    else:
        next_month = date(y, m + 1, 1)
    last_day = next_month - timedelta(days=1)
    return date(y, m, min(start.day, last_day.day))


def calculate_end_date(start_date: str, duration_months: int) -> str:
    """End date as YYYY-MM-DD, or "" when the start date is unparseable."""
    start = parse_date(start_date)
    if start is None:
        logger.error(f"Error calculating end date: invalid start date {start_date!r}")
        return ""
    return add_months(start, duration_months).isoformat()


def calculate_total_price(form: SubscriptionForm) -> float:
    total = 0.0
    total += sum(s.price for s in form.websiteServices)
    total += sum(s.price * s.monthlyInstances * form.duration for s in form.designServices)
    total += sum(s.price * s.monthlyUpdates * form.duration for s in form.managementServices)
    total += sum(s.price for s in form.advertisingServices)
    return total


def build_subscription(
    form: SubscriptionForm,
    subscription_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SubscriptionDraft:
    subscription_id = subscription_id or str(uuid.uuid4())
    end_date = calculate_end_date(form.startDate, form.duration)

    automatic_tasks: List[Task] = []
    manual_tasks: List[Task] = []

    scheduled = [
        (ServiceCategory.DESIGN, DESIGN_VERB, s, s.monthlyInstances) for s in form.designServices
    ] + [
        (ServiceCategory.MANAGEMENT, MANAGEMENT_VERB, s, s.monthlyUpdates) for s in form.managementServices
    ]

    for category, verb, service, per_month in scheduled:
        total_instances = per_month * form.duration
        description = service_description(verb, service.type, service.platforms)
        if service.schedulingType == SchedulingType.AUTOMATIC:
            automatic_tasks.extend(generate_tasks(
                subscription_id=subscription_id,
                client_id=form.clientId,
                client_name=form.clientName,
                service_category=category.value,
                service_type=service.type,
                total_instances=total_instances,
                start_date=form.startDate,
                end_date=end_date,
                base_description=description,
            ))
        else:
            manual_tasks.extend(build_manual_tasks(
                subscription_id=subscription_id,
                client_id=form.clientId,
                client_name=form.clientName,
                service_category=category.value,
                service_type=service.type,
                total_instances=total_instances,
                base_description=description,
            ))

    start = parse_date(form.startDate)
    subscription = form.model_dump(mode="json")
    subscription.update({
        "id": subscription_id,
        "startDate": start.isoformat() if start else form.startDate,
        "endDate": end_date,
        "totalPrice": calculate_total_price(form),
        "manualTasks": [t.model_dump(mode="json") for t in manual_tasks],
        "tier": tier_for(form).value,
        "status": SubscriptionStatus.ACTIVE.value,
        "createdAt": to_iso_timestamp(now or now_utc()),
    })

    return SubscriptionDraft(
        subscription=subscription,
        automatic_tasks=automatic_tasks,
        manual_tasks=manual_tasks,
    )
