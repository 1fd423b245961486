"""Subscription tier from the breadth of purchased service categories.

The tier is derived data: it is persisted for querying but must be
recomputed whenever any of the four service lists changes.
"""
from typing import Any, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from models import Tier

CATEGORY_FIELDS = (
    "websiteServices",
    "designServices",
    "managementServices",
    "advertisingServices",
)

TIER_BY_CATEGORY_COUNT = {
    4: Tier.GOLD,
    3: Tier.SILVER,
    2: Tier.BRONZE,
}


def classify_tier(
    website: Optional[Sequence[Any]],
    design: Optional[Sequence[Any]],
    management: Optional[Sequence[Any]],
    advertising: Optional[Sequence[Any]],
) -> Tier:
    populated = sum(1 for services in (website, design, management, advertising) if services)
    return TIER_BY_CATEGORY_COUNT.get(populated, Tier.REGULAR)


def tier_for(subscription: Union[Mapping[str, Any], BaseModel]) -> Tier:
    """Classify a subscription-shaped dict or model."""
    if isinstance(subscription, BaseModel):
        subscription = subscription.model_dump()
    return classify_tier(*(subscription.get(field) for field in CATEGORY_FIELDS))
