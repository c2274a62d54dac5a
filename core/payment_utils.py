# core/payment_utils.py
from datetime import datetime
from typing import Any, Dict, Optional

from core.config import settings
from models.models import SubscriptionRecord, SubscriptionStatus

UNKNOWN_PLAN = "Unknown"
ACTIVE_STATUSES = {SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value}


def resolve_plan_name(price_id: Optional[str], catalog: Optional[Dict[str, Dict[str, Any]]] = None) -> str:
    """Match a Stripe price id against the static plan table (monthly or yearly)."""
    if not price_id:
        return UNKNOWN_PLAN
    catalog = catalog if catalog is not None else settings.PLAN_CATALOG
    for plan in catalog.values():
        if price_id in (plan.get("month_price_id"), plan.get("year_price_id")):
            return plan["name"]
    return UNKNOWN_PLAN


def is_status_active(status: Optional[str]) -> bool:
    return status in ACTIVE_STATUSES


def check_subscription_access(record: Optional[SubscriptionRecord], now: Optional[datetime] = None) -> bool:
    """
    Access control helper: a residence keeps dashboard access while its
    mirrored subscription is active and not past its expiration.
    """
    if record is None or not record.plan_active:
        return False
    if record.plan_expires is None:
        return True
    return record.plan_expires > (now or datetime.utcnow())
