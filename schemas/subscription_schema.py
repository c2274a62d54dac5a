# subscription_schema.py
from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime


class SubscriptionRead(BaseModel):
    stripe_customer_id: str
    subscription_id: Optional[str] = None
    plan_active: bool
    plan_expires: Optional[datetime] = None
    plan_name: Optional[str] = None
    price_id: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    interval: Optional[str] = None
    subscription_status: Optional[str] = None
    days_remaining: Optional[int] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubscriptionSummary(BaseModel):
    has_access: bool
    subscription: Optional[SubscriptionRead] = None
