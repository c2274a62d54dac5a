# ================================================================
# services/payment_service.py: Stripe gateway
# ================================================================
import logging
from typing import Any, Dict, List, Optional

import stripe
from fastapi import Request

logger = logging.getLogger(__name__)

# incomplete_expired and canceled are terminal on the Stripe side
CANCELLABLE_STATUSES = ("active", "trialing", "past_due", "incomplete")


def _to_dict(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, dict):
        return obj
    return dict(obj)


class StripeGateway:
    """
    Thin wrapper over the Stripe SDK. One instance is built at application
    startup and handed to request handlers, so tests can swap in a fake.
    """

    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key
        if not api_key:
            logger.warning("💳 STRIPE_SECRET_KEY not configured. Stripe calls will fail.")

    def construct_event(self, payload: bytes, sig_header: str, secret: str) -> Dict[str, Any]:
        """
        Verify the webhook signature and return the event as a plain dict.
        Raises ValueError (bad payload) or stripe.SignatureVerificationError.
        """
        event = stripe.Webhook.construct_event(payload=payload, sig_header=sig_header, secret=secret)
        return _to_dict(event)

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        subscription = stripe.Subscription.retrieve(subscription_id, api_key=self.api_key)
        return _to_dict(subscription)

    def retrieve_customer(self, customer_id: str) -> Dict[str, Any]:
        customer = stripe.Customer.retrieve(customer_id, api_key=self.api_key)
        return _to_dict(customer)

    def cancel_customer_subscriptions(self, customer_id: str) -> List[str]:
        """Cancel every live subscription of a customer. Returns the cancelled ids."""
        cancelled: List[str] = []
        subscriptions = stripe.Subscription.list(customer=customer_id, status="all", limit=100, api_key=self.api_key)
        for subscription in subscriptions.auto_paging_iter():
            if subscription["status"] not in CANCELLABLE_STATUSES:
                continue
            try:
                stripe.Subscription.cancel(subscription["id"], api_key=self.api_key)
                cancelled.append(subscription["id"])
                logger.info("[Stripe] ✅ Cancelled subscription %s", subscription["id"])
            except stripe.StripeError as e:
                logger.error("[Stripe] ❌ Error cancelling subscription %s: %s", subscription["id"], e)
        return cancelled


def get_stripe_gateway(request: Request) -> StripeGateway:
    """FastAPI dependency: the gateway created in the application lifespan."""
    return request.app.state.stripe_gateway
