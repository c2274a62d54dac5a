# ================================================================
# services/billing.py: Stripe subscription reconciliation
# ================================================================
"""
Keeps `stripe_customers` in step with Stripe's view of each subscription.

Events arrive through the webhook route, are verified against the signing
secret, then dispatched to one handler per event type. Handlers write at most
one SubscriptionRecord row. Processing errors are logged and reported back to
Stripe as a 200 so the event is not redelivered forever; the row stays stale
until the next event for that subscription.

Events are applied in arrival order with last-write-wins semantics.
"""
import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.payment_utils import is_status_active, resolve_plan_name
from models.models import SubscriptionRecord, SubscriptionStatus
from services.payment_service import StripeGateway

logger = logging.getLogger(__name__)

NEW_SUBSCRIPTION = "new_subscription"
RENEWAL = "renewal"
CANCELLATION = "cancellation"


@dataclass
class WebhookResult:
    status_code: int
    message: str
    error: Optional[str] = None

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"statusCode": self.status_code, "message": self.message}
        if self.error:
            body["error"] = self.error
        return body


# -------------------------
# Pure helpers
# -------------------------
def calculate_plan_expires_from_interval(interval: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Fallback expiration when Stripe does not report a period end.

    month: same day next month, clamped to that month's last day (Jan 31 -> Feb 28/29)
    year:  same day next year (Feb 29 -> Feb 28 outside leap years)
    other: 30 days
    """
    if not interval:
        return None

    now = now or datetime.utcnow()

    if interval == "month":
        next_month = now.month + 1
        next_year = now.year
        if next_month > 12:
            next_month = 1
            next_year += 1
        days_in_next_month = calendar.monthrange(next_year, next_month)[1]
        return now.replace(year=next_year, month=next_month, day=min(now.day, days_in_next_month))

    if interval == "year":
        next_year = now.year + 1
        days_in_month = calendar.monthrange(next_year, now.month)[1]
        return now.replace(year=next_year, day=min(now.day, days_in_month))

    return now + timedelta(days=30)


def classify_subscription_update(subscription: Dict[str, Any]) -> str:
    """
    Three-way classification of a customer.subscription.updated payload:
    cancellation when a period-end cancel has been requested, new subscription
    when the period started at creation, renewal otherwise.
    """
    if subscription.get("cancel_at_period_end") and subscription.get("canceled_at"):
        return CANCELLATION
    if subscription.get("created") == _current_period_start(subscription):
        return NEW_SUBSCRIPTION
    return RENEWAL


def _stripe_id(value: Any) -> Optional[str]:
    """Stripe fields may hold an id string or an expanded object."""
    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get("id")
    return getattr(value, "id", None)


def _first_item(subscription: Dict[str, Any]) -> Dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _current_period_start(subscription: Dict[str, Any]) -> Optional[int]:
    # Newer API versions moved the period fields onto the subscription item
    return subscription.get("current_period_start") or _first_item(subscription).get("current_period_start")


def _current_period_end(subscription: Dict[str, Any]) -> Optional[int]:
    return subscription.get("current_period_end") or _first_item(subscription).get("current_period_end")


def _price_details(subscription: Dict[str, Any]) -> Dict[str, Any]:
    price = _first_item(subscription).get("price") or {}
    unit_amount = price.get("unit_amount") or 0
    return {
        "price_id": price.get("id"),
        "amount": unit_amount / 100 if unit_amount > 0 else None,
        "currency": subscription.get("currency") or "usd",
        "interval": (price.get("recurring") or {}).get("interval") or "month",
    }


def compute_plan_expires(subscription: Dict[str, Any], interval: Optional[str]) -> Optional[datetime]:
    period_end = _current_period_end(subscription)
    if isinstance(period_end, (int, float)) and period_end > 0:
        return datetime.fromtimestamp(period_end, tz=timezone.utc).replace(tzinfo=None)
    plan_expires = calculate_plan_expires_from_interval(interval)
    logger.info("[Webhook] current_period_end not available, calculated plan_expires from interval %s: %s", interval, plan_expires)
    return plan_expires


def _invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    subscription_id = _stripe_id(invoice.get("subscription"))
    if subscription_id:
        return subscription_id
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return _stripe_id(details.get("subscription"))


# -------------------------
# Reconciler
# -------------------------
class BillingReconciler:
    """Applies verified Stripe events to the subscription mirror."""

    def __init__(self, session: Session, gateway: StripeGateway, catalog: Optional[Dict[str, Dict[str, Any]]] = None):
        self.session = session
        self.gateway = gateway
        self.catalog = catalog
        self.handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            "checkout.session.completed": self.handle_checkout_session_completed,
            "customer.subscription.created": self.handle_subscription_created,
            "customer.subscription.updated": self.handle_subscription_updated,
            "customer.subscription.deleted": self.handle_subscription_deleted,
            "invoice.payment_succeeded": self.handle_invoice_paid,
            "invoice.paid": self.handle_invoice_paid,
            "invoice.payment_failed": self.handle_invoice_payment_failed,
            "charge.refunded": self.handle_charge_refunded,
        }

    def dispatch(self, event: Dict[str, Any]) -> None:
        event_type = event.get("type")
        data_object = (event.get("data") or {}).get("object") or {}
        handler = self.handlers.get(event_type)
        if handler is None:
            logger.info("[Webhook] ℹ️ Unhandled event type: %s", event_type)
            return
        handler(data_object)

    # ---- shared pieces ----

    def _billing_fields(self, subscription: Dict[str, Any]) -> Dict[str, Any]:
        price = _price_details(subscription)
        return {
            "plan_name": resolve_plan_name(price["price_id"], self.catalog),
            "price_id": price["price_id"],
            "amount": price["amount"],
            "currency": price["currency"],
            "interval": price["interval"],
            "subscription_status": subscription.get("status"),
            "plan_expires": compute_plan_expires(subscription, price["interval"]),
        }

    def _apply(self, record: SubscriptionRecord, values: Dict[str, Any]) -> None:
        for key, value in values.items():
            setattr(record, key, value)
        record.updated_at = datetime.utcnow()
        record.refresh_days_remaining()

    def upsert_by_customer(self, values: Dict[str, Any]) -> Optional[SubscriptionRecord]:
        """Insert or update the row keyed on stripe_customer_id, falling back to a plain insert."""
        try:
            record = self.session.exec(
                select(SubscriptionRecord).where(SubscriptionRecord.stripe_customer_id == values["stripe_customer_id"])
            ).first()
            if record is None:
                record = SubscriptionRecord(user_id=values["user_id"], stripe_customer_id=values["stripe_customer_id"])
            self._apply(record, values)
            self.session.add(record)
            self.session.commit()
            self.session.refresh(record)
            logger.info("[Webhook] ✅ Saved billing data for customer %s", values["stripe_customer_id"])
            return record
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("[Webhook] ❌ Error saving stripe_customers for %s: %s", values.get("stripe_customer_id"), e)

        logger.info("[Webhook] Attempting fallback insert...")
        try:
            record = SubscriptionRecord(user_id=values["user_id"], stripe_customer_id=values["stripe_customer_id"])
            self._apply(record, values)
            self.session.add(record)
            self.session.commit()
            self.session.refresh(record)
            logger.info("[Webhook] ✅ Fallback insert succeeded for %s", values["stripe_customer_id"])
            return record
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("[Webhook] ❌ Fallback insert also failed for %s: %s", values.get("stripe_customer_id"), e)
            return None

    def update_by_subscription(self, subscription_id: str, values: Dict[str, Any]) -> Optional[SubscriptionRecord]:
        record = self.session.exec(
            select(SubscriptionRecord).where(SubscriptionRecord.subscription_id == subscription_id)
        ).first()
        if record is None:
            logger.warning("[Webhook] No stripe_customers row for subscription %s", subscription_id)
            return None
        self._apply(record, values)
        self.session.add(record)
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        self.session.refresh(record)
        return record

    # ---- handlers ----

    def handle_checkout_session_completed(self, checkout: Dict[str, Any]) -> None:
        user_id = (checkout.get("metadata") or {}).get("user_id")
        customer_id = _stripe_id(checkout.get("customer"))
        subscription_id = _stripe_id(checkout.get("subscription"))

        if not user_id:
            logger.error("[Webhook] Missing user_id in session metadata (session %s)", checkout.get("id"))
            return
        if not customer_id:
            logger.error("[Webhook] Missing customer ID in session %s", checkout.get("id"))
            return
        if not subscription_id:
            logger.error("[Webhook] Missing subscription ID in session %s (mode=%s)", checkout.get("id"), checkout.get("mode"))
            return

        subscription = self.gateway.retrieve_subscription(subscription_id)
        values = self._billing_fields(subscription)
        values.update(
            user_id=str(user_id),
            stripe_customer_id=customer_id,
            subscription_id=subscription_id,
            plan_active=True,
        )
        self.upsert_by_customer(values)

    def resolve_user_id(self, subscription: Dict[str, Any], customer_id: str) -> Optional[str]:
        """metadata -> existing stripe_customers row -> Stripe customer metadata."""
        user_id = (subscription.get("metadata") or {}).get("user_id")
        if user_id:
            return str(user_id)

        existing = self.session.exec(
            select(SubscriptionRecord).where(SubscriptionRecord.stripe_customer_id == customer_id)
        ).first()
        if existing and existing.user_id:
            logger.info("[Webhook] Found user_id from existing stripe_customers: %s", existing.user_id)
            return existing.user_id

        try:
            customer = self.gateway.retrieve_customer(customer_id)
        except stripe.StripeError as e:
            logger.error("[Webhook] Error retrieving customer %s from Stripe: %s", customer_id, e)
            return None
        if customer and not customer.get("deleted"):
            user_id = (customer.get("metadata") or {}).get("user_id")
            if user_id:
                logger.info("[Webhook] Found user_id from customer metadata: %s", user_id)
                return str(user_id)
        return None

    def handle_subscription_created(self, subscription: Dict[str, Any]) -> None:
        subscription_id = subscription.get("id")
        customer_id = _stripe_id(subscription.get("customer"))
        if not customer_id or not subscription_id:
            logger.error("[Webhook] Missing customer or subscription ID in subscription.created")
            return

        user_id = self.resolve_user_id(subscription, customer_id)
        if not user_id:
            logger.warning(
                "[Webhook] ⚠️ Cannot save subscription %s for customer %s - user_id not found; "
                "checkout.session.completed will record it",
                subscription_id,
                customer_id,
            )
            return

        values = self._billing_fields(subscription)
        values.update(
            user_id=user_id,
            stripe_customer_id=customer_id,
            subscription_id=subscription_id,
            plan_active=is_status_active(subscription.get("status")),
        )
        self.upsert_by_customer(values)

    def handle_subscription_updated(self, subscription: Dict[str, Any]) -> None:
        subscription_id = subscription.get("id")
        kind = classify_subscription_update(subscription)
        values = self._billing_fields(subscription)

        if kind == CANCELLATION:
            # Still active until the end of the paid period
            values["plan_active"] = bool(subscription.get("cancel_at_period_end"))
            logger.info("[Webhook] Subscription cancelled: %s (cancel_at_period_end=%s)", subscription_id, subscription.get("cancel_at_period_end"))
        else:
            values["plan_active"] = is_status_active(subscription.get("status"))
            logger.info("[Webhook] Subscription %s: %s (%s)", kind, subscription_id, values["plan_name"])

        self.update_by_subscription(subscription_id, values)

    def handle_subscription_deleted(self, subscription: Dict[str, Any]) -> None:
        subscription_id = subscription.get("id")
        record = self.update_by_subscription(
            subscription_id,
            {
                "plan_active": False,
                "subscription_id": None,
                "plan_expires": None,
                "subscription_status": SubscriptionStatus.CANCELED.value,
            },
        )
        if record:
            logger.info("[Webhook] Deactivated subscription %s", subscription_id)

    def handle_invoice_paid(self, invoice: Dict[str, Any]) -> None:
        """Payment cleared: force the subscription back to active whatever its previous status."""
        subscription_id = _invoice_subscription_id(invoice)
        if not subscription_id:
            logger.info("[Webhook] Invoice %s has no subscription (one-time payment), skipping", invoice.get("id"))
            return
        if invoice.get("status") and invoice.get("status") != "paid":
            logger.warning("[Webhook] Invoice %s status is %s, not paid; skipping", invoice.get("id"), invoice.get("status"))
            return

        subscription = self.gateway.retrieve_subscription(subscription_id)
        values = self._billing_fields(subscription)
        values.update(subscription_status=SubscriptionStatus.ACTIVE.value, plan_active=True)
        record = self.update_by_subscription(subscription_id, values)
        if record:
            logger.info("[Webhook] ✅ Payment confirmed for %s (invoice %s), subscription set to active", subscription_id, invoice.get("id"))

    def handle_invoice_payment_failed(self, invoice: Dict[str, Any]) -> None:
        # Stripe retries the charge; deactivation waits for customer.subscription.deleted
        logger.info(
            "[Webhook] invoice.payment_failed: invoice=%s subscription=%s attempt=%s",
            invoice.get("id"),
            _invoice_subscription_id(invoice),
            invoice.get("attempt_count"),
        )

    def handle_charge_refunded(self, charge: Dict[str, Any]) -> None:
        logger.info(
            "[Webhook] charge.refunded: charge=%s amount_refunded=%s customer=%s",
            charge.get("id"),
            (charge.get("amount_refunded") or 0) / 100,
            _stripe_id(charge.get("customer")),
        )


# -------------------------
# Entry point
# -------------------------
def handle_billing_event(
    raw_payload: bytes,
    signature_header: Optional[str],
    *,
    session: Optional[Session],
    gateway: StripeGateway,
    webhook_secret: Optional[str],
    catalog: Optional[Dict[str, Dict[str, Any]]] = None,
) -> WebhookResult:
    if not signature_header:
        logger.error("[Webhook] Missing stripe-signature header")
        return WebhookResult(400, "Missing signature")

    if not webhook_secret:
        logger.error("[Webhook] STRIPE_WEBHOOK_SECRET not configured")
        return WebhookResult(500, "Webhook secret not configured")

    if not gateway.api_key:
        logger.error("[Webhook] STRIPE_SECRET_KEY not configured")
        return WebhookResult(500, "Stripe secret key not configured")

    try:
        event = gateway.construct_event(raw_payload, signature_header, webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.error("[Webhook] ❌ Signature verification failed: %s", e)
        return WebhookResult(400, "Webhook signature verification failed")

    if session is None:
        logger.error("[Webhook] Database session unavailable")
        return WebhookResult(500, "Database connection failed")

    event_type = event.get("type")
    logger.info("[Webhook] Signature verified, event type: %s", event_type)

    try:
        BillingReconciler(session, gateway, catalog).dispatch(event)
    except Exception as e:
        # 200 so Stripe does not keep redelivering
        logger.exception("[Webhook] ❌ Error processing webhook event %s: %s", event_type, e)
        return WebhookResult(200, "Event processed with errors", error=str(e))

    logger.info("[Webhook] ✅ Successfully processed event: %s", event_type)
    return WebhookResult(200, "success")
