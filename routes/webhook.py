# routes/webhook.py
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from core.config import settings
from core.database import get_session
from services.billing import handle_billing_event
from services.payment_service import StripeGateway, get_stripe_gateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])


@router.post("/webhook")
@router.post("/api/webhook/stripe", include_in_schema=False)
async def stripe_webhook(
    request: Request,
    session: Session = Depends(get_session),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    """Stripe subscription events. Answers 200 unless the request itself is not trusted."""
    payload = await request.body()
    result = handle_billing_event(
        payload,
        request.headers.get("stripe-signature"),
        session=session,
        gateway=gateway,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
    )
    return JSONResponse(status_code=result.status_code, content=result.to_body())
