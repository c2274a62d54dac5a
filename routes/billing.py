# routes/billing.py
from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from core.database import get_session
from core.payment_utils import check_subscription_access
from core.security import get_current_user
from models.models import Profile, SubscriptionRecord
from schemas.common_schema import ApiResponse
from schemas.subscription_schema import SubscriptionRead, SubscriptionSummary

router = APIRouter(prefix="/billing", tags=["Billing"])


@router.get("/subscription", response_model=ApiResponse)
def get_my_subscription(
    current_user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Caller's mirrored subscription and whether it currently grants access."""
    record = session.exec(
        select(SubscriptionRecord)
        .where(SubscriptionRecord.user_id == current_user.id)
        .order_by(SubscriptionRecord.updated_at.desc())
    ).first()

    summary = SubscriptionSummary(
        has_access=check_subscription_access(record),
        subscription=SubscriptionRead.model_validate(record) if record else None,
    )
    return {"success": True, "data": summary.model_dump(mode="json")}
