# ================================================================
# services/account_deletion.py: removing an account and its data
# ================================================================
import logging
from typing import Any, Dict, List, Type

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from core.errors import PermissionDenied, SakanError
from models.models import (
    AccessCode,
    AccessLog,
    Announcement,
    DeletionRequest,
    Delivery,
    Expense,
    Fee,
    Incident,
    Notification,
    Payment,
    Poll,
    PollOption,
    PollVote,
    Profile,
    ProfileResidence,
    ProfileRole,
    Residence,
    SubscriptionRecord,
)
from services.payment_service import StripeGateway
from services.resident_directory import ResidentDirectory

logger = logging.getLogger(__name__)

# Residence-scoped tables, children before parents
RESIDENCE_TABLES: List[Type[SQLModel]] = [Expense, Payment, Fee, Incident, Delivery, AccessLog, Announcement, Notification]

# Optional references to the account: kept rows, reference cleared
NULLABLE_REFERENCES = [
    (Announcement, "created_by"),
    (Expense, "created_by"),
    (Poll, "created_by"),
    (Payment, "verified_by"),
    (Incident, "assigned_to"),
    (AccessLog, "scanned_by"),
    (DeletionRequest, "successor_user_id"),
]

# Rows that only make sense with the account: deleted
OWNED_ROWS = [
    (Notification, "user_id"),
    (PollVote, "user_id"),
    (ProfileResidence, "profile_id"),
    (Delivery, "logged_by"),
    (Delivery, "recipient_id"),
    (Payment, "user_id"),
    (Fee, "user_id"),
    (Incident, "user_id"),
    (AccessLog, "generated_by"),
    (AccessCode, "original_user_id"),
    (DeletionRequest, "syndic_user_id"),
    (SubscriptionRecord, "user_id"),
]


def _rows_where(session: Session, model: Type[SQLModel], column: str, value: Any) -> list:
    return session.exec(select(model).where(getattr(model, column) == value)).all()


def _delete_where(session: Session, model: Type[SQLModel], column: str, value: Any) -> int:
    rows = _rows_where(session, model, column, value)
    for row in rows:
        session.delete(row)
    # Children must be gone before their parents are deleted
    session.flush()
    return len(rows)


def _clear_where(session: Session, model: Type[SQLModel], column: str, value: Any) -> int:
    rows = _rows_where(session, model, column, value)
    for row in rows:
        setattr(row, column, None)
        session.add(row)
    return len(rows)


# -------------------------
# Stripe
# -------------------------
def cancel_stripe_subscriptions(session: Session, gateway: StripeGateway, user_id: str) -> List[str]:
    """Best effort: failures are logged and never block the account change."""
    record = session.exec(select(SubscriptionRecord).where(SubscriptionRecord.user_id == user_id)).first()
    if record is None:
        logger.info("[Account Delete] No Stripe customer found for user %s - skipping subscription cancellation", user_id)
        return []
    try:
        return gateway.cancel_customer_subscriptions(record.stripe_customer_id)
    except stripe.StripeError as e:
        logger.error("[Account Delete] Error cancelling subscriptions for %s: %s", user_id, e)
        return []


# -------------------------
# Residence
# -------------------------
def delete_residence(session: Session, residence_id: int) -> None:
    """Remove a residence and every row scoped to it."""
    logger.info("[Account Delete] Deleting residence %s and all related data...", residence_id)

    polls = _rows_where(session, Poll, "residence_id", residence_id)
    for poll in polls:
        _delete_where(session, PollVote, "poll_id", poll.id)
        _delete_where(session, PollOption, "poll_id", poll.id)
        session.delete(poll)

    for model in RESIDENCE_TABLES:
        _delete_where(session, model, "residence_id", residence_id)

    _delete_where(session, AccessCode, "residence_id", residence_id)
    _delete_where(session, DeletionRequest, "residence_id", residence_id)
    _delete_where(session, ProfileResidence, "residence_id", residence_id)
    _clear_where(session, Profile, "residence_id", residence_id)

    residence = session.get(Residence, residence_id)
    if residence is not None:
        session.delete(residence)


# -------------------------
# Account
# -------------------------
def delete_user_data(session: Session, user_id: str) -> None:
    """Remove the account row and everything that belongs to it. Does not commit."""
    logger.info("[Account Delete] Starting user data cleanup for: %s", user_id)

    _clear_where(session, Residence, "syndic_user_id", user_id)
    _clear_where(session, Residence, "guard_user_id", user_id)

    for model, column in NULLABLE_REFERENCES:
        _clear_where(session, model, column, user_id)
    for model, column in OWNED_ROWS:
        _delete_where(session, model, column, user_id)

    profile = session.get(Profile, user_id)
    if profile is not None:
        session.delete(profile)


def delete_syndic_account(
    session: Session,
    syndic: Profile,
    gateway: StripeGateway,
    directory: ResidentDirectory,
) -> Dict[str, Any]:
    """
    Syndic leaving without a successor. The residence is removed when nobody
    else lives there, otherwise the syndic is only unlinked from it.
    """
    if syndic.role != ProfileRole.SYNDIC.value:
        raise PermissionDenied("Only syndics can perform this action")

    user_id = syndic.id
    cancelled = cancel_stripe_subscriptions(session, gateway, user_id)

    residence_ids = {r.id for r in _rows_where(session, Residence, "syndic_user_id", user_id)}
    if syndic.residence_id:
        residence_ids.add(syndic.residence_id)

    deleted_residences = []
    try:
        for residence_id in sorted(residence_ids):
            others = [p for p in directory.residents_of(residence_id) if p.id != user_id]
            if others:
                logger.info("[Account Delete] Residence %s has other residents. Unlinking syndic only.", residence_id)
                residence = session.get(Residence, residence_id)
                if residence is not None and residence.syndic_user_id == user_id:
                    residence.syndic_user_id = None
                    session.add(residence)
            else:
                delete_residence(session, residence_id)
                deleted_residences.append(residence_id)

        delete_user_data(session, user_id)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("[Account Delete] Error deleting syndic account %s: %s", user_id, e)
        raise SakanError("Failed to delete account", status_code=500)

    logger.info("[Account Delete] ✅ Syndic account %s deleted", user_id)
    return {"cancelled_subscriptions": cancelled, "deleted_residences": deleted_residences}


def delete_member_account(session: Session, profile: Profile) -> None:
    """Residents and guards removing their own account."""
    if profile.role == ProfileRole.SYNDIC.value:
        raise PermissionDenied("Syndics must use the transfer process to delete their account")

    user_id = profile.id
    try:
        delete_user_data(session, user_id)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("[Account Delete] Error deleting account %s: %s", user_id, e)
        raise SakanError("Failed to delete account", status_code=500)
    logger.info("[Account Delete] ✅ Account %s deleted", user_id)
