# ================================================================
# services/succession.py: handing a residence over to a new syndic
# ================================================================
"""
Two ways for a syndic to leave a residence:

* self-service: the syndic issues an access code to a resident, who redeems
  it while signed in; the syndic's data is moved to the successor.
* admin-reviewed: the syndic files a deletion request; a platform admin
  picks (or confirms) a successor and approves, or rejects.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Type

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from core.errors import ConflictError, NotFoundError, SakanError, TransferError, ValidationError
from models.models import (
    AccessCode,
    AccessCodeAction,
    AccessLog,
    Admin,
    Announcement,
    DeletionRequest,
    DeletionRequestStatus,
    Delivery,
    Expense,
    Fee,
    Incident,
    Payment,
    Poll,
    PollVote,
    Profile,
    ProfileResidence,
    ProfileRole,
    Residence,
)
from services import access_codes
from services.account_deletion import cancel_stripe_subscriptions, delete_user_data
from services.payment_service import StripeGateway
from services.resident_directory import ResidentDirectory

logger = logging.getLogger(__name__)

SYNDIC_AS_SUCCESSOR = "Cannot select a syndic as a successor. Syndics cannot be added as residents."
INVALID_SUCCESSOR = "Invalid successor selected"
TERMS_REQUIRED = "You must accept the terms and conditions to continue"
SUCCESSION_ACTIONS = (AccessCodeAction.CHANGE_ROLE.value, AccessCodeAction.DELETE_ACCOUNT.value)


# ============================================================
# DATA TRANSFER
# ============================================================
@dataclass(frozen=True)
class Reassignment:
    """Every row of `model` whose `column` points at the old account is repointed."""

    model: Type[SQLModel]
    column: str

    @property
    def label(self) -> str:
        return f"{self.model.__tablename__}.{self.column}"


SYNDIC_REASSIGNMENTS: Sequence[Reassignment] = (
    Reassignment(Residence, "syndic_user_id"),
    Reassignment(Fee, "user_id"),
    Reassignment(Payment, "user_id"),
    Reassignment(Payment, "verified_by"),
    Reassignment(Incident, "user_id"),
    Reassignment(Incident, "assigned_to"),
    Reassignment(Announcement, "created_by"),
    Reassignment(Expense, "created_by"),
    Reassignment(Poll, "created_by"),
    Reassignment(PollVote, "user_id"),
    Reassignment(AccessLog, "generated_by"),
    Reassignment(AccessLog, "scanned_by"),
    Reassignment(Delivery, "recipient_id"),
    Reassignment(Delivery, "logged_by"),
)


@dataclass
class TransferFailure:
    step: str
    error: str


@dataclass
class TransferResult:
    reassigned: Dict[str, int] = field(default_factory=dict)
    failures: List[TransferFailure] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reassigned": self.reassigned,
            "failures": [{"step": f.step, "error": f.error} for f in self.failures],
        }


def transfer_syndic_data(
    session: Session,
    from_user_id: str,
    to_user_id: str,
    reassignments: Sequence[Reassignment] = SYNDIC_REASSIGNMENTS,
) -> TransferResult:
    """
    Move everything the departing syndic owns to the successor, one step at a
    time. A failing step is rolled back and recorded; the others still run.
    Only the final promotion of the successor is mandatory.
    """
    logger.info("[Transfer] Transferring syndic data from %s to %s", from_user_id, to_user_id)
    result = TransferResult()

    for step in reassignments:
        column = getattr(step.model, step.column)
        try:
            rows = session.exec(select(step.model).where(column == from_user_id)).all()
            for row in rows:
                setattr(row, step.column, to_user_id)
                session.add(row)
            session.commit()
            result.reassigned[step.label] = len(rows)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("[Transfer] Error transferring %s: %s", step.label, e)
            result.failures.append(TransferFailure(step=step.label, error=str(e)))

    successor = session.get(Profile, to_user_id)
    if successor is None:
        raise TransferError("Replacement account not found")
    try:
        successor.role = ProfileRole.SYNDIC.value
        session.add(successor)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("[Transfer] Error updating replacement user role: %s", e)
        raise TransferError("Failed to update replacement user role")

    if result.failures:
        logger.warning("[Transfer] Completed with %s failed step(s): %s", len(result.failures), [f.step for f in result.failures])
    else:
        logger.info("[Transfer] ✅ All syndic data transferred successfully")
    return result


# ============================================================
# HELPERS
# ============================================================
def residence_of(session: Session, syndic: Profile) -> Optional[Residence]:
    residence = session.exec(select(Residence).where(Residence.syndic_user_id == syndic.id)).first()
    if residence is None and syndic.residence_id:
        residence = session.get(Residence, syndic.residence_id)
    return residence


def _require_residence(session: Session, syndic: Profile) -> Residence:
    residence = residence_of(session, syndic)
    if residence is None:
        raise NotFoundError("User profile or residence not found")
    return residence


def _link_resident(session: Session, profile: Profile, residence_id: int) -> None:
    link = session.exec(
        select(ProfileResidence)
        .where(ProfileResidence.profile_id == profile.id)
        .where(ProfileResidence.residence_id == residence_id)
    ).first()
    if link is None:
        session.add(
            ProfileResidence(
                profile_id=profile.id,
                residence_id=residence_id,
                apartment_number=profile.apartment_number,
                verified=True,
            )
        )


def _unlink_resident(session: Session, profile_id: str, residence_id: int) -> None:
    links = session.exec(
        select(ProfileResidence)
        .where(ProfileResidence.profile_id == profile_id)
        .where(ProfileResidence.residence_id == residence_id)
    ).all()
    for link in links:
        session.delete(link)


def _check_successor(directory: ResidentDirectory, residence_id: int, departing_id: str, successor_id: str) -> None:
    if successor_id == departing_id or not directory.is_resident(residence_id, successor_id):
        raise ValidationError(INVALID_SUCCESSOR)
    successor = directory.find_profile(successor_id)
    if successor is None:
        raise ValidationError(INVALID_SUCCESSOR)
    if successor.role == ProfileRole.SYNDIC.value:
        raise ValidationError(SYNDIC_AS_SUCCESSOR)


# ============================================================
# SELF-SERVICE SUCCESSION (access code)
# ============================================================
def initiate_succession(
    session: Session,
    syndic: Profile,
    directory: ResidentDirectory,
    *,
    accepted_terms: bool,
    action_type: str = AccessCodeAction.CHANGE_ROLE.value,
    successor_id: Optional[str] = None,
    replacement_email: Optional[str] = None,
) -> AccessCode:
    if accepted_terms is not True:
        raise ValidationError(TERMS_REQUIRED)
    if action_type not in SUCCESSION_ACTIONS:
        raise ValidationError(f"Invalid action type: {action_type}")

    residence = _require_residence(session, syndic)

    if successor_id:
        _check_successor(directory, residence.id, syndic.id, successor_id)
        successor = directory.find_profile(successor_id)
        replacement_email = replacement_email or successor.email

    if not replacement_email or not replacement_email.strip():
        raise ValidationError("Replacement email is required")
    if replacement_email.strip().lower() == (syndic.email or "").lower():
        raise ValidationError("You cannot transfer the residence to yourself")

    access_code = access_codes.create_access_code(
        session,
        original_user_id=syndic.id,
        replacement_email=replacement_email,
        residence_id=residence.id,
        action_type=action_type,
    )
    logger.info("[Succession] Syndic %s issued a %s code for residence %s", syndic.id, action_type, residence.id)
    return access_code


def _verify_resident(session: Session, resident: Profile, residence_id: Optional[int]) -> None:
    if residence_id is None:
        raise ValidationError("This code is not tied to a residence")
    resident.residence_id = residence_id
    resident.verified = True
    session.add(resident)
    _link_resident(session, resident, residence_id)
    session.commit()


def redeem_access_code(
    session: Session,
    successor: Profile,
    code: str,
    gateway: StripeGateway,
) -> Dict[str, Any]:
    """
    The signed-in recipient submits the code. Codes issued for a succession
    move the syndic's data and role to them.
    """
    validation = access_codes.validate_access_code(session, code, expected_email=successor.email)
    if not validation.valid:
        data = None
        if validation.attempts_remaining is not None:
            data = {"attempts_remaining": validation.attempts_remaining}
        raise ValidationError(validation.message, code=validation.reason, data=data)

    details = validation.data
    action_type = details["action_type"]
    residence_id = details["residence_id"]

    if action_type == AccessCodeAction.VERIFY_RESIDENT.value:
        _verify_resident(session, successor, residence_id)
        access_codes.mark_access_code_as_used(session, code, successor.id)
        return {"action_type": action_type, "residence_id": residence_id}

    original = session.get(Profile, details["original_user_id"])
    if original is None:
        raise NotFoundError("Original account not found")
    if original.id == successor.id:
        raise ValidationError("You cannot redeem your own access code")
    if original.role != ProfileRole.SYNDIC.value:
        raise ConflictError("The original account is no longer a syndic")
    if successor.role == ProfileRole.SYNDIC.value:
        raise ValidationError(SYNDIC_AS_SUCCESSOR)

    residence_id = residence_id or original.residence_id
    successor_id = successor.id
    original_id = original.id

    transfer = transfer_syndic_data(session, original_id, successor_id)

    try:
        successor = session.get(Profile, successor_id)
        successor.residence_id = residence_id
        successor.verified = True
        successor.onboarding_completed = True
        session.add(successor)
        if residence_id:
            _unlink_resident(session, successor_id, residence_id)

        original = session.get(Profile, original_id)
        original.role = ProfileRole.RESIDENT.value
        session.add(original)
        if residence_id and action_type == AccessCodeAction.CHANGE_ROLE.value:
            _link_resident(session, original, residence_id)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("[Succession] Error changing roles after transfer: %s", e)
        raise SakanError("Failed to change role", status_code=500)

    cancelled = cancel_stripe_subscriptions(session, gateway, original_id)
    access_codes.mark_access_code_as_used(session, code, successor_id)

    if action_type == AccessCodeAction.DELETE_ACCOUNT.value:
        try:
            delete_user_data(session, original_id)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("[Succession] Error deleting original account %s: %s", original_id, e)
            raise SakanError("Failed to delete the original account", status_code=500)

    logger.info("[Succession] ✅ %s completed: %s -> %s", action_type, original_id, successor_id)
    return {
        "action_type": action_type,
        "residence_id": residence_id,
        "transfer": transfer.to_dict(),
        "cancelled_subscriptions": cancelled,
    }


# ============================================================
# DELETION REQUESTS (syndic side)
# ============================================================
def get_latest_deletion_request(session: Session, syndic_id: str) -> Optional[DeletionRequest]:
    return session.exec(
        select(DeletionRequest)
        .where(DeletionRequest.syndic_user_id == syndic_id)
        .order_by(DeletionRequest.requested_at.desc(), DeletionRequest.id.desc())
    ).first()


def create_deletion_request(
    session: Session,
    syndic: Profile,
    directory: ResidentDirectory,
    *,
    accepted_terms: bool,
    successor_id: Optional[str] = None,
) -> DeletionRequest:
    if accepted_terms is not True:
        raise ValidationError(TERMS_REQUIRED)

    residence = _require_residence(session, syndic)

    latest = get_latest_deletion_request(session, syndic.id)
    if latest is not None and latest.status == DeletionRequestStatus.PENDING.value:
        raise ConflictError("You already have a pending deletion request")

    if successor_id:
        _check_successor(directory, residence.id, syndic.id, successor_id)

    request = DeletionRequest(
        syndic_user_id=syndic.id,
        residence_id=residence.id,
        successor_user_id=successor_id,
    )
    session.add(request)
    session.commit()
    session.refresh(request)
    logger.info("[Deletion Request] Syndic %s filed request %s", syndic.id, request.id)
    return request


def cancel_deletion_request(session: Session, syndic: Profile) -> None:
    request = get_latest_deletion_request(session, syndic.id)
    if request is None:
        raise NotFoundError("No pending deletion request found")
    if request.status != DeletionRequestStatus.PENDING.value:
        raise ValidationError("Cannot cancel a request that is not pending")

    session.delete(request)
    session.commit()
    logger.info("[Deletion Request] Syndic %s cancelled their request", syndic.id)


# ============================================================
# DELETION REQUESTS (admin side)
# ============================================================
def _profile_summary(profile: Optional[Profile]) -> Optional[Dict[str, Any]]:
    if profile is None:
        return None
    return {
        "id": profile.id,
        "full_name": profile.full_name,
        "email": profile.email,
        "apartment_number": profile.apartment_number,
        "role": profile.role,
    }


def list_deletion_requests(
    session: Session,
    directory: ResidentDirectory,
    status: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Requests with requester, residence and the successors an admin may pick."""
    statement = select(DeletionRequest).order_by(DeletionRequest.requested_at.desc())
    if status:
        statement = statement.where(DeletionRequest.status == status)

    items = []
    for request in session.exec(statement).all():
        residence = session.get(Residence, request.residence_id)
        candidates = []
        if request.status == DeletionRequestStatus.PENDING.value:
            candidates = directory.eligible_successors(request.residence_id, request.syndic_user_id)
        items.append(
            {
                "request": request.model_dump(),
                "syndic": _profile_summary(directory.find_profile(request.syndic_user_id)),
                "residence": {"id": residence.id, "name": residence.name, "address": residence.address} if residence else None,
                "successor": _profile_summary(directory.find_profile(request.successor_user_id)) if request.successor_user_id else None,
                "eligible_successors": [_profile_summary(p) for p in candidates],
            }
        )
    return items


def _pending_request(session: Session, request_id: int) -> DeletionRequest:
    request = session.get(DeletionRequest, request_id)
    if request is None:
        raise NotFoundError("Deletion request not found")
    if request.status != DeletionRequestStatus.PENDING.value:
        raise ValidationError("This deletion request has already been processed")
    return request


def approve_deletion_request(
    session: Session,
    request_id: int,
    admin: Admin,
    directory: ResidentDirectory,
    successor_id: Optional[str] = None,
) -> DeletionRequest:
    """
    All checks run before anything is written. Then the old syndic becomes a
    resident of the residence and the successor takes over as its syndic.
    """
    request = _pending_request(session, request_id)

    final_successor_id = successor_id or request.successor_user_id
    if not final_successor_id:
        raise ValidationError(
            "Successor selection is required. Please select a resident to become the new syndic "
            "before approving the deletion request."
        )
    _check_successor(directory, request.residence_id, request.syndic_user_id, final_successor_id)

    successor = session.get(Profile, final_successor_id)
    if successor is None:
        raise ValidationError(INVALID_SUCCESSOR)
    residence = session.get(Residence, request.residence_id)
    if residence is None:
        raise NotFoundError("Residence not found")

    now = datetime.utcnow()
    try:
        old_syndic = session.get(Profile, request.syndic_user_id)
        if old_syndic is not None:
            old_syndic.role = ProfileRole.RESIDENT.value
            session.add(old_syndic)
            _link_resident(session, old_syndic, residence.id)

        successor.role = ProfileRole.SYNDIC.value
        successor.verified = True
        successor.residence_id = residence.id
        session.add(successor)

        residence.syndic_user_id = successor.id
        session.add(residence)
        _unlink_resident(session, successor.id, residence.id)

        request.status = DeletionRequestStatus.APPROVED.value
        request.successor_user_id = successor.id
        request.reviewed_by = admin.id
        request.reviewed_at = now
        session.add(request)
        session.commit()

        request.status = DeletionRequestStatus.COMPLETED.value
        request.completed_at = datetime.utcnow()
        session.add(request)
        session.commit()
        session.refresh(request)
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("[Admin] Error approving deletion request %s: %s", request_id, e)
        raise SakanError("An error occurred while processing the approval", status_code=500)

    logger.info("[Admin] ✅ Deletion request %s approved by %s, new syndic %s", request_id, admin.id, successor.id)
    return request


def reject_deletion_request(
    session: Session,
    request_id: int,
    admin: Admin,
    reason: Optional[str] = None,
) -> DeletionRequest:
    request = _pending_request(session, request_id)
    request.status = DeletionRequestStatus.REJECTED.value
    request.reviewed_by = admin.id
    request.reviewed_at = datetime.utcnow()
    request.rejection_reason = reason
    session.add(request)
    session.commit()
    session.refresh(request)
    logger.info("[Admin] Deletion request %s rejected by %s", request_id, admin.id)
    return request
