# routes/account.py
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlmodel import Session

from core.config import settings
from core.database import get_session
from core.errors import NotFoundError, PermissionDenied, ValidationError
from core.security import get_current_syndic, get_current_user
from models.models import Profile
from schemas.access_code_schema import (
    AccessCodeCreate,
    AccessCodeRead,
    AccessCodeRedeem,
    AccessCodeStatus,
    ReplacementEmailCheck,
)
from schemas.common_schema import ApiResponse
from schemas.deletion_request_schema import DeletionRequestCreate, DeletionRequestRead
from schemas.profile_schema import ResidentOption
from services import access_codes, account_deletion, succession
from services.email_service import email_service
from services.payment_service import StripeGateway, get_stripe_gateway
from services.resident_directory import ResidentDirectory, get_resident_directory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/account", tags=["Account"])


def _normalize_code(code: str) -> str:
    return code.strip().upper()


# -----------------------
# Successor candidates
# -----------------------
@router.get("/replacement-residents", response_model=ApiResponse)
def list_replacement_residents(
    current_user: Profile = Depends(get_current_syndic),
    session: Session = Depends(get_session),
    directory: ResidentDirectory = Depends(get_resident_directory),
):
    residence = succession.residence_of(session, current_user)
    if residence is None:
        raise NotFoundError("User profile or residence not found")

    residents = directory.eligible_successors(residence.id, current_user.id)
    return {
        "success": True,
        "data": {"residents": [ResidentOption.model_validate(r).model_dump() for r in residents]},
    }


# -----------------------
# Access codes
# -----------------------
@router.post("/access-codes", response_model=ApiResponse)
def issue_access_code(
    payload: AccessCodeCreate,
    background_tasks: BackgroundTasks,
    current_user: Profile = Depends(get_current_syndic),
    session: Session = Depends(get_session),
    directory: ResidentDirectory = Depends(get_resident_directory),
):
    """Syndic picks a successor; the code is emailed to them in the background."""
    access_code = succession.initiate_succession(
        session,
        current_user,
        directory,
        accepted_terms=payload.accepted_terms,
        action_type=payload.action_type.value,
        successor_id=payload.successor_id,
        replacement_email=payload.replacement_email,
    )

    residence = succession.residence_of(session, current_user)
    background_tasks.add_task(
        email_service.send_access_code_email,
        access_code.replacement_email,
        access_code.code,
        residence.name if residence else "your residence",
        access_code.action_type,
        current_user.full_name or "Your syndic",
        settings.ACCESS_CODE_TTL_DAYS,
    )
    return {
        "success": True,
        "message": "Access code sent to the replacement email",
        "data": AccessCodeRead.model_validate(access_code).model_dump(mode="json"),
    }


@router.post("/validate-code", response_model=ApiResponse)
def validate_code(
    payload: AccessCodeRedeem,
    current_user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    """The signed-in successor redeems the code they received."""
    outcome = succession.redeem_access_code(session, current_user, _normalize_code(payload.code), gateway)
    return {
        "success": True,
        "message": "Role change completed successfully. You are now the syndic of this residence.",
        "data": outcome,
    }


@router.delete("/cancel-code", response_model=ApiResponse)
def cancel_code(
    code: str = Query(..., min_length=1),
    current_user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    code = _normalize_code(code)
    access_code = access_codes.get_access_code(session, code)
    if access_code is None:
        raise NotFoundError("Code not found")
    if access_code.original_user_id != current_user.id:
        raise PermissionDenied("This access code does not belong to you")
    if access_code.code_used:
        raise ValidationError("Cannot cancel: This code has already been used")

    access_codes.delete_access_code(session, code)
    return {
        "success": True,
        "message": "Access code cancelled successfully. The role change process has been cancelled.",
    }


@router.get("/check-code-status", response_model=ApiResponse)
def check_code_status(
    code: str = Query(..., min_length=1),
    current_user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    code = _normalize_code(code)
    access_code = access_codes.get_access_code(session, code)
    if access_code is not None and access_code.original_user_id != current_user.id:
        raise PermissionDenied("This access code does not belong to you")

    status = AccessCodeStatus(**access_codes.check_access_code_status(session, code))
    return {"success": True, "data": status.model_dump(mode="json")}


@router.get("/check-replacement-email", response_model=ApiResponse)
def check_replacement_email(
    email: Optional[str] = Query(default=None),
    session: Session = Depends(get_session),
):
    """Sign-in page check, no authentication: is this email awaiting a code?"""
    if not email:
        raise ValidationError("Email is required")

    access_code = access_codes.find_pending_code_for_email(session, email)
    check = ReplacementEmailCheck(
        is_replacement_email=access_code is not None,
        action_type=access_code.action_type if access_code else None,
        residence_id=access_code.residence_id if access_code else None,
        expires_at=access_code.expires_at if access_code else None,
    )
    return {"success": True, "data": check.model_dump(mode="json")}


# -----------------------
# Deletion requests
# -----------------------
@router.get("/deletion-request", response_model=ApiResponse)
def get_deletion_request(
    current_user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    request = succession.get_latest_deletion_request(session, current_user.id)
    data = DeletionRequestRead.model_validate(request).model_dump(mode="json") if request else None
    return {"success": True, "data": {"request": data}}


@router.post("/deletion-request", response_model=ApiResponse)
def create_deletion_request(
    payload: DeletionRequestCreate,
    current_user: Profile = Depends(get_current_syndic),
    session: Session = Depends(get_session),
    directory: ResidentDirectory = Depends(get_resident_directory),
):
    request = succession.create_deletion_request(
        session,
        current_user,
        directory,
        accepted_terms=payload.accepted_terms,
        successor_id=payload.successor_id,
    )
    return {
        "success": True,
        "message": "Deletion request submitted. An administrator will review it.",
        "data": {"request": DeletionRequestRead.model_validate(request).model_dump(mode="json")},
    }


@router.delete("/deletion-request", response_model=ApiResponse)
def cancel_deletion_request(
    current_user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    succession.cancel_deletion_request(session, current_user)
    return {"success": True, "message": "Deletion request cancelled successfully"}


# -----------------------
# Account deletion
# -----------------------
@router.post("/delete", response_model=ApiResponse)
def delete_syndic_account(
    current_user: Profile = Depends(get_current_syndic),
    session: Session = Depends(get_session),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    directory: ResidentDirectory = Depends(get_resident_directory),
):
    """Syndic leaving without a successor."""
    outcome = account_deletion.delete_syndic_account(session, current_user, gateway, directory)
    return {"success": True, "message": "Account deleted successfully", "data": outcome}


@router.delete("/delete", response_model=ApiResponse)
def delete_own_account(
    current_user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    account_deletion.delete_member_account(session, current_user)
    return {"success": True, "message": "Account deleted successfully"}
