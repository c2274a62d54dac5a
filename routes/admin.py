# routes/admin.py
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.database import get_session
from core.security import create_admin_token, get_current_admin, verify_password
from models.models import Admin, DeletionRequestStatus
from schemas.admin_schema import AdminLogin, AdminToken
from schemas.common_schema import ApiResponse
from schemas.deletion_request_schema import DeletionRequestApprove, DeletionRequestRead, DeletionRequestReject
from services import succession
from services.resident_directory import ResidentDirectory, get_resident_directory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


# ==========================================================
# ✅ Admin Login
# ==========================================================
@router.post("/auth/login", response_model=ApiResponse)
def admin_login(credentials: AdminLogin, session: Session = Depends(get_session)):
    try:
        admin = session.exec(select(Admin).where(Admin.email == credentials.email)).first()

        if not admin or not verify_password(credentials.password, admin.password_hash):
            raise HTTPException(status_code=401, detail="Invalid email or password.")

        if not admin.is_active:
            raise HTTPException(status_code=403, detail="This admin account is inactive.")

        admin.last_login_at = datetime.utcnow()
        session.add(admin)
        session.commit()
        session.refresh(admin)

        token = AdminToken(access_token=create_admin_token(admin))
        logger.info("[Admin] %s signed in", admin.email)
        return {
            "success": True,
            "data": {**token.model_dump(), "admin": {"id": admin.id, "email": admin.email, "full_name": admin.full_name}},
        }

    except HTTPException:
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("❌ Admin login database error: %s", e)
        raise HTTPException(status_code=500, detail="We're having trouble logging you in. Please try again later.")


# ==========================================================
# ✅ Deletion Requests
# ==========================================================
@router.get("/deletion-requests", response_model=ApiResponse)
def list_deletion_requests(
    status: Optional[DeletionRequestStatus] = Query(default=None),
    admin: Admin = Depends(get_current_admin),
    directory: ResidentDirectory = Depends(get_resident_directory),
    session: Session = Depends(get_session),
):
    """Requests with requester, residence and eligible successors."""
    items = succession.list_deletion_requests(session, directory, status.value if status else None)
    for item in items:
        item["request"] = DeletionRequestRead.model_validate(item["request"]).model_dump(mode="json")
    return {"success": True, "data": {"requests": items}}


@router.post("/deletion-requests/approve", response_model=ApiResponse)
def approve_deletion_request(
    payload: DeletionRequestApprove,
    admin: Admin = Depends(get_current_admin),
    directory: ResidentDirectory = Depends(get_resident_directory),
    session: Session = Depends(get_session),
):
    request = succession.approve_deletion_request(
        session,
        payload.request_id,
        admin,
        directory,
        successor_id=payload.successor_id,
    )
    return {
        "success": True,
        "message": (
            "Deletion request approved. The old syndic has been demoted to resident "
            "and the successor has been promoted to syndic."
        ),
        "data": {"request": DeletionRequestRead.model_validate(request).model_dump(mode="json")},
    }


@router.put("/deletion-requests/reject", response_model=ApiResponse)
def reject_deletion_request(
    payload: DeletionRequestReject,
    admin: Admin = Depends(get_current_admin),
    session: Session = Depends(get_session),
):
    request = succession.reject_deletion_request(session, payload.request_id, admin, payload.reason)
    return {
        "success": True,
        "message": "Deletion request rejected successfully",
        "data": {"request": DeletionRequestRead.model_validate(request).model_dump(mode="json")},
    }
