# ================================================================
# services/access_codes.py: single-use codes gating role changes
# ================================================================
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.config import settings
from core.errors import SakanError
from models.models import AccessCode, AccessCodeAction

logger = logging.getLogger(__name__)

# I, O, 0 and 1 are left out to avoid confusion when read aloud or retyped
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 8

INVALID = "invalid"
LOCKED_OUT = "locked_out"
USED = "used"
EXPIRED = "expired"
EMAIL_MISMATCH = "email_mismatch"

REJECTION_MESSAGES = {
    INVALID: "Invalid code",
    LOCKED_OUT: "Too many failed attempts. This code has been deleted for security reasons.",
    USED: "This code has already been used",
    EXPIRED: "This code has expired",
}


@dataclass
class AccessCodeValidation:
    valid: bool
    reason: Optional[str] = None
    attempts_remaining: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> Optional[str]:
        if self.valid:
            return None
        if self.reason == EMAIL_MISMATCH:
            return (
                "This code was not issued for your email address. "
                f"{self.attempts_remaining} attempt(s) remaining."
            )
        return REJECTION_MESSAGES.get(self.reason, REJECTION_MESSAGES[INVALID])


def _normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def _find(session: Session, code: str) -> Optional[AccessCode]:
    return session.exec(select(AccessCode).where(AccessCode.code == code)).first()


def generate_access_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def create_access_code(
    session: Session,
    original_user_id: str,
    replacement_email: str,
    residence_id: Optional[int],
    action_type: str,
    ttl: Optional[timedelta] = None,
) -> AccessCode:
    """
    Issue a new code for `replacement_email`. Runs on the service session, so
    the issuing account does not need to own the row it protects.
    """
    if action_type not in {a.value for a in AccessCodeAction}:
        raise SakanError(f"Invalid action type: {action_type}")

    code = generate_access_code()
    while _find(session, code) is not None:
        code = generate_access_code()

    ttl = ttl or timedelta(days=settings.ACCESS_CODE_TTL_DAYS)
    access_code = AccessCode(
        code=code,
        original_user_id=original_user_id,
        replacement_email=replacement_email.strip(),
        residence_id=residence_id,
        action_type=action_type,
        expires_at=datetime.utcnow() + ttl,
    )
    try:
        session.add(access_code)
        session.commit()
        session.refresh(access_code)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("[Access Code] Error creating access code: %s", e)
        raise SakanError("Failed to create access code", status_code=500)

    logger.info("[Access Code] Created %s code for residence %s", action_type, residence_id)
    return access_code


def validate_access_code(session: Session, code: str, expected_email: Optional[str] = None) -> AccessCodeValidation:
    """
    Check a submitted code. Rejections are tried in order: unknown code,
    locked out, used, expired, then email mismatch. A mismatch counts as a
    failed attempt and the code is deleted on the last allowed one.
    """
    max_attempts = settings.ACCESS_CODE_MAX_ATTEMPTS
    access_code = _find(session, code)
    if access_code is None:
        return AccessCodeValidation(valid=False, reason=INVALID)

    if access_code.failed_attempts >= max_attempts:
        _delete(session, access_code)
        return AccessCodeValidation(valid=False, reason=LOCKED_OUT, attempts_remaining=0)

    if access_code.code_used:
        return AccessCodeValidation(valid=False, reason=USED)

    if access_code.is_expired():
        return AccessCodeValidation(valid=False, reason=EXPIRED)

    if expected_email is not None and _normalize_email(expected_email) != _normalize_email(access_code.replacement_email):
        access_code.failed_attempts += 1
        if access_code.failed_attempts >= max_attempts:
            logger.warning("[Access Code] Code locked out after %s failed attempts", access_code.failed_attempts)
            _delete(session, access_code)
            return AccessCodeValidation(valid=False, reason=LOCKED_OUT, attempts_remaining=0)

        session.add(access_code)
        session.commit()
        return AccessCodeValidation(
            valid=False,
            reason=EMAIL_MISMATCH,
            attempts_remaining=max_attempts - access_code.failed_attempts,
        )

    if access_code.failed_attempts:
        access_code.failed_attempts = 0
        session.add(access_code)
        session.commit()
        session.refresh(access_code)

    return AccessCodeValidation(
        valid=True,
        attempts_remaining=max_attempts,
        data={
            "original_user_id": access_code.original_user_id,
            "replacement_email": access_code.replacement_email,
            "residence_id": access_code.residence_id,
            "action_type": access_code.action_type,
        },
    )


def _delete(session: Session, access_code: AccessCode) -> None:
    session.delete(access_code)
    session.commit()


def mark_access_code_as_used(session: Session, code: str, used_by_user_id: str) -> bool:
    """
    Record the redemption and retire the code. Never raises: the role change
    that triggered it must stand even if this bookkeeping fails.
    """
    try:
        access_code = _find(session, code)
        if access_code is None:
            # Already retired
            return True
        access_code.code_used = True
        access_code.used_by_user_id = used_by_user_id
        access_code.used_at = datetime.utcnow()
        session.add(access_code)
        session.commit()
        logger.info("[Access Code] Code redeemed by %s", used_by_user_id)
        _delete(session, access_code)
        return True
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("[Access Code] Error marking code as used: %s", e)
        return False


def delete_access_code(session: Session, code: str) -> bool:
    access_code = _find(session, code)
    if access_code is None:
        return False
    replacement_email = access_code.replacement_email
    _delete(session, access_code)
    logger.info("[Access Code] Code for %s cancelled", replacement_email)
    return True


def get_access_code(session: Session, code: str) -> Optional[AccessCode]:
    return _find(session, code)


def check_access_code_status(session: Session, code: str) -> Dict[str, Any]:
    """
    Polling view for the issuing account. A redeemed or cancelled code no
    longer exists, which the initiator reads as "done".
    """
    access_code = _find(session, code)
    if access_code is None:
        return {"exists": False, "used": False, "expired": False, "failed_attempts": 0}
    return {
        "exists": True,
        "used": access_code.code_used,
        "expired": access_code.is_expired(),
        "failed_attempts": access_code.failed_attempts,
        "expires_at": access_code.expires_at,
    }


def find_pending_code_for_email(session: Session, email: str) -> Optional[AccessCode]:
    """Latest live code whose target is `email`, if any."""
    normalized = _normalize_email(email)
    if not normalized:
        return None
    candidates = session.exec(
        select(AccessCode)
        .where(AccessCode.code_used == False)  # noqa: E712
        .where(AccessCode.expires_at > datetime.utcnow())
        .order_by(AccessCode.created_at.desc())
    ).all()
    for access_code in candidates:
        if _normalize_email(access_code.replacement_email) == normalized:
            return access_code
    return None
