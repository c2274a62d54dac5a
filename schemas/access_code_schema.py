# access_code_schema.py
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional
from datetime import datetime
from enum import Enum


class SuccessionAction(str, Enum):
    CHANGE_ROLE = "change_role"
    DELETE_ACCOUNT = "delete_account"


# ============================================================
# ✅ Issue a code (syndic)
# ============================================================
class AccessCodeCreate(BaseModel):
    accepted_terms: bool = False
    action_type: SuccessionAction = SuccessionAction.CHANGE_ROLE
    successor_id: Optional[str] = None
    # Defaults to the selected successor's email
    replacement_email: Optional[EmailStr] = None


class AccessCodeRead(BaseModel):
    code: str
    replacement_email: str
    residence_id: Optional[int] = None
    action_type: str
    expires_at: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================
# ✅ Redeem a code (successor)
# ============================================================
class AccessCodeRedeem(BaseModel):
    code: str = Field(..., min_length=1, max_length=16)


class AccessCodeStatus(BaseModel):
    exists: bool
    used: bool = False
    expired: bool = False
    failed_attempts: int = 0
    expires_at: Optional[datetime] = None


class ReplacementEmailCheck(BaseModel):
    is_replacement_email: bool
    action_type: Optional[str] = None
    residence_id: Optional[int] = None
    expires_at: Optional[datetime] = None
