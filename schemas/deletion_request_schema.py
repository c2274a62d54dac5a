# deletion_request_schema.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime


class DeletionRequestCreate(BaseModel):
    accepted_terms: bool = False
    successor_id: Optional[str] = None


class DeletionRequestRead(BaseModel):
    id: int
    syndic_user_id: str
    residence_id: int
    status: str
    successor_user_id: Optional[str] = None
    reviewed_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    requested_at: datetime
    reviewed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------
# Admin review
# ---------------------------
class DeletionRequestApprove(BaseModel):
    request_id: int
    successor_id: Optional[str] = None


class DeletionRequestReject(BaseModel):
    request_id: int
    reason: Optional[str] = Field(default=None, max_length=1000)
