from typing import Optional, List
from datetime import datetime, timedelta
from enum import Enum
import uuid

from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import UniqueConstraint


def _new_id() -> str:
    return uuid.uuid4().hex


# ============================================================
# ENUMS
# ============================================================
class ProfileRole(str, Enum):
    SYNDIC = "syndic"
    RESIDENT = "resident"
    GUARD = "guard"


class AccessCodeAction(str, Enum):
    DELETE_ACCOUNT = "delete_account"
    CHANGE_ROLE = "change_role"
    VERIFY_RESIDENT = "verify_resident"


class DeletionRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    CANCELED = "canceled"
    UNPAID = "unpaid"


# ============================================================
# RESIDENCE (tenant)
# ============================================================
class Residence(SQLModel, table=True):
    __tablename__ = "residences"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=150)
    address: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    syndic_user_id: Optional[str] = Field(default=None, max_length=64, index=True)
    guard_user_id: Optional[str] = Field(default=None, max_length=64, index=True)

    resident_links: List["ProfileResidence"] = Relationship(back_populates="residence")


# ============================================================
# PROFILE (account)
# ============================================================
class Profile(SQLModel, table=True):
    __tablename__ = "profiles"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    email: str = Field(index=True, unique=True, max_length=255)
    full_name: Optional[str] = Field(default=None, max_length=150)
    phone_number: Optional[str] = Field(default=None, max_length=30)

    role: str = Field(default=ProfileRole.RESIDENT.value, max_length=20, index=True)
    verified: bool = Field(default=False)
    onboarding_completed: bool = Field(default=False)

    residence_id: Optional[int] = Field(default=None, foreign_key="residences.id", index=True)
    apartment_number: Optional[str] = Field(default=None, max_length=20)

    created_at: datetime = Field(default_factory=datetime.utcnow)

    residence_links: List["ProfileResidence"] = Relationship(back_populates="profile")

    @property
    def is_syndic(self) -> bool:
        return self.role == ProfileRole.SYNDIC.value


# ============================================================
# LINK MODEL: resident <-> residence
# ============================================================
class ProfileResidence(SQLModel, table=True):
    __tablename__ = "profile_residences"
    __table_args__ = (UniqueConstraint("profile_id", "residence_id", name="uq_profile_residence"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    profile_id: str = Field(foreign_key="profiles.id", index=True)
    residence_id: int = Field(foreign_key="residences.id", index=True)
    apartment_number: Optional[str] = Field(default=None, max_length=20)
    verified: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    profile: Optional["Profile"] = Relationship(back_populates="residence_links")
    residence: Optional["Residence"] = Relationship(back_populates="resident_links")


# ============================================================
# PLATFORM ADMIN
# ============================================================
class Admin(SQLModel, table=True):
    __tablename__ = "admins"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    email: str = Field(index=True, unique=True, max_length=255)
    full_name: Optional[str] = Field(default=None, max_length=150)
    password_hash: str = Field(nullable=False)
    is_active: bool = Field(default=True)
    last_login_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


# ============================================================
# STRIPE CUSTOMER / SUBSCRIPTION MIRROR
# ============================================================
class SubscriptionRecord(SQLModel, table=True):
    __tablename__ = "stripe_customers"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=64)
    stripe_customer_id: str = Field(unique=True, index=True, max_length=255)
    subscription_id: Optional[str] = Field(default=None, index=True, max_length=255)

    plan_active: bool = Field(default=False)
    plan_expires: Optional[datetime] = None
    plan_name: Optional[str] = Field(default=None, max_length=50)
    price_id: Optional[str] = Field(default=None, max_length=255)
    amount: Optional[float] = None
    currency: Optional[str] = Field(default="usd", max_length=3)
    interval: Optional[str] = Field(default=None, max_length=20)
    subscription_status: Optional[str] = Field(default=None, max_length=30)
    days_remaining: Optional[int] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def refresh_days_remaining(self, now: Optional[datetime] = None) -> None:
        if self.plan_expires is None:
            self.days_remaining = None
            return
        now = now or datetime.utcnow()
        self.days_remaining = max(0, (self.plan_expires - now).days)


# ============================================================
# ACCESS CODE
# ============================================================
class AccessCode(SQLModel, table=True):
    __tablename__ = "access_codes"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(max_length=16, unique=True, nullable=False, index=True)
    original_user_id: str = Field(foreign_key="profiles.id", index=True)
    replacement_email: str = Field(max_length=255, index=True)
    residence_id: Optional[int] = Field(default=None, foreign_key="residences.id")
    action_type: str = Field(max_length=30)

    code_used: bool = Field(default=False)
    used_by_user_id: Optional[str] = Field(default=None, max_length=64)
    used_at: Optional[datetime] = None

    failed_attempts: int = Field(default=0)
    expires_at: datetime = Field(default_factory=lambda: datetime.utcnow() + timedelta(days=7))
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def is_expired(self) -> bool:
        return datetime.utcnow() > self.expires_at


# ============================================================
# SYNDIC DELETION REQUEST
# ============================================================
class DeletionRequest(SQLModel, table=True):
    __tablename__ = "syndic_deletion_requests"

    id: Optional[int] = Field(default=None, primary_key=True)
    syndic_user_id: str = Field(foreign_key="profiles.id", index=True)
    residence_id: int = Field(foreign_key="residences.id", index=True)
    status: str = Field(default=DeletionRequestStatus.PENDING.value, max_length=20, index=True)

    successor_user_id: Optional[str] = Field(default=None, foreign_key="profiles.id")
    reviewed_by: Optional[str] = Field(default=None, foreign_key="admins.id")
    rejection_reason: Optional[str] = Field(default=None, max_length=1000)

    requested_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    reviewed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


# ============================================================
# RESIDENCE DATA (owned by CRUD routes outside this service)
# ============================================================
class Fee(SQLModel, table=True):
    __tablename__ = "fees"
    id: Optional[int] = Field(default=None, primary_key=True)
    residence_id: int = Field(foreign_key="residences.id", index=True)
    user_id: str = Field(foreign_key="profiles.id", index=True)
    title: str = Field(max_length=200)
    amount: float = Field(default=0.0)
    status: str = Field(default="unpaid", max_length=20)
    due_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Payment(SQLModel, table=True):
    __tablename__ = "payments"
    id: Optional[int] = Field(default=None, primary_key=True)
    residence_id: int = Field(foreign_key="residences.id", index=True)
    user_id: str = Field(foreign_key="profiles.id", index=True)
    fee_id: Optional[int] = Field(default=None, foreign_key="fees.id")
    amount: float = Field(default=0.0)
    method: str = Field(default="cash", max_length=30)
    status: str = Field(default="pending", max_length=20)
    verified_by: Optional[str] = Field(default=None, foreign_key="profiles.id")
    paid_at: datetime = Field(default_factory=datetime.utcnow)


class Incident(SQLModel, table=True):
    __tablename__ = "incidents"
    id: Optional[int] = Field(default=None, primary_key=True)
    residence_id: int = Field(foreign_key="residences.id", index=True)
    user_id: str = Field(foreign_key="profiles.id", index=True)
    assigned_to: Optional[str] = Field(default=None, foreign_key="profiles.id")
    title: str = Field(max_length=200)
    description: Optional[str] = None
    status: str = Field(default="open", max_length=20)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Announcement(SQLModel, table=True):
    __tablename__ = "announcements"
    id: Optional[int] = Field(default=None, primary_key=True)
    residence_id: int = Field(foreign_key="residences.id", index=True)
    created_by: Optional[str] = Field(default=None, foreign_key="profiles.id")
    title: str = Field(max_length=200)
    content: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Expense(SQLModel, table=True):
    __tablename__ = "expenses"
    id: Optional[int] = Field(default=None, primary_key=True)
    residence_id: int = Field(foreign_key="residences.id", index=True)
    created_by: Optional[str] = Field(default=None, foreign_key="profiles.id")
    description: str = Field(max_length=500)
    category: Optional[str] = Field(default=None, max_length=50)
    amount: float = Field(default=0.0)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Poll(SQLModel, table=True):
    __tablename__ = "polls"
    id: Optional[int] = Field(default=None, primary_key=True)
    residence_id: int = Field(foreign_key="residences.id", index=True)
    created_by: Optional[str] = Field(default=None, foreign_key="profiles.id")
    question: str = Field(max_length=500)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class PollOption(SQLModel, table=True):
    __tablename__ = "poll_options"
    id: Optional[int] = Field(default=None, primary_key=True)
    poll_id: int = Field(foreign_key="polls.id", index=True)
    option_text: str = Field(max_length=200)


class PollVote(SQLModel, table=True):
    __tablename__ = "poll_votes"
    id: Optional[int] = Field(default=None, primary_key=True)
    poll_id: int = Field(foreign_key="polls.id", index=True)
    option_id: Optional[int] = Field(default=None, foreign_key="poll_options.id")
    user_id: str = Field(foreign_key="profiles.id", index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class AccessLog(SQLModel, table=True):
    __tablename__ = "access_logs"
    id: Optional[int] = Field(default=None, primary_key=True)
    residence_id: int = Field(foreign_key="residences.id", index=True)
    generated_by: str = Field(foreign_key="profiles.id", index=True)
    scanned_by: Optional[str] = Field(default=None, foreign_key="profiles.id")
    visitor_name: Optional[str] = Field(default=None, max_length=150)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Delivery(SQLModel, table=True):
    __tablename__ = "deliveries"
    id: Optional[int] = Field(default=None, primary_key=True)
    residence_id: int = Field(foreign_key="residences.id", index=True)
    recipient_id: str = Field(foreign_key="profiles.id", index=True)
    logged_by: str = Field(foreign_key="profiles.id", index=True)
    description: Optional[str] = Field(default=None, max_length=500)
    picked_up_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"
    id: Optional[int] = Field(default=None, primary_key=True)
    residence_id: Optional[int] = Field(default=None, foreign_key="residences.id", index=True)
    user_id: str = Field(foreign_key="profiles.id", index=True)
    title: str = Field(max_length=200)
    message: Optional[str] = None
    read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
