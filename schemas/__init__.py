from .access_code_schema import (
    SuccessionAction,
    AccessCodeCreate, AccessCodeRead, AccessCodeRedeem, AccessCodeStatus, ReplacementEmailCheck
)
from .admin_schema import AdminLogin, AdminToken
from .common_schema import ApiResponse
from .deletion_request_schema import DeletionRequestCreate, DeletionRequestRead, DeletionRequestApprove, DeletionRequestReject
from .profile_schema import ResidentOption
from .subscription_schema import SubscriptionRead, SubscriptionSummary

__all__ = [
    # Access codes
    "SuccessionAction",
    "AccessCodeCreate", "AccessCodeRead", "AccessCodeRedeem", "AccessCodeStatus", "ReplacementEmailCheck",

    # Admin
    "AdminLogin", "AdminToken",

    # Envelope
    "ApiResponse",

    # Deletion requests
    "DeletionRequestCreate", "DeletionRequestRead", "DeletionRequestApprove", "DeletionRequestReject",

    # Profile
    "ResidentOption",

    # Subscription
    "SubscriptionRead", "SubscriptionSummary",
]
