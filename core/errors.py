# core/errors.py
from typing import Any, Dict, Optional


class SakanError(Exception):
    """Base error surfaced to API callers as a {success: false, error} envelope."""

    status_code = 400

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.code = code
        self.data = data

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.message}
        if self.code:
            body["code"] = self.code
        if self.data:
            body["data"] = self.data
        return body


class ValidationError(SakanError):
    status_code = 400


class PermissionDenied(SakanError):
    status_code = 403


class NotFoundError(SakanError):
    status_code = 404


class ConflictError(SakanError):
    status_code = 409


class TransferError(SakanError):
    """Raised when the successor's role promotion fails during a data transfer."""

    status_code = 500
