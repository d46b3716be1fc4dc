"""Redemption failure taxonomy and the operator-facing notices they become."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class NoticeKind(str, Enum):
    SUCCESS = "success"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CANCELLED = "cancelled"
    INVALID_CODE = "invalid_code"
    LOOKUP_FAILED = "lookup_failed"
    CUSTOMER_NOT_FOUND = "customer_not_found"
    UNAUTHORIZED = "unauthorized"
    CREDIT_FAILED = "credit_failed"
    BUSY = "busy"
    NO_ATTEMPT = "no_attempt"


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    title: str
    message: str
    is_error: bool = False


class RedemptionError(RuntimeError):
    """Base class for failures raised inside a redemption operation."""

    kind: NoticeKind = NoticeKind.CREDIT_FAILED
    title: str = "Error"
    default_message: str = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None) -> None:
        self.user_message = message or self.default_message
        super().__init__(self.user_message)

    def to_notice(self) -> Notice:
        return Notice(kind=self.kind, title=self.title, message=self.user_message, is_error=True)


class InvalidTokenError(RedemptionError):
    kind = NoticeKind.INVALID_CODE
    title = "Invalid QR Code"
    default_message = "QR code is invalid or expired."


class CustomerLookupError(RedemptionError):
    kind = NoticeKind.LOOKUP_FAILED
    title = "Lookup Failed"
    default_message = "Could not load this customer's card. Please try scanning again."

    def __init__(self, message: str | None = None, *, not_found: bool = False) -> None:
        if not_found:
            self.kind = NoticeKind.CUSTOMER_NOT_FOUND
            self.title = "Customer Not Found"
            message = message or "No customer profile matches this QR code."
        super().__init__(message)
        self.not_found = not_found


class StaffAuthorizationError(RedemptionError):
    kind = NoticeKind.UNAUTHORIZED
    title = "Unauthorized"
    default_message = "Only staff members can scan QR codes."


class CreditingError(RedemptionError):
    kind = NoticeKind.CREDIT_FAILED
    title = "Error Adding Stamp"
    default_message = "Failed to add loyalty point. Please try again."


class RedemptionBusyError(RedemptionError):
    kind = NoticeKind.BUSY
    title = "Scan In Progress"
    default_message = "Finish or cancel the current stamp before scanning another code."


class NoPendingAttemptError(RedemptionError):
    kind = NoticeKind.NO_ATTEMPT
    title = "Nothing To Confirm"
    default_message = "Scan a customer's QR code first."


__all__ = [
    "CreditingError",
    "CustomerLookupError",
    "InvalidTokenError",
    "NoPendingAttemptError",
    "Notice",
    "NoticeKind",
    "RedemptionBusyError",
    "RedemptionError",
    "StaffAuthorizationError",
]
