"""
Custom Application Exceptions
"""
from typing import Optional


class KhoException(Exception):
    """Base exception for the Kho application"""

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(KhoException):
    """Raised when data validation fails before any remote call"""
    pass


class VoucherStateError(ValidationError):
    """Raised when an action is attempted on a voucher that is no longer pending"""

    def __init__(self, code: str, status: str, action: str):
        super().__init__(
            f"Chỉ có thể {action} phiếu chưa duyệt!",
            detail=f"Voucher {code} is '{status}'",
        )
        self.code = code
        self.status = status
        self.action = action


class VoucherNotFoundError(KhoException):
    """Raised when a voucher code is not in the collection"""

    def __init__(self, code: str):
        super().__init__(f"Không tìm thấy phiếu {code}", detail=f"Voucher {code} not found")
        self.code = code


class InsufficientPermissionsError(KhoException):
    """Raised when the actor lacks the role an action requires"""
    pass


class RemoteServiceError(KhoException):
    """Raised when the remote table API call fails"""

    def __init__(self, message: str, detail: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message, detail=detail)
        self.status = status


class NotificationError(KhoException):
    """Raised when a chat-bot notification cannot be delivered"""
    pass
