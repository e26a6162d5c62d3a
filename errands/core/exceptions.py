"""
Custom Exception Hierarchy

Every business failure in the settlement core is an AppException subclass.
The `name` attribute is the taxonomy name surfaced to API clients next to the
numeric error code.
"""
from decimal import Decimal
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    UNAUTHORIZED = "ERR_1004"

    # Errand payment errors (2xxx)
    PAYMENT_NOT_FOUND = "ERR_2001"
    PAYMENT_ALREADY_PROCESSED = "ERR_2002"
    ERRAND_NOT_ASSIGNED = "ERR_2003"
    PAYMENT_REQUIRED = "ERR_2004"

    # Runner ledger errors (4xxx)
    EXCEEDS_BALANCE = "ERR_4001"
    INVALID_AMOUNT = "ERR_4003"
    NO_OUTSTANDING_BALANCE = "ERR_4005"

    # State errors (6xxx)
    INVALID_STATE = "ERR_6003"


class AppException(Exception):
    """Base exception for all application errors"""

    name = "InternalError"

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "name": self.name,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationError(AppException):
    """Malformed or out-of-range input, rejected before any state change"""

    name = "ValidationError"

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=422,
            details=details
        )
        if field:
            self.details["field"] = field


class NotFound(AppException):
    """Errand, transaction or ledger absent"""

    name = "NotFound"

    def __init__(
        self,
        resource: str,
        identifier: Any,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class Unauthorized(AppException):
    """Caller is not the party the operation requires"""

    name = "Unauthorized"

    def __init__(
        self,
        message: str = "You are not allowed to perform this action",
        error_code: ErrorCode = ErrorCode.UNAUTHORIZED,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=403,
            details=details
        )


class NotAssigned(Unauthorized):
    """Runner submitting a payment is not the errand's assigned runner"""

    name = "NotAssigned"

    def __init__(self, errand_id: int, runner_id: int):
        super().__init__(
            message="You are not assigned to this errand",
            error_code=ErrorCode.ERRAND_NOT_ASSIGNED,
            details={"errand_id": errand_id, "runner_id": runner_id},
        )


class InvalidState(AppException):
    """Operation attempted from the wrong lifecycle state"""

    name = "InvalidState"

    def __init__(
        self,
        message: str,
        current_state: str | None = None,
        error_code: ErrorCode = ErrorCode.INVALID_STATE,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details
        )
        if current_state is not None:
            self.details["current_state"] = current_state


class AlreadyProcessed(AppException):
    """Duplicate submission or verification"""

    name = "AlreadyProcessed"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.PAYMENT_ALREADY_PROCESSED,
            status_code=409,
            details=details
        )


class ExceedsBalance(AppException):
    """Repayment amount larger than the runner's outstanding balance"""

    name = "ExceedsBalance"

    def __init__(self, runner_id: int, amount: Decimal, current_balance: Decimal):
        super().__init__(
            message="Payment amount exceeds current balance",
            error_code=ErrorCode.EXCEEDS_BALANCE,
            status_code=400,
            details={
                "runner_id": runner_id,
                "amount": str(amount),
                "current_balance": str(current_balance),
            }
        )
