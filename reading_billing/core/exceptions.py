"""
Application errors and their HTTP rendering.

Every business failure raised by the services is an ``AppException`` carrying a
machine-readable ``error_code`` next to the HTTP status it maps to.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    def __init__(self, resource: str, resource_id: Any = None) -> None:
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id},
        )


class InsufficientBalanceError(AppException):
    """The client cannot cover the amount; the caller should add funds."""

    def __init__(self, *, required: Decimal, available: Decimal) -> None:
        super().__init__(
            message="Insufficient balance, please add funds",
            error_code="ERR_BALANCE_001",
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            details={"required": str(required), "available": str(available)},
        )


class InsufficientFundsError(Exception):
    """Raised by the settlement engine when the conditional debit matched no row."""

    def __init__(self, *, payer_id: int, amount: Decimal) -> None:
        self.payer_id = payer_id
        self.amount = amount
        super().__init__(f"payer {payer_id} cannot cover {amount}")


class ProviderUnavailableError(AppException):
    """The reader cannot take a session right now; the caller may retry or pick another reader."""

    def __init__(self, message: str = "Reader is not available", *, reason: str = "unavailable") -> None:
        super().__init__(
            message=message,
            error_code="ERR_READER_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"reason": reason},
        )


class ReaderBusyError(AppException):
    def __init__(self) -> None:
        super().__init__(
            message="Reader has a session in progress",
            error_code="ERR_READER_002",
            status_code=status.HTTP_409_CONFLICT,
        )


class SessionNotActiveError(AppException):
    def __init__(self, message: str = "Session is not active", *, session_id: int | None = None) -> None:
        super().__init__(
            message=message,
            error_code="ERR_SESSION_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"session_id": session_id},
        )


class SettlementFailedError(AppException):
    """The session ended but could not be billed; it has been marked failed."""

    def __init__(self, *, session_id: int, amount: Decimal) -> None:
        super().__init__(
            message="Session ended but the charge could not be settled, please add funds",
            error_code="ERR_SETTLEMENT_001",
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            details={"session_id": session_id, "amount": str(amount)},
        )


class RefundNotAllowedError(AppException):
    def __init__(self, message: str) -> None:
        super().__init__(
            message=message,
            error_code="ERR_REFUND_001",
            status_code=status.HTTP_409_CONFLICT,
        )


class PayoutAccountInvalidError(AppException):
    def __init__(self, message: str = "Payout account cannot receive funds", *, account_id: str | None = None) -> None:
        super().__init__(
            message=message,
            error_code="ERR_PAYOUT_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"account_id": account_id},
        )


class ExternalProcessorError(AppException):
    def __init__(self, message: str = "Payment processor request failed", *, operation: str) -> None:
        super().__init__(
            message=message,
            error_code="ERR_PROCESSOR_001",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"operation": operation},
        )


class InvalidWebhookSignatureError(AppException):
    def __init__(self, message: str = "Invalid webhook signature") -> None:
        super().__init__(
            message=message,
            error_code="ERR_WEBHOOK_001",
            status_code=status.HTTP_400_BAD_REQUEST,
        )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )
