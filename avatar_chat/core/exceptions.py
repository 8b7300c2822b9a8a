"""Application exception classes and handlers."""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


class MissingConversationError(ValueError):
    """A metering call was made without a conversation id.

    This is a caller bug, not a user-facing condition, so it is a plain
    ValueError and is never converted into a JSON error response.
    """

    def __init__(self) -> None:
        super().__init__("conversation_id is required for session tracking")


# --- Bad Request (400) ---


class InvalidCreditAmountError(AppException):
    """Credit amounts must be positive integers."""

    def __init__(self, amount: int) -> None:
        super().__init__(
            message=f"Credit amount must be positive, got {amount}",
            code="INVALID_CREDIT_AMOUNT",
            status_code=400,
        )


# --- Authentication (401) ---


class AuthenticationError(AppException):
    """Base authentication error."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message=message, code="AUTHENTICATION_ERROR", status_code=401)


# --- Payment Required (402) ---


class InsufficientCreditsError(AppException):
    """The ledger refused a debit because the balance is too low."""

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__(
            message="Insufficient credits. Please purchase more credits to continue.",
            code="INSUFFICIENT_CREDITS",
            status_code=402,
        )


# --- Authorization (403) ---


class AuthorizationError(AppException):
    """Insufficient permissions."""

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message=message, code="AUTHORIZATION_ERROR", status_code=403)


# --- Not Found (404) ---


class SessionNotFoundError(AppException):
    """Conversation session not found."""

    def __init__(self) -> None:
        super().__init__(
            message="Session not found",
            code="SESSION_NOT_FOUND",
            status_code=404,
        )


class ConversationNotFoundError(AppException):
    """Conversation not found."""

    def __init__(self) -> None:
        super().__init__(
            message="Conversation not found",
            code="CONVERSATION_NOT_FOUND",
            status_code=404,
        )


class CreditPackageNotFoundError(AppException):
    """Credit package not found or inactive."""

    def __init__(self) -> None:
        super().__init__(
            message="Credit package not found",
            code="CREDIT_PACKAGE_NOT_FOUND",
            status_code=404,
        )


class SubscriptionTierNotFoundError(AppException):
    """Subscription tier not found or inactive."""

    def __init__(self) -> None:
        super().__init__(
            message="Subscription tier not found",
            code="SUBSCRIPTION_TIER_NOT_FOUND",
            status_code=404,
        )


# --- Upstream failures (502/503) ---


class AIServiceError(AppException):
    """The avatar response model failed to produce a reply."""

    def __init__(self, message: str = "Failed to get a response. Please try again.") -> None:
        super().__init__(message=message, code="AI_SERVICE_ERROR", status_code=502)


class LedgerUnavailableError(AppException):
    """The credit ledger could not be reached."""

    def __init__(self, message: str = "Credit service is temporarily unavailable") -> None:
        super().__init__(message=message, code="LEDGER_UNAVAILABLE", status_code=503)


# --- Exception Handlers ---


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Central exception handler for AppException."""
    content: dict = {
        "status": exc.status_code,
        "message": exc.message,
        "code": exc.code,
    }
    if isinstance(exc, InsufficientCreditsError):
        content["data"] = {"balance": exc.balance, "required": exc.required}
    return JSONResponse(status_code=exc.status_code, content=content)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation failures in the common error shape."""
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    detail = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=422,
        content={
            "status": 422,
            "message": f"{location}: {detail}" if location else detail,
            "code": "VALIDATION_ERROR",
        },
    )
