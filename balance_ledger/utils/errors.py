"""Custom exception hierarchy for the ledger API."""

from __future__ import annotations


class AppError(Exception):
    """Base application error with a stable machine-readable code."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        """Serialize the error in the API standard shape."""
        return {"error": self.message, "code": self.code}


class ValidationError(AppError):
    """Raised for bad input: non-positive amounts, unknown kinds or filters."""

    def __init__(self, reason: str) -> None:
        super().__init__(message=reason, code="INVALID_INPUT", status_code=422)


class NotFoundError(AppError):
    """Raised when a requested resource does not exist."""

    def __init__(self, resource: str) -> None:
        super().__init__(message=f"{resource} not found", code="NOT_FOUND", status_code=404)


class ConflictError(AppError):
    """Raised on duplicate/conflicting operations."""

    def __init__(self, reason: str, code: str = "CONFLICT") -> None:
        super().__init__(message=reason, code=code, status_code=409)


class AlreadyApprovedError(ConflictError):
    """Raised when approving a transaction that is already approved."""

    def __init__(self, transaction_id: str) -> None:
        super().__init__(
            f"Transaction {transaction_id} is already approved",
            code="ALREADY_APPROVED",
        )


class InvalidTransitionError(ConflictError):
    """Raised when a transaction cannot move from its current approval status."""

    def __init__(self, transaction_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Transaction {transaction_id} cannot move from {current} to {target}",
            code="INVALID_TRANSITION",
        )


class DuplicateEntryError(ConflictError):
    """Raised when an insert hits a unique constraint."""

    def __init__(self, reason: str = "Duplicate entry") -> None:
        super().__init__(reason, code="DUPLICATE")


class InsufficientBalanceError(AppError):
    """Raised when a withdrawal exceeds the spendable balance."""

    def __init__(self, required: object, available: object) -> None:
        super().__init__(
            message=f"Insufficient balance: need {required}, have {available}",
            code="INSUFFICIENT_BALANCE",
        )


class StorageError(AppError):
    """Raised when the durable store fails or is unreachable."""

    def __init__(self, reason: str = "Database request failed") -> None:
        super().__init__(message=reason, code="STORAGE_ERROR", status_code=503)


class ForbiddenError(AppError):
    """Raised when the user lacks permission for the action."""

    def __init__(self, reason: str = "You don't have permission") -> None:
        super().__init__(message=reason, code="FORBIDDEN", status_code=403)


class UnauthorizedError(AppError):
    """Raised when the caller is not authenticated."""

    def __init__(self, reason: str = "Unauthorized") -> None:
        super().__init__(message=reason, code="UNAUTHORIZED", status_code=401)
