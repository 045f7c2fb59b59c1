from dataclasses import dataclass

from fastapi import status


CATEGORY_VALIDATION = "validation"
CATEGORY_CONFLICT = "conflict"
CATEGORY_AUTHORIZATION = "authorization"
CATEGORY_NOT_FOUND = "not_found"
CATEGORY_UNAVAILABLE = "unavailable"
CATEGORY_INTERNAL = "internal"


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int
    category: str = CATEGORY_INTERNAL


class ErrorCatalog:
    INVALID_TOKEN = ErrorDefinition(
        "INVALID_TOKEN",
        "Invalid token",
        status.HTTP_401_UNAUTHORIZED,
        CATEGORY_AUTHORIZATION,
    )
    FORBIDDEN = ErrorDefinition(
        "FORBIDDEN",
        "Actor role does not allow this operation",
        status.HTTP_403_FORBIDDEN,
        CATEGORY_AUTHORIZATION,
    )
    NOT_SESSION_PARTICIPANT = ErrorDefinition(
        "NOT_SESSION_PARTICIPANT",
        "Actor has no active participation in the cash session",
        status.HTTP_403_FORBIDDEN,
        CATEGORY_AUTHORIZATION,
    )
    SELF_AUTHORIZATION_DENIED = ErrorDefinition(
        "SELF_AUTHORIZATION_DENIED",
        "Requester cannot authorize their own request",
        status.HTTP_403_FORBIDDEN,
        CATEGORY_AUTHORIZATION,
    )
    APPROVAL_NOTES_REQUIRED = ErrorDefinition(
        "APPROVAL_NOTES_REQUIRED",
        "Approval notes are missing or too short",
        status.HTTP_403_FORBIDDEN,
        CATEGORY_AUTHORIZATION,
    )
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR",
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        CATEGORY_VALIDATION,
    )
    INVALID_AMOUNT = ErrorDefinition(
        "INVALID_AMOUNT",
        "Amount is not valid for this operation",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        CATEGORY_VALIDATION,
    )
    BREAKDOWN_MISMATCH = ErrorDefinition(
        "BREAKDOWN_MISMATCH",
        "Denomination breakdown does not match the counted cash",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        CATEGORY_VALIDATION,
    )
    AUTHORIZATION_REQUIRED = ErrorDefinition(
        "AUTHORIZATION_REQUIRED",
        "Amount requires authorization by a supervisor",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        CATEGORY_VALIDATION,
    )
    INSUFFICIENT_FUNDS = ErrorDefinition(
        "INSUFFICIENT_FUNDS",
        "Available balance is not enough for this operation",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        CATEGORY_VALIDATION,
    )
    SESSION_NOT_FOUND = ErrorDefinition(
        "SESSION_NOT_FOUND",
        "Cash session not found",
        status.HTTP_404_NOT_FOUND,
        CATEGORY_NOT_FOUND,
    )
    SHIFT_NOT_FOUND = ErrorDefinition(
        "SHIFT_NOT_FOUND",
        "Shift not found",
        status.HTTP_404_NOT_FOUND,
        CATEGORY_NOT_FOUND,
    )
    MOVEMENT_NOT_FOUND = ErrorDefinition(
        "MOVEMENT_NOT_FOUND",
        "Movement not found",
        status.HTTP_404_NOT_FOUND,
        CATEGORY_NOT_FOUND,
    )
    WITHDRAWAL_NOT_FOUND = ErrorDefinition(
        "WITHDRAWAL_NOT_FOUND",
        "Withdrawal not found",
        status.HTTP_404_NOT_FOUND,
        CATEGORY_NOT_FOUND,
    )
    EXPENSE_NOT_FOUND = ErrorDefinition(
        "EXPENSE_NOT_FOUND",
        "Expense not found",
        status.HTTP_404_NOT_FOUND,
        CATEGORY_NOT_FOUND,
    )
    RECONCILIATION_NOT_FOUND = ErrorDefinition(
        "RECONCILIATION_NOT_FOUND",
        "Reconciliation not found",
        status.HTTP_404_NOT_FOUND,
        CATEGORY_NOT_FOUND,
    )
    NO_ACTIVE_SESSION = ErrorDefinition(
        "NO_ACTIVE_SESSION",
        "Actor has no active cash session",
        status.HTTP_404_NOT_FOUND,
        CATEGORY_NOT_FOUND,
    )
    SESSION_ALREADY_OPEN = ErrorDefinition(
        "SESSION_ALREADY_OPEN",
        "An open cash session already exists",
        status.HTTP_409_CONFLICT,
        CATEGORY_CONFLICT,
    )
    SESSION_NOT_OPEN = ErrorDefinition(
        "SESSION_NOT_OPEN",
        "Cash session is not open",
        status.HTTP_409_CONFLICT,
        CATEGORY_CONFLICT,
    )
    SHIFTS_STILL_OPEN = ErrorDefinition(
        "SHIFTS_STILL_OPEN",
        "Cash session still has shifts that are not closed",
        status.HTTP_409_CONFLICT,
        CATEGORY_CONFLICT,
    )
    ALREADY_ACTIVE = ErrorDefinition(
        "ALREADY_ACTIVE",
        "Cashier already has an active shift",
        status.HTTP_409_CONFLICT,
        CATEGORY_CONFLICT,
    )
    NOT_ACTIVE = ErrorDefinition(
        "NOT_ACTIVE",
        "Shift is not active",
        status.HTTP_409_CONFLICT,
        CATEGORY_CONFLICT,
    )
    NOT_SUSPENDED = ErrorDefinition(
        "NOT_SUSPENDED",
        "Shift is not suspended",
        status.HTTP_409_CONFLICT,
        CATEGORY_CONFLICT,
    )
    NOT_PENDING = ErrorDefinition(
        "NOT_PENDING",
        "Request is not pending authorization",
        status.HTTP_409_CONFLICT,
        CATEGORY_CONFLICT,
    )
    NOT_AUTHORIZED = ErrorDefinition(
        "NOT_AUTHORIZED",
        "Withdrawal has not been authorized",
        status.HTTP_409_CONFLICT,
        CATEGORY_CONFLICT,
    )
    NOT_CANCELLABLE = ErrorDefinition(
        "NOT_CANCELLABLE",
        "Withdrawal can no longer be cancelled",
        status.HTTP_409_CONFLICT,
        CATEGORY_CONFLICT,
    )
    NOT_OFFSETTABLE = ErrorDefinition(
        "NOT_OFFSETTABLE",
        "Movement cannot be offset",
        status.HTTP_409_CONFLICT,
        CATEGORY_CONFLICT,
    )
    RECONCILIATION_PENDING = ErrorDefinition(
        "RECONCILIATION_PENDING",
        "Cash session has a reconciliation awaiting approval",
        status.HTTP_409_CONFLICT,
        CATEGORY_CONFLICT,
    )
    RECONCILIATION_NOT_PENDING = ErrorDefinition(
        "RECONCILIATION_NOT_PENDING",
        "Reconciliation is not awaiting approval",
        status.HTTP_409_CONFLICT,
        CATEGORY_CONFLICT,
    )
    LOCK_TIMEOUT = ErrorDefinition(
        "LOCK_TIMEOUT",
        "Lock wait timeout",
        status.HTTP_409_CONFLICT,
        CATEGORY_CONFLICT,
    )
    DB_UNAVAILABLE = ErrorDefinition(
        "DB_UNAVAILABLE",
        "Database unavailable",
        status.HTTP_503_SERVICE_UNAVAILABLE,
        CATEGORY_UNAVAILABLE,
    )
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR",
        "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        CATEGORY_INTERNAL,
    )
    IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD = ErrorDefinition(
        "IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD",
        "Idempotency key reused with different payload",
        status.HTTP_409_CONFLICT,
        CATEGORY_CONFLICT,
    )
    IDEMPOTENCY_REQUEST_IN_PROGRESS = ErrorDefinition(
        "IDEMPOTENCY_REQUEST_IN_PROGRESS",
        "Idempotency request already in progress",
        status.HTTP_409_CONFLICT,
        CATEGORY_CONFLICT,
    )
    IDEMPOTENCY_REPLAY = ErrorDefinition(
        "IDEMPOTENCY_REPLAY",
        "Idempotent replay",
        status.HTTP_200_OK,
    )


class AppError(Exception):
    def __init__(self, error: ErrorDefinition, details: object | None = None):
        self.error = error
        self.details = details
        super().__init__(error.message)

    @property
    def code(self) -> str:
        return self.error.code

    @property
    def category(self) -> str:
        return self.error.category


def validation_error(field: str, message: str, error: ErrorDefinition = ErrorCatalog.VALIDATION_ERROR, **extra) -> AppError:
    details = {"field": field, "message": message}
    details.update(extra)
    return AppError(error, details=details)
