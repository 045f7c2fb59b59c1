import enum


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    SUPERVISOR = "SUPERVISOR"
    CASHIER = "CASHIER"
    READ_ONLY = "READ_ONLY"


class SessionStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class ShiftStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    CLOSED = "CLOSED"


class ReliefType(str, enum.Enum):
    NORMAL = "NORMAL"
    EMERGENCY = "EMERGENCY"


class MovementKind(str, enum.Enum):
    SALE = "SALE"
    MANUAL_INCOME = "MANUAL_INCOME"
    MANUAL_EXPENSE = "MANUAL_EXPENSE"
    WITHDRAWAL = "WITHDRAWAL"
    EXPENSE = "EXPENSE"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    TRANSFER = "TRANSFER"
    WALLET = "WALLET"


class AuthorizationState(str, enum.Enum):
    NONE_REQUIRED = "NONE_REQUIRED"
    PENDING = "PENDING"
    AUTHORIZED = "AUTHORIZED"
    REJECTED = "REJECTED"


class AuthorizationDecision(str, enum.Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class WithdrawalStatus(str, enum.Enum):
    PENDING = "PENDING"
    AUTHORIZED = "AUTHORIZED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ExpenseCategory(str, enum.Enum):
    SUPPLIES = "SUPPLIES"
    UTILITIES = "UTILITIES"
    MAINTENANCE = "MAINTENANCE"
    TRANSPORT = "TRANSPORT"
    PAYROLL = "PAYROLL"
    TAXES = "TAXES"
    OTHER = "OTHER"


class ReconciliationStatus(str, enum.Enum):
    FINALIZED = "FINALIZED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"


class DifferenceType(str, enum.Enum):
    EVEN = "EVEN"
    OVER = "OVER"
    SHORT = "SHORT"


class CashLevel(str, enum.Enum):
    CRITICAL = "CRITICAL"
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"


COUNTABLE_AUTHORIZATION_STATES = frozenset({AuthorizationState.NONE_REQUIRED, AuthorizationState.AUTHORIZED})
OPEN_SHIFT_STATUSES = frozenset({ShiftStatus.ACTIVE, ShiftStatus.SUSPENDED})
