"""Unified error codes and custom exceptions.

Every error carries a stable numeric ``code`` and a stable machine-readable
``kind``; callers branch on those, never on the message.

Error code ranges:
  1xxx: Auth/Scope
  2xxx: Statement
  3xxx: Ledger movement
  4xxx: Query
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
        kind: str = "APP_ERROR",
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        self.kind = kind
        super().__init__(message)


# --- 1xxx: Auth/Scope ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Invalid or expired token", 401, "INVALID_CREDENTIALS")


class ForbiddenScopeError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(1003, f"Out of scope: {detail}", 403, "FORBIDDEN_SCOPE")


# --- 2xxx: Statement ---

class StatementSettledError(AppError):
    def __init__(self, statement_id: int) -> None:
        super().__init__(
            2001,
            f"Statement {statement_id} is settled and cannot be modified",
            409,
            "STATEMENT_SETTLED",
        )


class StatementNotFoundError(AppError):
    def __init__(self, statement_id: int) -> None:
        super().__init__(2002, f"Statement not found: {statement_id}", 404, "STATEMENT_NOT_FOUND")


class StatementHasActivityError(AppError):
    def __init__(self, statement_id: int, detail: str) -> None:
        super().__init__(
            2003,
            f"Statement {statement_id} cannot be deleted: {detail}",
            409,
            "STATEMENT_HAS_ACTIVITY",
        )


# --- 3xxx: Ledger movement ---

class InvalidAmountError(AppError):
    def __init__(self, amount: int) -> None:
        super().__init__(
            3001, f"Amount must be positive, got {amount} cents", 422, "INVALID_AMOUNT"
        )


class InvalidReasonError(AppError):
    def __init__(self, min_length: int) -> None:
        super().__init__(
            3002,
            f"Reversal reason must be at least {min_length} characters",
            422,
            "INVALID_REASON",
        )


class CannotReverseSettledDayError(AppError):
    def __init__(self, movement_id: int) -> None:
        super().__init__(
            3003,
            f"Reversing movement {movement_id} would leave the day balanced to zero "
            "while other movements remain active",
            409,
            "CANNOT_REVERSE_SETTLED_DAY",
        )


class MovementNotFoundError(AppError):
    def __init__(self, movement_id: int) -> None:
        super().__init__(3004, f"Movement not found: {movement_id}", 404, "MOVEMENT_NOT_FOUND")


class AlreadyReversedError(AppError):
    def __init__(self, movement_id: int) -> None:
        super().__init__(3005, f"Movement {movement_id} is already reversed", 409, "ALREADY_REVERSED")


# --- 4xxx: Query ---

class InvalidDateRangeError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4001, f"Invalid date range: {detail}", 422, "INVALID_DATE_RANGE")


class AggregationLimitExceededError(AppError):
    def __init__(self, limit: int) -> None:
        super().__init__(
            4002,
            f"Aggregation exceeds {limit} sale records; narrow the date range or entity filter",
            422,
            "AGGREGATION_LIMIT_EXCEEDED",
        )


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500, "INTERNAL_ERROR")
