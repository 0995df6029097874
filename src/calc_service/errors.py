"""
Exception hierarchy for Calc Service.

User-facing failures (bad characters, grammar violations, arithmetic
faults) derive from CalculationError and carry a stable error code that is
stored on the failed record. Store errors signal internal misuse and are
never rendered to end users.
"""

from calc_service.models import ErrorCode


class CalculationError(Exception):
    """Base exception for expression evaluation errors."""

    stage: str = "calculation"

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class LexError(CalculationError):
    """Raised when the tokenizer meets a character it does not recognize."""

    stage = "lex"

    def __init__(self, character: str, offset: int, code: ErrorCode = ErrorCode.UNEXPECTED_CHARACTER):
        super().__init__(code, f"Unexpected character {character!r} at offset {offset}")
        self.character = character
        self.offset = offset


class ExpressionTooLongError(LexError):
    """Raised when the input exceeds the configured maximum length."""

    def __init__(self, length: int, limit: int):
        CalculationError.__init__(
            self,
            ErrorCode.EXPRESSION_TOO_LONG,
            f"Expression is {length} characters long; the limit is {limit}",
        )
        self.character = ""
        self.offset = limit


class ExpressionSyntaxError(CalculationError):
    """Raised when the token stream violates the grammar."""

    stage = "syntax"

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        position: int | None = None,
        expected: str | None = None,
        found: str | None = None,
    ):
        super().__init__(code, message)
        self.position = position
        self.expected = expected
        self.found = found


class EvaluationError(CalculationError):
    """Raised on arithmetic faults such as division by zero or overflow."""

    stage = "arithmetic"


class StoreError(Exception):
    """Base exception for history store misuse."""
    pass


class RecordNotFoundError(StoreError):
    """Raised when a record id is unknown to the store."""

    def __init__(self, record_id: int):
        super().__init__(f"Calculation record {record_id} not found")
        self.record_id = record_id


class InvalidTransitionError(StoreError):
    """Raised when completing or failing a record that is already terminal."""

    def __init__(self, record_id: int, status: str):
        super().__init__(f"Calculation record {record_id} is already {status}")
        self.record_id = record_id
        self.status = status
