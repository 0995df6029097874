"""
Core data models for Calc Service.

Defines the calculation record schema, the status lifecycle, the stable
error codes, and the request/response shapes of the HTTP API.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, StrictStr


# =============================================================================
# Enums
# =============================================================================

class CalculationStatus(str, Enum):
    """Calculation lifecycle status."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not CalculationStatus.PENDING


class ErrorCode(str, Enum):
    """Stable reason codes stored on failed records."""
    # Tokenizer
    UNEXPECTED_CHARACTER = "UnexpectedCharacter"
    EXPRESSION_TOO_LONG = "ExpressionTooLong"
    # Parser
    EMPTY_EXPRESSION = "EmptyExpression"
    UNEXPECTED_TOKEN = "UnexpectedToken"
    MISSING_CLOSING_PAREN = "MissingClosingParen"
    MISSING_OPENING_PAREN = "MissingOpeningParen"
    TRAILING_TOKENS = "TrailingTokens"
    TOO_DEEP = "TooDeep"
    # Evaluator
    DIVIDE_BY_ZERO = "DivideByZero"
    OVERFLOW = "Overflow"
    # Worker pool
    CANCELLED = "Cancelled"
    INTERNAL_ERROR = "InternalError"

    @property
    def stage(self) -> str:
        return _ERROR_STAGES[self]


_ERROR_STAGES = {
    ErrorCode.UNEXPECTED_CHARACTER: "lex",
    ErrorCode.EXPRESSION_TOO_LONG: "lex",
    ErrorCode.EMPTY_EXPRESSION: "syntax",
    ErrorCode.UNEXPECTED_TOKEN: "syntax",
    ErrorCode.MISSING_CLOSING_PAREN: "syntax",
    ErrorCode.MISSING_OPENING_PAREN: "syntax",
    ErrorCode.TRAILING_TOKENS: "syntax",
    ErrorCode.TOO_DEEP: "syntax",
    ErrorCode.DIVIDE_BY_ZERO: "arithmetic",
    ErrorCode.OVERFLOW: "arithmetic",
    ErrorCode.CANCELLED: "runtime",
    ErrorCode.INTERNAL_ERROR: "runtime",
}


# =============================================================================
# Record Models
# =============================================================================

class CalculationRecord(BaseModel):
    """
    One submitted expression and its outcome.

    Instances are frozen snapshots: the store hands out copies, and a state
    transition produces a new instance rather than mutating a shared one.
    """
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    expression: str
    status: CalculationStatus = CalculationStatus.PENDING
    result: float | None = None
    error: ErrorCode | None = None
    error_detail: str | None = None
    created_at: datetime
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


# =============================================================================
# API Models
# =============================================================================

class CalculateRequest(BaseModel):
    """Request model for submitting an expression."""
    expression: StrictStr = Field(..., description="Arithmetic expression to evaluate")


class ExpressionList(BaseModel):
    """History listing response."""
    expressions: list[CalculationRecord] = Field(default_factory=list)


class ExpressionEnvelope(BaseModel):
    """Single record response."""
    expression: CalculationRecord
