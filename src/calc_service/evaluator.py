"""
Expression tree evaluator.

Arithmetic is IEEE-754 binary64 (Python float). The walk is post-order and
uses an explicit stack: a left-associative chain such as "1+1+...+1"
produces a tree as deep as the chain is long, which would otherwise be
bounded only by the interpreter's recursion limit.
"""

import math
import operator
from collections import Counter

from calc_service.errors import EvaluationError
from calc_service.models import ErrorCode
from calc_service.parser import BinaryOp, ExpressionNode, Literal

_OPERATIONS = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
}


def apply_operation(op: str, left: float, right: float) -> float:
    """Apply a single binary operator, enforcing the arithmetic error rules."""
    if op == "/" and right == 0:
        raise EvaluationError(ErrorCode.DIVIDE_BY_ZERO, "Division by zero")
    try:
        result = _OPERATIONS[op](left, right)
    except OverflowError:
        raise EvaluationError(ErrorCode.OVERFLOW, f"Result of {left!r} {op} {right!r} overflows")
    if not math.isfinite(result):
        raise EvaluationError(ErrorCode.OVERFLOW, f"Result of {left!r} {op} {right!r} is not finite")
    return result


def evaluate(node: ExpressionNode) -> float:
    """
    Evaluate an expression tree.

    Raises:
        EvaluationError: DivideByZero or Overflow.
    """
    values: list[float] = []
    # (node, children_done) pairs
    stack: list[tuple[ExpressionNode, bool]] = [(node, False)]

    while stack:
        current, children_done = stack.pop()

        if isinstance(current, Literal):
            if not math.isfinite(current.value):
                raise EvaluationError(ErrorCode.OVERFLOW, "Numeric literal is out of range")
            values.append(current.value)
        elif children_done:
            right = values.pop()
            left = values.pop()
            values.append(apply_operation(current.op, left, right))
        else:
            stack.append((current, True))
            stack.append((current.right, False))
            stack.append((current.left, False))

    return values.pop()


def count_operations(node: ExpressionNode) -> Counter:
    """Count the binary operators in a tree, keyed by operator symbol."""
    counts: Counter = Counter()
    stack: list[ExpressionNode] = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, BinaryOp):
            counts[current.op] += 1
            stack.append(current.left)
            stack.append(current.right)
    return counts
