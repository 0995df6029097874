"""
Tests for the expression evaluator.
"""

import pytest

from calc_service.errors import EvaluationError
from calc_service.evaluator import apply_operation, count_operations, evaluate
from calc_service.models import ErrorCode
from calc_service.parser import Literal, parse_expression


def calc(text):
    return evaluate(parse_expression(text))


class TestArithmetic:
    """Test evaluation results."""

    def test_precedence(self):
        assert calc("2+2*2") == 6

    def test_parentheses(self):
        assert calc("(2+2)*2") == 8

    def test_left_associative_division(self):
        assert calc("10/2/5") == 1

    def test_left_associative_subtraction(self):
        assert calc("8-4-2") == 2

    def test_decimal_sum_is_exact(self):
        assert calc("3.5+1.5") == 5.0

    def test_division_with_remainder(self):
        assert calc("7/2") == 3.5

    def test_negative_result(self):
        assert calc("3-5") == -2

    def test_complex_expression(self):
        assert calc("((10 + 5) * 2) / 3") == 10

    def test_single_literal(self):
        assert evaluate(Literal(4.0)) == 4.0

    def test_long_chain(self):
        assert calc("+".join(["1"] * 5000)) == 5000

    def test_result_is_float(self):
        assert isinstance(calc("1+1"), float)


class TestArithmeticErrors:
    """Test division by zero and overflow."""

    def test_divide_by_zero(self):
        with pytest.raises(EvaluationError) as exc_info:
            calc("1/0")
        assert exc_info.value.code is ErrorCode.DIVIDE_BY_ZERO

    def test_divide_by_computed_zero(self):
        with pytest.raises(EvaluationError) as exc_info:
            calc("5/(2-2)")
        assert exc_info.value.code is ErrorCode.DIVIDE_BY_ZERO

    def test_zero_divided_by_zero(self):
        with pytest.raises(EvaluationError) as exc_info:
            calc("0/0")
        assert exc_info.value.code is ErrorCode.DIVIDE_BY_ZERO

    def test_multiplication_overflow(self):
        big = "9" * 300
        with pytest.raises(EvaluationError) as exc_info:
            calc(f"{big}*{big}")
        assert exc_info.value.code is ErrorCode.OVERFLOW

    def test_out_of_range_literal(self):
        with pytest.raises(EvaluationError) as exc_info:
            calc("9" * 400)
        assert exc_info.value.code is ErrorCode.OVERFLOW

    def test_apply_operation_rejects_infinite_result(self):
        with pytest.raises(EvaluationError):
            apply_operation("+", 1.7e308, 1.7e308)


class TestCountOperations:
    """Test per-operator counting."""

    def test_counts_each_operator(self):
        counts = count_operations(parse_expression("1+2*3-4/5+6"))
        assert counts == {"+": 2, "*": 1, "-": 1, "/": 1}

    def test_literal_has_no_operations(self):
        assert sum(count_operations(Literal(1.0)).values()) == 0
