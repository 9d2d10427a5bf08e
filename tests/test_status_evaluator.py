"""
tests/test_status_evaluator.py

Pure unit tests for StatusEvaluator.

Coverage
--------
- Same-period OK, including the tolerance boundary, in both directions
- Missing actual: data missing when due, no verdict otherwise
- Look-ahead: catching up, data missing override, no next period
- The current period's forecast is never compared against its actual
- Proposed status codes are parsed case-insensitively against the known set
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from kpi.direction import TrendDirection
from kpi.errors import ValidationError
from kpi.status import (
    NextPeriodValues,
    StatusCode,
    StatusEvaluator,
    StatusInput,
    meets,
    parse_status_code,
    status_differs,
)

ASC = TrendDirection.ASCENDING
DESC = TrendDirection.DESCENDING


def D(value: str) -> Decimal:
    return Decimal(value)


@pytest.fixture()
def evaluator() -> StatusEvaluator:
    return StatusEvaluator()


def _input(
    actual: str | None,
    target: str | None,
    *,
    forecast: str | None = None,
    is_due: bool = True,
    direction: TrendDirection = ASC,
    next_values: NextPeriodValues | None = None,
) -> StatusInput:
    return StatusInput(
        actual=None if actual is None else D(actual),
        target=None if target is None else D(target),
        forecast=None if forecast is None else D(forecast),
        is_due=is_due,
        direction=direction,
        next_values=next_values,
    )


class TestMeets:
    def test_ascending_tolerance_boundary(self) -> None:
        assert meets(D("9.9999"), D("10"), ASC)
        assert not meets(D("9.9998"), D("10"), ASC)

    def test_descending_tolerance_boundary(self) -> None:
        assert meets(D("10.0001"), D("10"), DESC)
        assert not meets(D("10.0002"), D("10"), DESC)

    def test_custom_tolerance(self) -> None:
        assert meets(D("9.5"), D("10"), ASC, D("0.5"))


class TestSamePeriod:
    def test_equal_values_are_ok(self, evaluator: StatusEvaluator) -> None:
        assert evaluator.evaluate(_input("10", "10")) == StatusCode.OK

    def test_within_epsilon_is_ok(self, evaluator: StatusEvaluator) -> None:
        assert evaluator.evaluate(_input("9.99995", "10")) == StatusCode.OK

    def test_descending_lower_is_ok(self, evaluator: StatusEvaluator) -> None:
        assert evaluator.evaluate(_input("3", "5", direction=DESC)) == StatusCode.OK

    def test_descending_higher_needs_attention(self, evaluator: StatusEvaluator) -> None:
        assert evaluator.evaluate(_input("6", "5", direction=DESC)) == StatusCode.NEEDS_ATTENTION

    def test_missing_actual_when_due(self, evaluator: StatusEvaluator) -> None:
        assert evaluator.evaluate(_input(None, "10", is_due=True)) == StatusCode.DATA_MISSING

    def test_missing_actual_not_due_gives_no_verdict(self, evaluator: StatusEvaluator) -> None:
        assert evaluator.evaluate(_input(None, "10", is_due=False)) is None

    def test_missing_target_needs_attention(self, evaluator: StatusEvaluator) -> None:
        assert evaluator.evaluate(_input("10", None)) == StatusCode.NEEDS_ATTENTION

    def test_current_forecast_is_ignored(self, evaluator: StatusEvaluator) -> None:
        data = _input("5", "10", forecast="50")
        assert evaluator.evaluate(data) == StatusCode.NEEDS_ATTENTION


class TestLookAhead:
    def test_catching_up_when_next_forecast_meets_next_target(
        self, evaluator: StatusEvaluator
    ) -> None:
        data = _input("5", "10", next_values=NextPeriodValues(D("8"), D("9")))
        assert evaluator.evaluate(data) == StatusCode.CATCHING_UP

    def test_missing_next_target_overrides_catching_up(self, evaluator: StatusEvaluator) -> None:
        data = _input("5", "10", next_values=NextPeriodValues(None, D("9")))
        assert evaluator.evaluate(data) == StatusCode.DATA_MISSING

    def test_missing_next_forecast_needs_attention(self, evaluator: StatusEvaluator) -> None:
        data = _input("5", "10", next_values=NextPeriodValues(D("8"), None))
        assert evaluator.evaluate(data) == StatusCode.NEEDS_ATTENTION

    def test_next_forecast_short_of_target(self, evaluator: StatusEvaluator) -> None:
        data = _input("5", "10", next_values=NextPeriodValues(D("8"), D("7")))
        assert evaluator.evaluate(data) == StatusCode.NEEDS_ATTENTION

    def test_descending_catching_up(self, evaluator: StatusEvaluator) -> None:
        data = _input(
            "6", "5", direction=DESC, next_values=NextPeriodValues(D("5"), D("4"))
        )
        assert evaluator.evaluate(data) == StatusCode.CATCHING_UP

    def test_last_period_needs_attention(self, evaluator: StatusEvaluator) -> None:
        assert evaluator.evaluate(_input("5", "10", next_values=None)) == StatusCode.NEEDS_ATTENTION

    def test_ok_period_does_not_look_ahead(self, evaluator: StatusEvaluator) -> None:
        data = _input("10", "10", next_values=NextPeriodValues(None, None))
        assert evaluator.evaluate(data) == StatusCode.OK


class TestStatusDiffers:
    def test_case_insensitive(self) -> None:
        assert not status_differs("ok", "OK")

    def test_unset_stored_value(self) -> None:
        assert status_differs("ok", None)
        assert status_differs("ok", "")


class TestParseStatusCode:
    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_blank_is_none(self, raw) -> None:
        assert parse_status_code(raw) is None

    def test_known_code_is_canonical(self) -> None:
        assert parse_status_code(" Catching_Up ") == StatusCode.CATCHING_UP

    @pytest.mark.parametrize("raw", ["banana", "needs attention", "okay"])
    def test_unknown_code_is_rejected(self, raw: str) -> None:
        with pytest.raises(ValidationError):
            parse_status_code(raw)
