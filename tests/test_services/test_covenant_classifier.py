"""
Tests for covenant candidate validation and classification.
"""

import math

import pytest

from covenantwatch.exceptions import ValidationError
from covenantwatch.schemas.covenants import CheckFrequency, CovenantOperator, CovenantType
from covenantwatch.schemas.extraction import ExtractedCovenant
from covenantwatch.services.covenant_classifier import (
    classify_covenant_type,
    normalize_frequency,
    validate_and_classify,
    validate_operator_and_threshold,
)


class TestClassifyType:
    def test_financial_wins_over_reporting(self):
        # "quarterly" is a reporting keyword, "leverage" a financial one
        assert classify_covenant_type("Quarterly Leverage Test") == CovenantType.FINANCIAL

    def test_reporting(self):
        assert classify_covenant_type(
            "Delivery of financial statements", None, "Borrower shall furnish"
        ) == CovenantType.REPORTING

    def test_operational(self):
        assert classify_covenant_type("Maintain insurance") == CovenantType.OPERATIONAL

    def test_metric_name_is_considered(self):
        assert classify_covenant_type("Covenant 7.1", "ebitda") == CovenantType.FINANCIAL

    def test_no_keyword(self):
        assert classify_covenant_type("Negative pledge") == CovenantType.OTHER


class TestNormalizeFrequency:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Monthly", CheckFrequency.MONTHLY),
            ("each fiscal quarter", CheckFrequency.QUARTERLY),
            ("yearly", CheckFrequency.ANNUALLY),
            ("upon request", CheckFrequency.ON_DEMAND),
            ("", CheckFrequency.QUARTERLY),
            (None, CheckFrequency.QUARTERLY),
        ],
    )
    def test_keywords(self, text, expected):
        assert normalize_frequency(text) == expected

    def test_clause_is_searched(self):
        assert normalize_frequency(None, "tested at the end of each month") == CheckFrequency.MONTHLY


class TestOperatorAndThreshold:
    def test_trimmed_operator(self):
        assert validate_operator_and_threshold(" <= ", 3.0) == (CovenantOperator.LTE, 3.0)

    @pytest.mark.parametrize("operator", ["=>", "", None, "<>"])
    def test_invalid_operator(self, operator):
        with pytest.raises(ValidationError) as exc:
            validate_operator_and_threshold(operator, 1.0)
        assert exc.value.field == "operator"

    @pytest.mark.parametrize("threshold", [math.nan, math.inf, None])
    def test_non_finite_threshold(self, threshold):
        with pytest.raises(ValidationError) as exc:
            validate_operator_and_threshold(">=", threshold)
        assert exc.value.field == "threshold_value"


def test_each_candidate_is_validated_independently():
    report = validate_and_classify(
        [
            ExtractedCovenant(
                covenant_name=" Max Leverage ",
                metric_name="debt_to_ebitda",
                operator="<=",
                threshold_value=3.5,
                threshold_unit=" x ",
                covenant_clause="Leverage shall not exceed 3.50:1.00, tested quarterly",
                confidence_score=0.95,
            ),
            ExtractedCovenant(covenant_name="", confidence_score=0.9),
            ExtractedCovenant(covenant_name="Low confidence", confidence_score=0.29),
            ExtractedCovenant(
                covenant_name="Broken", operator="<=", threshold_value=math.nan, confidence_score=0.9
            ),
        ],
        contract_id="contract-1",
    )

    assert report.skipped == 2
    assert report.rejected == ["Broken: Invalid threshold value: nan"]
    assert len(report.accepted) == 1
    covenant = report.accepted[0]
    assert covenant.covenant_name == "Max Leverage"
    assert covenant.covenant_type == CovenantType.FINANCIAL
    assert covenant.check_frequency == CheckFrequency.QUARTERLY
    assert covenant.threshold_unit == "x"
    assert covenant.ai_extracted is True
