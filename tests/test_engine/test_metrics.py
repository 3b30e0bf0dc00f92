"""
Tests for the covenant metric registry.
"""

from datetime import date

import pytest

from covenantwatch.engine.metrics import METRICS, get_metric, read_metric
from covenantwatch.engine.ratios import compute_ratios
from covenantwatch.exceptions import UnknownMetricError
from covenantwatch.schemas.financials import FinancialSnapshot, PeriodType


@pytest.fixture
def snapshot():
    return FinancialSnapshot(
        borrower_id="b-1",
        period_date=date(2026, 3, 31),
        period_type=PeriodType.QUARTERLY,
        source="manual",
        debt_total=300.0,
        ebitda=100.0,
    )


def test_ratio_metric_reads_derived_value(snapshot):
    definition = get_metric("debt_to_ebitda")
    assert definition.lower_is_better is True
    assert read_metric(definition, snapshot, compute_ratios(snapshot)) == pytest.approx(3.0)


def test_raw_metric_reads_snapshot_field(snapshot):
    definition = get_metric("ebitda")
    assert read_metric(definition, snapshot, compute_ratios(snapshot)) == 100.0


def test_unreported_metric_is_none(snapshot):
    definition = get_metric("current_ratio")
    assert read_metric(definition, snapshot, compute_ratios(snapshot)) is None


def test_no_metric_declared():
    assert get_metric(None) is None
    assert get_metric("") is None


def test_unknown_metric_raises():
    with pytest.raises(UnknownMetricError) as exc:
        get_metric("fixed_charge_coverage", "cov-9")
    assert exc.value.details == {"metric_name": "fixed_charge_coverage", "covenant_id": "cov-9"}


def test_leverage_metrics_are_lower_is_better():
    lower = {name for name, m in METRICS.items() if m.lower_is_better}
    assert lower == {"debt_to_ebitda", "debt_to_equity", "debt_total"}
