"""
Covenant metric registry.

Maps a covenant's declared metric name to the snapshot field or derived
ratio it reads, and records the metric's polarity for trend analysis.
The mapping is exhaustive: an unknown name raises UnknownMetricError
instead of silently evaluating to zero.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Optional

from covenantwatch.exceptions import UnknownMetricError
from covenantwatch.schemas.financials import FinancialRatios, FinancialSnapshot


class MetricSource(StrEnum):
    RATIO = "ratio"     # read from FinancialRatios
    RAW = "raw"         # read from the FinancialSnapshot itself


@dataclass(frozen=True)
class MetricDefinition:
    name: str
    source: MetricSource
    field: str
    lower_is_better: bool = False
    description: str = ""


METRICS: dict[str, MetricDefinition] = {
    m.name: m
    for m in (
        # Derived ratios
        MetricDefinition("debt_to_ebitda", MetricSource.RATIO, "debt_to_ebitda",
                         lower_is_better=True, description="Total debt / EBITDA"),
        MetricDefinition("debt_to_equity", MetricSource.RATIO, "debt_to_equity",
                         lower_is_better=True, description="Total debt / equity"),
        MetricDefinition("current_ratio", MetricSource.RATIO, "current_ratio",
                         description="Current assets / current liabilities"),
        MetricDefinition("interest_coverage", MetricSource.RATIO, "interest_coverage",
                         description="EBITDA / interest expense"),
        MetricDefinition("roe", MetricSource.RATIO, "roe",
                         description="Return on equity (%)"),
        MetricDefinition("roa", MetricSource.RATIO, "roa",
                         description="Return on assets (%)"),
        # Raw figures
        MetricDefinition("debt_total", MetricSource.RAW, "debt_total", lower_is_better=True),
        MetricDefinition("ebitda", MetricSource.RAW, "ebitda"),
        MetricDefinition("revenue", MetricSource.RAW, "revenue"),
        MetricDefinition("net_income", MetricSource.RAW, "net_income"),
        MetricDefinition("equity_total", MetricSource.RAW, "equity_total"),
        MetricDefinition("current_assets", MetricSource.RAW, "current_assets"),
        MetricDefinition("current_liabilities", MetricSource.RAW, "current_liabilities"),
    )
}


def get_metric(metric_name: Optional[str], covenant_id: Optional[str] = None) -> Optional[MetricDefinition]:
    """
    Look up a metric definition.

    Returns None for covenants that declare no metric (non-quantitative
    covenants). Raises UnknownMetricError for a name that is declared but
    not registered.
    """
    if not metric_name:
        return None
    definition = METRICS.get(metric_name.strip())
    if definition is None:
        raise UnknownMetricError(metric_name, covenant_id)
    return definition


def read_metric(
    definition: Optional[MetricDefinition],
    snapshot: Optional[FinancialSnapshot],
    ratios: Optional[FinancialRatios],
) -> Optional[float]:
    """Read a metric value; None when the data is not available."""
    if definition is None:
        return None
    if definition.source == MetricSource.RATIO:
        return getattr(ratios, definition.field) if ratios is not None else None
    return getattr(snapshot, definition.field) if snapshot is not None else None
