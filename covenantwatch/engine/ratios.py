"""
Ratio Calculator — derives standard financial ratios from a snapshot.

Rules:
- A ratio is computed only when every input is present AND the
  denominator is non-zero. Otherwise it is omitted (None), never 0.
- ROE / ROA are percentages (×100); all other ratios are plain multiples.
- ROA uses current assets as the asset base (no total-assets figure is
  reported on a snapshot).
"""

import math
from typing import Optional

from covenantwatch.exceptions import ValidationError
from covenantwatch.schemas.financials import (
    DataQualityReport,
    FinancialRatios,
    FinancialSnapshot,
)

# Figures that can never be negative on a well-formed statement
NON_NEGATIVE_FIELDS: tuple[str, ...] = (
    "debt_total",
    "ebitda",
    "revenue",
    "equity_total",
    "current_assets",
    "current_liabilities",
    "capex",
)

# Completeness scoring
KEY_METRICS: tuple[str, ...] = (
    "debt_total",
    "ebitda",
    "revenue",
    "net_income",
    "equity_total",
)
BASE_CONFIDENCE: float = 0.5
KEY_METRICS_WEIGHT: float = 0.3
BALANCE_SHEET_BONUS: float = 0.1
INCOME_STATEMENT_BONUS: float = 0.1

# Below this a period still evaluates, but its ratios are flagged
LOW_CONFIDENCE_THRESHOLD: float = 0.7


def _ratio(
    numerator: Optional[float],
    denominator: Optional[float],
    scale: float = 1.0,
) -> Optional[float]:
    if numerator is None or denominator is None or denominator == 0:
        return None
    return numerator / denominator * scale


def _validation_errors(snapshot: FinancialSnapshot) -> list[str]:
    errors: list[str] = []

    for name in FinancialSnapshot.model_fields:
        value = getattr(snapshot, name)
        if isinstance(value, float) and not math.isfinite(value):
            errors.append(f"{name} must be a finite number")

    for name in NON_NEGATIVE_FIELDS:
        value = getattr(snapshot, name)
        if value is not None and value < 0:
            errors.append(f"{name} cannot be negative")
    return errors


def validate_snapshot(snapshot: FinancialSnapshot) -> None:
    """
    Reject malformed numeric input.

    Raises:
        ValidationError listing every offending field.
    """
    errors = _validation_errors(snapshot)
    if errors:
        raise ValidationError(
            f"Validation failed: {', '.join(errors)}",
            details={"errors": errors, "borrower_id": snapshot.borrower_id},
        )


def assess_data_confidence(snapshot: FinancialSnapshot) -> float:
    """Heuristic [0, 1] completeness score for a snapshot."""
    confidence = BASE_CONFIDENCE

    present = sum(1 for name in KEY_METRICS if getattr(snapshot, name) is not None)
    confidence += (present / len(KEY_METRICS)) * KEY_METRICS_WEIGHT

    if snapshot.current_assets is not None and snapshot.current_liabilities is not None:
        confidence += BALANCE_SHEET_BONUS

    if snapshot.revenue is not None and snapshot.net_income is not None:
        confidence += INCOME_STATEMENT_BONUS

    return min(1.0, max(0.0, confidence))


def compute_ratios(snapshot: FinancialSnapshot) -> FinancialRatios:
    """Compute every ratio the snapshot supports."""
    s = snapshot
    return FinancialRatios(
        debt_to_ebitda=_ratio(s.debt_total, s.ebitda),
        debt_to_equity=_ratio(s.debt_total, s.equity_total),
        current_ratio=_ratio(s.current_assets, s.current_liabilities),
        interest_coverage=_ratio(s.ebitda, s.interest_expense),
        roe=_ratio(s.net_income, s.equity_total, scale=100.0),
        roa=_ratio(s.net_income, s.current_assets, scale=100.0),
        data_confidence=assess_data_confidence(s),
    )


def assess_data_quality(snapshot: FinancialSnapshot) -> DataQualityReport:
    """
    Report what is wrong or missing in a snapshot without rejecting it.

    is_valid mirrors validate_snapshot; gaps in reporting lower the
    confidence score and produce recommendations but never invalidate.
    """
    issues = _validation_errors(snapshot)
    is_valid = not issues
    recommendations: list[str] = []

    missing = [name for name in KEY_METRICS if getattr(snapshot, name) is None]
    if missing:
        issues.append(f"Missing key metrics: {', '.join(missing)}")
        recommendations.append(
            f"Request {', '.join(missing)} from the borrower for this period"
        )
    if snapshot.current_assets is None or snapshot.current_liabilities is None:
        recommendations.append(
            "Provide current assets and current liabilities to compute the current ratio"
        )
    if snapshot.interest_expense is None:
        recommendations.append("Provide interest expense to compute interest coverage")

    confidence = assess_data_confidence(snapshot)
    if confidence < LOW_CONFIDENCE_THRESHOLD:
        recommendations.append(
            "Treat covenant results for this period as low confidence"
        )
    if not is_valid:
        recommendations.insert(0, "Correct the invalid figures and resubmit")

    return DataQualityReport(
        is_valid=is_valid,
        confidence_score=confidence,
        issues=issues,
        recommendations=recommendations,
    )
