"""
Covenant candidate validation and classification.

Turns raw AI-extracted candidates into CovenantCreate records:
- drop unnamed or low-confidence candidates
- classify type by keyword (financial > reporting > operational > other)
- normalize check frequency from free text
- allow-list the operator, reject non-finite thresholds

A bad candidate is dropped on its own; the rest of the job proceeds.
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, Optional

import structlog

from covenantwatch.exceptions import ValidationError
from covenantwatch.schemas.covenants import (
    CheckFrequency,
    CovenantCreate,
    CovenantOperator,
    CovenantType,
)
from covenantwatch.schemas.extraction import ExtractedCovenant

logger = structlog.get_logger(__name__)

MIN_CONFIDENCE: float = 0.3

FINANCIAL_KEYWORDS: tuple[str, ...] = (
    "ratio", "ebitda", "debt", "equity", "cash", "revenue", "income",
    "assets", "liabilities", "coverage", "leverage", "liquidity",
    "working capital", "net worth", "tangible", "current ratio",
)
REPORTING_KEYWORDS: tuple[str, ...] = (
    "report", "deliver", "provide", "furnish", "submit",
    "financial statements", "audit", "certificate", "notice",
    "information", "quarterly", "annual",
)
OPERATIONAL_KEYWORDS: tuple[str, ...] = (
    "maintain", "operate", "business", "insurance", "compliance",
    "permits", "licenses", "environmental", "safety", "employment",
)

# Checked in order; first match wins
TYPE_KEYWORDS: tuple[tuple[CovenantType, tuple[str, ...]], ...] = (
    (CovenantType.FINANCIAL, FINANCIAL_KEYWORDS),
    (CovenantType.REPORTING, REPORTING_KEYWORDS),
    (CovenantType.OPERATIONAL, OPERATIONAL_KEYWORDS),
)

FREQUENCY_KEYWORDS: tuple[tuple[CheckFrequency, tuple[str, ...]], ...] = (
    (CheckFrequency.MONTHLY, ("month",)),
    (CheckFrequency.QUARTERLY, ("quarter",)),
    (CheckFrequency.ANNUALLY, ("annual", "yearly", "year")),
    (CheckFrequency.ON_DEMAND, ("demand", "request", "upon")),
)


def classify_covenant_type(
    covenant_name: str,
    metric_name: Optional[str] = None,
    covenant_clause: Optional[str] = None,
) -> CovenantType:
    text = f"{covenant_name} {metric_name or ''} {covenant_clause or ''}".lower()
    for covenant_type, keywords in TYPE_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return covenant_type
    return CovenantType.OTHER


def normalize_frequency(
    extracted_frequency: Optional[str],
    covenant_clause: Optional[str] = None,
) -> CheckFrequency:
    text = f"{extracted_frequency or ''} {covenant_clause or ''}".lower()
    for frequency, keywords in FREQUENCY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return frequency
    return CheckFrequency.QUARTERLY


def validate_operator_and_threshold(
    operator: Optional[str], threshold_value: Optional[float]
) -> tuple[CovenantOperator, float]:
    normalized = (operator or "").strip()
    try:
        op = CovenantOperator(normalized)
    except ValueError:
        raise ValidationError(f"Invalid operator: {operator}", field="operator")

    if threshold_value is None or not math.isfinite(threshold_value):
        raise ValidationError(
            f"Invalid threshold value: {threshold_value}", field="threshold_value"
        )
    return op, threshold_value


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class ClassificationReport:
    accepted: list[CovenantCreate] = field(default_factory=list)
    skipped: int = 0
    rejected: list[str] = field(default_factory=list)


def validate_and_classify(
    candidates: Iterable[ExtractedCovenant],
    contract_id: str,
    min_confidence: float = MIN_CONFIDENCE,
) -> ClassificationReport:
    """Validate every candidate independently."""
    report = ClassificationReport()

    for candidate in candidates:
        name = candidate.covenant_name.strip()
        if not name or candidate.confidence_score < min_confidence:
            report.skipped += 1
            logger.debug(
                "covenant_candidate_skipped",
                contract_id=contract_id,
                covenant_name=name,
                confidence=candidate.confidence_score,
            )
            continue

        try:
            operator, threshold = validate_operator_and_threshold(
                candidate.operator, candidate.threshold_value
            )
        except ValidationError as exc:
            report.rejected.append(f"{name}: {exc.message}")
            logger.warning(
                "covenant_candidate_rejected",
                contract_id=contract_id,
                covenant_name=name,
                reason=exc.message,
            )
            continue

        report.accepted.append(
            CovenantCreate(
                contract_id=contract_id,
                covenant_name=name,
                covenant_type=classify_covenant_type(
                    name, candidate.metric_name, candidate.covenant_clause
                ),
                metric_name=_clean(candidate.metric_name),
                operator=operator,
                threshold_value=threshold,
                threshold_unit=_clean(candidate.threshold_unit),
                check_frequency=normalize_frequency(
                    candidate.check_frequency, candidate.covenant_clause
                ),
                covenant_clause=_clean(candidate.covenant_clause),
                ai_extracted=True,
            )
        )

    return report
