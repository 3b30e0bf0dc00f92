"""
Compliance Evaluator — covenant status from (value, threshold, operator).

Policy:
- Missing value/threshold or an unknown operator evaluates to COMPLIANT.
  Absence of data must not itself raise alerts.
- '=' and '!=' compare with a 0.01 tolerance.
- A failed condition within WARNING_BUFFER_PCT of the threshold is
  WARNING; beyond it, BREACHED.
- Buffer percentage is signed so that positive always means "safer".
"""

from dataclasses import dataclass
from typing import Optional

from covenantwatch.schemas.covenants import ComplianceStatus, CovenantOperator

WARNING_BUFFER_PCT: float = 10.0
EQUALITY_TOLERANCE: float = 0.01


@dataclass(frozen=True)
class ComplianceResult:
    status: ComplianceStatus
    buffer_percentage: Optional[float]
    condition_met: Optional[bool]   # None when the covenant could not be evaluated


def parse_operator(operator: Optional[str]) -> Optional[CovenantOperator]:
    if operator is None:
        return None
    try:
        return CovenantOperator(operator.strip())
    except ValueError:
        return None


def check_condition(current: float, threshold: float, operator: CovenantOperator) -> bool:
    """Evaluate a covenant condition."""
    if operator == CovenantOperator.LT:
        return current < threshold
    elif operator == CovenantOperator.LTE:
        return current <= threshold
    elif operator == CovenantOperator.GT:
        return current > threshold
    elif operator == CovenantOperator.GTE:
        return current >= threshold
    elif operator == CovenantOperator.EQ:
        return abs(current - threshold) < EQUALITY_TOLERANCE
    elif operator == CovenantOperator.NEQ:
        return abs(current - threshold) >= EQUALITY_TOLERANCE
    return True


def buffer_percentage(current: float, threshold: float, operator: CovenantOperator) -> float:
    """
    Signed distance from the threshold, as a percentage of |threshold|.

    Positive means safer. A zero threshold has no relative scale and
    yields 0.0.
    """
    if threshold == 0:
        return 0.0

    percentage = (current - threshold) / abs(threshold) * 100

    if operator in (CovenantOperator.LT, CovenantOperator.LTE):
        return -percentage
    if operator in (CovenantOperator.GT, CovenantOperator.GTE):
        return percentage
    return abs(percentage)


def evaluate_compliance(
    current: Optional[float],
    threshold: Optional[float],
    operator: Optional[str],
) -> ComplianceResult:
    """Determine compliance status and buffer for a covenant."""
    op = parse_operator(operator)
    if current is None or threshold is None or op is None:
        return ComplianceResult(
            status=ComplianceStatus.COMPLIANT,
            buffer_percentage=None,
            condition_met=None,
        )

    buffer = buffer_percentage(current, threshold, op)

    if check_condition(current, threshold, op):
        return ComplianceResult(ComplianceStatus.COMPLIANT, buffer, True)

    if abs(buffer) <= WARNING_BUFFER_PCT:
        return ComplianceResult(ComplianceStatus.WARNING, buffer, False)

    return ComplianceResult(ComplianceStatus.BREACHED, buffer, False)
