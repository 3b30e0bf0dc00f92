"""
Trend Analyzer — direction, confidence and time-to-breach for a metric.

Works on a chronological series (oldest → newest). Callers that retrieve
snapshots newest-first must reverse them before analysis.

Pipeline:
1. Ordinary least-squares slope over (index, value)
2. Direction from slope magnitude and the metric's polarity
3. Confidence from series length and snapshot data confidence
4. Days-to-breach from end-to-end velocity, quarterly cadence
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

from covenantwatch.schemas.covenants import TrendDirection

# |slope| below this (per period) counts as flat
STABLE_SLOPE_THRESHOLD: float = 0.05

# Confidence model
BASE_CONFIDENCE: float = 0.5
MAX_LENGTH_BONUS: float = 0.3
LENGTH_BONUS_PER_POINT: float = 0.1
DATA_CONFIDENCE_WEIGHT: float = 0.2
DEFAULT_DATA_CONFIDENCE: float = 0.5

# Reporting cadence assumed for projections
DAYS_PER_PERIOD: int = 90


@dataclass(frozen=True)
class TrendResult:
    direction: TrendDirection
    slope: float
    confidence: float
    points: tuple[float, ...] = field(default_factory=tuple)


def linear_regression_slope(values: Sequence[float]) -> float:
    """OLS slope of values against their index 0..n-1."""
    n = len(values)
    if n < 2:
        return 0.0

    sum_x = n * (n - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(i * v for i, v in enumerate(values))
    sum_x2 = sum(i * i for i in range(n))

    denom = n * sum_x2 - sum_x ** 2
    if abs(denom) < 1e-12:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denom


def trend_confidence(n_points: int, data_confidences: Sequence[Optional[float]] = ()) -> float:
    """Confidence in a trend computed from n_points observations."""
    if n_points < 2:
        return 0.0

    confidence = BASE_CONFIDENCE
    confidence += min(MAX_LENGTH_BONUS, (n_points - 2) * LENGTH_BONUS_PER_POINT)

    if data_confidences:
        resolved = [
            DEFAULT_DATA_CONFIDENCE if c is None else c for c in data_confidences
        ]
        confidence += (sum(resolved) / len(resolved)) * DATA_CONFIDENCE_WEIGHT
    else:
        confidence += DEFAULT_DATA_CONFIDENCE * DATA_CONFIDENCE_WEIGHT

    return min(1.0, max(0.0, confidence))


def analyze_trend(
    values: Sequence[float],
    lower_is_better: bool = False,
    data_confidences: Sequence[Optional[float]] = (),
) -> TrendResult:
    """
    Classify the direction of a chronological metric series.

    Args:
        values: Metric values, oldest first
        lower_is_better: Polarity of the metric (True for leverage metrics)
        data_confidences: data_confidence of each contributing snapshot
    """
    points = tuple(values)
    if len(points) < 2:
        return TrendResult(TrendDirection.STABLE, 0.0, 0.0, points)

    slope = linear_regression_slope(points)
    confidence = trend_confidence(len(points), data_confidences)

    if abs(slope) < STABLE_SLOPE_THRESHOLD:
        direction = TrendDirection.STABLE
    else:
        rising = slope > 0
        improving = not rising if lower_is_better else rising
        direction = TrendDirection.IMPROVING if improving else TrendDirection.DETERIORATING

    return TrendResult(direction, slope, confidence, points)


def velocity(values: Sequence[float]) -> float:
    """End-to-end change per period."""
    if len(values) < 2:
        return 0.0
    return (values[-1] - values[0]) / (len(values) - 1)


def project_days_to_breach(
    values: Sequence[float],
    current: Optional[float],
    threshold: Optional[float],
    days_per_period: int = DAYS_PER_PERIOD,
) -> Optional[int]:
    """
    Days until the metric reaches the threshold at the current velocity.

    None when there are fewer than 2 points, no movement, or nothing to
    project from.
    """
    if current is None or threshold is None or len(values) < 2:
        return None

    v = velocity(values)
    if v == 0:
        return None

    periods_to_breach = abs(current - threshold) / abs(v)
    return max(0, round(periods_to_breach * days_per_period))
