"""
Before/after verification of an applied index.

`VerificationEngine.evaluate` is a pure function over two metric captures.
Percentages are signed: positive means the "after" sample is worse, and
every threshold is compared with `>`, never with the absolute value, so an
improvement can never fail verification.

Decision table (first match wins):

| Condition                          | Outcome      |
|------------------------------------|--------------|
| total after sample_count < 10      | inconclusive |
| full-scan count increased          | failed       |
| latency degraded > 10%             | failed       |
| rows examined degraded > 20%       | failed       |
| otherwise                          | success      |
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from safeddl.models.metrics import (
    MetricSnapshot,
    MetricsComparison,
    VerificationOutcome,
    VerificationStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VerificationThresholds:
    min_sample_count: int = 10
    latency_degradation_pct: float = 10.0
    rows_examined_degradation_pct: float = 20.0


DEFAULT_THRESHOLDS = VerificationThresholds()


def _pct_change(before: float, after: float) -> float:
    if before <= 0:
        return 0.0
    return (after - before) * 100.0 / before


def _fmt_threshold(value: float) -> str:
    return f"{value:g}"


def compare_metrics(
    before: Iterable[MetricSnapshot], after: Iterable[MetricSnapshot]
) -> MetricsComparison:
    """
    Aggregate both samples and compute signed percentage changes.

    Latency is weighted by execution count; rows examined and full scans
    are plain sums.
    """
    before = list(before)
    after = list(after)

    before_latency = sum(m.weighted_latency_ms for m in before)
    after_latency = sum(m.weighted_latency_ms for m in after)
    before_rows = sum(m.rows_examined for m in before)
    after_rows = sum(m.rows_examined for m in after)
    before_full_scans = sum(m.full_scan_count for m in before)
    after_full_scans = sum(m.full_scan_count for m in after)

    return MetricsComparison(
        avg_latency_change_percent=_pct_change(before_latency, after_latency),
        rows_examined_change_percent=_pct_change(before_rows, after_rows),
        full_scan_increased=after_full_scans > before_full_scans,
    )


class VerificationEngine:
    def __init__(self, thresholds: VerificationThresholds = DEFAULT_THRESHOLDS) -> None:
        self.thresholds = thresholds

    def evaluate(
        self,
        before: Iterable[MetricSnapshot],
        after: Iterable[MetricSnapshot],
    ) -> VerificationOutcome:
        """Classify the change as success, failed or inconclusive."""
        t = self.thresholds
        after = list(after)
        total_samples = sum(m.sample_count for m in after)

        if total_samples < t.min_sample_count:
            return VerificationOutcome(
                status=VerificationStatus.INCONCLUSIVE,
                message=(
                    f"Insufficient samples: {total_samples} < {t.min_sample_count}. "
                    "Cannot determine impact."
                ),
                total_sample_count=total_samples,
            )

        comparison = compare_metrics(before, after)
        latency = comparison.avg_latency_change_percent
        rows = comparison.rows_examined_change_percent

        if comparison.full_scan_increased:
            return self._failed(
                "Full scan count increased after index addition",
                comparison,
                total_samples,
            )

        if latency > t.latency_degradation_pct:
            return self._failed(
                f"Latency degraded by {latency:.1f}% which exceeds threshold of "
                f"{_fmt_threshold(t.latency_degradation_pct)}%",
                comparison,
                total_samples,
            )

        if rows > t.rows_examined_degradation_pct:
            return self._failed(
                f"Rows examined increased by {rows:.1f}% which exceeds threshold of "
                f"{_fmt_threshold(t.rows_examined_degradation_pct)}%",
                comparison,
                total_samples,
            )

        return VerificationOutcome(
            status=VerificationStatus.SUCCESS,
            message=(
                f"Index verification passed. Latency change: {latency:.1f}%, "
                f"Rows examined change: {rows:.1f}%"
            ),
            comparison=comparison,
            total_sample_count=total_samples,
        )

    @staticmethod
    def _failed(
        message: str, comparison: MetricsComparison, total_samples: int
    ) -> VerificationOutcome:
        logger.warning("Verification failed: %s", message)
        return VerificationOutcome(
            status=VerificationStatus.FAILED,
            message=message,
            comparison=comparison,
            total_sample_count=total_samples,
        )

    @staticmethod
    def missing_index(table_name: str, index_name: str) -> VerificationOutcome:
        """Outcome used when the index is absent from the catalog."""
        return VerificationOutcome(
            status=VerificationStatus.FAILED,
            message=f"Index {index_name} does not exist in table {table_name}",
        )
