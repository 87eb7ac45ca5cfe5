"""
Metrics Models

Defines Pydantic models for per-fingerprint query statistics and the
verification outcome derived from two samples.
"""

from enum import Enum
from typing import Optional, List
from datetime import UTC, datetime

from pydantic import BaseModel, Field


class MetricSnapshot(BaseModel):
    """Aggregated statistics for one query fingerprint at a point in time."""

    fingerprint: str = Field(..., description="Statement digest")
    digest_text: Optional[str] = Field(None, description="Normalized statement text")
    execution_count: int = Field(0, description="Executions counted (COUNT_STAR)")
    avg_latency_ms: float = Field(0.0, description="Average latency (ms)")
    total_latency_ms: float = Field(0.0, description="Summed latency (ms, SUM_TIMER_WAIT)")
    rows_examined: int = Field(0, description="Rows examined (sum)")
    full_scan_count: int = Field(0, description="Executions without index use")
    sample_count: int = Field(0, description="Samples backing this row")

    @property
    def weighted_latency_ms(self) -> float:
        """Total latency represented by this row (avg * executions)."""
        return self.avg_latency_ms * self.execution_count


class MetricsCapture(BaseModel):
    """
    One sampling pass over a set of fingerprints.

    `window_minutes` is only set on the "after" capture.
    """

    captured_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Capture time (UTC)"
    )
    table_name: str = Field(..., description="Table the change targets")
    snapshots: List[MetricSnapshot] = Field(
        default_factory=list, description="One entry per matched fingerprint"
    )
    window_minutes: Optional[int] = Field(
        None, description="Observation window preceding the capture"
    )

    @property
    def total_sample_count(self) -> int:
        return sum(s.sample_count for s in self.snapshots)


class VerificationStatus(str, Enum):
    """Verification decision."""

    SUCCESS = "success"
    FAILED = "failed"
    INCONCLUSIVE = "inconclusive"


class MetricsComparison(BaseModel):
    """Before/after deltas. Positive percentages mean degradation."""

    avg_latency_change_percent: float = Field(0.0, description="Latency change (%)")
    rows_examined_change_percent: float = Field(
        0.0, description="Rows examined change (%)"
    )
    full_scan_increased: bool = Field(False, description="Full scans went up")


class VerificationOutcome(BaseModel):
    """Result of comparing two captures."""

    status: VerificationStatus = Field(..., description="Decision")
    message: str = Field(..., description="Human readable explanation")
    comparison: Optional[MetricsComparison] = Field(
        None, description="Deltas (absent when no comparison ran)"
    )
    total_sample_count: Optional[int] = Field(
        None, description="Samples in the after capture"
    )


class VerificationMetricsSubmission(BaseModel):
    """Body of POST /api/verification-metrics."""

    execution_id: str = Field(..., description="Execution the samples belong to")
    before_metrics: MetricsCapture = Field(..., description="Baseline capture")
    after_metrics: MetricsCapture = Field(..., description="Post-change capture")
