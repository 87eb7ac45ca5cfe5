"""
MySQL statement statistics sampling for change verification.

Reads performance_schema.events_statements_summary_by_digest for a fixed
set of digests immediately before the DDL (baseline) and again after the
observation window (after). Each sample opens and releases its own
connection.

Digest counters are cumulative since the last digest reset, so the "after"
capture is the per-digest difference between the two reads: it describes
only the statements that ran during the observation window. Before the two
are compared, the baseline's per-execution rates are rescaled to the
window's execution counts (`baseline_for_window`), which makes the summed
comparison independent of how busy the window was.
"""

import logging
import math
from typing import Any, Iterable, Optional, Sequence

from safeddl.connectors.mysql_target import MySQLTarget, get_default_target
from safeddl.models.metrics import MetricSnapshot, MetricsCapture

logger = logging.getLogger(__name__)

# Timer columns are reported in picoseconds.
PICOSECONDS_PER_MS = 1_000_000_000

_DIGEST_QUERY = """
    SELECT
        DIGEST AS digest,
        DIGEST_TEXT AS digest_text,
        COUNT_STAR AS count_star,
        SUM_TIMER_WAIT AS sum_timer_wait,
        SUM_ROWS_EXAMINED AS rows_examined,
        SUM_NO_INDEX_USED AS full_scan_count
    FROM performance_schema.events_statements_summary_by_digest
    WHERE DIGEST IN ({placeholders})
"""


def _as_int(value: Any) -> int:
    if value is None:
        return 0
    return int(value)


def _as_float(value: Any) -> float:
    if value is None:
        return 0.0
    return float(value)


def _avg(total_ms: float, count: int) -> float:
    return round(total_ms / count, 4) if count else 0.0


def row_to_snapshot(row: dict[str, Any]) -> MetricSnapshot:
    """
    Convert one digest summary row into a MetricSnapshot.

    NULL counters (digests that were reset mid-window) are read as zero.
    """
    count = _as_int(row.get("count_star"))
    total_ms = _as_float(row.get("sum_timer_wait")) / PICOSECONDS_PER_MS
    return MetricSnapshot(
        fingerprint=str(row.get("digest")),
        digest_text=row.get("digest_text"),
        execution_count=count,
        avg_latency_ms=_avg(total_ms, count),
        total_latency_ms=total_ms,
        rows_examined=_as_int(row.get("rows_examined")),
        full_scan_count=_as_int(row.get("full_scan_count")),
        sample_count=count,
    )


def window_delta(
    baseline: Iterable[MetricSnapshot], current: Iterable[MetricSnapshot]
) -> list[MetricSnapshot]:
    """
    Per-digest counters accumulated between two cumulative reads.

    A digest missing from the baseline, or whose execution count went
    backwards (summary table truncated mid-window), is taken as-is.
    """
    previous = {s.fingerprint: s for s in baseline}
    window: list[MetricSnapshot] = []
    for snap in current:
        prior = previous.get(snap.fingerprint)
        if prior is None or snap.execution_count < prior.execution_count:
            window.append(snap)
            continue

        count = snap.execution_count - prior.execution_count
        total_ms = max(snap.total_latency_ms - prior.total_latency_ms, 0.0)
        window.append(
            MetricSnapshot(
                fingerprint=snap.fingerprint,
                digest_text=snap.digest_text,
                execution_count=count,
                avg_latency_ms=_avg(total_ms, count),
                total_latency_ms=total_ms,
                rows_examined=max(snap.rows_examined - prior.rows_examined, 0),
                full_scan_count=max(snap.full_scan_count - prior.full_scan_count, 0),
                sample_count=count,
            )
        )
    return window


def baseline_for_window(
    baseline: Iterable[MetricSnapshot], window: Iterable[MetricSnapshot]
) -> list[MetricSnapshot]:
    """
    Rescale baseline per-execution rates to each window digest's execution count.

    Average latency carries over unchanged; rows examined and full scans are
    scaled by the ratio of window to baseline executions (full scans rounded
    up). A window digest with no baseline history is compared with itself.
    """
    previous = {s.fingerprint: s for s in baseline}
    scaled: list[MetricSnapshot] = []
    for snap in window:
        prior = previous.get(snap.fingerprint)
        if prior is None or prior.execution_count == 0:
            scaled.append(snap)
            continue

        ratio = snap.execution_count / prior.execution_count
        scaled.append(
            MetricSnapshot(
                fingerprint=snap.fingerprint,
                digest_text=prior.digest_text,
                execution_count=snap.execution_count,
                avg_latency_ms=prior.avg_latency_ms,
                total_latency_ms=prior.avg_latency_ms * snap.execution_count,
                rows_examined=round(prior.rows_examined * ratio),
                full_scan_count=math.ceil(round(prior.full_scan_count * ratio, 6)),
                sample_count=prior.sample_count,
            )
        )
    return scaled


class MetricsSampler:
    def __init__(self, target: Optional[MySQLTarget] = None) -> None:
        self._target = target

    @property
    def target(self) -> MySQLTarget:
        if self._target is None:
            self._target = get_default_target()
        return self._target

    async def sample(self, fingerprints: Sequence[str]) -> list[MetricSnapshot]:
        """
        Query statistics for exactly these fingerprints.

        Fingerprints with no summary row produce no snapshot. An empty
        input returns [] without touching the database.
        """
        digests = [d for d in dict.fromkeys(fingerprints or []) if d]
        if not digests:
            return []

        query = _DIGEST_QUERY.format(placeholders=", ".join(["%s"] * len(digests)))
        rows = await self.target.fetch_all(query, digests)

        snapshots = [row_to_snapshot(row) for row in rows]
        logger.debug(
            "Sampled %d/%d digests from performance_schema",
            len(snapshots),
            len(digests),
        )
        return snapshots

    async def capture_baseline(
        self, table_name: str, fingerprints: Sequence[str]
    ) -> MetricsCapture:
        return MetricsCapture(
            table_name=table_name,
            snapshots=await self.sample(fingerprints),
        )

    async def capture_after(
        self,
        table_name: str,
        fingerprints: Sequence[str],
        window_minutes: int,
        baseline: Optional[MetricsCapture] = None,
    ) -> MetricsCapture:
        """
        Sample again after the observation window.

        With a baseline, the capture holds only what ran during the window.
        """
        snapshots = await self.sample(fingerprints)
        if baseline is not None:
            snapshots = window_delta(baseline.snapshots, snapshots)
        return MetricsCapture(
            table_name=table_name,
            snapshots=snapshots,
            window_minutes=window_minutes,
        )
