"""
Data models for load generation results.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass
class LoadStats:
    """
    Counters for one load generation run.

    ``metrics_sent`` counts recorded measurements. The SDK aggregates them,
    so the number of exported data points is usually lower.

    Attributes:
        spans_sent: Spans emitted
        metrics_sent: Metric measurements recorded
        logs_sent: Log records emitted
        errors: Emissions that raised
        elapsed_seconds: Wall time including the final flush
        start_time: When emission started
        end_time: When the final flush completed
    """

    spans_sent: int = 0
    metrics_sent: int = 0
    logs_sent: int = 0
    errors: int = 0
    elapsed_seconds: float = 0.0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def _rate(self, count: int) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return count / self.elapsed_seconds

    def spans_per_second(self) -> float:
        return self._rate(self.spans_sent)

    def metrics_per_second(self) -> float:
        return self._rate(self.metrics_sent)

    def logs_per_second(self) -> float:
        return self._rate(self.logs_sent)

    @property
    def total_sent(self) -> int:
        return self.spans_sent + self.metrics_sent + self.logs_sent

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "spans_sent": self.spans_sent,
            "metrics_sent": self.metrics_sent,
            "logs_sent": self.logs_sent,
            "errors": self.errors,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "spans_per_second": round(self.spans_per_second(), 2),
            "metrics_per_second": round(self.metrics_per_second(), 2),
            "logs_per_second": round(self.logs_per_second(), 2),
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }
