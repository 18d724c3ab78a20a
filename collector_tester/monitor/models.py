"""
Data models for collector memory monitoring.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Sequence

BYTES_PER_MB = 1_000_000


def to_mb(value: float) -> float:
    return value / BYTES_PER_MB


@dataclass(frozen=True)
class MemorySample:
    """
    One memory reading of the monitored process.

    Attributes:
        timestamp: Monotonic clock reading in seconds
        usage_bytes: Current memory usage
        peak_usage_bytes: Peak usage reported by the source, 0 if unknown
        limit_bytes: Memory limit, if any
        captured_at: Wall clock time of the reading
    """

    timestamp: float
    usage_bytes: int
    peak_usage_bytes: int = 0
    limit_bytes: Optional[int] = None
    captured_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def usage_mb(self) -> float:
        return to_mb(self.usage_bytes)

    @property
    def peak_usage_mb(self) -> float:
        return to_mb(self.peak_usage_bytes)

    @property
    def limit_mb(self) -> Optional[float]:
        return to_mb(self.limit_bytes) if self.limit_bytes is not None else None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "timestamp": round(self.timestamp, 3),
            "captured_at": self.captured_at.isoformat(),
            "usage_bytes": self.usage_bytes,
            "peak_usage_bytes": self.peak_usage_bytes,
            "limit_bytes": self.limit_bytes,
        }


@dataclass(frozen=True)
class MemoryAnalysis:
    """
    Summary of a series of memory samples.

    The growth rate is the straight line between the first and the last
    sample. Samples in between only affect min, max and average.

    Attributes:
        min_bytes: Lowest usage seen
        max_bytes: Highest usage seen
        avg_bytes: Integer mean usage
        sample_count: Number of samples
        growth_rate_bytes_per_sec: Two-point growth rate
        limit_bytes: Most recent memory limit reported by the source, if any
    """

    min_bytes: int = 0
    max_bytes: int = 0
    avg_bytes: int = 0
    sample_count: int = 0
    growth_rate_bytes_per_sec: float = 0.0
    limit_bytes: Optional[int] = None

    @classmethod
    def from_samples(cls, samples: Sequence[MemorySample]) -> "MemoryAnalysis":
        if not samples:
            return cls()

        usages = [s.usage_bytes for s in samples]
        growth = 0.0
        if len(samples) >= 2:
            first, last = samples[0], samples[-1]
            span = last.timestamp - first.timestamp
            if span > 0:
                growth = (last.usage_bytes - first.usage_bytes) / span

        limits = [s.limit_bytes for s in samples if s.limit_bytes is not None]

        return cls(
            min_bytes=min(usages),
            max_bytes=max(usages),
            avg_bytes=sum(usages) // len(usages),
            sample_count=len(samples),
            growth_rate_bytes_per_sec=growth,
            limit_bytes=limits[-1] if limits else None,
        )

    def has_unbounded_growth(self, threshold_bytes_per_sec: float) -> bool:
        """Whether memory grew faster than the threshold."""
        return self.growth_rate_bytes_per_sec > threshold_bytes_per_sec

    def would_exceed_limit_in(self, limit_bytes: int, future_seconds: float) -> bool:
        """
        Whether the peak, projected forward at the current growth rate,
        passes ``limit_bytes`` within ``future_seconds``.
        """
        if self.growth_rate_bytes_per_sec <= 0:
            return False
        projected = self.max_bytes + self.growth_rate_bytes_per_sec * future_seconds
        return projected > limit_bytes

    @property
    def min_mb(self) -> float:
        return to_mb(self.min_bytes)

    @property
    def max_mb(self) -> float:
        return to_mb(self.max_bytes)

    @property
    def avg_mb(self) -> float:
        return to_mb(self.avg_bytes)

    @property
    def growth_rate_mb_per_sec(self) -> float:
        return to_mb(self.growth_rate_bytes_per_sec)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "min_bytes": self.min_bytes,
            "max_bytes": self.max_bytes,
            "avg_bytes": self.avg_bytes,
            "sample_count": self.sample_count,
            "growth_rate_bytes_per_sec": round(self.growth_rate_bytes_per_sec, 2),
            "limit_bytes": self.limit_bytes,
        }
