"""
Load profile configuration.
"""

import math
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class LoadProfile:
    """
    Steady-rate synthetic load description.

    A rate of zero disables that signal.

    Attributes:
        spans_per_second: Span emission rate
        metrics_per_second: Metric measurement rate
        logs_per_second: Log record rate
        duration_seconds: How long to emit for
        attributes_per_span: Attributes attached to every span
        unique_span_names: Size of the round-robin span name pool
    """

    spans_per_second: float = 100
    metrics_per_second: float = 50
    logs_per_second: float = 50
    duration_seconds: float = 60.0
    attributes_per_span: int = 10
    unique_span_names: int = 100

    def __post_init__(self):
        for name in ("spans_per_second", "metrics_per_second", "logs_per_second"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative, got {getattr(self, name)}")
        if self.duration_seconds <= 0:
            raise ValueError(f"duration_seconds must be positive, got {self.duration_seconds}")
        if self.attributes_per_span < 0:
            raise ValueError(f"attributes_per_span must not be negative, got {self.attributes_per_span}")
        if self.unique_span_names < 1:
            raise ValueError(f"unique_span_names must be at least 1, got {self.unique_span_names}")

    @property
    def expected_spans(self) -> int:
        return _expected(self.spans_per_second, self.duration_seconds)

    @property
    def expected_metrics(self) -> int:
        return _expected(self.metrics_per_second, self.duration_seconds)

    @property
    def expected_logs(self) -> int:
        return _expected(self.logs_per_second, self.duration_seconds)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LoadProfile":
        """Create a profile from a dictionary, ignoring unknown keys."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    def to_dict(self) -> dict[str, Any]:
        return {
            "spans_per_second": self.spans_per_second,
            "metrics_per_second": self.metrics_per_second,
            "logs_per_second": self.logs_per_second,
            "duration_seconds": self.duration_seconds,
            "attributes_per_span": self.attributes_per_span,
            "unique_span_names": self.unique_span_names,
        }


def _expected(rate: float, duration: float) -> int:
    """Ticks a fixed-rate loop fires in ``[0, duration)``."""
    if rate <= 0:
        return 0
    period = 1.0 / rate
    count = max(math.ceil(duration / period), 0)
    # match the ticker's float offsets exactly
    while count > 0 and (count - 1) * period >= duration:
        count -= 1
    while count * period < duration:
        count += 1
    return count


def load_profile(**fields: Any) -> LoadProfile:
    """
    Build a validated LoadProfile; unspecified fields take their defaults.

    Raises:
        ValueError: If a field is out of range
    """
    return LoadProfile(**fields)
