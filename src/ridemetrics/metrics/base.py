"""Metric module interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from ridemetrics.models import Activity, MetricComputation, MetricDefinition, Sample


@dataclass(frozen=True)
class MetricContext:
    """Activity metadata a module may need to size windows."""

    sample_rate_hz: float | None = None
    duration_sec: float | None = None

    @classmethod
    def from_activity(cls, activity: Activity) -> "MetricContext":
        return cls(sample_rate_hz=activity.sample_rate_hz, duration_sec=activity.duration_sec)

    def resolve_duration(self, samples: Sequence[Sample]) -> float:
        """Activity duration, falling back to the last sample time."""
        if self.duration_sec is not None:
            return self.duration_sec
        if samples:
            return samples[-1].t
        return 0.0


class MetricModule(ABC):
    """A pure ``samples -> summary/series`` computation.

    Implementations must not raise for thin data: a summary whose fields
    are None is the "not enough data" answer.
    """

    @property
    @abstractmethod
    def definition(self) -> MetricDefinition:
        ...

    @property
    def key(self) -> str:
        return self.definition.key

    @abstractmethod
    def compute(self, samples: Sequence[Sample], context: MetricContext) -> MetricComputation:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key!r}, version={self.definition.version})"


def round_or_none(value: float | None, digits: int) -> float | None:
    """Round for presentation; None passes through."""
    if value is None:
        return None
    return round(value, digits)
