"""Simple in-memory metrics registry."""
from __future__ import annotations

from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from time import perf_counter
from typing import Callable, Dict, Iterable, Iterator, Mapping, Tuple

LabelValues = Tuple[str, ...]


class Metric:
    """Shared label handling for counters and distributions."""

    kind = "untyped"

    def __init__(self, name: str, *, description: str = "", label_names: Iterable[str] | None = None) -> None:
        self.name = name
        self.description = description
        self.label_names: Tuple[str, ...] = tuple(label_names or ())
        self._lock = Lock()

    def _key(self, labels: Mapping[str, str] | None) -> LabelValues:
        labels = labels or {}
        if set(labels) != set(self.label_names):
            raise ValueError(f"Metric '{self.name}' expects labels {self.label_names}, got {tuple(labels)}")
        return tuple(str(labels[label]) for label in self.label_names)

    def snapshot(self) -> Mapping[LabelValues, Mapping[str, float]]:  # pragma: no cover - interface
        raise NotImplementedError


class CounterMetric(Metric):
    kind = "counter"

    def __init__(self, name: str, *, description: str = "", label_names: Iterable[str] | None = None) -> None:
        super().__init__(name, description=description, label_names=label_names)
        self._values: Dict[LabelValues, float] = defaultdict(float)

    def inc(self, amount: float = 1.0, *, labels: Mapping[str, str] | None = None) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] += amount

    def value(self, labels: Mapping[str, str] | None = None) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def snapshot(self) -> Mapping[LabelValues, Mapping[str, float]]:
        with self._lock:
            return {key: {"value": value} for key, value in self._values.items()}


@dataclass
class DistributionStats:
    count: int = 0
    total: float = 0.0
    min: float | None = None
    max: float | None = None

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.min = value if self.min is None else min(self.min, value)
        self.max = value if self.max is None else max(self.max, value)


class DistributionMetric(Metric):
    kind = "summary"

    def __init__(self, name: str, *, description: str = "", label_names: Iterable[str] | None = None) -> None:
        super().__init__(name, description=description, label_names=label_names)
        self._values: Dict[LabelValues, DistributionStats] = defaultdict(DistributionStats)

    def observe(self, value: float, *, labels: Mapping[str, str] | None = None) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key].observe(value)

    def snapshot(self) -> Mapping[LabelValues, Mapping[str, float]]:
        with self._lock:
            return {
                key: {
                    "count": float(stats.count),
                    "sum": stats.total,
                    "min": stats.min or 0.0,
                    "max": stats.max or 0.0,
                }
                for key, stats in self._values.items()
            }


class MetricsRegistry:
    """Registry that holds metric instances by name."""

    def __init__(self) -> None:
        self._metrics: Dict[str, Metric] = {}
        self._lock = Lock()

    def _get_or_create(self, name: str, expected: type, factory: Callable[[], Metric]) -> Metric:
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = self._metrics[name] = factory()
        if not isinstance(metric, expected):
            raise TypeError(f"Metric '{name}' already exists with a different type")
        return metric

    def counter(
        self, name: str, *, description: str = "", label_names: Iterable[str] | None = None
    ) -> CounterMetric:
        return self._get_or_create(  # type: ignore[return-value]
            name, CounterMetric, lambda: CounterMetric(name, description=description, label_names=label_names)
        )

    def distribution(
        self, name: str, *, description: str = "", label_names: Iterable[str] | None = None
    ) -> DistributionMetric:
        return self._get_or_create(  # type: ignore[return-value]
            name,
            DistributionMetric,
            lambda: DistributionMetric(name, description=description, label_names=label_names),
        )

    def metrics(self) -> Tuple[Metric, ...]:
        with self._lock:
            return tuple(self._metrics.values())

    @contextmanager
    def time_distribution(self, name: str, *, labels: Mapping[str, str] | None = None) -> Iterator[None]:
        """Record the duration of the enclosed block into ``name``."""

        metric = self.distribution(name, label_names=tuple(labels or ()))
        start = perf_counter()
        try:
            yield
        finally:
            metric.observe(perf_counter() - start, labels=labels)
