"""
Custom run metrics: rates, trends and counters.

Locust's request statistics cover HTTP calls; the scenarios also need
business-level metrics such as "fraction of iterations that ended with
a settled purchase".  This module provides three metric kinds, a
:class:`MetricRegistry` that owns them for one test run, and adapters
that expose Locust's :class:`~locust.stats.StatsEntry` objects through
the same aggregate interface so thresholds can address both uniformly.

Every metric answers :meth:`aggregate` with one of the statistics below:

==========  ==========================================================
``rate``    fraction of ``True`` samples (Rate), failure ratio (HTTP)
``count``   number of samples, or the running total of a Counter
``avg``     mean of a Trend
``min``     smallest Trend sample
``max``     largest Trend sample
``med``     median of a Trend
``p``       percentile of a Trend, ``percentile`` in ``0..100``
==========  ==========================================================

In distributed runs each worker ships :meth:`MetricRegistry.snapshot`
to the master, which folds it in with :meth:`MetricRegistry.merge`.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from locust.stats import RequestStats, StatsEntry


class Rate:
    """Fraction of boolean samples that were ``True``."""

    kind = "rate"

    def __init__(self, name: str) -> None:
        self.name = name
        self.passes = 0
        self.total = 0

    def add(self, value: bool) -> None:
        self.total += 1
        if value:
            self.passes += 1

    @property
    def rate(self) -> float:
        return self.passes / self.total if self.total else 0.0

    def aggregate(self, stat: str, percentile: float | None = None) -> float:
        if stat == "rate":
            return self.rate
        if stat == "count":
            return float(self.total)
        raise ValueError(f"Rate metric {self.name!r} does not support {stat!r}")

    def has_data(self) -> bool:
        return self.total > 0

    def snapshot(self) -> dict[str, Any]:
        return {"kind": self.kind, "passes": self.passes, "total": self.total}

    def merge(self, data: dict[str, Any]) -> None:
        self.passes += int(data.get("passes", 0))
        self.total += int(data.get("total", 0))


class Trend:
    """Distribution of numeric samples, typically durations in milliseconds."""

    kind = "trend"

    def __init__(self, name: str) -> None:
        self.name = name
        self.values: list[float] = []

    def add(self, value: float) -> None:
        self.values.append(float(value))

    def percentile(self, percentile: float) -> float:
        """
        Linear-interpolated percentile of the samples.

        Args:
            percentile: Requested percentile between 0 and 100.

        Returns:
            The interpolated sample value, or ``0.0`` without samples.
        """
        if not self.values:
            return 0.0
        ordered = sorted(self.values)
        position = (len(ordered) - 1) * (percentile / 100.0)
        lower = math.floor(position)
        upper = math.ceil(position)
        if lower == upper:
            return ordered[int(position)]
        weight = position - lower
        return ordered[lower] * (1 - weight) + ordered[upper] * weight

    def aggregate(self, stat: str, percentile: float | None = None) -> float:
        if stat == "count":
            return float(len(self.values))
        if not self.values:
            return 0.0
        if stat == "avg":
            return sum(self.values) / len(self.values)
        if stat == "min":
            return min(self.values)
        if stat == "max":
            return max(self.values)
        if stat == "med":
            return self.percentile(50)
        if stat == "p" and percentile is not None:
            return self.percentile(percentile)
        raise ValueError(f"Trend metric {self.name!r} does not support {stat!r}")

    def has_data(self) -> bool:
        return bool(self.values)

    def snapshot(self) -> dict[str, Any]:
        return {"kind": self.kind, "values": list(self.values)}

    def merge(self, data: dict[str, Any]) -> None:
        self.values.extend(float(value) for value in data.get("values", []))


class Counter:
    """Monotonically increasing total."""

    kind = "counter"

    def __init__(self, name: str) -> None:
        self.name = name
        self.count = 0

    def add(self, value: int = 1) -> None:
        if value < 0:
            raise ValueError("Counter values can only increase")
        self.count += value

    def aggregate(self, stat: str, percentile: float | None = None) -> float:
        if stat == "count":
            return float(self.count)
        raise ValueError(f"Counter metric {self.name!r} does not support {stat!r}")

    def has_data(self) -> bool:
        return self.count > 0

    def snapshot(self) -> dict[str, Any]:
        return {"kind": self.kind, "count": self.count}

    def merge(self, data: dict[str, Any]) -> None:
        self.count += int(data.get("count", 0))


_METRIC_KINDS = {cls.kind: cls for cls in (Rate, Trend, Counter)}


class MetricRegistry:
    """Named custom metrics of one test run."""

    def __init__(self) -> None:
        self._metrics: dict[str, Rate | Trend | Counter] = {}

    def rate(self, name: str) -> Rate:
        return self._get_or_create(name, Rate)

    def trend(self, name: str) -> Trend:
        return self._get_or_create(name, Trend)

    def counter(self, name: str) -> Counter:
        return self._get_or_create(name, Counter)

    def get(self, name: str) -> Rate | Trend | Counter | None:
        return self._metrics.get(name)

    def names(self) -> list[str]:
        return sorted(self._metrics)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Serialisable copy of every metric, suitable for worker reports."""
        return {name: metric.snapshot() for name, metric in self._metrics.items()}

    def merge(self, snapshot: dict[str, dict[str, Any]]) -> None:
        """Fold a snapshot produced by another registry into this one."""
        for name, data in snapshot.items():
            metric_class = _METRIC_KINDS.get(data.get("kind"))
            if metric_class is None:
                raise ValueError(f"Unknown metric kind for {name!r}: {data.get('kind')!r}")
            self._get_or_create(name, metric_class).merge(data)

    def reset(self) -> None:
        self._metrics.clear()

    def _get_or_create(self, name: str, metric_class: type) -> Any:
        metric = self._metrics.get(name)
        if metric is None:
            metric = metric_class(name)
            self._metrics[name] = metric
        elif not isinstance(metric, metric_class):
            raise ValueError(
                f"Metric {name!r} already registered as {metric.kind}, not {metric_class.kind}"
            )
        return metric


class RequestDurationMetric:
    """``http_req_duration`` view over a Locust stats entry."""

    def __init__(self, entry: StatsEntry) -> None:
        self.entry = entry

    def aggregate(self, stat: str, percentile: float | None = None) -> float:
        entry = self.entry
        if stat == "count":
            return float(entry.num_requests)
        if stat == "avg":
            return float(entry.avg_response_time)
        if stat == "min":
            return float(entry.min_response_time or 0)
        if stat == "max":
            return float(entry.max_response_time)
        if stat == "med":
            return float(entry.median_response_time)
        if stat == "p" and percentile is not None:
            return float(entry.get_response_time_percentile(percentile / 100.0))
        raise ValueError(f"http_req_duration does not support {stat!r}")

    def has_data(self) -> bool:
        return self.entry.num_requests > 0


class RequestFailedMetric:
    """``http_req_failed`` view: the failure ratio of a Locust stats entry."""

    def __init__(self, entry: StatsEntry) -> None:
        self.entry = entry

    def aggregate(self, stat: str, percentile: float | None = None) -> float:
        if stat == "rate":
            return float(self.entry.fail_ratio)
        if stat == "count":
            return float(self.entry.num_failures)
        raise ValueError(f"http_req_failed does not support {stat!r}")

    def has_data(self) -> bool:
        return self.entry.num_requests > 0


class RequestCountMetric:
    """``http_reqs`` view: number of requests in a Locust stats entry."""

    def __init__(self, entry: StatsEntry) -> None:
        self.entry = entry

    def aggregate(self, stat: str, percentile: float | None = None) -> float:
        if stat == "count":
            return float(self.entry.num_requests)
        raise ValueError(f"http_reqs does not support {stat!r}")

    def has_data(self) -> bool:
        return self.entry.num_requests > 0


HTTP_METRICS = {
    "http_req_duration": RequestDurationMetric,
    "http_req_failed": RequestFailedMetric,
    "http_reqs": RequestCountMetric,
}


def resolve_metric(
    name: str,
    tag: tuple[str, str] | None,
    *,
    stats: RequestStats | None,
    registry: MetricRegistry | None,
):
    """
    Find the metric a threshold refers to.

    Args:
        name: Metric name, e.g. ``http_req_duration`` or
            ``purchase_success_rate``.
        tag: Optional ``(key, value)`` filter; only ``name`` is supported
            and selects the Locust stats entry of that request name.
        stats: Locust request statistics of the run.
        registry: Custom metrics of the run.

    Returns:
        An object with ``aggregate``/``has_data``, or ``None`` when the
        run produced no such metric.
    """
    if name in HTTP_METRICS:
        if stats is None:
            return None
        entry = _stats_entry(stats, tag)
        return HTTP_METRICS[name](entry) if entry is not None else None

    if tag is not None:
        raise ValueError(f"Custom metric {name!r} does not support tag filters")
    if registry is None:
        return None
    return registry.get(name)


def _stats_entry(stats: RequestStats, tag: tuple[str, str] | None) -> StatsEntry | None:
    if tag is None:
        return stats.total

    key, value = tag
    if key != "name":
        raise ValueError(f"Unsupported tag filter {key!r}; only 'name' is available")
    for (entry_name, _method), entry in stats.entries.items():
        if entry_name == value:
            return entry
    return None
