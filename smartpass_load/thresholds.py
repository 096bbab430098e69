"""
Pass/fail thresholds over run metrics.

A threshold pairs a metric key with an expression, for example::

    http_req_duration: ["p(95)<3000"]
    http_req_duration{name:PurchasePass}: ["p(95)<2500"]
    purchase_success_rate: ["rate>0.90"]

The metric key may carry one ``{name:<request name>}`` filter.  The
expression is ``<stat> <operator> <limit>`` where ``stat`` is one of
``avg``, ``min``, ``max``, ``med``, ``count``, ``rate`` or ``p(N)``.

Evaluation never raises for missing data: a metric the run did not
produce yields a ``NO DATA`` result that does not fail the run, so a
threshold on an optional step (e.g. payment completion) stays valid for
runs where that step never happened.
"""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import Any, Callable

_METRIC_KEY = re.compile(r"^(?P<name>[A-Za-z_]\w*)(?:\{(?P<tag>\w+):(?P<value>[^}]+)\})?$")
_EXPRESSION = re.compile(
    r"^(?P<stat>avg|min|max|med|count|rate|p\((?P<percentile>\d+(?:\.\d+)?)\))"
    r"\s*(?P<operator><=|>=|==|!=|<|>)\s*"
    r"(?P<limit>-?\d+(?:\.\d+)?)$"
)

OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


@dataclass(frozen=True)
class Threshold:
    """One parsed threshold condition."""

    metric: str
    tag: tuple[str, str] | None
    stat: str
    percentile: float | None
    operator: str
    limit: float
    source: str

    @property
    def label(self) -> str:
        return f"{self.source_metric} {self.source}"

    @property
    def source_metric(self) -> str:
        if self.tag is None:
            return self.metric
        return f"{self.metric}{{{self.tag[0]}:{self.tag[1]}}}"

    @classmethod
    def parse(cls, metric_key: str, expression: str) -> Threshold:
        """
        Parse ``metric_key`` and ``expression`` into a :class:`Threshold`.

        Raises:
            ValueError: If either part is malformed.
        """
        key_match = _METRIC_KEY.match(metric_key.strip())
        if key_match is None:
            raise ValueError(f"Invalid threshold metric: {metric_key!r}")

        text = str(expression).strip()
        expr_match = _EXPRESSION.match(text)
        if expr_match is None:
            raise ValueError(f"Invalid threshold expression for {metric_key}: {expression!r}")

        tag = None
        if key_match.group("tag"):
            tag = (key_match.group("tag"), key_match.group("value"))

        stat = expr_match.group("stat")
        percentile = None
        if expr_match.group("percentile") is not None:
            stat = "p"
            percentile = float(expr_match.group("percentile"))
            if not 0 <= percentile <= 100:
                raise ValueError(f"Percentile out of range in {expression!r}")

        return cls(
            metric=key_match.group("name"),
            tag=tag,
            stat=stat,
            percentile=percentile,
            operator=expr_match.group("operator"),
            limit=float(expr_match.group("limit")),
            source=text,
        )

    def check(self, actual: float) -> bool:
        return OPERATORS[self.operator](actual, self.limit)


@dataclass(frozen=True)
class ThresholdResult:
    """Outcome of one threshold against one run."""

    threshold: Threshold
    actual: float | None

    @property
    def passed(self) -> bool:
        return self.actual is None or self.threshold.check(self.actual)

    @property
    def status(self) -> str:
        if self.actual is None:
            return "NO DATA"
        return "PASS" if self.passed else "FAIL"


def parse_thresholds(mapping: dict[str, Any] | None) -> list[Threshold]:
    """
    Parse a ``{metric_key: [expression, ...]}`` mapping.

    A single expression string is accepted in place of a list.

    Raises:
        ValueError: If the mapping or any expression is malformed.
    """
    if not mapping:
        return []
    if not isinstance(mapping, dict):
        raise ValueError("Thresholds must be a mapping of metric -> expressions")

    thresholds: list[Threshold] = []
    for metric_key, expressions in mapping.items():
        if isinstance(expressions, str):
            expressions = [expressions]
        if not isinstance(expressions, list):
            raise ValueError(f"Thresholds for {metric_key} must be a list of expressions")
        for expression in expressions:
            thresholds.append(Threshold.parse(metric_key, expression))
    return thresholds


def evaluate_thresholds(
    thresholds: list[Threshold],
    resolve: Callable[[str, tuple[str, str] | None], Any],
) -> list[ThresholdResult]:
    """
    Evaluate *thresholds* against metrics found by *resolve*.

    Args:
        thresholds: Parsed thresholds.
        resolve: ``resolve(metric_name, tag)`` returning an object with
            ``aggregate(stat, percentile)`` and ``has_data()``, or
            ``None`` when the metric is absent.

    Returns:
        One :class:`ThresholdResult` per threshold, in input order.
    """
    results = []
    for threshold in thresholds:
        metric = resolve(threshold.metric, threshold.tag)
        if metric is None or not metric.has_data():
            results.append(ThresholdResult(threshold=threshold, actual=None))
            continue
        actual = metric.aggregate(threshold.stat, threshold.percentile)
        results.append(ThresholdResult(threshold=threshold, actual=actual))
    return results


def all_passed(results: list[ThresholdResult]) -> bool:
    return all(result.passed for result in results)


def format_summary(results: list[ThresholdResult], *, title: str = "Performance Threshold Check") -> str:
    """Render results as the fixed-width table printed to CI logs."""
    width = 78
    lines = [
        title,
        "-" * width,
        f"{'Threshold':<48}{'Actual':>14}{'Status':>16}",
        "-" * width,
    ]
    for result in results:
        actual = "-" if result.actual is None else f"{result.actual:.2f}"
        lines.append(f"{result.threshold.label:<48}{actual:>14}{result.status:>16}")
    lines.append("-" * width)
    lines.append(f"Overall: {'PASS' if all_passed(results) else 'FAIL'}")
    return "\n".join(lines)
