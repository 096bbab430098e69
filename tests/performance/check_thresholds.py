"""
Validate Locust CSV output against a load profile's thresholds.

Runs gate themselves when Locust quits, but CI jobs that archive the
``--csv`` output can re-check a finished run offline.  This script
reads the ``*_stats.csv`` file Locust writes and evaluates the HTTP
thresholds of one profile from :file:`profiles.yml`:

- ``http_req_duration`` against the response-time columns
- ``http_req_failed`` as ``Failure Count / Request Count``
- ``http_reqs`` against ``Request Count``

Untagged thresholds use the ``Aggregated`` row; ``{name:X}`` thresholds
use the row whose ``Name`` is ``X``.  Custom metrics such as
``purchase_success_rate`` are not in the CSV and report ``NO DATA``.

Exit codes:

- ``0`` all thresholds passed
- ``1`` at least one threshold was breached
- ``2`` the script itself failed (missing file, bad YAML, etc.)
"""

from __future__ import annotations

import argparse
import csv
import sys
from pathlib import Path
from typing import Any

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from smartpass_load.config import get_config  # noqa: E402
from smartpass_load.profiles import load_profile  # noqa: E402
from smartpass_load.thresholds import (  # noqa: E402
    all_passed,
    evaluate_thresholds,
    format_summary,
)

EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_SCRIPT_ERROR = 2

_STAT_COLUMNS = {
    "avg": ("Average Response Time",),
    "min": ("Min Response Time",),
    "max": ("Max Response Time",),
    "med": ("Median Response Time", "50%"),
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the threshold checker."""
    config = get_config()
    parser = argparse.ArgumentParser(
        description="Check Locust stats CSV against a load profile's thresholds."
    )
    parser.add_argument(
        "--stats",
        required=True,
        type=Path,
        help="Path to Locust *_stats.csv file",
    )
    parser.add_argument(
        "--profile",
        default=config.LOAD_PROFILE,
        help="Load profile whose thresholds are checked",
    )
    parser.add_argument(
        "--profiles-file",
        type=Path,
        default=Path(config.LOAD_PROFILES_FILE),
        help="Path to the load profiles YAML file",
    )
    return parser.parse_args(argv)


def _parse_float(value: Any, field_name: str) -> float:
    """
    Coerce *value* to ``float``, stripping ``%`` suffixes if present.

    Raises:
        ValueError: If the value is missing, empty, or non-numeric.
    """
    if value is None:
        raise ValueError(f"Missing field: {field_name}")

    text = str(value).strip().replace("%", "")
    if text == "" or text == "N/A":
        raise ValueError(f"Empty value for field: {field_name}")

    try:
        return float(text)
    except ValueError as exc:
        raise ValueError(f"Non-numeric value for {field_name}: {value}") from exc


def _percentile_column(percentile: float) -> str:
    # Locust headers drop trailing zeros: "95%", "99.9%", "100%".
    return f"{percentile:g}%"


class CsvRowMetric:
    """One Locust CSV row seen as ``http_req_duration``/``http_req_failed``/``http_reqs``."""

    def __init__(self, metric: str, row: dict[str, str]) -> None:
        self.metric = metric
        self.row = row

    def _field(self, *names: str) -> float:
        for name in names:
            if self.row.get(name) not in (None, ""):
                return _parse_float(self.row[name], name)
        raise ValueError(f"Could not find any of {', '.join(names)} in stats CSV")

    def has_data(self) -> bool:
        return self._field("Request Count") > 0

    def aggregate(self, stat: str, percentile: float | None = None) -> float:
        requests = self._field("Request Count")
        if stat == "count":
            if self.metric == "http_req_failed":
                return self._field("Failure Count")
            return requests

        if self.metric == "http_req_failed" and stat == "rate":
            return self._field("Failure Count") / requests
        if self.metric == "http_req_duration":
            if stat == "p" and percentile is not None:
                return self._field(_percentile_column(percentile))
            if stat in _STAT_COLUMNS:
                return self._field(*_STAT_COLUMNS[stat])
        raise ValueError(f"{self.metric} does not support {stat!r}")


def load_rows(stats_path: Path) -> list[dict[str, str]]:
    with stats_path.open("r", encoding="utf-8", newline="") as handle:
        return list(csv.DictReader(handle))


def find_row(rows: list[dict[str, str]], tag: tuple[str, str] | None) -> dict[str, str] | None:
    """
    Pick the CSV row a threshold refers to.

    Untagged thresholds read the ``Aggregated`` row, which Locust marks
    in the ``Name`` column (older releases used ``Type``).

    Raises:
        ValueError: For tag filters other than ``name``.
    """
    if tag is None:
        for row in rows:
            if row.get("Name") == "Aggregated" or row.get("Type") == "Aggregated":
                return row
        return None

    key, value = tag
    if key != "name":
        raise ValueError(f"Unsupported tag filter {key!r}; only 'name' is available")
    for row in rows:
        if row.get("Name") == value:
            return row
    return None


def csv_resolver(rows: list[dict[str, str]]):
    """Build a threshold resolver backed by Locust CSV rows."""

    def resolve(name: str, tag: tuple[str, str] | None) -> CsvRowMetric | None:
        if name not in ("http_req_duration", "http_req_failed", "http_reqs"):
            return None
        row = find_row(rows, tag)
        return CsvRowMetric(name, row) if row is not None else None

    return resolve


def main(argv: list[str] | None = None) -> int:
    """
    Entry point: load the profile, parse the CSV, compare, and print results.

    Returns:
        ``EXIT_PASS`` (0) if all thresholds are met,
        ``EXIT_THRESHOLD_BREACH`` (1) if any are exceeded, or
        ``EXIT_SCRIPT_ERROR`` (2) on unexpected failures.
    """
    args = parse_args(argv)

    try:
        profile = load_profile(args.profiles_file, args.profile)
        rows = load_rows(args.stats)
        if find_row(rows, None) is None:
            raise ValueError("Could not find 'Aggregated' row in stats CSV")

        results = evaluate_thresholds(profile.thresholds, csv_resolver(rows))
        print(format_summary(results, title=f"Performance Threshold Check ({profile.name})"))
        return EXIT_PASS if all_passed(results) else EXIT_THRESHOLD_BREACH
    except Exception as exc:  # pragma: no cover - defensive CLI guard
        print(f"Threshold check failed: {exc}", file=sys.stderr)
        return EXIT_SCRIPT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
