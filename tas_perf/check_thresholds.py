"""
Pass or fail a run from its Locust CSV statistics.

After a headless run with ``--csv <prefix>``, CI invokes this script to
decide whether the build passes.  It reads ``<prefix>_stats.csv`` and
compares the **Aggregated** row, plus any individually configured
pipeline stages (e.g. ``Fulcio: Request Certificate``), against limits
defined in :file:`thresholds.yml`:

- **Error rate (%)**: ``Failure Count / Request Count × 100``
- **P95 latency (ms)**: the 95th-percentile response time

Exit codes:

- ``0``: all thresholds passed
- ``1``: at least one threshold was breached
- ``2``: the script itself failed (missing file, bad YAML, etc.)
"""

from __future__ import annotations

import argparse
import csv
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_SCRIPT_ERROR = 2

AGGREGATED = "Aggregated"


@dataclass(frozen=True)
class Limits:
    max_error_rate_percent: float | None = None
    max_p95_ms: float | None = None


@dataclass(frozen=True)
class Result:
    name: str
    error_rate: float
    p95_ms: float
    limits: Limits

    @property
    def error_ok(self) -> bool:
        limit = self.limits.max_error_rate_percent
        return limit is None or self.error_rate <= limit

    @property
    def p95_ok(self) -> bool:
        limit = self.limits.max_p95_ms
        return limit is None or self.p95_ms <= limit

    @property
    def passed(self) -> bool:
        return self.error_ok and self.p95_ok


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse the gate's command line."""
    parser = argparse.ArgumentParser(
        description="Gate a load run on error-rate and p95 limits."
    )
    parser.add_argument(
        "--stats",
        required=True,
        type=Path,
        help="Locust statistics file written by --csv (<prefix>_stats.csv)",
    )
    parser.add_argument(
        "--thresholds",
        type=Path,
        default=Path("thresholds.yml"),
        help="YAML file with aggregate and per-stage limits",
    )
    return parser.parse_args(argv)


def _limits_from(data: Any, where: str) -> Limits:
    if not isinstance(data, dict):
        raise ValueError(f"Thresholds for {where} must be a mapping")
    try:
        error_rate = data.get("max_error_rate_percent")
        p95 = data.get("max_p95_ms")
        limits = Limits(
            max_error_rate_percent=None if error_rate is None else float(error_rate),
            max_p95_ms=None if p95 is None else float(p95),
        )
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Thresholds for {where} must be numeric") from exc
    if limits.max_error_rate_percent is None and limits.max_p95_ms is None:
        raise ValueError(f"Thresholds for {where} define no limits")
    return limits


def load_thresholds(path: Path) -> dict[str, Limits]:
    """
    Load the aggregate and per-request limits.

    The top-level ``max_error_rate_percent``/``max_p95_ms`` keys apply to
    the aggregated row; an optional ``requests`` mapping adds limits per
    request name.

    Returns:
        Request name (``"Aggregated"`` for the totals) to limits.

    Raises:
        ValueError: If the aggregated limits are missing or any value is
            non-numeric.
    """
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if not isinstance(data, dict):
        raise ValueError("Thresholds file must be a mapping")

    aggregated = {key: data.get(key) for key in ("max_error_rate_percent", "max_p95_ms")}
    if any(value is None for value in aggregated.values()):
        raise ValueError(
            "max_error_rate_percent and max_p95_ms are required at the top level"
        )

    thresholds = {AGGREGATED: _limits_from(aggregated, AGGREGATED)}
    for name, limits in (data.get("requests") or {}).items():
        thresholds[str(name)] = _limits_from(limits, str(name))
    return thresholds


def load_rows(stats_path: Path) -> dict[str, dict[str, str]]:
    """
    Index the rows of a Locust stats CSV by request name.

    The ``Aggregated`` summary row is found by checking both the
    ``Name`` and ``Type`` columns, since the column layout varies between
    Locust versions.
    """
    with stats_path.open("r", encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))

    indexed: dict[str, dict[str, str]] = {}
    for row in rows:
        if row.get("Name") == AGGREGATED or row.get("Type") == AGGREGATED:
            indexed[AGGREGATED] = row
        elif row.get("Name"):
            indexed[row["Name"]] = row
    if AGGREGATED not in indexed:
        raise ValueError(f"{stats_path} has no Aggregated row")
    return indexed


def _parse_float(value: Any, field_name: str) -> float:
    """Read a CSV cell as ``float``; a trailing ``%`` is ignored."""
    if value is None:
        raise ValueError(f"Column {field_name!r} is absent")

    text = str(value).strip().replace("%", "")
    if text == "":
        raise ValueError(f"Column {field_name!r} is empty")

    try:
        return float(text)
    except ValueError as exc:
        raise ValueError(f"Column {field_name!r} is not a number: {value!r}") from exc


def extract_p95_ms(row: dict[str, str]) -> float:
    """p95 latency in ms; Locust has used both ``95%`` and ``95th percentile``."""
    candidates = ("95%", "95%ile", "95th percentile", "p95")
    for candidate in candidates:
        if candidate in row and row[candidate] not in (None, "", "N/A"):
            return _parse_float(row[candidate], candidate)
    raise ValueError("No p95 latency column in stats row")


def compute_error_rate_percent(row: dict[str, str]) -> float:
    """
    ``(Failure Count / Request Count) × 100``.

    Raises:
        ValueError: If counts are missing or ``Request Count`` is zero.
    """
    request_count = _parse_float(row.get("Request Count"), "Request Count")
    failure_count = _parse_float(row.get("Failure Count"), "Failure Count")

    if request_count <= 0:
        raise ValueError("Request Count is zero; nothing to check")

    return (failure_count / request_count) * 100.0


def evaluate(rows: dict[str, dict[str, str]], thresholds: dict[str, Limits]) -> list[Result]:
    """
    Compare each thresholded request against its row.

    Raises:
        ValueError: If a thresholded request name has no row.
    """
    results = []
    for name, limits in thresholds.items():
        row = rows.get(name)
        if row is None:
            raise ValueError(f"No stats row for request '{name}'")
        results.append(
            Result(
                name=name,
                error_rate=compute_error_rate_percent(row),
                p95_ms=extract_p95_ms(row),
                limits=limits,
            )
        )
    return results


def _fmt_limit(limit: float | None) -> str:
    return "-" if limit is None else f"{limit:.2f}"


def print_summary(results: list[Result]) -> None:
    """Print one row per request and metric, then the overall verdict."""
    width = 94
    print("Load Run Threshold Check")
    print("-" * width)
    print(f"{'Request':<38}{'Metric':<18}{'Actual':>12}{'Limit':>14}{'Status':>12}")
    print("-" * width)
    for result in results:
        print(
            f"{result.name[:37]:<38}{'Error rate (%)':<18}{result.error_rate:>12.2f}"
            f"{_fmt_limit(result.limits.max_error_rate_percent):>14}"
            f"{'PASS' if result.error_ok else 'FAIL':>12}"
        )
        print(
            f"{'':<38}{'P95 latency (ms)':<18}{result.p95_ms:>12.2f}"
            f"{_fmt_limit(result.limits.max_p95_ms):>14}"
            f"{'PASS' if result.p95_ok else 'FAIL':>12}"
        )
    print("-" * width)
    print(f"Overall: {'PASS' if all(r.passed for r in results) else 'FAIL'}")


def main(argv: list[str] | None = None) -> int:
    """
    Compare a stats CSV with the thresholds file and print the table.

    Returns:
        One of the ``EXIT_*`` codes.
    """
    args = parse_args(argv)

    try:
        thresholds = load_thresholds(args.thresholds)
        rows = load_rows(args.stats)
        results = evaluate(rows, thresholds)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"Threshold check failed: {exc}", file=sys.stderr)
        return EXIT_SCRIPT_ERROR

    print_summary(results)
    return EXIT_PASS if all(result.passed for result in results) else EXIT_THRESHOLD_BREACH


if __name__ == "__main__":
    raise SystemExit(main())
