"""
Unit tests for the CI threshold gate.
"""

import csv

import pytest

from tas_perf import check_thresholds
from tas_perf.check_thresholds import (
    EXIT_PASS,
    EXIT_SCRIPT_ERROR,
    EXIT_THRESHOLD_BREACH,
    compute_error_rate_percent,
    extract_p95_ms,
    load_thresholds,
)


pytestmark = pytest.mark.unit

FIELDS = ["Type", "Name", "Request Count", "Failure Count", "95%"]


def _write_stats(path, rows):
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=FIELDS)
        writer.writeheader()
        for row in rows:
            writer.writerow(dict(zip(FIELDS, row)))
    return path


@pytest.fixture
def thresholds_file(tmp_path):
    path = tmp_path / "thresholds.yml"
    path.write_text(
        "max_error_rate_percent: 1.0\n"
        "max_p95_ms: 3000\n"
        "requests:\n"
        '  "Rekor: Get Log Entry by UUID":\n'
        "    max_p95_ms: 500\n",
        encoding="utf-8",
    )
    return path


def _run(stats, thresholds):
    return check_thresholds.main(["--stats", str(stats), "--thresholds", str(thresholds)])


def test_passing_run(tmp_path, thresholds_file, capsys):
    # Arrange
    stats = _write_stats(
        tmp_path / "run_stats.csv",
        [
            ("GET", "Rekor: Get Log Entry by UUID", "1000", "0", "120"),
            ("", "Aggregated", "2000", "5", "900"),
        ],
    )

    # Act
    exit_code = _run(stats, thresholds_file)

    # Assert
    assert exit_code == EXIT_PASS
    assert "Overall: PASS" in capsys.readouterr().out


def test_per_request_breach_fails_run(tmp_path, thresholds_file, capsys):
    stats = _write_stats(
        tmp_path / "run_stats.csv",
        [
            ("GET", "Rekor: Get Log Entry by UUID", "1000", "0", "800"),
            ("", "Aggregated", "2000", "0", "900"),
        ],
    )

    assert _run(stats, thresholds_file) == EXIT_THRESHOLD_BREACH
    assert "Overall: FAIL" in capsys.readouterr().out


def test_aggregated_error_rate_breach(tmp_path, thresholds_file):
    stats = _write_stats(
        tmp_path / "run_stats.csv",
        [
            ("GET", "Rekor: Get Log Entry by UUID", "100", "0", "100"),
            ("", "Aggregated", "100", "2", "100"),
        ],
    )

    assert _run(stats, thresholds_file) == EXIT_THRESHOLD_BREACH


def test_missing_request_row_is_script_error(tmp_path, thresholds_file):
    stats = _write_stats(tmp_path / "run_stats.csv", [("", "Aggregated", "10", "0", "100")])

    assert _run(stats, thresholds_file) == EXIT_SCRIPT_ERROR


def test_missing_stats_file_is_script_error(tmp_path, thresholds_file):
    assert _run(tmp_path / "absent.csv", thresholds_file) == EXIT_SCRIPT_ERROR


def test_thresholds_without_aggregated_limits(tmp_path):
    path = tmp_path / "thresholds.yml"
    path.write_text("max_p95_ms: 3000\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_thresholds(path)


def test_repository_thresholds_file_loads():
    thresholds = load_thresholds(check_thresholds.Path(__file__).parents[2] / "thresholds.yml")

    assert thresholds["Aggregated"].max_p95_ms == 3000
    assert "Fulcio: Request Certificate" in thresholds


def test_error_rate_requires_requests():
    with pytest.raises(ValueError):
        compute_error_rate_percent({"Request Count": "0", "Failure Count": "0"})


@pytest.mark.parametrize("column", ["95%", "95%ile", "p95"])
def test_p95_column_variants(column):
    assert extract_p95_ms({column: "250"}) == 250.0
