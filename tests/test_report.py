"""Tests for Report (E1)."""

import json

import pytest

from unitmock.assertions import fail
from unitmock.diagnostics import UnitMockError
from unitmock.harness import run_tests, unit_test
from unitmock.report import ReportError, build_json_report, render_text, write_json_report
from unitmock.session import TestSession


# ── Fixtures ──


def _ok(session, state):
    pass


def _broken(session, state):
    fail()


@pytest.fixture
def results(sink):
    return {
        "suite_a.py": run_tests([unit_test(_ok)], session=TestSession(), sink=sink),
        "suite_b.py": run_tests(
            [unit_test(_ok), unit_test(_broken)], session=TestSession(), sink=sink,
        ),
    }


# ── Text ──


class TestRenderText:
    def test_header_and_totals(self, results):
        text = render_text(results)
        assert "unitmock Test Report" in text
        assert "Suites: 2, items: 3 run (3 tests), 1 failed" in text

    def test_passing_suite_section(self, results):
        text = render_text(results)
        assert "suite_a.py" in text
        assert "All 1 test(s) passed." in text

    def test_failed_item_lists_diagnostics(self, results):
        text = render_text(results)
        assert "[Test] _broken" in text
        assert "error: Failure!" in text

    def test_empty_results(self):
        assert "Suites: 0, items: 0 run (0 tests), 0 failed" in render_text({})


# ── JSON ──


class TestJsonReport:
    def test_build(self, results):
        report = build_json_report(results)
        assert report["success"] is False
        assert [s["source"] for s in report["suites"]] == ["suite_a.py", "suite_b.py"]
        assert report["suites"][1]["items_failed"] == 1

    def test_write(self, results, tmp_path):
        path = write_json_report(results, tmp_path / "report.json")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["suites"][0]["success"] is True

    def test_write_to_missing_directory(self, results, tmp_path):
        with pytest.raises(ReportError):
            write_json_report(results, tmp_path / "missing" / "report.json")

    def test_report_error_shares_package_base(self):
        assert issubclass(ReportError, UnitMockError)
