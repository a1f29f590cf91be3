"""Report (E1) - Plain-text and JSON renderings of harness results.

The harness prints verdict lines as it goes; this module renders the
complete picture afterwards, one section per test file, for the CLI's
closing summary and its ``--json-output`` file.

Pure Python. No third-party dependency.
"""

import json
import logging
from pathlib import Path
from typing import Mapping

from unitmock.diagnostics import UnitMockError
from unitmock.harness import SuiteResult

logger = logging.getLogger(__name__)


# ── Exceptions ──


class ReportError(UnitMockError):
    """Base exception for report rendering errors."""


# ── Text ──


def render_text(results: Mapping[str, SuiteResult]) -> str:
    """Render every suite result as readable plain text."""
    sections: list[str] = []

    sections.append("=" * 60)
    sections.append("  unitmock Test Report")
    sections.append("=" * 60)

    total_items = sum(len(r.items) for r in results.values())
    total_tests = sum(r.tests_run for r in results.values())
    total_failed = sum(len(r.failed_items) for r in results.values())
    sections.append(
        f"\nSuites: {len(results)}, items: {total_items} run "
        f"({total_tests} tests), {total_failed} failed"
    )

    for source, result in results.items():
        sections.append("\n" + "-" * 40)
        sections.append(f"  {source}")
        sections.append("-" * 40)
        if result.success:
            sections.append(f"  All {result.tests_run} test(s) passed.")
            continue
        for item in result.failed_items:
            sections.append(f"\n  [{item.role.label}] {item.name}")
            for diagnostic in item.diagnostics:
                for line in diagnostic.lines():
                    sections.append(f"    {line}")
        if result.suite_diagnostics:
            sections.append("\n  Suite problems:")
            for diagnostic in result.suite_diagnostics:
                for line in diagnostic.lines():
                    sections.append(f"    {line}")

    return "\n".join(sections)


# ── JSON ──


def build_json_report(results: Mapping[str, SuiteResult]) -> dict:
    """Assemble a JSON-serializable report keyed by test source."""
    return {
        "success": all(r.success for r in results.values()),
        "suites": [
            {"source": source, **result.as_dict()}
            for source, result in results.items()
        ],
    }


def write_json_report(results: Mapping[str, SuiteResult], path: Path) -> Path:
    """Write the JSON report to ``path``.

    Raises:
        ReportError: The file could not be written.
    """
    path = Path(path)
    try:
        path.write_text(
            json.dumps(build_json_report(results), indent=2, default=str) + "\n",
            encoding="utf-8",
        )
    except OSError as exc:
        raise ReportError(f"Could not write JSON report to {path}: {exc}") from exc
    logger.info("JSON report written: %s", path)
    return path
