"""unitmock CLI - run mock-driven test suites from the command line.

Usage::

    python -m unitmock tests/test_parser.py [more files] [options]

Each file is imported and its suite collected: the module-level ``TESTS``
list if it defines one, otherwise every ``test_*`` function in definition
order as a plain TEST item.  Every file runs with a fresh session.

Options::

    --json-output PATH    Write a structured JSON report to PATH
    --heap-limit BYTES    Refuse tracked allocations beyond BYTES in use
    --no-leak-check       Skip allocation leak checks
    --verbose / -v        Enable verbose logging

Exit status: 0 when every item passed, 1 when any item failed, 2 when a
file could not be loaded or the mock engine was misused fatally.
"""

import argparse
import importlib.util
import inspect
import logging
import sys
import uuid
from pathlib import Path

from unitmock.diagnostics import FatalMisuse, TerminalSink, UnitMockError
from unitmock.harness import (
    HarnessConfig,
    HarnessError,
    SuiteResult,
    TestItem,
    flatten_suite,
    run_tests,
    unit_test,
)
from unitmock.report import ReportError, render_text, write_json_report

logger = logging.getLogger(__name__)

EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_ABORTED = 2

# Module attribute holding an explicit suite
_SUITE_ATTRIBUTE = "TESTS"


class SuiteLoadError(UnitMockError):
    """A test file could not be imported or defines no tests."""


def load_suite(path: Path) -> list[TestItem]:
    """Import ``path`` and collect its suite.

    Raises:
        SuiteLoadError: The file is missing, fails to import, or has no tests.
    """
    path = Path(path).resolve()
    if not path.is_file():
        raise SuiteLoadError(f"Test file does not exist: {path}")

    module_name = f"_unitmock_suite_{path.stem}_{uuid.uuid4().hex[:8]}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise SuiteLoadError(f"Cannot import {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(module_name, None)
        raise SuiteLoadError(
            f"Importing {path} failed: {type(exc).__name__}: {exc}"
        ) from exc

    explicit = getattr(module, _SUITE_ATTRIBUTE, None)
    if explicit is not None:
        try:
            items = flatten_suite(explicit)
        except (HarnessError, TypeError) as exc:
            raise SuiteLoadError(f"{path}: invalid {_SUITE_ATTRIBUTE}: {exc}") from exc
    else:
        items = [
            unit_test(obj)
            for name, obj in vars(module).items()
            if name.startswith("test_")
            and inspect.isfunction(obj)
            and obj.__module__ == module_name
        ]

    if not items:
        raise SuiteLoadError(f"No tests found in {path}")
    logger.debug("Loaded %d item(s) from %s", len(items), path)
    return items


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="unitmock",
        description=(
            "unitmock: run setup/test/teardown suites with programmable mocks,\n"
            "parameter expectations and allocation leak checks."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "test_files",
        nargs="+",
        type=Path,
        help="Python files defining TESTS or test_* functions",
    )
    parser.add_argument(
        "--json-output",
        type=Path,
        default=None,
        metavar="PATH",
        help="Write a structured JSON report to PATH",
    )
    parser.add_argument(
        "--heap-limit",
        type=int,
        default=None,
        metavar="BYTES",
        help="Refuse tracked allocations beyond BYTES in use (env: UNITMOCK_HEAP_LIMIT)",
    )
    parser.add_argument(
        "--no-leak-check",
        action="store_true",
        default=False,
        help="Skip allocation leak checks (env: UNITMOCK_NO_LEAK_CHECK)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        default=False,
        help="Enable verbose logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.  Returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

    # Environment first, flags take precedence
    try:
        config = HarnessConfig.from_env()
    except HarnessError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ABORTED
    if args.heap_limit is not None:
        if args.heap_limit < 0:
            parser.error("--heap-limit must be >= 0")
        config.heap_limit_bytes = args.heap_limit
    if args.no_leak_check:
        config.check_leaks = False

    results: dict[str, SuiteResult] = {}
    for test_file in args.test_files:
        try:
            suite = load_suite(test_file)
        except SuiteLoadError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return EXIT_ABORTED

        try:
            results[str(test_file)] = run_tests(suite, config=config, sink=TerminalSink())
        except FatalMisuse as exc:
            for line in exc.diagnostic.lines():
                print(line, file=sys.stderr)
            print(
                f"Fatal misuse of the mock engine in {test_file}; aborting run.",
                file=sys.stderr,
            )
            return EXIT_ABORTED

    print()
    print(render_text(results))

    if args.json_output:
        try:
            path = write_json_report(results, args.json_output)
            print(f"\nJSON report written: {path}")
        except ReportError as exc:
            print(f"\nWarning: {exc}", file=sys.stderr)

    return EXIT_PASSED if all(r.success for r in results.values()) else EXIT_FAILED
