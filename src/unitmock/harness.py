"""Test Harness (D1) - Runs setup/test/teardown items and isolates failures.

Takes an ordered list of ``TestItem`` objects and executes them one at a
time, in declaration order.  Each item runs inside an abort boundary: an
assertion or expectation failure unwinds to the harness, the item is marked
failed, and the run continues with the next item.  After a normal return
the harness looks for unconsumed return values and expectations and, for
TEST and TEARDOWN items, for leaked allocations.

Items form setup/test/teardown triples by position.  A SETUP opens a
triple with a fresh state slot and an allocation checkpoint; the following
TEST sees the same slot; the matching TEARDOWN consumes it and is
leak-checked against the SETUP's checkpoint.

Only ``FatalMisuse`` escapes ``TestHarness.run``.

Pure Python. No third-party dependency.
"""

import logging
import os
import time
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from unitmock.allocation import Checkpoint
from unitmock.diagnostics import (
    Diagnostic,
    FailureKind,
    MessageSink,
    SourceLocation,
    TerminalSink,
    TestAbort,
    UnitMockError,
    emit_diagnostic,
)
from unitmock.session import TestSession

logger = logging.getLogger(__name__)

# Environment variables read by HarnessConfig.from_env
ENV_HEAP_LIMIT = "UNITMOCK_HEAP_LIMIT"
ENV_NO_LEAK_CHECK = "UNITMOCK_NO_LEAK_CHECK"

_TRUTHY = frozenset({"1", "true", "yes", "on"})

# Name used for leaks still outstanding when the whole suite finishes
_SUITE_SCOPE = "run_tests"


# ── Exceptions ──


class HarnessError(UnitMockError):
    """Base exception for harness configuration errors."""


# ── Enums ──


class Role(str, Enum):
    SETUP = "setup"
    TEST = "test"
    TEARDOWN = "teardown"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class ItemStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"


class HarnessState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    SUITE_DONE = "suite_done"


# ── Data Classes ──


@dataclass
class StateSlot:
    """Mutable state shared by one setup/test/teardown triple."""

    value: Any = None


TestCallback = Callable[[TestSession, StateSlot], None]


@dataclass(frozen=True)
class TestItem:
    """One entry of a suite.

    Attributes:
        name: Display name used in verdict lines and reports.
        callback: Called as ``callback(session, state)``; ``None`` skips the item.
        role: SETUP, TEST or TEARDOWN.
    """

    __test__ = False

    name: str
    callback: Optional[TestCallback]
    role: Role = Role.TEST


@dataclass
class ItemResult:
    """Verdict for a single executed item.

    Attributes:
        name: Item name.
        role: Item role.
        status: PASSED or FAILED.
        diagnostics: Every failure recorded for the item, in detection order.
        aborted: True when the item unwound before returning normally.
        duration_ms: Wall-clock time spent in the callback and checks.
    """

    name: str
    role: Role
    status: ItemStatus
    diagnostics: list[Diagnostic] = field(default_factory=list)
    aborted: bool = False
    duration_ms: float = 0.0

    @property
    def passed(self) -> bool:
        return self.status is ItemStatus.PASSED

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "role": self.role.value,
            "status": self.status.value,
            "aborted": self.aborted,
            "duration_ms": self.duration_ms,
            "diagnostics": [d.as_dict() for d in self.diagnostics],
        }


@dataclass
class SuiteResult:
    """Aggregate outcome of one harness run.

    Attributes:
        items: Per-item results in execution order.
        suite_diagnostics: Failures not attributable to a single item
            (unpaired setups, blocks still allocated at the end).
        total_time_ms: Wall-clock time for the whole run.
    """

    items: list[ItemResult] = field(default_factory=list)
    suite_diagnostics: list[Diagnostic] = field(default_factory=list)
    total_time_ms: float = 0.0

    @property
    def failed_items(self) -> list[ItemResult]:
        return [r for r in self.items if not r.passed]

    @property
    def tests_run(self) -> int:
        return sum(1 for r in self.items if r.role is Role.TEST)

    @property
    def failure_count(self) -> int:
        return len(self.failed_items) + (1 if self.suite_diagnostics else 0)

    @property
    def success(self) -> bool:
        return self.failure_count == 0

    @property
    def exit_status(self) -> int:
        return 0 if self.success else 1

    def summary_lines(self) -> list[str]:
        """The closing lines printed after the last item."""
        failed = self.failed_items
        if not failed and not self.suite_diagnostics:
            return [f"All {self.tests_run} test(s) passed."]
        lines = [
            f"{len(failed)} out of {len(self.items)} item(s) failed!"
        ]
        lines.extend(f"    {r.name}" for r in failed)
        if self.suite_diagnostics:
            lines.append(
                f"{len(self.suite_diagnostics)} suite-level problem(s) found."
            )
        return lines

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "tests_run": self.tests_run,
            "items_run": len(self.items),
            "items_failed": len(self.failed_items),
            "total_time_ms": self.total_time_ms,
            "items": [r.as_dict() for r in self.items],
            "suite_diagnostics": [d.as_dict() for d in self.suite_diagnostics],
        }


@dataclass
class HarnessConfig:
    """Knobs for a harness run.

    Attributes:
        check_leaks: Diff allocation checkpoints after TEST/TEARDOWN items.
        heap_limit_bytes: Total live bytes the tracker may hand out, or
            None for no limit.
    """

    check_leaks: bool = True
    heap_limit_bytes: Optional[int] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "HarnessConfig":
        """Build a config from ``UNITMOCK_*`` environment variables."""
        env = os.environ if environ is None else environ
        config = cls()

        raw_limit = env.get(ENV_HEAP_LIMIT, "").strip()
        if raw_limit:
            try:
                config.heap_limit_bytes = int(raw_limit)
            except ValueError:
                raise HarnessError(
                    f"{ENV_HEAP_LIMIT} must be an integer byte count, got {raw_limit!r}"
                ) from None
            if config.heap_limit_bytes < 0:
                raise HarnessError(f"{ENV_HEAP_LIMIT} must be >= 0, got {raw_limit}")

        if env.get(ENV_NO_LEAK_CHECK, "").strip().lower() in _TRUTHY:
            config.check_leaks = False
        return config


@dataclass
class _Triple:
    """An open setup/test/teardown group awaiting its teardown."""

    setup_name: str
    state: StateSlot
    checkpoint: Checkpoint


# ── Test Harness ──


class TestHarness:
    """Executes an ordered suite of setup/test/teardown items.

    The harness:
    - Runs every item in declaration order, one at a time
    - Contains assertion and expectation failures at item granularity
    - Contains any other exception from a callback as an unexpected error
    - Fails items that leave return values or expectations unconsumed
    - Fails TEST and TEARDOWN items that leak allocations
    - Lets ``FatalMisuse`` propagate and end the run

    Usage::

        harness = TestHarness()
        result = harness.run([
            unit_test(test_parse_empty),
            *unit_test_setup_teardown(test_lookup, open_table, close_table),
        ])
        sys.exit(result.exit_status)
    """

    __test__ = False

    def __init__(
        self,
        session: Optional[TestSession] = None,
        config: Optional[HarnessConfig] = None,
        sink: Optional[MessageSink] = None,
    ):
        self.config = config or HarnessConfig()
        self.session = session or TestSession(
            heap_limit_bytes=self.config.heap_limit_bytes,
        )
        if session is not None and self.config.heap_limit_bytes is not None:
            session.allocations.heap_limit_bytes = self.config.heap_limit_bytes
        self.sink = sink or TerminalSink()
        self._state = HarnessState.IDLE

    @property
    def state(self) -> HarnessState:
        return self._state

    def run(self, tests: Iterable[Union[TestItem, Iterable[TestItem]]]) -> SuiteResult:
        """Run every item and return the aggregate result.

        A failure in one item never prevents later items from running.

        Raises:
            FatalMisuse: A mock read an empty return-value queue.
        """
        items = flatten_suite(tests)
        logger.info("Starting run of %d item(s)", len(items))

        allocations = self.session.allocations
        suite_checkpoint = allocations.checkpoint()
        open_triples: list[_Triple] = []
        results: list[ItemResult] = []
        start = time.perf_counter()

        for item in items:
            # Absent setups and teardowns still open and close their triple
            if item.role is Role.SETUP:
                triple = _Triple(item.name, StateSlot(), allocations.checkpoint())
                open_triples.append(triple)
                if item.callback is None:
                    _log_skipped(item)
                    continue
                result = self._run_item(item, triple.state, triple.checkpoint)
            elif item.role is Role.TEARDOWN:
                if item.callback is None:
                    if open_triples:
                        open_triples.pop()
                    _log_skipped(item)
                    continue
                if not open_triples:
                    result = self._orphan_teardown(item)
                else:
                    triple = open_triples.pop()
                    result = self._run_item(item, triple.state, triple.checkpoint)
            else:
                if item.callback is None:
                    _log_skipped(item)
                    continue
                state = open_triples[-1].state if open_triples else StateSlot()
                result = self._run_item(item, state, None)
            results.append(result)

        suite_diagnostics = self._finish_suite(open_triples, suite_checkpoint)
        total_ms = (time.perf_counter() - start) * 1000

        suite = SuiteResult(
            items=results,
            suite_diagnostics=suite_diagnostics,
            total_time_ms=round(total_ms, 2),
        )
        for line in suite.summary_lines():
            if suite.success:
                self.sink.message(line)
            else:
                self.sink.error(line)

        self._state = HarnessState.SUITE_DONE
        logger.info(
            "Run finished: %d item(s), %d failed, %.0f ms",
            len(results), len(suite.failed_items), suite.total_time_ms,
        )
        return suite

    def _run_item(
        self,
        item: TestItem,
        state: StateSlot,
        checkpoint: Optional[Checkpoint],
    ) -> ItemResult:
        """Run one item inside the abort boundary and apply post-checks."""
        session = self.session
        if checkpoint is None:
            checkpoint = session.allocations.checkpoint()

        self._state = HarnessState.RUNNING
        session.begin_item(item.name)
        logger.info("Running %s %s", item.role.value, item.name)

        diagnostics: list[Diagnostic] = []
        aborted = False
        start = time.perf_counter()
        try:
            item.callback(session, state)
        except TestAbort as exc:
            aborted = True
            diagnostics.append(exc.diagnostic)
        except Exception as exc:
            aborted = True
            diagnostics.append(_unexpected_error(item, exc))
        else:
            diagnostics.extend(self._post_checks(item, checkpoint))
        diagnostics.extend(session.allocations.drain_errors())
        duration_ms = (time.perf_counter() - start) * 1000

        passed = not diagnostics
        session.end_item(carry_values=passed and item.role is Role.SETUP)

        self._state = HarnessState.PASSED if passed else HarnessState.FAILED
        for diagnostic in diagnostics:
            emit_diagnostic(self.sink, diagnostic)
        verdict = "passed" if passed else "failed"
        self.sink.message(f"{item.name}: {item.role.label} {verdict}.")
        logger.info("%s %s %s", item.role.value, item.name, verdict)
        self._state = HarnessState.IDLE

        return ItemResult(
            name=item.name,
            role=item.role,
            status=ItemStatus.PASSED if passed else ItemStatus.FAILED,
            diagnostics=diagnostics,
            aborted=aborted,
            duration_ms=round(duration_ms, 2),
        )

    def _post_checks(self, item: TestItem, checkpoint: Checkpoint) -> list[Diagnostic]:
        """Leftover and leak checks run after a normal return."""
        session = self.session
        diagnostics = session.expectations.unconsumed_diagnostics()
        # Return values queued by a setup are meant for the test that follows
        if item.role is not Role.SETUP:
            diagnostics.extend(session.values.unconsumed_diagnostics())

        if self.config.check_leaks and item.role is not Role.SETUP:
            leaked = session.allocations.diff(checkpoint)
            if leaked:
                diagnostics.extend(
                    session.allocations.leak_diagnostics(leaked, item.name)
                )
                session.allocations.release(leaked)
        return diagnostics

    def _orphan_teardown(self, item: TestItem) -> ItemResult:
        diagnostic = Diagnostic(
            kind=FailureKind.SUITE_ERROR,
            message=f"Teardown {item.name} has no preceding setup.",
        )
        logger.warning("Teardown %s has no preceding setup", item.name)
        emit_diagnostic(self.sink, diagnostic)
        self.sink.message(f"{item.name}: {item.role.label} failed.")
        return ItemResult(
            name=item.name,
            role=item.role,
            status=ItemStatus.FAILED,
            diagnostics=[diagnostic],
        )

    def _finish_suite(
        self,
        open_triples: list[_Triple],
        suite_checkpoint: Checkpoint,
    ) -> list[Diagnostic]:
        diagnostics = [
            Diagnostic(
                kind=FailureKind.SUITE_ERROR,
                message=f"Setup {triple.setup_name} has no matching teardown.",
            )
            for triple in open_triples
        ]
        if self.config.check_leaks:
            allocations = self.session.allocations
            leaked = allocations.diff(suite_checkpoint)
            if leaked:
                diagnostics.extend(allocations.leak_diagnostics(leaked, _SUITE_SCOPE))
                allocations.release(leaked)
        for diagnostic in diagnostics:
            logger.warning("%s", diagnostic.message)
            emit_diagnostic(self.sink, diagnostic)
        return diagnostics


# ── Suite Builders ──


def unit_test(test: TestCallback) -> TestItem:
    return TestItem(test.__name__, test, Role.TEST)


def unit_test_with_prefix(prefix: str, test: TestCallback) -> TestItem:
    return TestItem(f"{prefix}{test.__name__}", test, Role.TEST)


def unit_test_setup(test: TestCallback, setup: Optional[TestCallback]) -> TestItem:
    return TestItem(f"{test.__name__}_{_callback_name(setup, 'setup')}", setup, Role.SETUP)


def unit_test_teardown(test: TestCallback, teardown: Optional[TestCallback]) -> TestItem:
    return TestItem(
        f"{test.__name__}_{_callback_name(teardown, 'teardown')}", teardown, Role.TEARDOWN,
    )


def unit_test_setup_teardown(
    test: TestCallback,
    setup: Optional[TestCallback],
    teardown: Optional[TestCallback],
) -> tuple[TestItem, TestItem, TestItem]:
    """Build the setup, test and teardown items of one triple."""
    return (
        unit_test_setup(test, setup),
        unit_test(test),
        unit_test_teardown(test, teardown),
    )


def flatten_suite(tests: Iterable[Union[TestItem, Iterable[TestItem]]]) -> list[TestItem]:
    """Expand one level of nesting so triples can sit inline in a suite list."""
    items: list[TestItem] = []
    for entry in tests:
        if isinstance(entry, TestItem):
            items.append(entry)
            continue
        for item in entry:
            if not isinstance(item, TestItem):
                raise HarnessError(f"Suite entries must be TestItem objects, got {item!r}")
            items.append(item)
    return items


def run_tests(
    tests: Iterable[Union[TestItem, Iterable[TestItem]]],
    session: Optional[TestSession] = None,
    config: Optional[HarnessConfig] = None,
    sink: Optional[MessageSink] = None,
) -> SuiteResult:
    """Run a suite with a fresh harness."""
    return TestHarness(session=session, config=config, sink=sink).run(tests)


def run_test(
    test: TestCallback,
    session: Optional[TestSession] = None,
    config: Optional[HarnessConfig] = None,
    sink: Optional[MessageSink] = None,
) -> SuiteResult:
    """Run a single TEST callback."""
    return run_tests([unit_test(test)], session=session, config=config, sink=sink)


# ── Helpers ──


def _callback_name(callback: Optional[Callable], default: str) -> str:
    if callback is None:
        return default
    return getattr(callback, "__name__", default)


def _log_skipped(item: TestItem) -> None:
    logger.debug("Skipping %s item %s: no callback", item.role.value, item.name)


def _unexpected_error(item: TestItem, exc: Exception) -> Diagnostic:
    """Diagnostic for an ordinary exception escaping a callback."""
    location = None
    frames = traceback.extract_tb(exc.__traceback__)
    if frames:
        innermost = frames[-1]
        location = SourceLocation(innermost.filename, innermost.lineno or 0)
    return Diagnostic(
        kind=FailureKind.UNEXPECTED_ERROR,
        message=(
            f"{item.name} raised {type(exc).__name__}: {str(exc)[:500]}"
        ),
        location=location,
    )
