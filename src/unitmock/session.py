"""Test Session (C6) - The context object shared by tests and mocks.

A ``TestSession`` owns the three pieces of mock state for one run: the
ValueQueue, the ExpectationRegistry and the AllocationTracker.  Test bodies
use it to program return values and expectations; mocked collaborators use
it to fetch their return value and to validate their arguments.  Source
locations are taken from the caller's frame, so diagnostics point at the
line in the test or mock that registered or checked a value.

Usage::

    def mocked_send(session, channel, payload):
        session.check_expected("channel", channel)
        session.check_expected("payload", payload)
        return session.mock()

    def test_send(session, state):
        session.expect_value("mocked_send", "channel", 3)
        session.expect_any("mocked_send", "payload")
        session.will_return("mocked_send", 0)
        assert_int_equal(publish(session, 3, b"hi"), 0)

Pure Python. No third-party dependency.
"""

import logging
import sys
from typing import Any, Callable, Iterable, Optional, Union

from unitmock.allocation import AllocatedBlock, AllocationTracker
from unitmock.diagnostics import (
    AssertionFailure,
    Diagnostic,
    FailureKind,
    SourceLocation,
    UnitMockError,
    caller_location,
)
from unitmock.expectations import (
    AnyValue,
    CheckFunction,
    CustomPredicate,
    ExactMemory,
    ExactString,
    ExactValue,
    ExcludedMemory,
    ExcludedString,
    ExcludedValue,
    ExpectationEvent,
    ExpectationRegistry,
    ValueInRange,
    ValueInSet,
    ValueNotInRange,
    ValueNotInSet,
)
from unitmock.values import INFINITE, ValueQueue

logger = logging.getLogger(__name__)

FunctionRef = Union[str, Callable]

_OMITTED = object()


# ── Exceptions ──


class SessionError(UnitMockError):
    """Base exception for test session misuse."""


class _ExpectedAssertion(BaseException):
    """Carries a ``mock_assert`` failure back to ``expect_assert_failure``."""

    def __init__(self, expression: str, location: SourceLocation):
        super().__init__(expression)
        self.expression = expression
        self.location = location


# ── Assertion Capture ──


class AssertionCapture:
    """Context manager returned by ``TestSession.expect_assert_failure``.

    The block passes if code inside it reaches a failing ``mock_assert``;
    control resumes after the ``with`` statement.  If the block completes
    without one, the test item fails.
    """

    def __init__(self, session: "TestSession", location: SourceLocation):
        self._session = session
        self.location = location
        self.expression: Optional[str] = None

    def __enter__(self) -> "AssertionCapture":
        self._session._expecting_assert += 1
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self._session._expecting_assert -= 1
        if exc_type is not None and issubclass(exc_type, _ExpectedAssertion):
            self.expression = exc_val.expression
            logger.info("Expected assertion %s occurred", exc_val.expression)
            return True
        if exc_type is None:
            raise AssertionFailure(Diagnostic(
                kind=FailureKind.ASSERTION_FAILURE,
                message="Expected an assertion failure inside this block",
                location=self.location,
            ))
        return False


# ── Test Session ──


class TestSession:
    """Mock state for one test run.

    Attributes:
        values: Programmed return values, per function.
        expectations: Parameter expectations, per (function, parameter).
        allocations: Live test-owned blocks.
        current_item: Name of the item currently executing, if any.
    """

    __test__ = False

    def __init__(self, heap_limit_bytes: Optional[int] = None):
        self.values = ValueQueue()
        self.expectations = ExpectationRegistry()
        self.allocations = AllocationTracker(heap_limit_bytes)
        self.current_item: Optional[str] = None
        self._expecting_assert = 0

    # ── Return Values ──

    def will_return(self, function: FunctionRef, value: Any, count: int = 1) -> None:
        """Queue ``value`` as the next return value of ``function``.

        ``count`` is the number of calls it answers, or ``INFINITE``.
        """
        self.values.push(_function_name(function), value, count, caller_location())

    def will_return_always(self, function: FunctionRef, value: Any) -> None:
        self.values.push(_function_name(function), value, INFINITE, caller_location())

    def mock(self, function: Optional[FunctionRef] = None) -> Any:
        """Return the next queued value for the calling mock.

        The function name defaults to the name of the calling function.

        Raises:
            FatalMisuse: Nothing is queued for the function.
        """
        frame = sys._getframe(1)
        name = _function_name(function) if function is not None else frame.f_code.co_name
        location = SourceLocation(frame.f_code.co_filename, frame.f_lineno)
        return self.values.pop(name, location)

    # ── Expectations ──

    def expect_value(self, function: FunctionRef, parameter: str, value: Any, count: int = 1) -> None:
        self._expect(function, parameter, ExactValue(value, count, caller_location()))

    def expect_not_value(self, function: FunctionRef, parameter: str, value: Any, count: int = 1) -> None:
        self._expect(function, parameter, ExcludedValue(value, count, caller_location()))

    def expect_in_set(
        self, function: FunctionRef, parameter: str, values: Iterable[Any], count: int = 1,
    ) -> None:
        self._expect(function, parameter, ValueInSet(values, count, caller_location()))

    def expect_not_in_set(
        self, function: FunctionRef, parameter: str, values: Iterable[Any], count: int = 1,
    ) -> None:
        self._expect(function, parameter, ValueNotInSet(values, count, caller_location()))

    def expect_in_range(
        self, function: FunctionRef, parameter: str, minimum: Any, maximum: Any, count: int = 1,
    ) -> None:
        self._expect(
            function, parameter, ValueInRange(minimum, maximum, count, caller_location()),
        )

    def expect_not_in_range(
        self, function: FunctionRef, parameter: str, minimum: Any, maximum: Any, count: int = 1,
    ) -> None:
        self._expect(
            function, parameter, ValueNotInRange(minimum, maximum, count, caller_location()),
        )

    def expect_string(self, function: FunctionRef, parameter: str, string: Any, count: int = 1) -> None:
        self._expect(function, parameter, ExactString(string, count, caller_location()))

    def expect_not_string(self, function: FunctionRef, parameter: str, string: Any, count: int = 1) -> None:
        self._expect(function, parameter, ExcludedString(string, count, caller_location()))

    def expect_memory(
        self,
        function: FunctionRef,
        parameter: str,
        memory: Any,
        size: Optional[int] = None,
        count: int = 1,
    ) -> None:
        self._expect(
            function, parameter, ExactMemory(memory, size, count, caller_location()),
        )

    def expect_not_memory(
        self,
        function: FunctionRef,
        parameter: str,
        memory: Any,
        size: Optional[int] = None,
        count: int = 1,
    ) -> None:
        self._expect(
            function, parameter, ExcludedMemory(memory, size, count, caller_location()),
        )

    def expect_check(
        self,
        function: FunctionRef,
        parameter: str,
        check: CheckFunction,
        context: Any = None,
        count: int = 1,
    ) -> None:
        """Expect ``check(actual, context)`` to return a truthy value."""
        self._expect(
            function, parameter, CustomPredicate(check, context, count, caller_location()),
        )

    def expect_any(self, function: FunctionRef, parameter: str, count: int = 1) -> None:
        self._expect(function, parameter, AnyValue(count, caller_location()))

    def _expect(self, function: FunctionRef, parameter: str, event: ExpectationEvent) -> None:
        self.expectations.push(_function_name(function), parameter, event)

    def check_expected(
        self,
        parameter: str,
        value: Any = _OMITTED,
        function: Optional[FunctionRef] = None,
    ) -> None:
        """Validate a parameter of the calling mock against its expectations.

        When ``value`` is omitted, the caller's local variable named
        ``parameter`` is checked.

        Raises:
            ExpectationMismatch: The value was rejected or nothing was expected.
        """
        frame = sys._getframe(1)
        name = _function_name(function) if function is not None else frame.f_code.co_name
        location = SourceLocation(frame.f_code.co_filename, frame.f_lineno)
        if value is _OMITTED:
            try:
                value = frame.f_locals[parameter]
            except KeyError:
                raise SessionError(
                    f"{location}: {name}() has no local variable {parameter!r} "
                    f"to check; pass the value explicitly"
                ) from None
        self.expectations.check(name, parameter, value, location)

    # ── Assertion Hook ──

    def mock_assert(self, result: Any, expression: str = "") -> None:
        """Assertion hook handed to code under test in place of ``assert``."""
        if result:
            return
        location = caller_location()
        if self._expecting_assert:
            raise _ExpectedAssertion(expression, location)
        raise AssertionFailure(Diagnostic(
            kind=FailureKind.ASSERTION_FAILURE,
            message=expression or "mock_assert failed",
            location=location,
        ))

    def expect_assert_failure(self) -> AssertionCapture:
        """Expect the enclosed code to trip ``mock_assert``.

        Usage::

            with session.expect_assert_failure():
                show_message(session, None)
        """
        return AssertionCapture(self, caller_location())

    # ── Allocation ──

    def test_malloc(self, size: int) -> Optional[AllocatedBlock]:
        return self.allocations.alloc(size, caller_location())

    def test_calloc(self, count: int, size: int) -> Optional[AllocatedBlock]:
        return self.allocations.calloc(count, size, caller_location())

    def test_free(self, block: Union[AllocatedBlock, int, None]) -> bool:
        return self.allocations.free(block, caller_location())

    # ── Lifecycle ──

    def begin_item(self, name: str) -> None:
        self.current_item = name
        self._expecting_assert = 0

    def end_item(self, carry_values: bool = False) -> None:
        """Finish an item: drop queued state unless values carry forward."""
        if not carry_values:
            self.values.clear()
        self.expectations.clear()
        self._expecting_assert = 0
        self.current_item = None

    def reset(self) -> None:
        """Empty every store, ready for an independent run."""
        self.values.clear()
        self.expectations.clear()
        self.allocations.clear()
        self._expecting_assert = 0
        self.current_item = None


def _function_name(function: FunctionRef) -> str:
    if isinstance(function, str):
        return function
    name = getattr(function, "__name__", None)
    if not name:
        raise SessionError(f"Cannot derive a function name from {function!r}")
    return name
