"""Assertions (C5) - Checks used directly in test bodies.

Every assertion raises ``AssertionFailure`` on failure.  The failure carries
the file and line of the assertion call and an expected-vs-actual message,
and unwinds the current test item back to the harness.
"""

from typing import Any, Iterable, Optional

from unitmock import compare
from unitmock.diagnostics import (
    AssertionFailure,
    Diagnostic,
    FailureKind,
    SourceLocation,
    caller_location,
    describe,
)


def _raise(message: str, location: SourceLocation) -> None:
    raise AssertionFailure(Diagnostic(
        kind=FailureKind.ASSERTION_FAILURE,
        message=message,
        location=location,
    ))


def _check(error: Optional[str]) -> None:
    # Location of the public assertion's caller
    if error is not None:
        _raise(error, caller_location(2))


def assert_true(value: Any, expression: Optional[str] = None) -> None:
    if not value:
        _raise(expression or f"{describe(value)} is not true", caller_location())


def assert_false(value: Any, expression: Optional[str] = None) -> None:
    if value:
        _raise(expression or f"{describe(value)} is not false", caller_location())


def assert_null(value: Any) -> None:
    if value is not None:
        _raise(f"expected None, got {describe(value)}", caller_location())


def assert_non_null(value: Any) -> None:
    if value is None:
        _raise("expected a value, got None", caller_location())


def assert_int_equal(actual: Any, expected: Any) -> None:
    _check(compare.value_equal(actual, expected))


def assert_int_not_equal(actual: Any, excluded: Any) -> None:
    _check(compare.value_not_equal(actual, excluded))


def assert_floats_equal(actual: float, expected: float, epsilon: float) -> None:
    if abs(actual - expected) > epsilon:
        _raise(
            f"{actual!r} != {expected!r} (difference {abs(actual - expected)!r} "
            f"exceeds epsilon {epsilon!r})",
            caller_location(),
        )


def assert_string_equal(actual: Any, expected: Any) -> None:
    _check(compare.string_equal(actual, expected))


def assert_string_not_equal(actual: Any, excluded: Any) -> None:
    _check(compare.string_not_equal(actual, excluded))


def assert_memory_equal(actual: Any, expected: Any, size: int) -> None:
    _check(compare.memory_equal(actual, expected, size))


def assert_memory_not_equal(actual: Any, excluded: Any, size: int) -> None:
    _check(compare.memory_not_equal(actual, excluded, size))


def assert_in_range(value: Any, minimum: Any, maximum: Any) -> None:
    _check(compare.value_in_range(value, minimum, maximum))


def assert_not_in_range(value: Any, minimum: Any, maximum: Any) -> None:
    _check(compare.value_not_in_range(value, minimum, maximum))


def assert_in_set(value: Any, values: Iterable[Any]) -> None:
    _check(compare.value_in_set(value, values))


def assert_not_in_set(value: Any, values: Iterable[Any]) -> None:
    _check(compare.value_not_in_set(value, values))


def fail() -> None:
    """Unconditionally fail the current test item."""
    _raise("Failure!", caller_location())


def fail_msg(message: str, *args: Any) -> None:
    """Fail with a printf-style message."""
    _raise(message % args if args else message, caller_location())
