"""Expectation Registry (C3) - Parameter predicates checked by mocked functions.

Test code registers expectations for a ``(function, parameter)`` pair before
calling the code under test.  When the mocked function runs, it checks each
parameter it received; the check evaluates the head expectation of that
parameter's queue.  A failed check, or a check with nothing queued, raises
``ExpectationMismatch`` which unwinds the test to the harness.

Expectation kinds:
  - ExactValue / ExcludedValue: equality and inequality
  - ValueInSet / ValueNotInSet: linear membership
  - ValueInRange / ValueNotInRange: inclusive ``minimum <= actual <= maximum``
  - ExactString / ExcludedString: byte-wise string comparison
  - ExactMemory / ExcludedMemory: byte-wise comparison of a prefix
  - CustomPredicate: a user function called with ``(actual, context)``
  - AnyValue: accepts anything

Pure Python. No third-party dependency.
"""

import logging
from collections import deque
from typing import Any, Callable, Iterable, Optional

from unitmock import compare
from unitmock.diagnostics import (
    Diagnostic,
    ExpectationMismatch,
    FailureKind,
    SourceLocation,
    describe,
)
from unitmock.values import INFINITE, validate_repeat

logger = logging.getLogger(__name__)

CheckFunction = Callable[[Any, Any], Any]


# ── Expectation Events ──


class ExpectationEvent:
    """Base class for a queued parameter predicate.

    Subclasses implement ``evaluate`` (``None`` on pass, an expected-vs-actual
    message on failure) and ``describe``.
    """

    kind = "expectation"

    def __init__(
        self,
        remaining: int = 1,
        location: Optional[SourceLocation] = None,
    ):
        validate_repeat(remaining)
        self.remaining = remaining
        self.location = location
        self.uses = 0

    @property
    def infinite(self) -> bool:
        return self.remaining == INFINITE

    def evaluate(self, actual: Any) -> Optional[str]:
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError

    def __repr__(self) -> str:
        count = "always" if self.infinite else self.remaining
        return f"<{type(self).__name__} {self.describe()} remaining={count}>"


class ExactValue(ExpectationEvent):
    kind = "value"

    def __init__(self, value: Any, remaining: int = 1, location=None):
        super().__init__(remaining, location)
        self.value = value

    def evaluate(self, actual: Any) -> Optional[str]:
        return compare.value_equal(actual, self.value)

    def describe(self) -> str:
        return f"value == {describe(self.value)}"


class ExcludedValue(ExpectationEvent):
    kind = "not_value"

    def __init__(self, value: Any, remaining: int = 1, location=None):
        super().__init__(remaining, location)
        self.value = value

    def evaluate(self, actual: Any) -> Optional[str]:
        return compare.value_not_equal(actual, self.value)

    def describe(self) -> str:
        return f"value != {describe(self.value)}"


class ValueInSet(ExpectationEvent):
    kind = "in_set"

    def __init__(self, values: Iterable[Any], remaining: int = 1, location=None):
        super().__init__(remaining, location)
        self.values = tuple(values)
        if not self.values:
            raise ValueError("Expected value set must not be empty")

    def evaluate(self, actual: Any) -> Optional[str]:
        return compare.value_in_set(actual, self.values)

    def describe(self) -> str:
        return f"value in {self.values!r}"


class ValueNotInSet(ExpectationEvent):
    kind = "not_in_set"

    def __init__(self, values: Iterable[Any], remaining: int = 1, location=None):
        super().__init__(remaining, location)
        self.values = tuple(values)
        if not self.values:
            raise ValueError("Excluded value set must not be empty")

    def evaluate(self, actual: Any) -> Optional[str]:
        return compare.value_not_in_set(actual, self.values)

    def describe(self) -> str:
        return f"value not in {self.values!r}"


class ValueInRange(ExpectationEvent):
    kind = "in_range"

    def __init__(self, minimum: Any, maximum: Any, remaining: int = 1, location=None):
        super().__init__(remaining, location)
        self.minimum = minimum
        self.maximum = maximum

    def evaluate(self, actual: Any) -> Optional[str]:
        return compare.value_in_range(actual, self.minimum, self.maximum)

    def describe(self) -> str:
        return f"{describe(self.minimum)} <= value <= {describe(self.maximum)}"


class ValueNotInRange(ExpectationEvent):
    kind = "not_in_range"

    def __init__(self, minimum: Any, maximum: Any, remaining: int = 1, location=None):
        super().__init__(remaining, location)
        self.minimum = minimum
        self.maximum = maximum

    def evaluate(self, actual: Any) -> Optional[str]:
        return compare.value_not_in_range(actual, self.minimum, self.maximum)

    def describe(self) -> str:
        return (
            f"value outside {describe(self.minimum)}-{describe(self.maximum)}"
        )


class ExactString(ExpectationEvent):
    kind = "string"

    def __init__(self, string: Any, remaining: int = 1, location=None):
        super().__init__(remaining, location)
        self.string = string

    def evaluate(self, actual: Any) -> Optional[str]:
        return compare.string_equal(actual, self.string)

    def describe(self) -> str:
        return f"string == {self.string!r}"


class ExcludedString(ExpectationEvent):
    kind = "not_string"

    def __init__(self, string: Any, remaining: int = 1, location=None):
        super().__init__(remaining, location)
        self.string = string

    def evaluate(self, actual: Any) -> Optional[str]:
        return compare.string_not_equal(actual, self.string)

    def describe(self) -> str:
        return f"string != {self.string!r}"


class ExactMemory(ExpectationEvent):
    kind = "memory"

    def __init__(
        self,
        memory: Any,
        size: Optional[int] = None,
        remaining: int = 1,
        location=None,
    ):
        super().__init__(remaining, location)
        self.memory, self.size = _copy_memory(memory, size)

    def evaluate(self, actual: Any) -> Optional[str]:
        return compare.memory_equal(actual, self.memory, self.size)

    def describe(self) -> str:
        return f"{self.size} bytes == {self.memory!r}"


class ExcludedMemory(ExpectationEvent):
    kind = "not_memory"

    def __init__(
        self,
        memory: Any,
        size: Optional[int] = None,
        remaining: int = 1,
        location=None,
    ):
        super().__init__(remaining, location)
        self.memory, self.size = _copy_memory(memory, size)

    def evaluate(self, actual: Any) -> Optional[str]:
        return compare.memory_not_equal(actual, self.memory, self.size)

    def describe(self) -> str:
        return f"{self.size} bytes != {self.memory!r}"


class CustomPredicate(ExpectationEvent):
    kind = "check"

    def __init__(
        self,
        check: CheckFunction,
        context: Any = None,
        remaining: int = 1,
        location=None,
    ):
        super().__init__(remaining, location)
        if not callable(check):
            raise ValueError(f"Check function must be callable, got {check!r}")
        self.check = check
        self.context = context

    def evaluate(self, actual: Any) -> Optional[str]:
        if self.check(actual, self.context):
            return None
        return (
            f"{_callable_name(self.check)} rejected {describe(actual)} "
            f"(context {self.context!r})"
        )

    def describe(self) -> str:
        return f"{_callable_name(self.check)}(value, {self.context!r})"


class AnyValue(ExpectationEvent):
    kind = "any"

    def evaluate(self, actual: Any) -> Optional[str]:
        return None

    def describe(self) -> str:
        return "any value"


# ── Expectation Registry ──


class ExpectationRegistry:
    """Per-(function, parameter) FIFO queues of expectation events.

    Usage::

        registry = ExpectationRegistry()
        registry.push("send", "length", ValueInRange(1, 512))
        registry.check("send", "length", 64)    # passes
        registry.check("send", "length", 64)    # ExpectationMismatch: nothing queued
    """

    def __init__(self) -> None:
        self._queues: dict[tuple[str, str], deque[ExpectationEvent]] = {}
        self._last_declared: dict[tuple[str, str], Optional[SourceLocation]] = {}

    def push(self, function: str, parameter: str, event: ExpectationEvent) -> ExpectationEvent:
        """Append ``event`` to the tail of the ``(function, parameter)`` queue."""
        key = (function, parameter)
        self._queues.setdefault(key, deque()).append(event)
        self._last_declared[key] = event.location
        logger.debug("Expecting %s(%s): %r", function, parameter, event)
        return event

    def check(
        self,
        function: str,
        parameter: str,
        actual: Any,
        location: Optional[SourceLocation] = None,
    ) -> bool:
        """Validate ``actual`` against the head expectation for the key.

        Returns True on a pass.  Never returns on a failure.

        Raises:
            ExpectationMismatch: The predicate rejected ``actual``, or no
                expectation is queued for this parameter.
        """
        key = (function, parameter)
        queue = self._queues.get(key)
        if not queue:
            raise ExpectationMismatch(
                self._missing_diagnostic(function, parameter, actual, location)
            )

        event = queue[0]
        error = event.evaluate(actual)
        if error is not None:
            notes = []
            if event.location is not None:
                notes.append((event.location, f"expected {event.describe()} declared here"))
            raise ExpectationMismatch(Diagnostic(
                kind=FailureKind.EXPECTATION_MISMATCH,
                message=(
                    f"Check of parameter {parameter}, function {function}() "
                    f"failed: {error}"
                ),
                location=location,
                notes=notes,
            ))

        event.uses += 1
        if not event.infinite:
            event.remaining -= 1
            if event.remaining == 0:
                queue.popleft()
                if not queue:
                    del self._queues[key]
        logger.debug("%s(%s=%r) passed %r", function, parameter, actual, event)
        return True

    def pending(self, function: str, parameter: str) -> list[ExpectationEvent]:
        """Expectations still queued for the key, head first."""
        return list(self._queues.get((function, parameter), ()))

    def leftovers(self) -> list[tuple[str, str, ExpectationEvent]]:
        """Expectations never satisfied; used-at-least-once ``INFINITE`` ones excluded."""
        leftover = []
        for (function, parameter), queue in self._queues.items():
            for event in queue:
                if event.infinite and event.uses > 0:
                    continue
                leftover.append((function, parameter, event))
        return leftover

    def unconsumed_diagnostics(self) -> list[Diagnostic]:
        """One ``UNCONSUMED_EXPECTATION`` diagnostic per parameter with leftovers."""
        grouped: dict[tuple[str, str], list[ExpectationEvent]] = {}
        for function, parameter, event in self.leftovers():
            grouped.setdefault((function, parameter), []).append(event)

        diagnostics = []
        for (function, parameter), events in grouped.items():
            diagnostics.append(Diagnostic(
                kind=FailureKind.UNCONSUMED_EXPECTATION,
                message=(
                    f"{function}() parameter {parameter} still has "
                    f"{len(events)} expectation(s) that haven't been checked."
                ),
                location=events[0].location,
                notes=[
                    (event.location, f"unchecked {event.describe()} declared here")
                    for event in events[1:]
                    if event.location is not None
                ],
            ))
        return diagnostics

    def clear(self) -> None:
        """Drop every queued expectation."""
        self._queues.clear()
        self._last_declared.clear()

    def __len__(self) -> int:
        return sum(len(queue) for queue in self._queues.values())

    def _missing_diagnostic(
        self,
        function: str,
        parameter: str,
        actual: Any,
        location: Optional[SourceLocation],
    ) -> Diagnostic:
        notes = []
        declared = self._last_declared.get((function, parameter))
        if declared is not None:
            notes.append((declared, "previous expectation for this parameter was declared here"))
        return Diagnostic(
            kind=FailureKind.MISSING_EXPECTATION,
            message=(
                f"No expectation registered to check parameter {parameter} "
                f"of function {function}() (actual {describe(actual)})"
            ),
            location=location,
            notes=notes,
        )


# ── Helpers ──


def _copy_memory(memory: Any, size: Optional[int]) -> tuple[bytes, int]:
    """Snapshot the expected bytes at registration time."""
    data = compare.as_bytes(memory)
    if data is None:
        raise ValueError(f"Expected memory must be bytes-like, got {memory!r}")
    if size is None:
        size = len(data)
    if size < 0 or size > len(data):
        raise ValueError(
            f"Memory size {size} is outside the {len(data)} bytes provided"
        )
    return data[:size], size


def _callable_name(func: Callable) -> str:
    return getattr(func, "__qualname__", None) or getattr(func, "__name__", repr(func))
