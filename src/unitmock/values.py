"""Value Queue (C2) - Programmed return values for mocked functions.

Test code queues values with ``push``; a mocked function fetches them with
``pop`` in FIFO order.  Each entry may be handed out a fixed number of times
or forever (``INFINITE``).  Reading from an empty queue is a fatal misuse:
the mock would otherwise return garbage to the code under test.

Pure Python. No third-party dependency.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Optional

from unitmock.diagnostics import (
    Diagnostic,
    FailureKind,
    FatalMisuse,
    SourceLocation,
)

logger = logging.getLogger(__name__)

# Repeat count meaning "hand this value out on every call, forever"
INFINITE = -1


# ── Data Classes ──


@dataclass
class QueuedValue:
    """A return value waiting to be consumed by a mocked function.

    Attributes:
        payload: The value handed back to the mock.
        remaining: Uses left, or ``INFINITE``.
        location: Where the value was registered.
        uses: How many times the value has been handed out so far.
    """

    payload: Any
    remaining: int
    location: Optional[SourceLocation] = None
    uses: int = 0

    @property
    def infinite(self) -> bool:
        return self.remaining == INFINITE


def validate_repeat(repeat: int) -> None:
    """Raise ``ValueError`` unless ``repeat`` is at least 1 or ``INFINITE``."""
    if isinstance(repeat, bool) or not isinstance(repeat, int):
        raise ValueError(f"Repeat count must be an integer, got {repeat!r}")
    if repeat != INFINITE and repeat < 1:
        raise ValueError(
            f"Repeat count must be >= 1 or INFINITE ({INFINITE}), got {repeat}"
        )


# ── Value Queue ──


class ValueQueue:
    """Per-function FIFO queues of return values.

    Usage::

        values = ValueQueue()
        values.push("read_sensor", 42, repeat=2)
        values.pop("read_sensor")  # 42
        values.pop("read_sensor")  # 42
        values.pop("read_sensor")  # FatalMisuse
    """

    def __init__(self) -> None:
        self._queues: dict[str, deque[QueuedValue]] = {}
        # Last registration site per function, kept after the queue drains
        self._last_declared: dict[str, Optional[SourceLocation]] = {}

    def push(
        self,
        function: str,
        value: Any,
        repeat: int = 1,
        location: Optional[SourceLocation] = None,
    ) -> QueuedValue:
        """Append ``value`` to the tail of ``function``'s queue."""
        validate_repeat(repeat)
        entry = QueuedValue(payload=value, remaining=repeat, location=location)
        self._queues.setdefault(function, deque()).append(entry)
        self._last_declared[function] = location
        logger.debug(
            "Queued return value %r for %s() (repeat=%s)",
            value, function, "always" if repeat == INFINITE else repeat,
        )
        return entry

    def pop(
        self,
        function: str,
        location: Optional[SourceLocation] = None,
    ) -> Any:
        """Hand out the head value of ``function``'s queue.

        Raises:
            FatalMisuse: The queue for ``function`` is empty.
        """
        queue = self._queues.get(function)
        if not queue:
            raise FatalMisuse(self._empty_queue_diagnostic(function, location))

        entry = queue[0]
        entry.uses += 1
        if not entry.infinite:
            entry.remaining -= 1
            if entry.remaining == 0:
                queue.popleft()
                if not queue:
                    del self._queues[function]
        logger.debug("%s() returned queued value %r", function, entry.payload)
        return entry.payload

    def pending(self, function: str) -> list[QueuedValue]:
        """Entries still queued for ``function``, head first."""
        return list(self._queues.get(function, ()))

    def leftovers(self) -> list[tuple[str, QueuedValue]]:
        """Entries a test promised but never consumed.

        ``INFINITE`` entries count only if they were never handed out.
        """
        leftover: list[tuple[str, QueuedValue]] = []
        for function, queue in self._queues.items():
            for entry in queue:
                if entry.infinite and entry.uses > 0:
                    continue
                leftover.append((function, entry))
        return leftover

    def unconsumed_diagnostics(self) -> list[Diagnostic]:
        """One ``UNCONSUMED_EXPECTATION`` diagnostic per function with leftovers."""
        by_function: dict[str, list[QueuedValue]] = {}
        for function, entry in self.leftovers():
            by_function.setdefault(function, []).append(entry)

        diagnostics = []
        for function, entries in by_function.items():
            notes = [
                (entry.location, f"remaining value {entry.payload!r} was declared here")
                for entry in entries
                if entry.location is not None
            ]
            diagnostics.append(Diagnostic(
                kind=FailureKind.UNCONSUMED_EXPECTATION,
                message=(
                    f"{function}() has {len(entries)} remaining non-returned "
                    f"value(s)."
                ),
                location=entries[0].location,
                notes=notes[1:] if entries[0].location is not None else notes,
            ))
        return diagnostics

    def clear(self) -> None:
        """Drop every queued value."""
        self._queues.clear()
        self._last_declared.clear()

    def __len__(self) -> int:
        return sum(len(queue) for queue in self._queues.values())

    def _empty_queue_diagnostic(
        self,
        function: str,
        location: Optional[SourceLocation],
    ) -> Diagnostic:
        if function in self._last_declared:
            message = f"{function}() has no more values to return."
            declared = self._last_declared[function]
            notes = (
                [(declared, "last value was declared here")]
                if declared is not None else []
            )
        else:
            message = f"No return values registered for {function}()."
            notes = []
        return Diagnostic(
            kind=FailureKind.FATAL_MISUSE,
            message=message,
            location=location,
            notes=notes,
        )
