"""Diagnostics (C1) - Source locations, failure taxonomy, and message output.

Every failure the engine can report is described by a ``Diagnostic``: a
failure kind, a human-readable message, the source location it points at,
and optional notes pointing at related locations (where an expectation was
declared, where a leaked block was allocated).  Rendered, each diagnostic
becomes one or more ``<file>:<line>: <message>`` lines.

Failures that must unwind out of a running test body are exceptions that
carry a diagnostic.  They derive from ``BaseException`` so that a test
body's ``except Exception`` cannot swallow them.

Pure Python. No third-party dependency.
"""

import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol


# Longest repr shown for a value inside a diagnostic
_DESCRIBE_MAX = 200


# ── Failure Kinds ──


class FailureKind(str, Enum):
    """Every way a test item (or the whole run) can go wrong."""

    EXPECTATION_MISMATCH = "expectation_mismatch"
    MISSING_EXPECTATION = "missing_expectation"
    ASSERTION_FAILURE = "assertion_failure"
    UNCONSUMED_EXPECTATION = "unconsumed_expectation"
    MEMORY_LEAK = "memory_leak"
    INVALID_FREE = "invalid_free"
    UNEXPECTED_ERROR = "unexpected_error"
    SUITE_ERROR = "suite_error"
    FATAL_MISUSE = "fatal_misuse"


# ── Data Classes ──


@dataclass(frozen=True)
class SourceLocation:
    """A file/line pair identifying where something was declared or raised."""

    file: str
    line: int

    def __str__(self) -> str:
        return f"{self.file}:{self.line}"


@dataclass
class Diagnostic:
    """A single reportable failure.

    Attributes:
        kind: Which failure category this diagnostic belongs to.
        message: Plain description including expected vs. actual values.
        location: Where the failure was detected (or the offending
            declaration, for post-hoc checks).
        notes: Related locations, each with a short explanation.
    """

    kind: FailureKind
    message: str
    location: Optional[SourceLocation] = None
    notes: list[tuple[SourceLocation, str]] = field(default_factory=list)

    def lines(self) -> list[str]:
        """Render as ``<file>:<line>: <message>`` lines."""
        if self.location is not None:
            rendered = [f"{self.location}: error: {self.message}"]
        else:
            rendered = [f"error: {self.message}"]
        for note_location, text in self.notes:
            rendered.append(f"{note_location}: note: {text}")
        return rendered

    def as_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "file": self.location.file if self.location else None,
            "line": self.location.line if self.location else None,
            "notes": [
                {"file": loc.file, "line": loc.line, "text": text}
                for loc, text in self.notes
            ],
        }


# ── Exceptions ──


class UnitMockError(Exception):
    """Base exception for incorrect use of the unitmock API itself."""


class FatalMisuse(BaseException):
    """The mock machinery was driven incorrectly; the whole run must stop.

    Raised when a mocked function asks for a return value and none is
    queued.  The harness never contains it.
    """

    def __init__(self, diagnostic: Diagnostic):
        super().__init__("\n".join(diagnostic.lines()))
        self.diagnostic = diagnostic


class TestAbort(BaseException):
    """Unwinds a failing test item back to the harness boundary."""

    __test__ = False

    def __init__(self, diagnostic: Diagnostic):
        super().__init__("\n".join(diagnostic.lines()))
        self.diagnostic = diagnostic


class ExpectationMismatch(TestAbort):
    """A parameter check failed, or no expectation was registered for it."""


class AssertionFailure(TestAbort):
    """An explicit assertion in a test body (or in code under test) failed."""


# ── Helpers ──


def caller_location(depth: int = 1) -> SourceLocation:
    """Return the location of the frame ``depth`` levels above the caller.

    ``depth=1`` is the caller of the function that calls this helper,
    which is what public registration and assertion functions want.
    """
    frame = sys._getframe(depth + 1)
    return SourceLocation(frame.f_code.co_filename, frame.f_lineno)


def describe(value: object) -> str:
    """Short repr for diagnostics, hex-annotated for integers."""
    if isinstance(value, bool) or not isinstance(value, int):
        text = repr(value)
        if len(text) > _DESCRIBE_MAX:
            text = text[:_DESCRIBE_MAX - 3] + "..."
        return text
    # Negative integers also shown as a 64-bit two's complement word
    word = value & 0xFFFFFFFFFFFFFFFF if value < 0 else value
    return f"{value} (0x{word:x})"


# ── Message Output ──


class MessageSink(Protocol):
    """Where verdict lines and diagnostics go. Injectable for testing."""

    def message(self, text: str) -> None:
        """Emit an informational line."""
        ...

    def error(self, text: str) -> None:
        """Emit an error line."""
        ...


class TerminalSink:
    """Default sink: messages to stdout, errors to stderr."""

    def message(self, text: str) -> None:
        print(text, file=sys.stdout)

    def error(self, text: str) -> None:
        print(text, file=sys.stderr)


class CapturingSink:
    """Sink that keeps every line in memory, in emission order."""

    def __init__(self) -> None:
        self.messages: list[str] = []
        self.errors: list[str] = []
        self.lines: list[str] = []

    def message(self, text: str) -> None:
        self.messages.append(text)
        self.lines.append(text)

    def error(self, text: str) -> None:
        self.errors.append(text)
        self.lines.append(text)


def emit_diagnostic(sink: MessageSink, diagnostic: Diagnostic) -> None:
    """Write every rendered line of ``diagnostic`` to the sink's error channel."""
    for line in diagnostic.lines():
        sink.error(line)
