"""unitmock - Mock/expectation engine and setup/test/teardown harness."""

from unitmock.allocation import (
    AllocatedBlock,
    AllocationTracker,
    Checkpoint,
)
from unitmock.assertions import (
    assert_false,
    assert_floats_equal,
    assert_in_range,
    assert_in_set,
    assert_int_equal,
    assert_int_not_equal,
    assert_memory_equal,
    assert_memory_not_equal,
    assert_non_null,
    assert_not_in_range,
    assert_not_in_set,
    assert_null,
    assert_string_equal,
    assert_string_not_equal,
    assert_true,
    fail,
    fail_msg,
)
from unitmock.diagnostics import (
    AssertionFailure,
    CapturingSink,
    Diagnostic,
    ExpectationMismatch,
    FailureKind,
    FatalMisuse,
    MessageSink,
    SourceLocation,
    TerminalSink,
    TestAbort,
    UnitMockError,
)
from unitmock.expectations import (
    AnyValue,
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
from unitmock.harness import (
    HarnessConfig,
    HarnessError,
    HarnessState,
    ItemResult,
    ItemStatus,
    Role,
    StateSlot,
    SuiteResult,
    TestHarness,
    TestItem,
    run_test,
    run_tests,
    unit_test,
    unit_test_setup,
    unit_test_setup_teardown,
    unit_test_teardown,
    unit_test_with_prefix,
)
from unitmock.session import AssertionCapture, SessionError, TestSession
from unitmock.values import INFINITE, QueuedValue, ValueQueue

__all__ = [
    # Diagnostics (C1)
    "Diagnostic",
    "FailureKind",
    "SourceLocation",
    "MessageSink",
    "TerminalSink",
    "CapturingSink",
    "UnitMockError",
    "FatalMisuse",
    "TestAbort",
    "ExpectationMismatch",
    "AssertionFailure",
    # Value Queue (C2)
    "ValueQueue",
    "QueuedValue",
    "INFINITE",
    # Expectation Registry (C3)
    "ExpectationRegistry",
    "ExpectationEvent",
    "ExactValue",
    "ExcludedValue",
    "ValueInSet",
    "ValueNotInSet",
    "ValueInRange",
    "ValueNotInRange",
    "ExactString",
    "ExcludedString",
    "ExactMemory",
    "ExcludedMemory",
    "CustomPredicate",
    "AnyValue",
    # Allocation Tracker (C4)
    "AllocationTracker",
    "AllocatedBlock",
    "Checkpoint",
    # Assertions (C5)
    "assert_true",
    "assert_false",
    "assert_null",
    "assert_non_null",
    "assert_int_equal",
    "assert_int_not_equal",
    "assert_floats_equal",
    "assert_string_equal",
    "assert_string_not_equal",
    "assert_memory_equal",
    "assert_memory_not_equal",
    "assert_in_range",
    "assert_not_in_range",
    "assert_in_set",
    "assert_not_in_set",
    "fail",
    "fail_msg",
    # Test Session (C6)
    "TestSession",
    "AssertionCapture",
    "SessionError",
    # Test Harness (D1)
    "TestHarness",
    "HarnessConfig",
    "HarnessError",
    "HarnessState",
    "TestItem",
    "Role",
    "StateSlot",
    "ItemResult",
    "ItemStatus",
    "SuiteResult",
    "run_tests",
    "run_test",
    "unit_test",
    "unit_test_with_prefix",
    "unit_test_setup",
    "unit_test_teardown",
    "unit_test_setup_teardown",
]
