"""Tests for Allocation Tracker (C4)."""

import pytest

from unitmock.allocation import (
    MALLOC_ALLOC_PATTERN,
    MALLOC_FREE_PATTERN,
    AllocatedBlock,
    AllocationTracker,
    Checkpoint,
)
from unitmock.diagnostics import FailureKind, SourceLocation


# ── Fixtures ──


@pytest.fixture
def tracker():
    return AllocationTracker()


HERE = SourceLocation("test_alloc.py", 7)


# ── Allocation ──


class TestAlloc:
    def test_alloc_records_block(self, tracker):
        block = tracker.alloc(32, HERE)
        assert isinstance(block, AllocatedBlock)
        assert block.size == 32
        assert block.location == HERE
        assert len(block.data) == 32
        assert tracker.live_blocks() == [block]
        assert tracker.bytes_in_use == 32

    def test_alloc_fills_pattern(self, tracker):
        block = tracker.alloc(4)
        assert bytes(block) == bytes([MALLOC_ALLOC_PATTERN]) * 4

    def test_calloc_zero_fills(self, tracker):
        block = tracker.calloc(3, 4)
        assert block.size == 12
        assert bytes(block) == bytes(12)

    def test_addresses_are_distinct(self, tracker):
        addresses = {tracker.alloc(size).address for size in (0, 1, 16, 17, 100)}
        assert len(addresses) == 5

    def test_negative_size_rejected(self, tracker):
        with pytest.raises(ValueError):
            tracker.alloc(-1)

    def test_heap_limit_returns_none(self):
        tracker = AllocationTracker(heap_limit_bytes=64)
        assert tracker.alloc(48) is not None
        assert tracker.alloc(32) is None
        assert tracker.alloc(16) is not None
        assert len(tracker) == 2

    def test_negative_heap_limit_rejected(self):
        with pytest.raises(ValueError):
            AllocationTracker(heap_limit_bytes=-1)


# ── Free ──


class TestFree:
    def test_free_removes_record(self, tracker):
        block = tracker.alloc(8)
        assert tracker.free(block) is True
        assert len(tracker) == 0
        assert tracker.drain_errors() == []

    def test_free_by_address(self, tracker):
        block = tracker.alloc(8)
        assert tracker.free(block.address) is True

    def test_free_poisons_memory(self, tracker):
        block = tracker.alloc(4)
        tracker.free(block)
        assert bytes(block) == bytes([MALLOC_FREE_PATTERN]) * 4

    def test_double_free_is_reported(self, tracker):
        first = SourceLocation("t.py", 1)
        second = SourceLocation("t.py", 2)
        block = tracker.alloc(8)
        tracker.free(block, first)
        assert tracker.free(block, second) is False
        errors = tracker.drain_errors()
        assert len(errors) == 1
        assert errors[0].kind is FailureKind.INVALID_FREE
        assert "Double free" in errors[0].message
        assert errors[0].location == second
        assert errors[0].notes[0][0] == first

    def test_foreign_address_is_reported(self, tracker):
        assert tracker.free(0xDEAD) is False
        errors = tracker.drain_errors()
        assert "not allocated by the tracker" in errors[0].message

    def test_free_none_is_reported(self, tracker):
        assert tracker.free(None) is False
        assert tracker.drain_errors()[0].kind is FailureKind.INVALID_FREE

    def test_drain_clears_errors(self, tracker):
        tracker.free(None)
        tracker.drain_errors()
        assert tracker.drain_errors() == []


# ── Checkpoints ──


class TestCheckpoint:
    def test_checkpoint_is_snapshot(self, tracker):
        block = tracker.alloc(8)
        checkpoint = tracker.checkpoint()
        assert isinstance(checkpoint, Checkpoint)
        assert block.address in checkpoint
        tracker.alloc(8)
        assert len(checkpoint) == 1

    def test_diff_lists_new_unfreed_blocks(self, tracker):
        old = tracker.alloc(8)
        checkpoint = tracker.checkpoint()
        first = tracker.alloc(16)
        freed = tracker.alloc(4)
        last = tracker.alloc(32)
        tracker.free(freed)
        assert tracker.diff(checkpoint) == [first, last]
        assert old not in tracker.diff(checkpoint)

    def test_diff_empty_when_reconciled(self, tracker):
        checkpoint = tracker.checkpoint()
        tracker.free(tracker.alloc(8))
        assert tracker.diff(checkpoint) == []

    def test_leak_diagnostics_one_per_block(self, tracker):
        checkpoint = tracker.checkpoint()
        tracker.alloc(8, HERE)
        tracker.alloc(4, SourceLocation("test_alloc.py", 9))
        diagnostics = tracker.leak_diagnostics(tracker.diff(checkpoint), "test_x")
        assert len(diagnostics) == 2
        assert diagnostics[0].kind is FailureKind.MEMORY_LEAK
        assert diagnostics[0].location == HERE
        assert "test_x leaked block of 8 bytes" in diagnostics[0].message

    def test_release_forgets_blocks(self, tracker):
        checkpoint = tracker.checkpoint()
        tracker.alloc(8)
        tracker.release(tracker.diff(checkpoint))
        assert tracker.diff(checkpoint) == []

    def test_clear(self, tracker):
        tracker.alloc(8)
        tracker.free(None)
        tracker.clear()
        assert len(tracker) == 0
        assert tracker.drain_errors() == []
