"""Allocation Tracker (C4) - Test-owned memory blocks and leak detection.

Tests (and the code under test, when handed the session's allocator)
allocate blocks through the tracker instead of creating buffers directly.
Each live block is recorded with its size and the source location of the
allocation.  The harness takes a checkpoint before an item runs and diffs
it afterwards: blocks that appeared and were not freed are leaks.

Blocks carry a ``bytearray`` as their memory.  Fresh ``alloc`` memory is
filled with a recognizable pattern, and freed memory is overwritten, so
reads of uninitialized or freed memory stand out in assertions.

Pure Python. No third-party dependency.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from unitmock.diagnostics import Diagnostic, FailureKind, SourceLocation

logger = logging.getLogger(__name__)

# Fill patterns for uninitialized and released memory
MALLOC_ALLOC_PATTERN = 0xBA
MALLOC_FREE_PATTERN = 0xCD

# Synthetic addresses: first block address and spacing granularity
_BASE_ADDRESS = 0x10000
_ALIGNMENT = 16


# ── Data Classes ──


@dataclass(eq=False)
class AllocatedBlock:
    """A block handed out by the tracker.

    Attributes:
        address: Synthetic address identifying the block.
        size: Requested size in bytes.
        location: Where the block was allocated.
        data: The block's memory.
    """

    address: int
    size: int
    location: Optional[SourceLocation] = None
    data: bytearray = field(default_factory=bytearray, repr=False)

    def __len__(self) -> int:
        return self.size

    def __bytes__(self) -> bytes:
        return bytes(self.data)


@dataclass(frozen=True)
class Checkpoint:
    """The set of live block addresses at one point in time."""

    addresses: frozenset[int] = frozenset()

    def __contains__(self, address: object) -> bool:
        return address in self.addresses

    def __len__(self) -> int:
        return len(self.addresses)


# ── Allocation Tracker ──


class AllocationTracker:
    """Records outstanding test-owned blocks.

    Usage::

        tracker = AllocationTracker()
        before = tracker.checkpoint()
        block = tracker.alloc(64)
        tracker.diff(before)   # [block]
        tracker.free(block)
        tracker.diff(before)   # []
    """

    def __init__(self, heap_limit_bytes: Optional[int] = None):
        if heap_limit_bytes is not None and heap_limit_bytes < 0:
            raise ValueError(f"Heap limit must be >= 0, got {heap_limit_bytes}")
        self.heap_limit_bytes = heap_limit_bytes
        # Insertion order doubles as allocation order
        self._live: dict[int, AllocatedBlock] = {}
        self._freed_at: dict[int, Optional[SourceLocation]] = {}
        self._errors: list[Diagnostic] = []
        self._next_address = _BASE_ADDRESS

    @property
    def bytes_in_use(self) -> int:
        return sum(block.size for block in self._live.values())

    def live_blocks(self) -> list[AllocatedBlock]:
        return list(self._live.values())

    def __len__(self) -> int:
        return len(self._live)

    # ── Allocation ──

    def alloc(
        self,
        size: int,
        location: Optional[SourceLocation] = None,
    ) -> Optional[AllocatedBlock]:
        """Allocate ``size`` bytes; ``None`` when the heap limit is exhausted."""
        return self._allocate(size, bytearray([MALLOC_ALLOC_PATTERN]) * size, location)

    def calloc(
        self,
        count: int,
        size: int,
        location: Optional[SourceLocation] = None,
    ) -> Optional[AllocatedBlock]:
        """Allocate ``count * size`` zero-filled bytes."""
        if count < 0:
            raise ValueError(f"Element count must be >= 0, got {count}")
        total = count * size
        return self._allocate(total, bytearray(total), location)

    def _allocate(
        self,
        size: int,
        data: bytearray,
        location: Optional[SourceLocation],
    ) -> Optional[AllocatedBlock]:
        if size < 0:
            raise ValueError(f"Allocation size must be >= 0, got {size}")
        if (
            self.heap_limit_bytes is not None
            and self.bytes_in_use + size > self.heap_limit_bytes
        ):
            logger.warning(
                "Allocation of %d bytes at %s refused: heap limit %d bytes "
                "(%d in use)",
                size, location, self.heap_limit_bytes, self.bytes_in_use,
            )
            return None

        address = self._next_address
        span = max(size, 1)
        self._next_address += (span + _ALIGNMENT - 1) // _ALIGNMENT * _ALIGNMENT + _ALIGNMENT
        block = AllocatedBlock(address=address, size=size, location=location, data=data)
        self._live[address] = block
        self._freed_at.pop(address, None)
        logger.debug("Allocated %d bytes at 0x%x (%s)", size, address, location)
        return block

    def free(
        self,
        block: Union[AllocatedBlock, int, None],
        location: Optional[SourceLocation] = None,
    ) -> bool:
        """Release a block.

        Freeing ``None``, an address the tracker never handed out, or a block
        that was already freed records an ``INVALID_FREE`` diagnostic and
        returns False.  The failure is reported when the current item ends.
        """
        if block is None:
            self._record_invalid_free("Attempted to free a NULL block.", location)
            return False

        address = block.address if isinstance(block, AllocatedBlock) else block
        live = self._live.pop(address, None)
        if live is None:
            if address in self._freed_at:
                notes = []
                freed_at = self._freed_at[address]
                if freed_at is not None:
                    notes.append((freed_at, "block was previously freed here"))
                self._record_invalid_free(
                    f"Double free of block 0x{address:x}.", location, notes,
                )
            else:
                self._record_invalid_free(
                    f"Block 0x{address:x} was not allocated by the tracker.",
                    location,
                )
            return False

        live.data[:] = bytearray([MALLOC_FREE_PATTERN]) * len(live.data)
        self._freed_at[address] = location
        logger.debug("Freed %d bytes at 0x%x (%s)", live.size, address, location)
        return True

    def _record_invalid_free(
        self,
        message: str,
        location: Optional[SourceLocation],
        notes: Optional[list] = None,
    ) -> None:
        logger.debug("Invalid free at %s: %s", location, message)
        self._errors.append(Diagnostic(
            kind=FailureKind.INVALID_FREE,
            message=message,
            location=location,
            notes=notes or [],
        ))

    # ── Checkpoints ──

    def checkpoint(self) -> Checkpoint:
        """Snapshot the addresses of every live block."""
        return Checkpoint(frozenset(self._live))

    def diff(self, checkpoint: Checkpoint) -> list[AllocatedBlock]:
        """Blocks live now that were not live at ``checkpoint``, oldest first."""
        return [
            block for address, block in self._live.items()
            if address not in checkpoint
        ]

    def leak_diagnostics(
        self,
        blocks: Iterable[AllocatedBlock],
        scope: str,
    ) -> list[Diagnostic]:
        """One ``MEMORY_LEAK`` diagnostic per leaked block."""
        return [
            Diagnostic(
                kind=FailureKind.MEMORY_LEAK,
                message=(
                    f"{scope} leaked block of {block.size} bytes at "
                    f"0x{block.address:x} allocated here"
                ),
                location=block.location,
            )
            for block in blocks
        ]

    def release(self, blocks: Iterable[AllocatedBlock]) -> None:
        """Forget blocks that have already been reported as leaked."""
        for block in blocks:
            self._live.pop(block.address, None)

    def drain_errors(self) -> list[Diagnostic]:
        """Return and clear the pending invalid-free diagnostics."""
        errors, self._errors = self._errors, []
        return errors

    def clear(self) -> None:
        """Forget every block and pending error."""
        self._live.clear()
        self._freed_at.clear()
        self._errors.clear()
