"""Value comparisons shared by expectation checks and assertions.

Each helper returns ``None`` when the comparison holds and otherwise a
message describing expected vs. actual.  Values are compared in their
natural Python form; strings and memory are compared byte-wise.
"""

from typing import Any, Iterable, Optional

from unitmock.diagnostics import describe

# Maximum differing offsets listed in a memory comparison message
_MAX_LISTED_DIFFERENCES = 8


def value_equal(actual: Any, expected: Any) -> Optional[str]:
    if actual == expected:
        return None
    return f"{describe(actual)} != {describe(expected)}"


def value_not_equal(actual: Any, excluded: Any) -> Optional[str]:
    if actual != excluded:
        return None
    return f"{describe(actual)} == {describe(excluded)}"


def value_in_set(actual: Any, values: Iterable[Any]) -> Optional[str]:
    values = tuple(values)
    for value in values:
        if actual == value:
            return None
    return f"{describe(actual)} is not within the set {_format_set(values)}"


def value_not_in_set(actual: Any, values: Iterable[Any]) -> Optional[str]:
    values = tuple(values)
    for value in values:
        if actual == value:
            return f"{describe(actual)} was found within the set {_format_set(values)}"
    return None


def value_in_range(actual: Any, minimum: Any, maximum: Any) -> Optional[str]:
    try:
        inside = minimum <= actual <= maximum
    except TypeError:
        inside = False
    if inside:
        return None
    return (
        f"{describe(actual)} is not within the range "
        f"{describe(minimum)}-{describe(maximum)}"
    )


def value_not_in_range(actual: Any, minimum: Any, maximum: Any) -> Optional[str]:
    try:
        outside = not (minimum <= actual <= maximum)
    except TypeError:
        return (
            f"{describe(actual)} cannot be compared with the range "
            f"{describe(minimum)}-{describe(maximum)}"
        )
    if outside:
        return None
    return (
        f"{describe(actual)} is within the range "
        f"{describe(minimum)}-{describe(maximum)}"
    )


def strings_match(actual: Any, expected: Any) -> bool:
    """Byte-wise string equality; ``None`` equals only ``None``.

    Values that are not ``str`` or bytes-like never match.
    """
    if actual is None or expected is None:
        return actual is expected
    actual_bytes = _string_bytes(actual)
    expected_bytes = _string_bytes(expected)
    if actual_bytes is None or expected_bytes is None:
        return False
    return actual_bytes == expected_bytes


def string_equal(actual: Any, expected: Any) -> Optional[str]:
    if strings_match(actual, expected):
        return None
    return f"{_quote(actual)} != {_quote(expected)}"


def string_not_equal(actual: Any, excluded: Any) -> Optional[str]:
    if not strings_match(actual, excluded):
        return None
    return f"{_quote(actual)} == {_quote(excluded)}"


def memory_equal(actual: Any, expected: Any, size: int) -> Optional[str]:
    actual_bytes = as_bytes(actual)
    expected_bytes = as_bytes(expected)
    if actual_bytes is None or len(actual_bytes) < size:
        return (
            f"expected {size} bytes of memory, got "
            f"{_memory_size_text(actual_bytes)}"
        )
    if expected_bytes is None or len(expected_bytes) < size:
        return (
            f"expected memory holds fewer than {size} bytes "
            f"({_memory_size_text(expected_bytes)})"
        )
    differences = [
        offset for offset in range(size)
        if actual_bytes[offset] != expected_bytes[offset]
    ]
    if not differences:
        return None
    listed = ", ".join(
        f"offset {offset}: 0x{actual_bytes[offset]:02x} != 0x{expected_bytes[offset]:02x}"
        for offset in differences[:_MAX_LISTED_DIFFERENCES]
    )
    if len(differences) > _MAX_LISTED_DIFFERENCES:
        listed += ", ..."
    return f"{len(differences)} of {size} bytes differ ({listed})"


def memory_not_equal(actual: Any, excluded: Any, size: int) -> Optional[str]:
    actual_bytes = as_bytes(actual)
    excluded_bytes = as_bytes(excluded)
    if actual_bytes is None or excluded_bytes is None:
        return None
    if len(actual_bytes) < size or len(excluded_bytes) < size:
        return None
    if actual_bytes[:size] != excluded_bytes[:size]:
        return None
    return f"{size} bytes of memory are the same"


def as_bytes(value: Any) -> Optional[bytes]:
    """Bytes view of a bytes-like value, allocated block, or string.

    Returns ``None`` for ``None`` and for values with no byte representation.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value.encode("utf-8")
    # Allocated blocks expose their memory as a bytearray
    data = getattr(value, "data", None)
    if isinstance(data, bytearray):
        return bytes(data)
    try:
        return memoryview(value).tobytes()
    except TypeError:
        return None


def _string_bytes(value: Any) -> Optional[bytes]:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return None


def _quote(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("utf-8", errors="backslashreplace")
    elif not isinstance(value, str):
        return repr(value)
    return f'"{value}"'


def _format_set(values: tuple) -> str:
    return "(" + ", ".join(repr(value) for value in values) + ")"


def _memory_size_text(data: Optional[bytes]) -> str:
    return "no memory" if data is None else f"{len(data)} bytes"
