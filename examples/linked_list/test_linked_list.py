"""Linked List - Demo suite for the unitmock harness.

A small singly linked list whose nodes live in tracker-owned blocks, plus a
logging collaborator that is mocked out.  Run it with::

    python -m unitmock examples/linked_list/test_linked_list.py
"""

from unitmock import (
    StateSlot,
    TestSession,
    assert_int_equal,
    assert_non_null,
    assert_null,
    assert_true,
    unit_test,
    unit_test_setup_teardown,
)


# ── Code under test ──


class Node:
    def __init__(self, block, data):
        self.block = block
        self.data = data
        self.next = None


class LinkedList:
    def __init__(self, session: TestSession, log):
        self._session = session
        self._log = log
        self.head = None
        self.size = 0

    def add(self, data):
        node = Node(self._session.test_malloc(16), data)
        if self.head is None:
            self.head = node
        else:
            current = self.head
            while current.next is not None:
                current = current.next
            current.next = node
        self.size += 1

    def find(self, data):
        current = self.head
        while current is not None:
            if current.data == data:
                return current
            current = current.next
        return None

    def remove(self, data):
        previous, current = None, self.head
        while current is not None and current.data != data:
            previous, current = current, current.next
        if current is None:
            return self._log("remove", data)
        if previous is None:
            self.head = current.next
        else:
            previous.next = current.next
        self._session.test_free(current.block)
        self.size -= 1
        return 1

    def destroy(self):
        current = self.head
        while current is not None:
            self._session.test_free(current.block)
            current = current.next
        self.head = None
        self.size = 0


# ── Mocked collaborator ──


def log_miss(session, operation, data):
    session.check_expected("operation", operation)
    session.check_expected("data", data)
    return session.mock()


# ── Tests ──


def create_list(session: TestSession, state: StateSlot):
    state.value = LinkedList(session, lambda op, d: log_miss(session, op, d))
    state.value.add(10)
    state.value.add(20)


def destroy_list(session: TestSession, state: StateSlot):
    state.value.destroy()


def test_add_elements(session: TestSession, state: StateSlot):
    linked = state.value
    linked.add(30)
    assert_int_equal(linked.size, 3)
    assert_int_equal(linked.head.next.next.data, 30)
    # Blocks allocated by the test itself must be gone before it returns
    assert_true(linked.remove(30))


def test_find_element(session: TestSession, state: StateSlot):
    assert_non_null(state.value.find(20))
    assert_null(state.value.find(99))


def test_remove_missing_logs(session: TestSession, state: StateSlot):
    session.expect_string(log_miss, "operation", "remove")
    session.expect_value(log_miss, "data", 40)
    session.will_return(log_miss, 0)
    assert_int_equal(state.value.remove(40), 0)
    assert_true(state.value.remove(10))
    assert_int_equal(state.value.size, 1)


def test_empty_list(session: TestSession, state: StateSlot):
    linked = LinkedList(session, lambda op, d: 0)
    assert_null(linked.head)
    assert_int_equal(linked.size, 0)


TESTS = [
    unit_test(test_empty_list),
    unit_test_setup_teardown(test_add_elements, create_list, destroy_list),
    unit_test_setup_teardown(test_find_element, create_list, destroy_list),
    unit_test_setup_teardown(test_remove_missing_logs, create_list, destroy_list),
]
