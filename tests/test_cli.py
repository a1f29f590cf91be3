"""Tests for the unitmock CLI."""

import json
import textwrap
from pathlib import Path

import pytest

from unitmock.cli import (
    EXIT_ABORTED,
    EXIT_FAILED,
    EXIT_PASSED,
    SuiteLoadError,
    load_suite,
    main,
)
from unitmock.harness import ENV_HEAP_LIMIT, ENV_NO_LEAK_CHECK, Role

LINKED_LIST_SUITE = (
    Path(__file__).resolve().parent.parent / "examples" / "linked_list" / "test_linked_list.py"
)


# ── Fixtures ──


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv(ENV_HEAP_LIMIT, raising=False)
    monkeypatch.delenv(ENV_NO_LEAK_CHECK, raising=False)


def _write(tmp_path, name, source):
    path = tmp_path / name
    path.write_text(textwrap.dedent(source), encoding="utf-8")
    return path


PASSING = """
    from unitmock import assert_int_equal

    def helper(session, state):
        pass

    def test_one(session, state):
        session.will_return("reader", 3)
        assert_int_equal(session.mock("reader"), 3)

    def test_two(session, state):
        pass
"""

FAILING = """
    from unitmock import fail

    def test_broken(session, state):
        fail()
"""

LEAKING = """
    def test_leaks(session, state):
        session.test_malloc(8)
"""

FATAL = """
    def test_misuse(session, state):
        session.mock("reader")
"""

EXPLICIT = """
    from unitmock import unit_test, unit_test_setup_teardown

    def open_table(session, state):
        state.value = {}

    def close_table(session, state):
        state.value = None

    def test_lookup(session, state):
        assert state.value == {}

    def test_ignored(session, state):
        raise AssertionError("not in TESTS")

    TESTS = [unit_test_setup_teardown(test_lookup, open_table, close_table)]
"""


# ── Loading ──


class TestLoadSuite:
    def test_collects_test_functions_in_order(self, tmp_path):
        items = load_suite(_write(tmp_path, "t_pass.py", PASSING))
        assert [item.name for item in items] == ["test_one", "test_two"]

    def test_explicit_suite_wins(self, tmp_path):
        items = load_suite(_write(tmp_path, "t_explicit.py", EXPLICIT))
        assert [item.role for item in items] == [Role.SETUP, Role.TEST, Role.TEARDOWN]
        assert items[1].name == "test_lookup"

    def test_missing_file(self, tmp_path):
        with pytest.raises(SuiteLoadError):
            load_suite(tmp_path / "nope.py")

    def test_import_error(self, tmp_path):
        with pytest.raises(SuiteLoadError, match="SyntaxError"):
            load_suite(_write(tmp_path, "t_bad.py", "def broken(:\n"))

    def test_no_tests(self, tmp_path):
        with pytest.raises(SuiteLoadError, match="No tests"):
            load_suite(_write(tmp_path, "t_empty.py", "VALUE = 1\n"))

    def test_invalid_explicit_suite(self, tmp_path):
        with pytest.raises(SuiteLoadError):
            load_suite(_write(tmp_path, "t_invalid.py", "TESTS = [[1, 2]]\n"))


# ── Exit Codes ──


class TestMain:
    def test_passing_run(self, tmp_path, capsys):
        assert main([str(_write(tmp_path, "t_pass.py", PASSING))]) == EXIT_PASSED
        out = capsys.readouterr().out
        assert "test_one: Test passed." in out
        assert "unitmock Test Report" in out

    def test_failing_run(self, tmp_path, capsys):
        assert main([str(_write(tmp_path, "t_fail.py", FAILING))]) == EXIT_FAILED
        assert "Failure!" in capsys.readouterr().err

    def test_leak_fails_run(self, tmp_path):
        assert main([str(_write(tmp_path, "t_leak.py", LEAKING))]) == EXIT_FAILED

    def test_no_leak_check_flag(self, tmp_path):
        path = _write(tmp_path, "t_leak.py", LEAKING)
        assert main([str(path), "--no-leak-check"]) == EXIT_PASSED

    def test_no_leak_check_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv(ENV_NO_LEAK_CHECK, "1")
        assert main([str(_write(tmp_path, "t_leak.py", LEAKING))]) == EXIT_PASSED

    def test_invalid_env_aborts(self, tmp_path, monkeypatch):
        monkeypatch.setenv(ENV_HEAP_LIMIT, "plenty")
        assert main([str(_write(tmp_path, "t_pass.py", PASSING))]) == EXIT_ABORTED

    def test_fatal_misuse_aborts(self, tmp_path, capsys):
        assert main([str(_write(tmp_path, "t_fatal.py", FATAL))]) == EXIT_ABORTED
        err = capsys.readouterr().err
        assert "No return values registered for reader()." in err
        assert "aborting run" in err

    def test_load_error_aborts(self, tmp_path):
        assert main([str(tmp_path / "missing.py")]) == EXIT_ABORTED

    def test_any_failure_fails_whole_run(self, tmp_path):
        passing = _write(tmp_path, "t_pass.py", PASSING)
        failing = _write(tmp_path, "t_fail.py", FAILING)
        assert main([str(passing), str(failing)]) == EXIT_FAILED

    def test_json_output(self, tmp_path):
        report = tmp_path / "report.json"
        path = _write(tmp_path, "t_pass.py", PASSING)
        assert main([str(path), "--json-output", str(report)]) == EXIT_PASSED
        data = json.loads(report.read_text(encoding="utf-8"))
        assert data["success"] is True
        assert data["suites"][0]["source"] == str(path)

    def test_linked_list_example(self):
        assert main([str(LINKED_LIST_SUITE)]) == EXIT_PASSED
