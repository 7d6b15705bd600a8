"""Tests for the exit test child entry point, run in-process."""

import os
import sys
from pathlib import Path

import pytest

from exit_testing import context
from exit_testing.child import (
    is_exit_test_child,
    location_from_environment,
    run_body,
    run_exit_test_child,
    run_if_exit_test_child,
)
from exit_testing.conditions import EXIT_FAILURE, EXIT_SUCCESS
from exit_testing.driver import REGISTRY_MISS_MARKER, SOURCE_LOCATION_ENV, STATUS_FILE_ENV
from exit_testing.registry import ExitTestRegistry, SourceLocation
from exit_testing.settings import get_default_settings

_LOC = SourceLocation(file_path="/src/tests/test_crash.py", line=30)


def _exits_5() -> None:
    sys.exit(5)


def _raises() -> None:
    raise IndexError("list index out of range")


def _returns() -> None:
    pass


async def _async_exits_6() -> None:
    sys.exit(6)


@pytest.fixture(autouse=True)
def _reset_in_progress(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(context, "_exit_test_in_progress", None)


class TestEnvironment:
    def test_not_a_child_without_marker(self) -> None:
        assert not is_exit_test_child({})
        assert location_from_environment({}) is None

    def test_decodes_marker(self) -> None:
        env = {SOURCE_LOCATION_ENV: _LOC.to_wire()}
        assert is_exit_test_child(env)
        assert location_from_environment(env) == _LOC

    def test_run_if_child_returns_in_normal_process(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv(SOURCE_LOCATION_ENV, raising=False)
        run_if_exit_test_child(registry=ExitTestRegistry(), settings=get_default_settings())


class TestRunBody:
    def test_returning_body_is_success(self) -> None:
        assert run_body(_returns) == EXIT_SUCCESS

    def test_raising_body_is_failure(self) -> None:
        assert run_body(_raises) == EXIT_FAILURE

    def test_system_exit_propagates(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run_body(_exits_5)
        assert exc_info.value.code == 5

    def test_async_body(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run_body(_async_exits_6)
        assert exc_info.value.code == 6


class TestRunExitTestChild:
    def test_runs_registered_body(self) -> None:
        registry = ExitTestRegistry()
        registry.register(_LOC, _exits_5)
        with pytest.raises(SystemExit) as exc_info:
            run_exit_test_child(_LOC, registry=registry, settings=get_default_settings())
        assert exc_info.value.code == 5
        assert context.exit_test_in_progress() == _LOC

    def test_body_that_returns_exits_zero(self) -> None:
        registry = ExitTestRegistry()
        registry.register(_LOC, _returns)
        with pytest.raises(SystemExit) as exc_info:
            run_exit_test_child(_LOC, registry=registry, settings=get_default_settings())
        assert exc_info.value.code == EXIT_SUCCESS

    def test_registry_miss_writes_status_and_exits_with_sentinel(self, tmp_path: Path) -> None:
        status = tmp_path / "status"
        settings = get_default_settings()
        with pytest.raises(SystemExit) as exc_info:
            run_exit_test_child(
                _LOC, registry=ExitTestRegistry(), settings=settings, status_file=str(status)
            )
        assert exc_info.value.code == settings["exit_tests"]["registry_miss_exit_code"]
        assert status.read_text(encoding="utf-8") == REGISTRY_MISS_MARKER
        assert context.exit_test_in_progress() is None

    def test_run_if_child_consumes_marker(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        registry = ExitTestRegistry()
        registry.register(_LOC, _exits_5)
        monkeypatch.setenv(SOURCE_LOCATION_ENV, _LOC.to_wire())
        monkeypatch.setenv(STATUS_FILE_ENV, str(tmp_path / "status"))
        with pytest.raises(SystemExit) as exc_info:
            run_if_exit_test_child(registry=registry, settings=get_default_settings())
        assert exc_info.value.code == 5
        assert SOURCE_LOCATION_ENV not in os.environ
        assert STATUS_FILE_ENV not in os.environ

    def test_malformed_marker_is_registry_miss(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        status = tmp_path / "status"
        monkeypatch.setenv(SOURCE_LOCATION_ENV, "{not json")
        monkeypatch.setenv(STATUS_FILE_ENV, str(status))
        with pytest.raises(SystemExit) as exc_info:
            run_if_exit_test_child(registry=ExitTestRegistry(), settings=get_default_settings())
        assert exc_info.value.code == 125
        assert status.read_text(encoding="utf-8") == REGISTRY_MISS_MARKER
