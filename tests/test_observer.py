"""Tests for observers: registration, dispatch, chaining with the previous handler."""

from typing import Iterator

import pytest

from exit_testing.conditions import ExitCondition
from exit_testing.configuration import Configuration
from exit_testing.descriptor import ExitTest
from exit_testing.events.models import Event, EventContext, EventKind, Issue
from exit_testing.events.observer import (
    Observer,
    attach_observers,
    observer,
    registered_observers,
    unregister_observer,
)
from exit_testing.orchestrator import expect_exit
from exit_testing.registry import ExitTestRegistry, SourceLocation
from exit_testing.runner import Runner
from exit_testing.settings import get_default_settings
from exit_testing.suite import Test, TestCase

_LOC = SourceLocation(file_path="/src/tests/test_exit.py", line=8)


class RecordingObserver(Observer):
    instances: list["RecordingObserver"] = []

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.initialized = False
        RecordingObserver.instances.append(self)

    async def initialize(self) -> None:
        self.initialized = True

    def run_started(self) -> None:
        self.calls.append(("run_started",))

    def run_ended(self) -> None:
        self.calls.append(("run_ended",))

    def test_started(self, test: Test) -> None:
        self.calls.append(("test_started", test.name))

    def test_ended(self, test: Test) -> None:
        self.calls.append(("test_ended", test.name))

    def test_case_started(self, test_case: TestCase, test: Test) -> None:
        self.calls.append(("test_case_started", test_case.arguments))

    def test_case_ended(self, test_case: TestCase, test: Test) -> None:
        self.calls.append(("test_case_ended", test_case.arguments))

    def issue_recorded(
        self, issue: Issue, test: Test | None, test_case: TestCase | None
    ) -> None:
        self.calls.append(("issue_recorded", issue.kind, test_case))


@pytest.fixture
def recording() -> Iterator[type[RecordingObserver]]:
    RecordingObserver.instances = []
    observer(RecordingObserver)
    yield RecordingObserver
    unregister_observer(RecordingObserver)


class TestRegistration:
    def test_decorator_registers_once(self, recording: type[RecordingObserver]) -> None:
        observer(RecordingObserver)
        assert registered_observers().count(RecordingObserver) == 1

    def test_suite_hooks_are_no_ops(self) -> None:
        async def plain() -> None:
            pass

        suite = Test.from_function(plain)
        assert Observer().suite_started(suite) is None
        assert Observer().suite_ended(suite) is None

    def test_rejects_non_observer(self) -> None:
        with pytest.raises(TypeError):
            observer(object)  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_no_observers_leaves_handler_untouched(self) -> None:
        config = Configuration(settings=get_default_settings())
        handler = config.event_handler
        assert await attach_observers(config) == []
        assert config.event_handler is handler


class TestDispatch:
    @pytest.mark.asyncio
    async def test_observers_are_initialized_and_chained(
        self, recording: type[RecordingObserver]
    ) -> None:
        seen: list[EventKind] = []
        config = Configuration(
            event_handler=lambda e, c: seen.append(e.kind), settings=get_default_settings()
        )
        (obs,) = await attach_observers(config)
        assert obs.initialized

        config.emit(Event(kind=EventKind.RUN_STARTED))
        assert obs.calls == [("run_started",)]
        assert seen == [EventKind.RUN_STARTED]

    @pytest.mark.asyncio
    async def test_exit_test_events_not_forwarded(
        self, recording: type[RecordingObserver]
    ) -> None:
        config = Configuration(settings=get_default_settings())
        (obs,) = await attach_observers(config)
        exit_test = ExitTest(expected_exit_condition=ExitCondition.success(), source_location=_LOC)
        config.emit(Event(kind=EventKind.EXIT_TEST_STARTED, exit_test=exit_test))
        config.emit(Event(kind=EventKind.EXIT_TEST_ENDED, exit_test=exit_test))
        assert obs.calls == []

    @pytest.mark.asyncio
    async def test_test_case_events_only_for_parameterized(
        self, recording: type[RecordingObserver]
    ) -> None:
        async def plain() -> None:
            pass

        config = Configuration(settings=get_default_settings())
        (obs,) = await attach_observers(config)
        test = Test.from_function(plain)
        config.emit(Event(kind=EventKind.TEST_CASE_STARTED), EventContext(test, TestCase()))
        assert obs.calls == []

        param = Test.from_function(plain, arguments=[(1,)])
        config.emit(Event(kind=EventKind.TEST_CASE_STARTED), EventContext(param, TestCase((1,))))
        assert obs.calls == [("test_case_started", (1,))]


class TestWithRunner:
    @pytest.mark.asyncio
    async def test_observer_sees_run_and_mismatch_issue(
        self, recording: type[RecordingObserver]
    ) -> None:
        async def mismatch_handler(exit_test: ExitTest) -> ExitCondition:
            return ExitCondition.exit_code(3)

        async def exits_badly(x: int) -> None:
            await expect_exit(ExitCondition.success(), _LOC)

        test = Test.from_function(exits_badly, arguments=[(7,)])
        config = Configuration(spawn_handler=mismatch_handler, settings=get_default_settings())
        await Runner([test], config, registry=ExitTestRegistry()).run()

        (obs,) = RecordingObserver.instances
        names = [c[0] for c in obs.calls]
        assert names == [
            "run_started",
            "test_started",
            "test_case_started",
            "issue_recorded",
            "test_case_ended",
            "test_ended",
            "run_ended",
        ]
        issue_call = obs.calls[3]
        assert issue_call[2] == TestCase((7,))

    @pytest.mark.asyncio
    async def test_rerun_with_frozen_configuration_keeps_observers(
        self, recording: type[RecordingObserver]
    ) -> None:
        async def fine() -> None:
            pass

        config = Configuration(settings=get_default_settings())
        for _ in range(2):
            report = await Runner(
                [Test.from_function(fine)], config, registry=ExitTestRegistry()
            ).run()
            assert report.passed

        (obs,) = RecordingObserver.instances
        assert [c[0] for c in obs.calls].count("run_started") == 2

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_break_run(self) -> None:
        @observer
        class Broken(Observer):
            def run_started(self) -> None:
                raise RuntimeError("observer bug")

        try:
            async def fine() -> None:
                pass

            report = await Runner(
                [Test.from_function(fine)],
                Configuration(settings=get_default_settings()),
                registry=ExitTestRegistry(),
            ).run()
            assert report.passed
        finally:
            unregister_observer(Broken)
