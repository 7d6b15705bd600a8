"""Runner: execute tests concurrently, each in its own test scope, and emit lifecycle events."""

import asyncio
import inspect
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, NoReturn, Sequence

from dotenv import load_dotenv
from pydantic import ValidationError

from exit_testing.child import (
    is_exit_test_child,
    location_from_environment,
    run_if_exit_test_child,
)
from exit_testing.configuration import Configuration
from exit_testing.context import TestScope, record_issue, running_test
from exit_testing.errors import ExpectationFailedError
from exit_testing.events.models import Event, EventContext, EventKind, Issue, IssueKind
from exit_testing.events.observer import attach_observers
from exit_testing.logging_config import setup_logging
from exit_testing.registry import ExitTestRegistry, get_registry
from exit_testing.settings import get_setting, load_settings
from exit_testing.suite import Test, TestCase

logger = logging.getLogger(__name__)


@dataclass
class TestResult:
    __test__ = False

    test: Test
    issues: list[Issue] = field(default_factory=list)
    cancelled: bool = False

    @property
    def passed(self) -> bool:
        return not self.issues and not self.cancelled


@dataclass
class RunReport:
    results: list[TestResult]

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def failed(self) -> list[TestResult]:
        return [r for r in self.results if not r.passed]


class Runner:
    """Runs a fixed list of tests. Seals the registry and freezes the configuration first."""

    def __init__(
        self,
        tests: Sequence[Test],
        configuration: Configuration | None = None,
        registry: ExitTestRegistry | None = None,
        test_timeout: float | None = None,
    ) -> None:
        self._tests = list(tests)
        self._configuration = (
            configuration if configuration is not None else Configuration.default()
        )
        self._registry = registry if registry is not None else get_registry()
        if test_timeout is None:
            test_timeout = get_setting(self._configuration.settings, "runner.test_timeout")
        self._test_timeout = float(test_timeout) if test_timeout else None

    @property
    def configuration(self) -> Configuration:
        return self._configuration

    async def run(self) -> RunReport:
        """Run every test. A failing or cancelled test never stops its siblings."""
        self._registry.seal()
        # A frozen configuration already carries its observers from an earlier run.
        if not self._configuration.frozen:
            await attach_observers(self._configuration)
            self._configuration.freeze()

        self._configuration.emit(Event(kind=EventKind.RUN_STARTED))
        logger.info("Run started: %d test(s)", len(self._tests))
        results = await asyncio.gather(*(self._run_test(test) for test in self._tests))
        self._configuration.emit(Event(kind=EventKind.RUN_ENDED))
        report = RunReport(results=list(results))
        logger.info(
            "Run ended: %d passed, %d failed",
            len(results) - len(report.failed),
            len(report.failed),
        )
        return report

    async def _run_test(self, test: Test) -> TestResult:
        config = self._configuration
        config.emit(Event(kind=EventKind.TEST_STARTED), EventContext(test=test))
        result = TestResult(test=test)
        for case in test.cases():
            test_case = case if test.is_parameterized else None
            with running_test(test, config, test_case) as scope:
                config.emit(Event(kind=EventKind.TEST_CASE_STARTED), scope.event_context)
                cancelled = await self._run_case(scope, case)
                config.emit(Event(kind=EventKind.TEST_CASE_ENDED), scope.event_context)
            result.issues.extend(scope.issues)
            result.cancelled = result.cancelled or cancelled
        config.emit(Event(kind=EventKind.TEST_ENDED), EventContext(test=test))
        return result

    async def _run_case(self, scope: TestScope, case: TestCase) -> bool:
        """Run one case. Returns True if it timed out and was cancelled."""
        deadline = asyncio.timeout(self._test_timeout)
        try:
            async with deadline:
                await _call_test(scope.test, case.arguments)
        except TimeoutError as e:
            if not deadline.expired():
                record_issue(_uncaught(e), scope)
                return False
            logger.warning(
                "Test %s cancelled after %.1fs timeout", scope.test.name, self._test_timeout
            )
            return True
        except ExpectationFailedError:
            pass  # issue already recorded by require_exit
        except Exception as e:
            logger.debug("Test %s raised", scope.test.name, exc_info=True)
            record_issue(_uncaught(e), scope)
        return False


def _uncaught(error: Exception) -> Issue:
    return Issue(kind=IssueKind.UNCAUGHT_ERROR, comment=f"Caught error: {error!r}", error=error)


async def _call_test(test: Test, arguments: tuple[Any, ...]) -> None:
    result = test.function(*arguments)
    if inspect.isawaitable(result):
        await result


def _print_report(report: RunReport) -> None:
    for r in report.results:
        status = "CANCELLED" if r.cancelled else ("PASS" if r.passed else "FAIL")
        print(f"{status} {r.test.display_name or r.test.name}")
        for issue in r.issues:
            print(f"    {issue}")
    print(f"{len(report.results) - len(report.failed)}/{len(report.results)} tests passed")


def _child_log_tag() -> str | None:
    if not is_exit_test_child():
        return None
    try:
        return str(location_from_environment())
    except ValidationError:
        return "<malformed>"


def main(
    tests: Sequence[Test],
    configuration: Configuration | None = None,
    project_root: Path | None = None,
) -> NoReturn:
    """Entry point for a test program.

    Call after every exit test body has been registered (i.e. after the test
    modules are imported). In an exit test child this runs the requested body
    instead of the tests.
    """
    project_root = project_root or Path.cwd()
    load_dotenv(project_root / ".env")
    settings = load_settings()
    setup_logging(project_root, settings, exit_test_location=_child_log_tag())
    run_if_exit_test_child(settings=settings)

    if configuration is None:
        configuration = Configuration.default(settings=settings)
    try:
        report = asyncio.run(Runner(tests, configuration).run())
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        sys.exit(130)
    _print_report(report)
    sys.exit(0 if report.passed else 1)


__all__ = ["Runner", "RunReport", "TestResult", "main"]
