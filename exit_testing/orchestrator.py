"""expect_exit / require_exit: run an exit test and judge its outcome.

An exit test goes NotStarted -> HandlerInvoked -> one of
ChildObserved(condition), HandlerFailed(error), NotInvoked, and is then
compared to its expectation. There are no retries. Cancellation while the
handler is running skips the comparison entirely.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from exit_testing.conditions import ExitCondition, matches
from exit_testing.context import TestScope, current_scope, exit_test_in_progress, record_issue
from exit_testing.descriptor import ExitTest
from exit_testing.errors import ExpectationFailedError, NoCurrentTestError, RecursiveExitTestError
from exit_testing.events.models import Event, EventKind, Issue, IssueKind
from exit_testing.registry import SourceLocation, location_of

logger = logging.getLogger(__name__)

__all__ = ["ExitTestOutcome", "ExitTestResult", "expect_exit", "require_exit"]


class ExitTestOutcome(Enum):
    PASSED = "passed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ExitTestResult:
    exit_test: ExitTest
    outcome: ExitTestOutcome
    observed: ExitCondition | None = None
    issue: Issue | None = None

    @property
    def passed(self) -> bool:
        return self.outcome is ExitTestOutcome.PASSED


def _resolve_location(
    body: Callable[[], Any] | SourceLocation, location: SourceLocation | None
) -> SourceLocation:
    if location is not None:
        return location
    if isinstance(body, SourceLocation):
        return body
    return location_of(body)


def _judge(exit_test: ExitTest, observed: ExitCondition | None) -> tuple[ExitTestOutcome, Issue | None]:
    expected = exit_test.expected_exit_condition
    location = exit_test.source_location
    if observed is None:
        return ExitTestOutcome.FAILED, Issue(
            kind=IssueKind.EXIT_TEST_NOT_INVOKED,
            comment="Exit test was not invoked by the spawn handler",
            source_location=location,
            expected=expected,
        )
    if matches(observed, expected):
        return ExitTestOutcome.PASSED, None
    return ExitTestOutcome.FAILED, Issue(
        kind=IssueKind.EXIT_CONDITION_MISMATCH,
        comment=f"Expected exit condition {expected}, observed {observed}",
        source_location=location,
        expected=expected,
        observed=observed,
    )


def _finish(scope: TestScope, result: ExitTestResult) -> ExitTestResult:
    if result.issue is not None:
        record_issue(result.issue, scope)
    scope.configuration.emit(
        Event(
            kind=EventKind.EXIT_TEST_ENDED,
            exit_test=result.exit_test,
            issue=result.issue,
            outcome=result.outcome.value,
        ),
        scope.event_context,
    )
    return result


async def expect_exit(
    exits_with: ExitCondition,
    body: Callable[[], Any] | SourceLocation,
    *,
    location: SourceLocation | None = None,
) -> ExitTestResult:
    """Run body in a child process and check that it terminates as exits_with says.

    body is a registered exit test body (see exit_test_body) or the
    SourceLocation it was registered under. A mismatch, a spawn handler
    error, or a body that was never invoked is recorded as an issue of the
    current test; the returned result says which.

    Raises NoCurrentTestError outside of a running test and
    RecursiveExitTestError from inside an exit test body. Both are raised
    before any process is created.
    """
    scope = current_scope()
    if scope is None:
        raise NoCurrentTestError("Exit tests can only run inside a test")
    enclosing = exit_test_in_progress()
    if enclosing is not None:
        raise RecursiveExitTestError(
            f"Cannot start an exit test from inside the exit test at {enclosing}"
        )

    exit_test = ExitTest(
        expected_exit_condition=exits_with,
        source_location=_resolve_location(body, location),
        body=None if isinstance(body, SourceLocation) else body,
    )
    configuration = scope.configuration
    configuration.emit(
        Event(kind=EventKind.EXIT_TEST_STARTED, exit_test=exit_test), scope.event_context
    )
    logger.debug("Exit test at %s started in %s", exit_test.source_location, scope.test.name)

    try:
        observed = await configuration.spawn_handler(exit_test)
    except asyncio.CancelledError:
        logger.info("Exit test at %s cancelled", exit_test.source_location)
        _finish(scope, ExitTestResult(exit_test=exit_test, outcome=ExitTestOutcome.CANCELLED))
        raise
    except Exception as e:
        logger.warning("Spawn handler failed for %s: %s", exit_test.source_location, e)
        issue = Issue(
            kind=IssueKind.SPAWN_HANDLER_ERROR,
            comment=f"Exit test could not be run: {e}",
            source_location=exit_test.source_location,
            expected=exits_with,
            error=e,
        )
        return _finish(
            scope, ExitTestResult(exit_test=exit_test, outcome=ExitTestOutcome.FAILED, issue=issue)
        )

    outcome, issue = _judge(exit_test, observed)
    return _finish(
        scope,
        ExitTestResult(exit_test=exit_test, outcome=outcome, observed=observed, issue=issue),
    )


async def require_exit(
    exits_with: ExitCondition,
    body: Callable[[], Any] | SourceLocation,
    *,
    location: SourceLocation | None = None,
) -> ExitTestResult:
    """Like expect_exit, but raise ExpectationFailedError unless the exit test passed."""
    result = await expect_exit(exits_with, body, location=location)
    if not result.passed:
        message = str(result.issue) if result.issue else result.outcome.value
        raise ExpectationFailedError(message, result)
    return result
