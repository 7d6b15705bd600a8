"""Current test scope and the process-local "exit test in progress" marker.

The scope lives in a ContextVar. asyncio tasks copy the context of the task
that created them, so tasks spawned from a test keep its scope. Threads and
executor jobs start with an empty context and therefore have no current test.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Iterator

from exit_testing.configuration import Configuration
from exit_testing.events.models import Event, EventContext, EventKind, Issue
from exit_testing.registry import SourceLocation
from exit_testing.suite import Test, TestCase

logger = logging.getLogger(__name__)


@dataclass
class TestScope:
    """Mutable per-test state: where events go and which issues were recorded."""

    __test__ = False

    test: Test
    configuration: Configuration
    test_case: TestCase | None = None
    issues: list[Issue] = field(default_factory=list)

    @property
    def event_context(self) -> EventContext:
        return EventContext(test=self.test, test_case=self.test_case)


_current_scope: ContextVar[TestScope | None] = ContextVar(
    "exit_testing_current_scope", default=None
)

# Set once in an exit test child before its body runs; never cleared.
_exit_test_in_progress: SourceLocation | None = None


def current_scope() -> TestScope | None:
    return _current_scope.get()


def current_test() -> Test | None:
    scope = _current_scope.get()
    return scope.test if scope else None


@contextmanager
def running_test(
    test: Test,
    configuration: Configuration,
    test_case: TestCase | None = None,
) -> Iterator[TestScope]:
    """Make test the current test for the enclosed code (and tasks it creates)."""
    scope = TestScope(test=test, configuration=configuration, test_case=test_case)
    token = _current_scope.set(scope)
    try:
        yield scope
    finally:
        _current_scope.reset(token)


def mark_exit_test_in_progress(location: SourceLocation) -> None:
    global _exit_test_in_progress
    _exit_test_in_progress = location


def exit_test_in_progress() -> SourceLocation | None:
    """Location of the exit test this process is running as a child, if any."""
    return _exit_test_in_progress


def record_issue(issue: Issue, scope: TestScope | None = None) -> None:
    """Attach issue to the scope's test and emit ISSUE_RECORDED."""
    scope = scope or _current_scope.get()
    if scope is None:
        logger.error("Issue recorded outside of a test: %s", issue)
        return
    scope.issues.append(issue)
    logger.info("Issue in %s: %s", scope.test.name, issue)
    scope.configuration.emit(
        Event(kind=EventKind.ISSUE_RECORDED, issue=issue), scope.event_context
    )
