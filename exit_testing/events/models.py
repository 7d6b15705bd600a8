"""Event and issue models emitted during a run."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from exit_testing.conditions import ExitCondition
from exit_testing.registry import SourceLocation
from exit_testing.suite import Test, TestCase

if TYPE_CHECKING:
    from exit_testing.descriptor import ExitTest

__all__ = ["Event", "EventContext", "EventKind", "Issue", "IssueKind"]


class EventKind(Enum):
    RUN_STARTED = "run_started"
    RUN_ENDED = "run_ended"
    TEST_STARTED = "test_started"
    TEST_ENDED = "test_ended"
    TEST_CASE_STARTED = "test_case_started"
    TEST_CASE_ENDED = "test_case_ended"
    EXIT_TEST_STARTED = "exit_test_started"
    EXIT_TEST_ENDED = "exit_test_ended"
    ISSUE_RECORDED = "issue_recorded"


class IssueKind(Enum):
    # Observed exit condition did not match the expected one
    EXIT_CONDITION_MISMATCH = "exit_condition_mismatch"
    # Spawn handler raised: child could not be created or observed
    SPAWN_HANDLER_ERROR = "spawn_handler_error"
    # Spawn handler declined to run the body
    EXIT_TEST_NOT_INVOKED = "exit_test_not_invoked"
    # Test function raised
    UNCAUGHT_ERROR = "uncaught_error"


@dataclass(frozen=True)
class Issue:
    """A problem recorded against the current test."""

    kind: IssueKind
    comment: str
    source_location: SourceLocation | None = None
    expected: ExitCondition | None = None
    observed: ExitCondition | None = None
    error: BaseException | None = field(default=None, compare=False)

    @property
    def is_infrastructure(self) -> bool:
        """True for failures of the machinery rather than of the code under test."""
        return self.kind is IssueKind.SPAWN_HANDLER_ERROR

    def __str__(self) -> str:
        if self.source_location is not None:
            return f"{self.comment} ({self.source_location})"
        return self.comment


@dataclass(frozen=True)
class Event:
    """Immutable event passed to the configuration's event handler."""

    kind: EventKind
    instant: float = field(default_factory=time.time)
    issue: Issue | None = None
    exit_test: "ExitTest | None" = None
    outcome: str | None = None


@dataclass(frozen=True)
class EventContext:
    """Where an event happened."""

    test: Test | None = None
    test_case: TestCase | None = None
