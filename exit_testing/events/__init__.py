"""Events: lifecycle and issue notifications emitted during a run, and their observers."""

from exit_testing.events.models import Event, EventContext, EventKind, Issue, IssueKind
from exit_testing.events.observer import Observer, attach_observers, observer

__all__ = [
    "Event",
    "EventContext",
    "EventKind",
    "Issue",
    "IssueKind",
    "Observer",
    "attach_observers",
    "observer",
]
