"""ExitTest descriptor handed to spawn handlers."""

from dataclasses import dataclass, field

from exit_testing.conditions import ExitCondition
from exit_testing.registry import ExitTestBody, SourceLocation

__all__ = ["ExitTest"]


@dataclass(frozen=True)
class ExitTest:
    """One exit test invocation.

    Only ``source_location`` crosses the process boundary. ``body`` is the
    parent's own reference and is meaningless in any other process.
    """

    expected_exit_condition: ExitCondition
    source_location: SourceLocation
    body: ExitTestBody | None = field(default=None, compare=False, repr=False)
