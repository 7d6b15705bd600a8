"""Observers: objects notified of run, test and issue events.

Subclass Observer, override the hooks you need, and decorate the class with
@observer. attach_observers() instantiates every registered type and splices
them into a configuration's event handler chain.
"""

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, TypeVar

from exit_testing.events.models import Event, EventContext, EventKind, Issue
from exit_testing.suite import Test, TestCase

if TYPE_CHECKING:
    from exit_testing.configuration import Configuration

logger = logging.getLogger(__name__)

__all__ = ["Observer", "attach_observers", "observer", "registered_observers"]


class Observer:
    """Base observer. Every hook is a no-op."""

    def run_started(self) -> None:
        pass

    def run_ended(self) -> None:
        pass

    # The runner has no suites yet, so these are never called.
    def suite_started(self, suite: Test) -> None:
        pass

    def suite_ended(self, suite: Test) -> None:
        pass

    def test_started(self, test: Test) -> None:
        pass

    def test_ended(self, test: Test) -> None:
        pass

    def test_case_started(self, test_case: TestCase, test: Test) -> None:
        pass

    def test_case_ended(self, test_case: TestCase, test: Test) -> None:
        pass

    def issue_recorded(self, issue: Issue, test: Test | None, test_case: TestCase | None) -> None:
        pass


_O = TypeVar("_O", bound=type[Observer])

_observer_types: list[type[Observer]] = []


def observer(cls: _O) -> _O:
    """Class decorator: register an Observer subclass for attach_observers()."""
    if not issubclass(cls, Observer):
        raise TypeError(f"{cls.__name__} must subclass Observer")
    if cls not in _observer_types:
        _observer_types.append(cls)
    return cls


def registered_observers() -> list[type[Observer]]:
    return list(_observer_types)


def unregister_observer(cls: type[Observer]) -> None:
    if cls in _observer_types:
        _observer_types.remove(cls)


async def _instantiate(cls: type[Observer]) -> Observer:
    instance = cls()
    initialize = getattr(instance, "initialize", None)
    if initialize is not None and inspect.iscoroutinefunction(initialize):
        await initialize()
    return instance


async def _all_observers() -> list[Observer]:
    return list(await asyncio.gather(*(_instantiate(cls) for cls in _observer_types)))


def _dispatch(observers: list[Observer], event: Event, context: EventContext) -> None:
    kind = event.kind
    test = context.test
    if kind is EventKind.RUN_STARTED:
        for o in observers:
            o.run_started()
    elif kind is EventKind.RUN_ENDED:
        for o in observers:
            o.run_ended()
    elif kind is EventKind.TEST_STARTED and test is not None:
        for o in observers:
            o.test_started(test)
    elif kind is EventKind.TEST_ENDED and test is not None:
        for o in observers:
            o.test_ended(test)
    elif kind in (EventKind.TEST_CASE_STARTED, EventKind.TEST_CASE_ENDED):
        if test is None or not test.is_parameterized or context.test_case is None:
            return
        for o in observers:
            if kind is EventKind.TEST_CASE_STARTED:
                o.test_case_started(context.test_case, test)
            else:
                o.test_case_ended(context.test_case, test)
    elif kind is EventKind.ISSUE_RECORDED and event.issue is not None:
        test_case = context.test_case if test is not None and test.is_parameterized else None
        for o in observers:
            o.issue_recorded(event.issue, test, test_case)
    # Exit test lifecycle events are not forwarded to observers.


async def attach_observers(configuration: "Configuration") -> list[Observer]:
    """Instantiate registered observers and chain them in front of the current event handler."""
    observers = await _all_observers()
    if not observers:
        return []

    old_handler = configuration.event_handler

    def handler(event: Event, context: EventContext) -> None:
        try:
            _dispatch(observers, event, context)
        except Exception as e:
            logger.exception("Observer failed for %s: %s", event.kind.value, e)
        old_handler(event, context)

    configuration.event_handler = handler
    logger.info("Attached %d observer(s)", len(observers))
    return observers
