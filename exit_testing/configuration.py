"""Run configuration: the spawn handler slot and the event handler chain.

Both slots are written before the run starts and only read afterwards. The
runner calls freeze() once the run begins; later writes raise
ConfigurationFrozenError.
"""

import logging
from typing import Any, Awaitable, Callable

from exit_testing.conditions import ExitCondition
from exit_testing.descriptor import ExitTest
from exit_testing.errors import ConfigurationFrozenError, SpawnHandlerNotConfiguredError
from exit_testing.events.models import Event, EventContext
from exit_testing.settings import load_settings

logger = logging.getLogger(__name__)

SpawnHandler = Callable[[ExitTest], Awaitable[ExitCondition | None]]
EventHandler = Callable[[Event, EventContext], None]


async def unconfigured_spawn_handler(exit_test: ExitTest) -> ExitCondition | None:
    """Placeholder handler: every exit test fails with an infrastructure error."""
    raise SpawnHandlerNotConfiguredError(
        f"No spawn handler is configured; cannot run exit test at {exit_test.source_location}"
    )


def _log_event(event: Event, context: EventContext) -> None:
    test_name = context.test.name if context.test else None
    logger.debug("Event %s (test=%s)", event.kind.value, test_name)


class Configuration:
    """Settings for one run, passed explicitly to the runner and reachable from test scopes."""

    def __init__(
        self,
        spawn_handler: SpawnHandler | None = None,
        event_handler: EventHandler | None = None,
        settings: dict[str, Any] | None = None,
    ) -> None:
        self._spawn_handler: SpawnHandler = spawn_handler or unconfigured_spawn_handler
        self._event_handler: EventHandler = event_handler or _log_event
        self.settings = settings if settings is not None else load_settings()
        self._frozen = False

    @classmethod
    def default(
        cls,
        settings: dict[str, Any] | None = None,
        event_handler: EventHandler | None = None,
    ) -> "Configuration":
        """Configuration using the process driver when this platform can spawn processes."""
        from exit_testing.driver import ProcessDriver, can_spawn_processes

        settings = settings if settings is not None else load_settings()
        spawn_handler: SpawnHandler | None = None
        if can_spawn_processes():
            spawn_handler = ProcessDriver(settings=settings)
        else:
            logger.warning("Process creation is unavailable; exit tests will not run")
        return cls(spawn_handler=spawn_handler, event_handler=event_handler, settings=settings)

    @property
    def spawn_handler(self) -> SpawnHandler:
        return self._spawn_handler

    @spawn_handler.setter
    def spawn_handler(self, handler: SpawnHandler) -> None:
        self._check_not_frozen("spawn_handler")
        self._spawn_handler = handler

    @property
    def event_handler(self) -> EventHandler:
        return self._event_handler

    @event_handler.setter
    def event_handler(self, handler: EventHandler) -> None:
        self._check_not_frozen("event_handler")
        self._event_handler = handler

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_not_frozen(self, name: str) -> None:
        if self._frozen:
            raise ConfigurationFrozenError(f"Cannot change {name} after the run has started")

    def emit(self, event: Event, context: EventContext | None = None) -> None:
        """Deliver event to the handler chain. Handler errors are logged, never raised."""
        try:
            self._event_handler(event, context or EventContext())
        except Exception as e:
            logger.exception("Event handler failed for %s: %s", event.kind.value, e)
