"""Exit test child: find the body named by the parent and let it end the process."""

import asyncio
import inspect
import logging
import os
import sys
from pathlib import Path
from typing import Any, Mapping, NoReturn

from pydantic import ValidationError

from exit_testing.conditions import EXIT_FAILURE, EXIT_SUCCESS
from exit_testing.configuration import Configuration
from exit_testing.context import mark_exit_test_in_progress, running_test
from exit_testing.driver import REGISTRY_MISS_MARKER, SOURCE_LOCATION_ENV, STATUS_FILE_ENV
from exit_testing.registry import ExitTestBody, ExitTestRegistry, SourceLocation, get_registry
from exit_testing.settings import get_setting, load_settings
from exit_testing.suite import Test

logger = logging.getLogger(__name__)


def is_exit_test_child(environ: Mapping[str, str] | None = None) -> bool:
    environ = os.environ if environ is None else environ
    return bool(environ.get(SOURCE_LOCATION_ENV))


def location_from_environment(environ: Mapping[str, str] | None = None) -> SourceLocation | None:
    """Decode the source location the parent passed, or None if this is not a child.

    Raises pydantic.ValidationError if the variable is present but malformed.
    """
    environ = os.environ if environ is None else environ
    raw = environ.get(SOURCE_LOCATION_ENV)
    if not raw:
        return None
    return SourceLocation.from_wire(raw)


def _report_registry_miss(status_file: str | None, exit_code: int, reason: str) -> NoReturn:
    logger.error("Exit test child cannot run: %s", reason)
    if status_file:
        try:
            Path(status_file).write_text(REGISTRY_MISS_MARKER, encoding="utf-8")
        except OSError as e:
            logger.error("Could not write exit test status file %s: %s", status_file, e)
    sys.exit(exit_code)


def _call_body(body: ExitTestBody) -> None:
    if inspect.iscoroutinefunction(body):
        asyncio.run(body())
        return
    result = body()
    if inspect.isawaitable(result):

        async def _await() -> None:
            await result

        asyncio.run(_await())


def run_body(body: ExitTestBody) -> int:
    """Run body and return the status the child should exit with if it returns.

    SystemExit raised by the body is not caught: it is the body's own exit.
    """
    try:
        _call_body(body)
    except Exception:
        logger.exception("Exit test body raised")
        return EXIT_FAILURE
    return EXIT_SUCCESS


def run_exit_test_child(
    location: SourceLocation,
    registry: ExitTestRegistry | None = None,
    settings: dict[str, Any] | None = None,
    status_file: str | None = None,
) -> NoReturn:
    """Look up and run the body registered at location, then exit the process."""
    settings = settings if settings is not None else load_settings()
    registry = registry if registry is not None else get_registry()
    miss_code = int(get_setting(settings, "exit_tests.registry_miss_exit_code", 125))

    body = registry.find(location)
    if body is None:
        _report_registry_miss(
            status_file, miss_code, f"no exit test registered at {location}"
        )

    mark_exit_test_in_progress(location)
    test = Test(name=f"exit test at {location}", function=body)
    with running_test(test, Configuration(settings=settings)):
        status = run_body(body)
    sys.exit(status)


def run_if_exit_test_child(
    registry: ExitTestRegistry | None = None,
    settings: dict[str, Any] | None = None,
) -> None:
    """Call at program start, after bodies are registered.

    Returns immediately in a normal process. In an exit test child it runs
    the requested body and never returns.
    """
    if not is_exit_test_child():
        return
    settings = settings if settings is not None else load_settings()
    status_file = os.environ.pop(STATUS_FILE_ENV, None)
    miss_code = int(get_setting(settings, "exit_tests.registry_miss_exit_code", 125))
    try:
        location = location_from_environment()
    except ValidationError as e:
        _report_registry_miss(status_file, miss_code, f"malformed source location: {e}")
    os.environ.pop(SOURCE_LOCATION_ENV, None)
    run_exit_test_child(location, registry=registry, settings=settings, status_file=status_file)
