"""Default spawn handler: runs the exit test body in a relaunched copy of this program.

The child gets the parent's command line and environment plus two variables:
the JSON-encoded source location of the body, and the path of a status file
it uses to report a registry miss. The parent waits for the child without
blocking the event loop and classifies its return code.
"""

import asyncio
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Any

from exit_testing.conditions import ExitCondition, classify_returncode
from exit_testing.descriptor import ExitTest
from exit_testing.errors import ChildSpawnError, RegistryMissError
from exit_testing.settings import get_setting, load_settings

logger = logging.getLogger(__name__)

SOURCE_LOCATION_ENV = "EXIT_TESTING_SOURCE_LOCATION"
STATUS_FILE_ENV = "EXIT_TESTING_STATUS_FILE"
REGISTRY_MISS_MARKER = "registry-miss"

_UNSUPPORTED_PLATFORMS = ("emscripten", "wasi")


def can_spawn_processes() -> bool:
    """True if this interpreter can create child processes."""
    if sys.platform in _UNSUPPORTED_PLATFORMS:
        return False
    return bool(sys.executable)


def current_command() -> list[str]:
    """Command line that relaunches the current program, interpreter flags included."""
    orig_argv = getattr(sys, "orig_argv", None)
    if orig_argv:
        return [sys.executable, *orig_argv[1:]]
    return [sys.executable, *sys.argv]


def _read_status(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError:
        return ""


class ProcessDriver:
    """Spawn handler that runs each exit test in its own child process."""

    def __init__(
        self,
        argv: list[str] | None = None,
        env: dict[str, str] | None = None,
        cwd: Path | str | None = None,
        settings: dict[str, Any] | None = None,
    ) -> None:
        self._argv = list(argv) if argv is not None else None
        self._env = env
        self._cwd = cwd
        settings = settings if settings is not None else load_settings()
        self._terminate_timeout = float(
            get_setting(settings, "exit_tests.terminate_timeout", 5.0)
        )

    def _child_env(self, exit_test: ExitTest, status_path: Path) -> dict[str, str]:
        env = dict(self._env) if self._env is not None else os.environ.copy()
        env[SOURCE_LOCATION_ENV] = exit_test.source_location.to_wire()
        env[STATUS_FILE_ENV] = str(status_path)
        return env

    async def __call__(self, exit_test: ExitTest) -> ExitCondition:
        argv = self._argv or current_command()
        fd, name = tempfile.mkstemp(prefix="exit-test-", suffix=".status")
        os.close(fd)
        status_path = Path(name)
        try:
            try:
                proc = await asyncio.create_subprocess_exec(
                    *argv,
                    cwd=self._cwd,
                    env=self._child_env(exit_test, status_path),
                    stdin=asyncio.subprocess.DEVNULL,
                )
            except OSError as e:
                raise ChildSpawnError(
                    f"Could not start exit test child for {exit_test.source_location}: {e}"
                ) from e
            logger.debug("Exit test child %d started for %s", proc.pid, exit_test.source_location)

            returncode = await self._wait(proc)

            if _read_status(status_path) == REGISTRY_MISS_MARKER:
                raise RegistryMissError(
                    f"Child process {proc.pid} found no exit test registered at "
                    f"{exit_test.source_location}"
                )
            observed = classify_returncode(returncode)
            logger.debug("Exit test child %d terminated: %s", proc.pid, observed)
            return observed
        finally:
            status_path.unlink(missing_ok=True)

    async def _wait(self, proc: asyncio.subprocess.Process) -> int:
        try:
            return await proc.wait()
        except asyncio.CancelledError:
            await self._terminate(proc)
            raise

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """Stop and reap a child whose exit test was cancelled."""
        if proc.returncode is not None:
            return
        logger.info("Terminating exit test child %d", proc.pid)
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._terminate_timeout)
        except asyncio.TimeoutError:
            logger.warning("Exit test child %d ignored terminate; killing", proc.pid)
            proc.kill()
            await proc.wait()
