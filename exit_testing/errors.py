"""Exceptions raised by exit test registration, configuration and execution."""


class ExitTestingError(Exception):
    """Base exception for exit_testing failures."""


class NoCurrentTestError(ExitTestingError):
    """Raised when an exit test is started outside of any running test."""


class RecursiveExitTestError(ExitTestingError):
    """Raised when an exit test is started from inside an exit test body."""


class SpawnHandlerError(ExitTestingError):
    """The spawn handler could not create or observe the child process."""


class SpawnHandlerNotConfiguredError(SpawnHandlerError):
    """No spawn handler was configured for this run."""


class ChildSpawnError(SpawnHandlerError):
    """The child process could not be created."""


class RegistryMissError(SpawnHandlerError):
    """The child process found no exit test registered at its source location."""


class RegistryError(ExitTestingError):
    """Invalid use of the exit test registry."""


class DuplicateExitTestError(RegistryError):
    """An exit test is already registered at this source location."""


class RegistrySealedError(RegistryError):
    """The registry no longer accepts registrations because the run has started."""


class InvalidExitTestBodyError(RegistryError):
    """The body takes arguments or captures state from an enclosing scope."""


class ConfigurationFrozenError(ExitTestingError):
    """The configuration was modified after the run started."""


class ExpectationFailedError(ExitTestingError):
    """Raised by require_exit when the exit test did not pass."""

    def __init__(self, message: str, result: object = None) -> None:
        super().__init__(message)
        self.result = result
