"""Exit conditions: how a process terminated, and whether that meets an expectation."""

import os
import signal
from dataclasses import dataclass
from enum import Enum

__all__ = [
    "EXIT_FAILURE",
    "EXIT_SUCCESS",
    "SUPPORTS_SIGNAL_CONDITIONS",
    "ExitCondition",
    "ExitConditionKind",
    "classify_returncode",
    "classify_wait_status",
    "matches",
]

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

# Windows maps unhandled signals to an abnormal exit code, so a signal cannot be observed.
SUPPORTS_SIGNAL_CONDITIONS = os.name != "nt"

_EXIT_CODE_MASK = 0xFF


class ExitConditionKind(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    EXIT_CODE = "exit_code"
    SIGNAL = "signal"


def _mask_exit_code(code: int) -> int:
    if SUPPORTS_SIGNAL_CONDITIONS:
        return code & _EXIT_CODE_MASK
    return code


@dataclass(frozen=True)
class ExitCondition:
    """Classification of a process termination.

    Build values with the constructors rather than the dataclass fields:
    ``ExitCondition.success()``, ``ExitCondition.failure()``,
    ``ExitCondition.exit_code(3)`` and, where the platform reports signals,
    ``ExitCondition.signal(signal.SIGABRT)``.

    Equality is structural. Use :func:`matches` to compare an observed
    condition against an expected one.
    """

    kind: ExitConditionKind
    value: int | None = None

    @classmethod
    def success(cls) -> "ExitCondition":
        return cls(ExitConditionKind.SUCCESS)

    @classmethod
    def failure(cls) -> "ExitCondition":
        return cls(ExitConditionKind.FAILURE)

    @classmethod
    def exit_code(cls, code: int) -> "ExitCondition":
        """Exact exit status. On POSIX only the low 8 bits are kept."""
        return cls(ExitConditionKind.EXIT_CODE, _mask_exit_code(int(code)))

    if SUPPORTS_SIGNAL_CONDITIONS:

        @classmethod
        def signal(cls, number: int) -> "ExitCondition":
            """Terminated by the given signal. Not defined on Windows."""
            return cls(ExitConditionKind.SIGNAL, int(number))

    @property
    def status_code(self) -> int | None:
        """Exit status this condition pins down, or None (failure, signal)."""
        if self.kind is ExitConditionKind.SUCCESS:
            return EXIT_SUCCESS
        if self.kind is ExitConditionKind.EXIT_CODE:
            return self.value
        return None

    @property
    def is_success(self) -> bool:
        return self.status_code == EXIT_SUCCESS

    def matches(self, expected: "ExitCondition") -> bool:
        """True if this observed condition satisfies ``expected``."""
        return matches(self, expected)

    def __str__(self) -> str:
        if self.kind is ExitConditionKind.EXIT_CODE:
            return f"exit_code({self.value})"
        if self.kind is ExitConditionKind.SIGNAL:
            try:
                name = signal.Signals(self.value).name
            except ValueError:
                name = str(self.value)
            return f"signal({name})"
        return self.kind.value


def matches(observed: ExitCondition, expected: ExitCondition) -> bool:
    """Compare an observed exit condition against an expected one.

    ``success`` and ``exit_code(0)`` are interchangeable. An expected
    ``failure`` accepts anything that is not success. Exit codes and signals
    never match each other.
    """
    if expected.kind is ExitConditionKind.SUCCESS:
        return observed.is_success
    if expected.kind is ExitConditionKind.FAILURE:
        return not observed.is_success
    if expected.kind is ExitConditionKind.EXIT_CODE:
        code = observed.status_code
        return code is not None and code == expected.value
    return observed.kind is ExitConditionKind.SIGNAL and observed.value == expected.value


def _from_exit_status(code: int) -> ExitCondition:
    code = _mask_exit_code(code)
    if code == EXIT_SUCCESS:
        return ExitCondition.success()
    return ExitCondition.exit_code(code)


def classify_returncode(returncode: int) -> ExitCondition:
    """Classify a subprocess return code.

    On POSIX, ``asyncio`` and ``subprocess`` report signal termination as a
    negative return code.
    """
    if SUPPORTS_SIGNAL_CONDITIONS and returncode < 0:
        return ExitCondition.signal(-returncode)
    return _from_exit_status(returncode)


def classify_wait_status(status: int) -> ExitCondition:
    """Classify a raw status as returned by ``os.waitpid`` (POSIX only)."""
    if not SUPPORTS_SIGNAL_CONDITIONS:
        return _from_exit_status(status)
    if os.WIFSIGNALED(status):
        return ExitCondition.signal(os.WTERMSIG(status))
    if os.WIFEXITED(status):
        return _from_exit_status(os.WEXITSTATUS(status))
    return ExitCondition.failure()
