"""exit_testing: run a test body in a child process and check how that process ends."""

from exit_testing.conditions import ExitCondition, classify_returncode, matches
from exit_testing.configuration import Configuration, SpawnHandler
from exit_testing.context import current_test, running_test
from exit_testing.descriptor import ExitTest
from exit_testing.driver import ProcessDriver
from exit_testing.events import Observer, observer
from exit_testing.orchestrator import ExitTestOutcome, ExitTestResult, expect_exit, require_exit
from exit_testing.registry import SourceLocation, exit_test_body, find, register
from exit_testing.runner import Runner, main
from exit_testing.suite import Test, TestCase

__all__ = [
    "Configuration",
    "ExitCondition",
    "ExitTest",
    "ExitTestOutcome",
    "ExitTestResult",
    "Observer",
    "ProcessDriver",
    "Runner",
    "SourceLocation",
    "SpawnHandler",
    "Test",
    "TestCase",
    "classify_returncode",
    "current_test",
    "exit_test_body",
    "expect_exit",
    "find",
    "main",
    "matches",
    "observer",
    "register",
    "require_exit",
    "running_test",
]
