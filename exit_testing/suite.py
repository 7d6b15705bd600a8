"""Test and TestCase values the runner executes and events refer to."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

__all__ = ["Test", "TestCase", "TestFunction"]

TestFunction = Callable[..., Awaitable[None] | None]


@dataclass(frozen=True)
class TestCase:
    """One argument set of a parameterized test."""

    __test__ = False

    arguments: tuple[Any, ...] = ()


@dataclass(frozen=True)
class Test:
    """A test function, optionally parameterized over argument tuples."""

    __test__ = False

    name: str
    function: TestFunction = field(compare=False, repr=False)
    arguments: tuple[tuple[Any, ...], ...] | None = None
    display_name: str | None = None

    @classmethod
    def from_function(
        cls,
        function: TestFunction,
        arguments: list[tuple[Any, ...]] | None = None,
        display_name: str | None = None,
    ) -> "Test":
        name = f"{function.__module__}.{function.__qualname__}"
        args = tuple(tuple(a) for a in arguments) if arguments is not None else None
        return cls(name=name, function=function, arguments=args, display_name=display_name)

    @property
    def is_parameterized(self) -> bool:
        return self.arguments is not None

    def cases(self) -> list[TestCase]:
        if self.arguments is None:
            return [TestCase()]
        return [TestCase(arguments=a) for a in self.arguments]
