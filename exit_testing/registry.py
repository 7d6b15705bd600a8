"""Exit test registry: stable source locations mapped to capture-free bodies.

Bodies are registered once, at import time, before any test runs. The parent
process and the child process import the same modules, so both build the
same table and a source location is enough to find the body again on the
other side of the process boundary.
"""

import inspect
import logging
import os
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from exit_testing.errors import (
    DuplicateExitTestError,
    InvalidExitTestBodyError,
    RegistrySealedError,
)

logger = logging.getLogger(__name__)

ExitTestBody = Callable[[], Any]

_LOCATION_ATTR = "__exit_test_location__"


class SourceLocation(BaseModel):
    """Identity of one exit test call site. Stable across relaunches of the same program."""

    model_config = ConfigDict(frozen=True)

    file_path: str
    line: int = Field(ge=1)
    column: int = Field(default=0, ge=0)

    @classmethod
    def of(cls, func: Callable[..., Any], column: int = 0) -> "SourceLocation":
        """Location of a function's definition."""
        code = getattr(inspect.unwrap(func), "__code__", None)
        if code is None:
            raise InvalidExitTestBodyError(f"{func!r} has no source location")
        return cls(
            file_path=os.path.realpath(code.co_filename),
            line=code.co_firstlineno,
            column=column,
        )

    def to_wire(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_wire(cls, data: str) -> "SourceLocation":
        return cls.model_validate_json(data)

    def __str__(self) -> str:
        return f"{self.file_path}:{self.line}:{self.column}"


def _validate_body(body: ExitTestBody) -> None:
    if not callable(body):
        raise InvalidExitTestBodyError(f"{body!r} is not callable")
    code = getattr(inspect.unwrap(body), "__code__", None)
    if code is not None and code.co_freevars:
        names = ", ".join(code.co_freevars)
        raise InvalidExitTestBodyError(
            f"Exit test body {body!r} captures state from its enclosing scope ({names})"
        )
    try:
        signature = inspect.signature(body)
    except (TypeError, ValueError):
        return
    required = [
        p
        for p in signature.parameters.values()
        if p.default is p.empty and p.kind not in (p.VAR_POSITIONAL, p.VAR_KEYWORD)
    ]
    if required:
        raise InvalidExitTestBodyError(
            f"Exit test body {body!r} must take no arguments"
        )


class ExitTestRegistry:
    """Insert-only table of exit test bodies. Sealed when the run starts."""

    def __init__(self) -> None:
        self._bodies: dict[SourceLocation, ExitTestBody] = {}
        self._sealed = False

    def register(self, location: SourceLocation, body: ExitTestBody) -> None:
        """Add a body. Raises on duplicates, invalid bodies, or after seal()."""
        if self._sealed:
            raise RegistrySealedError(
                f"Cannot register exit test at {location}: the run has already started"
            )
        _validate_body(body)
        existing = self._bodies.get(location)
        if existing is not None:
            raise DuplicateExitTestError(
                f"Exit test at {location} is already registered ({existing!r})"
            )
        self._bodies[location] = body
        logger.debug("Registered exit test at %s", location)

    def find(self, location: SourceLocation) -> ExitTestBody | None:
        """Return the body registered at location, or None."""
        return self._bodies.get(location)

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def __contains__(self, location: object) -> bool:
        return location in self._bodies

    def __len__(self) -> int:
        return len(self._bodies)


_default_registry = ExitTestRegistry()


def get_registry() -> ExitTestRegistry:
    """The process-wide registry used by exit_test_body and the default driver."""
    return _default_registry


def register(location: SourceLocation, body: ExitTestBody) -> None:
    _default_registry.register(location, body)


def find(location: SourceLocation) -> ExitTestBody | None:
    return _default_registry.find(location)


def location_of(body: Callable[..., Any]) -> SourceLocation:
    """Source location a body was registered under, falling back to its definition."""
    location = getattr(body, _LOCATION_ATTR, None)
    if isinstance(location, SourceLocation):
        return location
    return SourceLocation.of(body)


def exit_test_body(
    func: ExitTestBody | None = None,
    *,
    column: int = 0,
    registry: ExitTestRegistry | None = None,
) -> Any:
    """Decorator: register a module-level function as an exit test body.

    Usable bare (``@exit_test_body``) or with options
    (``@exit_test_body(column=1)``) when two bodies share a line.
    """

    def decorate(body: ExitTestBody) -> ExitTestBody:
        location = SourceLocation.of(body, column=column)
        target = registry if registry is not None else _default_registry
        target.register(location, body)
        setattr(body, _LOCATION_ATTR, location)
        return body

    if func is not None:
        return decorate(func)
    return decorate
