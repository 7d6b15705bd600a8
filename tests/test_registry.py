"""Tests for SourceLocation and ExitTestRegistry."""

import pytest
from pydantic import ValidationError

from exit_testing.errors import (
    DuplicateExitTestError,
    InvalidExitTestBodyError,
    RegistrySealedError,
)
from exit_testing.registry import (
    ExitTestRegistry,
    SourceLocation,
    exit_test_body,
    get_registry,
    location_of,
)


def _body() -> None:
    pass


async def _async_body() -> None:
    pass


def _loc(line: int = 10, column: int = 0) -> SourceLocation:
    return SourceLocation(file_path="/src/tests/test_things.py", line=line, column=column)


class TestSourceLocation:
    def test_wire_round_trip(self) -> None:
        loc = SourceLocation(file_path="/a dir/ünïcode.py", line=12, column=4)
        assert SourceLocation.from_wire(loc.to_wire()) == loc

    def test_hashable_and_equal_by_value(self) -> None:
        assert hash(_loc()) == hash(_loc())
        assert {_loc(): 1}[_loc()] == 1

    def test_frozen(self) -> None:
        loc = _loc()
        with pytest.raises(ValidationError):
            loc.line = 3  # type: ignore[misc]

    def test_rejects_invalid_line(self) -> None:
        with pytest.raises(ValidationError):
            SourceLocation(file_path="x.py", line=0)

    def test_from_wire_rejects_garbage(self) -> None:
        with pytest.raises(ValidationError):
            SourceLocation.from_wire("not json")

    def test_of_function(self) -> None:
        loc = SourceLocation.of(_body)
        assert loc.file_path.endswith("test_registry.py")
        assert loc.line == _body.__code__.co_firstlineno
        assert loc.column == 0

    def test_str(self) -> None:
        assert str(_loc(line=3, column=2)) == "/src/tests/test_things.py:3:2"


class TestRegister:
    def test_find_returns_registered_body(self) -> None:
        registry = ExitTestRegistry()
        registry.register(_loc(), _body)
        assert registry.find(_loc()) is _body
        assert _loc() in registry
        assert len(registry) == 1

    def test_find_is_idempotent(self) -> None:
        registry = ExitTestRegistry()
        registry.register(_loc(), _body)
        assert registry.find(_loc()) is registry.find(_loc())

    def test_find_missing_returns_none(self) -> None:
        assert ExitTestRegistry().find(_loc()) is None

    def test_column_distinguishes_locations(self) -> None:
        registry = ExitTestRegistry()
        registry.register(_loc(column=0), _body)
        registry.register(_loc(column=1), _async_body)
        assert registry.find(_loc(column=1)) is _async_body

    def test_duplicate_raises(self) -> None:
        registry = ExitTestRegistry()
        registry.register(_loc(), _body)
        with pytest.raises(DuplicateExitTestError):
            registry.register(_loc(), _async_body)
        assert registry.find(_loc()) is _body

    def test_sealed_rejects_registration(self) -> None:
        registry = ExitTestRegistry()
        registry.seal()
        assert registry.sealed
        with pytest.raises(RegistrySealedError):
            registry.register(_loc(), _body)

    def test_rejects_closure(self) -> None:
        captured = 3

        def closure() -> None:
            print(captured)

        with pytest.raises(InvalidExitTestBodyError, match="captures state"):
            ExitTestRegistry().register(_loc(), closure)

    def test_rejects_required_arguments(self) -> None:
        def needs_arg(x: int) -> None:
            pass

        with pytest.raises(InvalidExitTestBodyError, match="no arguments"):
            ExitTestRegistry().register(_loc(), needs_arg)

    def test_accepts_optional_arguments(self) -> None:
        def optional(x: int = 1) -> None:
            pass

        ExitTestRegistry().register(_loc(), optional)


class TestExitTestBodyDecorator:
    def test_registers_at_definition_site(self) -> None:
        registry = ExitTestRegistry()

        @exit_test_body(registry=registry)
        def body() -> None:
            pass

        loc = location_of(body)
        assert loc == SourceLocation.of(body)
        assert registry.find(loc) is body

    def test_column_option(self) -> None:
        registry = ExitTestRegistry()

        @exit_test_body(registry=registry, column=5)
        def body() -> None:
            pass

        assert location_of(body).column == 5
        assert registry.find(SourceLocation.of(body, column=5)) is body

    def test_empty_registry_is_not_replaced_by_default(self) -> None:
        registry = ExitTestRegistry()
        assert len(registry) == 0
        before = len(get_registry())

        @exit_test_body(registry=registry)
        def body() -> None:
            pass

        assert len(registry) == 1
        assert len(get_registry()) == before
        assert location_of(body) not in get_registry()

    def test_location_of_unregistered_function_uses_definition(self) -> None:
        assert location_of(_body) == SourceLocation.of(_body)
