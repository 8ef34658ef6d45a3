# core/types/result.py
"""Minimal Ok/Err result type used at the broker boundary."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, NoReturn, TypeGuard, TypeVar

T = TypeVar('T')
E = TypeVar('E')


class UnwrapError(Exception):
    """Raised when unwrapping the wrong side of a Result."""

    def __init__(self, result: Ok[Any] | Err[Any], message: str) -> None:
        self.result = result
        super().__init__(message)


@dataclass(slots=True, frozen=True)
class Ok(Generic[T]):
    ok_value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.ok_value

    def unwrap_err(self) -> NoReturn:
        raise UnwrapError(self, 'Called unwrap_err on an Ok value')


@dataclass(slots=True, frozen=True)
class Err(Generic[E]):
    err_value: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        raise UnwrapError(self, f'Called unwrap on an Err value: {self.err_value!r}')

    def unwrap_err(self) -> E:
        return self.err_value


type Result[T, E] = Ok[T] | Err[E]


def is_ok(result: Result[T, E]) -> TypeGuard[Ok[T]]:
    return isinstance(result, Ok)


def is_err(result: Result[T, E]) -> TypeGuard[Err[E]]:
    return isinstance(result, Err)
