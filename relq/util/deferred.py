"""Provides memoized, lazily computed values.

Deferred values are used to break declaration-order cycles: relationships between entities can be declared before the
related entity exists and are only computed once they are actually needed.
"""
from __future__ import annotations

import typing
from collections.abc import Callable

T = typing.TypeVar("T")

_Pending = object()


class Deferred(typing.Generic[T]):
    """A deferred value wraps a computation that is performed at most once, on first access.

    Use `force()` to obtain the value. Subsequent calls return the memoized result. If the computation raises an error,
    nothing is memoized and the error propagates to the caller. Forcing the value again re-runs the computation.

    Parameters
    ----------
    producer : Callable[[], T]
        The computation. It does not receive any arguments.
    """

    def __init__(self, producer: Callable[[], T]) -> None:
        self._producer = producer
        self._value: T | object = _Pending

    __slots__ = ("_producer", "_value")

    def realized(self) -> bool:
        """Checks, whether the value has already been computed."""
        return self._value is not _Pending

    def force(self) -> T:
        """Provides the value, computing it if necessary.

        Returns
        -------
        T
            The (memoized) value
        """
        if self._value is _Pending:
            self._value = self._producer()
        return self._value

    def __repr__(self) -> str:
        if self.realized():
            return f"Deferred({self._value!r})"
        return "Deferred(<pending>)"

    def __str__(self) -> str:
        return repr(self)
