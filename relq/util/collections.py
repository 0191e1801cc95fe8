"""Provides utilities to work with arbitrary collections like lists, sets and tuples."""

from __future__ import annotations

import typing
from collections.abc import Collection, Iterable, Mapping

T = typing.TypeVar("T")


def flatten(xs: Iterable[Iterable[T] | T]) -> list[T]:
    """Transforms a nested list into a flat list: ``[[1, 2], [3]]`` is turned into ``[1, 2, 3]``

    Scalar elements (including strings and tuples) are preserved as-is. Elements of lists are extracted and added to the
    resulting list. Nested lists are treated as scalar elements and are not flattened recursively.

    Notice that tuples are not flattened, since relq uses them to model ``(column, alias)`` pairs.
    """
    flattened = []
    for nested in xs:
        if isinstance(nested, list):
            flattened.extend(nested)
        else:
            flattened.append(nested)
    return flattened


def simplify(obj: Iterable[T] | T) -> T | Iterable[T]:
    """Unwraps containers containing just a single element.

    If the object contains multiple elements, nothing happens.

    Parameters
    ----------
    obj : Iterable[T]
        The object to simplify

    Returns
    -------
    T
        For a singular collection, the object that was contained in that collection. Otherwise `obj` is returned unmodified.

    Examples
    --------
    The singular list ``[1]`` is simplified to ``1``. On the other hand, ``[1,2]`` is returned unmodified.
    """
    if not isinstance(obj, Iterable) or isinstance(obj, (str, bytes, Mapping)):
        return obj

    if not isinstance(obj, Collection):
        obj = list(obj)

    if len(obj) == 1:
        return list(obj)[0]

    return obj
