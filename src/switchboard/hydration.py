"""Lazy platform objects.

Discord does not always deliver full objects with an event. A raw
reaction only carries ids; the message, the reaction on it, and the
acting user may have to be fetched. Such values are modelled as either
a ``Stub`` (an id plus the coroutine that fetches the full object) or a
``Full`` value, and must go through ``resolve`` before use.

``resolve`` performs no retry and no logging. Fetch errors propagate
unchanged to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar, Union

T = TypeVar("T")


class SwitchboardError(Exception):
    """Base class for Switchboard errors."""


class HydrationError(SwitchboardError):
    """A stub could not be resolved into a full object."""


@dataclass(frozen=True)
class Stub(Generic[T]):
    """An unresolved object: its identifier and how to fetch it."""

    id: int
    fetch: Callable[[], Awaitable[T]]


@dataclass(frozen=True)
class Full(Generic[T]):
    """A fully populated object."""

    value: T

    @property
    def id(self) -> int | None:
        return getattr(self.value, "id", None)


Lazy = Union[Stub[T], Full[T]]


def is_partial(lazy: Lazy[T]) -> bool:
    """Return True if the value still needs fetching."""
    return isinstance(lazy, Stub)


async def resolve(lazy: Lazy[T]) -> T:
    """Return the full object, fetching it if it is a stub.

    Args:
        lazy: A stub or full value.

    Returns:
        The fully populated object.

    Raises:
        HydrationError: If the fetch primitive returned nothing.
        Exception: Whatever the fetch primitive raised.
    """
    if isinstance(lazy, Full):
        return lazy.value

    value = await lazy.fetch()
    if value is None:
        raise HydrationError(f"fetch returned nothing for {lazy.id}")
    return value
