"""
Three-variant outcome of driving a step or a chain.

Every step boundary settles into exactly one of ``Completed``, ``Suspended`` or
``Failed``. Suspension is ordinary control flow and is never reported as a
failure.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, NoReturn, TypeVar, cast

if TYPE_CHECKING:
    from resumechain.interrupt import Interrupt

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)
U = TypeVar("U")


class Outcome(Generic[T_co]):
    """Sum type of the three ways a step can settle."""

    __slots__ = ()

    def is_completed(self) -> bool:
        return isinstance(self, Completed)

    def is_suspended(self) -> bool:
        return isinstance(self, Suspended)

    def is_failed(self) -> bool:
        return isinstance(self, Failed)

    def unwrap(self) -> T_co:
        """Return the value, raise the stored error, or raise on suspension."""

        if isinstance(self, Completed):
            return self.value
        if isinstance(self, Failed):
            raise self.error
        from resumechain.errors import ChainInterrupted

        raise ChainInterrupted(cast(Suspended, self).interrupt)

    def unwrap_or(self, default: U) -> T_co | U:
        if isinstance(self, Completed):
            return self.value
        return default

    def map(self, f: Callable[[T_co], U]) -> Outcome[U]:
        """Apply ``f`` to a completed value; other variants pass through."""

        if isinstance(self, Completed):
            return Completed(f(self.value))
        return cast(Outcome[U], self)

    def to_pair(self) -> list[Any]:
        """Return ``[True, value]`` or ``[False, error]`` for snapshots.

        Suspensions carry their own snapshot and have no pair form.
        """

        if isinstance(self, Completed):
            return [True, self.value]
        if isinstance(self, Failed):
            return [False, self.error]
        raise TypeError("a Suspended outcome cannot be stored as a pair")

    @staticmethod
    def from_pair(pair: Sequence[Any]) -> Completed[Any] | Failed:
        ok, payload = pair
        if ok:
            return Completed(payload)
        return Failed(payload)

    def __bool__(self) -> bool:
        return self.is_completed()


@dataclass(frozen=True)
class Completed(Outcome[T], Generic[T]):
    """The step (or chain) produced a value."""

    value: T


@dataclass(frozen=True)
class Suspended(Outcome[NoReturn]):
    """The step (or chain) paused; ``interrupt`` carries reason and snapshot."""

    interrupt: Interrupt

    @property
    def reason(self):
        return self.interrupt.reason


@dataclass(frozen=True)
class Failed(Outcome[NoReturn]):
    """The step (or chain) raised."""

    error: Exception


__all__ = ["Completed", "Failed", "Outcome", "Suspended"]
