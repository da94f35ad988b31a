from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from resumechain.chain import Chain

R = TypeVar("R")


@dataclass(eq=False)
class Interrupt(Generic[R]):
    """Returned by a step instead of a value to pause the chain.

    ``state`` is optional partial progress of the step; the handle stores it as
    the snapshot's ``nested`` value and hands it back when the step is resumed.
    ``chain`` is the node that produced the interrupt and is stamped by the
    handle when the step leaves it unset.
    """

    reason: R
    state: Any = None
    chain: Chain[Any] | None = field(default=None, repr=False)

    def __repr__(self) -> str:
        return f"Interrupt(reason={self.reason!r}, state={self.state!r})"


__all__ = ["Interrupt"]
