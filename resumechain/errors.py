from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from resumechain.interrupt import Interrupt


class ChainCancelledError(Exception):
    """Raised when a cancellation token fires before a step settles.

    Attributes:
        reason: Whatever was passed to ``CancellationToken.cancel``.
    """

    def __init__(self, message: str = "chain cancelled", reason: Any = None) -> None:
        self.reason = reason
        super().__init__(message)


class ChainInterrupted(Exception):
    """Raised by ``Chain.exec(throw_on_interrupt=True)`` when the chain suspends."""

    def __init__(self, interrupt: Interrupt) -> None:
        self.interrupt = interrupt
        super().__init__(f"chain interrupted: {interrupt.reason!r}")

    @property
    def reason(self) -> Any:
        return self.interrupt.reason

    @property
    def state(self) -> Any:
        return self.interrupt.state


__all__ = ["ChainCancelledError", "ChainInterrupted"]
