"""
ChainHandle: the execution cursor that walks a chain one step at a time.

A handle owns one ``ChainState``. ``advance`` runs the step named by the
snapshot's position and either moves the position forward, records a
suspension, or re-raises the step's failure leaving the snapshot untouched.
The handle is Completed once ``position`` is one past the tip's position.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from loguru import logger

from resumechain.cancellation import (
    CancellationToken,
    activate,
    cancellable,
    current_token,
    deactivate,
)
from resumechain.errors import ChainCancelledError
from resumechain.interrupt import Interrupt
from resumechain.outcome import Completed, Failed, Outcome, Suspended
from resumechain.state import ChainState

if TYPE_CHECKING:
    from resumechain.chain import Chain

T = TypeVar("T")


@dataclass(frozen=True)
class Advance(Generic[T]):
    """Report of a single ``ChainHandle.advance`` call.

    ``done`` is true once the whole chain has completed; ``interrupt`` is set
    when the step just run suspended.
    """

    done: bool
    value: T | None = None
    interrupt: Interrupt | None = None


class ChainHandle(Generic[T]):
    """Mutable cursor over a ``Chain``.

    The handle takes ownership of the snapshot it is given and mutates it in
    place. When ``token`` is omitted the token of the enclosing step (if any)
    is inherited.
    """

    def __init__(
        self,
        chain: Chain[T],
        state: ChainState | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        if state is None:
            state = ChainState()
        if not isinstance(state, ChainState):
            raise TypeError(f"state must be ChainState, got {type(state).__name__}")
        self.chain = chain
        self.token = token if token is not None else current_token()
        self.interrupt: Interrupt | None = None
        self._state = state
        self._check_position(state)

    @property
    def state(self) -> ChainState:
        return self._state

    @state.setter
    def state(self, state: ChainState) -> None:
        if not isinstance(state, ChainState):
            raise TypeError(f"state must be ChainState, got {type(state).__name__}")
        self._check_position(state)
        self._state = state

    @property
    def done(self) -> bool:
        return self._state.position == self.chain.position + 1

    def _check_position(self, state: ChainState) -> None:
        if state.position > self.chain.position + 1:
            raise ValueError(
                f"snapshot position {state.position} is past the end of a chain "
                f"with {self.chain.position + 1} steps"
            )

    async def _run_step(self, node: Chain[Any]) -> Outcome[Any]:
        token = self.token
        state = self._state
        reset = activate(token)
        try:
            if token is not None:
                token.raise_if_cancelled()
            result = node.call(state.value, state.nested)
            if inspect.isawaitable(result):
                result = await cancellable(result, token)
        except Exception as error:
            return Failed(error)
        finally:
            deactivate(reset)

        if isinstance(result, Interrupt):
            return Suspended(result)
        from resumechain.chain import Chain

        if isinstance(result, Chain):
            return Failed(
                TypeError(
                    f"step {node.name} returned a Chain; compose it with "
                    "Chain.then() or Chain.new() instead"
                )
            )
        return Completed(result)

    async def advance(self) -> Advance[T]:
        """Run the next step.

        Failures propagate unchanged and leave the snapshot as it was, so the
        same step can be retried by calling ``advance`` again.
        """

        if self.done:
            return Advance(done=True, value=self._state.value)

        self.interrupt = None
        node = self.chain.node_at(self._state.position)
        outcome = await self._run_step(node)

        if isinstance(outcome, Failed):
            if isinstance(outcome.error, ChainCancelledError):
                logger.debug("step {} cancelled at position {}", node.name, node.position)
            else:
                logger.debug(
                    "step {} failed at position {}: {!r}",
                    node.name,
                    node.position,
                    outcome.error,
                )
            raise outcome.error

        if isinstance(outcome, Suspended):
            raw = outcome.interrupt
            if raw.chain is None:
                raw.chain = node
            self._state.nested = raw.state
            interrupt = Interrupt(raw.reason, self._state.clone(), raw.chain)
            self.interrupt = interrupt
            logger.debug(
                "step {} suspended at position {}: {!r}",
                node.name,
                node.position,
                raw.reason,
            )
            return Advance(done=False, interrupt=interrupt)

        value = outcome.unwrap()
        self._state.value = value
        self._state.nested = None
        self._state.position += 1
        if self.done:
            return Advance(done=True, value=value)
        return Advance(done=False)

    async def until_done(self) -> Completed[T] | Suspended:
        """Advance until the chain completes or a step suspends."""

        self.interrupt = None
        while not (self.done or self.interrupt):
            await self.advance()
        if self.interrupt is not None:
            return Suspended(self.interrupt)
        return Completed(self._state.value)

    async def settle(self) -> Outcome[T]:
        """Like :meth:`until_done`, but failures come back as ``Failed``."""

        try:
            return await self.until_done()
        except Exception as error:
            return Failed(error)

    def __repr__(self) -> str:
        return f"ChainHandle(state={self._state!r}, done={self.done})"


__all__ = ["Advance", "ChainHandle"]
