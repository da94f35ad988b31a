"""
Chain: an immutable, backward-linked sequence of resumable steps.

Every ``then`` allocates a new node that points at its parent, so derived
chains share their common prefix safely. A chain is driven by a
``ChainHandle`` against a ``ChainState``; a step may return an ``Interrupt``
instead of a value to pause, and the snapshot captured at that point resumes
the chain without re-running completed steps.

Example::

    fetch = Chain.new(load_page).then(parse).then(store)
    result = await fetch.exec(ChainState(value=url))
    if isinstance(result, Interrupt):
        saved = result.state.to_dict()
        ...
        result = await fetch.exec(ChainState.from_dict(saved))
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from loguru import logger

from resumechain.cancellation import CancellationToken
from resumechain.errors import ChainCancelledError, ChainInterrupted
from resumechain.handle import ChainHandle
from resumechain.interrupt import Interrupt
from resumechain.outcome import Completed, Failed, Outcome, Suspended
from resumechain.state import ChainState
from resumechain.utils import adapt_step, step_name

T = TypeVar("T")
U = TypeVar("U")

Step = Callable[..., Any]
ErrorHook = Callable[[Any, ChainState], "ChainState | None | Awaitable[ChainState | None]"]

# Branches of ``any``/``race`` keep running after a winner is picked; hold on
# to them until they settle.
_detached: set[asyncio.Future[Any]] = set()


@dataclass(frozen=True, eq=False)
class Chain(Generic[T]):
    """A node of a composition graph; the node itself stands for the chain ending at it."""

    step: Step
    position: int = 0
    parent: Chain[Any] | None = field(default=None, repr=False)
    call: Callable[[Any, Any], Any] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.parent is None:
            if self.position != 0:
                raise ValueError("a root chain node must have position 0")
        elif self.position != self.parent.position + 1:
            raise ValueError(
                f"node position {self.position} does not follow parent "
                f"position {self.parent.position}"
            )
        object.__setattr__(self, "call", adapt_step(self.step))

    @property
    def name(self) -> str:
        return step_name(self.step)

    def __len__(self) -> int:
        return self.position + 1

    def node_at(self, position: int) -> Chain[Any]:
        """Walk parent links back to the node at ``position``."""

        if not 0 <= position <= self.position:
            raise IndexError(f"no step at position {position}")
        node: Chain[Any] = self
        while node.position > position:
            assert node.parent is not None
            node = node.parent
        return node

    def nodes(self) -> list[Chain[Any]]:
        """Return the nodes from the root to this one."""

        nodes: list[Chain[Any]] = []
        node: Chain[Any] | None = self
        while node is not None:
            nodes.append(node)
            node = node.parent
        nodes.reverse()
        return nodes

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def then(self, step: Step | Chain[U]) -> Chain[U]:
        """Append a step (or a whole chain run as one step)."""

        return Chain(_as_step(step), self.position + 1, self)

    def __rshift__(self, step: Step | Chain[U]) -> Chain[U]:
        return self.then(step)

    def recover(self, handler: Step | Chain[U]) -> Chain[T | U]:
        """Run this chain; on failure run ``handler`` with the error as input.

        Suspensions of either this chain or the handler pass through and nest
        their progress, so a recovered chain resumes exactly like any other.
        """

        handler_chain = Chain.new(handler)

        async def resolve_outcome(outcome: Outcome[T], nested: ChainState | None = None):
            if isinstance(outcome, Completed):
                return outcome.value
            assert isinstance(outcome, Failed)
            logger.debug("recovering from {!r}", outcome.error)
            return await handler_chain.exec(_seed(nested, outcome.error))

        return Chain.new(_settle(self)).then(resolve_outcome)

    def cleanup(self, step: Step | Chain[Any]) -> Chain[T]:
        """Run ``step`` after this chain whether it completed or failed.

        The step receives the chain's ``Outcome``. Its own return value is
        dropped; the original value is returned, or the original failure
        re-raised. If the step raises, that error replaces the outcome. If it
        suspends, the outcome is kept in the snapshot for the resumption.
        """

        cleanup_chain = Chain.new(step)

        async def run_cleanup(outcome: Outcome[T], nested: ChainState | None = None):
            result = await cleanup_chain.exec(_seed(nested, outcome))
            if isinstance(result, Interrupt):
                return Interrupt(result.reason, result.state)
            return outcome.unwrap()

        return Chain.new(_settle(self)).then(run_cleanup)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def init(
        self,
        state: ChainState | None = None,
        token: CancellationToken | None = None,
    ) -> ChainHandle[T]:
        return ChainHandle(self, state, token)

    async def exec(
        self,
        state: ChainState | None = None,
        *,
        throw_on_interrupt: bool = False,
        token: CancellationToken | None = None,
    ) -> T | Interrupt:
        """Drive the chain until it completes or suspends.

        Returns the final value, or an ``Interrupt`` owned by this chain whose
        ``state`` resumes it. With ``throw_on_interrupt`` the interrupt is
        raised as ``ChainInterrupted`` instead.
        """

        handle = self.init(state, token)
        outcome = await handle.until_done()
        if isinstance(outcome, Completed):
            return outcome.value
        interrupt = Interrupt(outcome.interrupt.reason, handle.state, self)
        if throw_on_interrupt:
            raise ChainInterrupted(interrupt)
        return interrupt

    async def exec_repeatedly(
        self,
        state: ChainState | None = None,
        *,
        on_error: ErrorHook | None = None,
        token: CancellationToken | None = None,
    ) -> T:
        """Drive the chain, resuming after every suspension until it completes.

        ``on_error`` is offered every failure (the exception) and every
        suspension (the ``Interrupt``) along with the current snapshot. It may
        return a replacement ``ChainState``, return ``None`` to resume from the
        snapshot as it is, or raise to stop. Cancellation is never offered to it.
        Without a hook, suspensions are resumed and failures re-raised.
        """

        handle = self.init(state, token)
        attempt = 0
        while True:
            try:
                advance = await handle.advance()
            except ChainCancelledError:
                raise
            except Exception as error:
                if on_error is None:
                    raise
                attempt += 1
                logger.debug("retry {} after failure {!r}", attempt, error)
                await _apply_hook(handle, on_error, error)
                continue

            if advance.done:
                return advance.value  # type: ignore[return-value]
            if advance.interrupt is None:
                continue

            attempt += 1
            logger.debug("retry {} after interrupt {!r}", attempt, advance.interrupt.reason)
            if on_error is None:
                handle.state = advance.interrupt.state
            else:
                await _apply_hook(handle, on_error, advance.interrupt)

    def run(
        self,
        state: ChainState | None = None,
        *,
        throw_on_interrupt: bool = False,
        token: CancellationToken | None = None,
    ) -> T | Interrupt:
        """Run :meth:`exec` synchronously using ``asyncio.run``."""

        return asyncio.run(
            self.exec(state, throw_on_interrupt=throw_on_interrupt, token=token)
        )

    # ------------------------------------------------------------------
    # Constructors and combinators
    # ------------------------------------------------------------------

    @staticmethod
    def new(step: Step | Chain[U] | None = None) -> Chain[U]:
        """Create a one-step chain. Without a step the chain returns its input."""

        if step is None:
            return Chain(_identity)
        return Chain(_as_step(step))

    @staticmethod
    def resolve(value: U | Chain[U]) -> Chain[U]:
        """Return ``value`` if it is a chain, otherwise a chain that yields it."""

        if isinstance(value, Chain):
            return value

        def resolved(_: Any = None) -> U:
            return value

        return Chain(resolved)

    @staticmethod
    def all(chains: Sequence[Chain[Any]]) -> Chain[list[Any]]:
        """Drive every chain concurrently and return their values in order.

        Each branch starts from the combined step's input and keeps its own
        slot in the nested progress. If any branch suspends the combined step
        suspends with index-aligned lists of reasons and branch snapshots. A
        failing branch fails the whole step. With no chains the value is ``[]``.
        """

        branches = _validate_branches(chains, "all", allow_empty=True)

        async def run_all(initial: Any, nested: list[ChainState] | None = None):
            handles = [
                branch.init(_branch_state(nested, index, initial))
                for index, branch in enumerate(branches)
            ]
            outcomes = await asyncio.gather(*(handle.until_done() for handle in handles))

            if all(isinstance(outcome, Completed) for outcome in outcomes):
                return [outcome.value for outcome in outcomes]

            reasons = [
                outcome.reason if isinstance(outcome, Suspended) else None
                for outcome in outcomes
            ]
            logger.debug("all: suspended branches {}", reasons)
            return Interrupt(reasons, [handle.state for handle in handles])

        return Chain(run_all)

    @staticmethod
    def any(chains: Sequence[Chain[Any]]) -> Chain[Any]:
        """Drive every chain concurrently and return the first completed value.

        Failures are tallied rather than raised. When every branch fails the
        step raises an ``ExceptionGroup`` of the failures. Otherwise, when no
        branch completes, it suspends with index-aligned lists of reasons
        (failure or suspension reason per branch) and branch snapshots.
        Branches still running once a value is chosen are not cancelled; their
        results are ignored.
        """

        branches = _validate_branches(chains, "any")

        async def run_any(initial: Any, nested: list[ChainState] | None = None):
            loop = asyncio.get_running_loop()
            winner: asyncio.Future[Any] = loop.create_future()
            handles = [
                branch.init(_branch_state(nested, index, initial))
                for index, branch in enumerate(branches)
            ]

            async def drive(index: int, handle: ChainHandle[Any]) -> Outcome[Any]:
                outcome = await handle.settle()
                if isinstance(outcome, Failed) and isinstance(
                    outcome.error, ChainCancelledError
                ):
                    raise outcome.error
                if isinstance(outcome, Completed) and not winner.done():
                    logger.debug("any: branch {} completed first", index)
                    winner.set_result(outcome.value)
                return outcome

            settled = asyncio.gather(
                *(drive(index, handle) for index, handle in enumerate(handles))
            )
            try:
                await asyncio.wait({winner, settled}, return_when=asyncio.FIRST_COMPLETED)
            except BaseException:
                settled.cancel()
                raise

            if winner.done():
                _detach(settled)
                return winner.result()

            outcomes = settled.result()
            reasons = [_branch_reason(outcome) for outcome in outcomes]
            failures = [o.error for o in outcomes if isinstance(o, Failed)]
            if len(failures) == len(outcomes):
                raise ExceptionGroup("all branches failed", failures)
            logger.debug("any: no branch completed, reasons {}", reasons)
            return Interrupt(reasons, [handle.state for handle in handles])

        return Chain(run_any)

    @staticmethod
    def race(chains: Sequence[Chain[Any]]) -> Chain[Any]:
        """Like :meth:`any`, but the first branch to complete or fail decides.

        Each branch is wrapped so that a failure becomes an ordinary ``Failed``
        value; the winner is then unwrapped, re-raising a winning failure.
        """

        branches = _validate_branches(chains, "race")
        settled = [Chain.new(_settle(branch)) for branch in branches]

        def unwrap(outcome: Outcome[Any]) -> Any:
            return outcome.unwrap()

        return Chain.any(settled).then(unwrap)

    def __repr__(self) -> str:
        return f"Chain(position={self.position}, step={self.name})"


def _identity(value: Any = None) -> Any:
    return value


def _seed(nested: ChainState | None, value: Any) -> ChainState:
    if isinstance(nested, ChainState):
        return nested.clone()
    return ChainState(0, value)


def _as_step(step: Step | Chain[Any]) -> Step:
    """Turn a chain into a step that drives it against the nested progress."""

    if not isinstance(step, Chain):
        if not callable(step):
            raise TypeError(f"step must be callable or Chain, got {type(step).__name__}")
        return step

    sub_chain = step

    async def run_chain(value: Any, nested: ChainState | None = None):
        return await sub_chain.exec(_seed(nested, value))

    run_chain.__qualname__ = f"run_chain[{sub_chain.name}]"
    return run_chain


def _settle(chain: Chain[T]) -> Step:
    """Step that drives ``chain`` and returns its ``Outcome`` as a plain value.

    Suspensions are passed through as interrupts; cancellation propagates.
    """

    async def settle(previous: Any, nested: ChainState | None = None):
        try:
            result = await chain.exec(_seed(nested, previous))
        except ChainCancelledError:
            raise
        except Exception as error:
            return Failed(error)
        if isinstance(result, Interrupt):
            return result
        return Completed(result)

    settle.__qualname__ = f"settle[{chain.name}]"
    return settle


def _validate_branches(
    chains: Sequence[Chain[Any]], name: str, allow_empty: bool = False
) -> tuple[Chain[Any], ...]:
    if isinstance(chains, Chain) or not isinstance(chains, Sequence):
        raise TypeError(f"Chain.{name} expects a sequence of chains")
    if not chains and not allow_empty:
        raise ValueError(f"Chain.{name} requires at least one chain")
    for index, chain in enumerate(chains):
        if not isinstance(chain, Chain):
            raise TypeError(
                f"Chain.{name} argument {index} must be Chain, got {type(chain).__name__}"
            )
    return tuple(chains)


def _branch_state(nested: Any, index: int, initial: Any) -> ChainState:
    if isinstance(nested, (list, tuple)) and index < len(nested):
        state = nested[index]
        if isinstance(state, ChainState):
            return state.clone()
    return ChainState(0, initial)


def _branch_reason(outcome: Outcome[Any]) -> Any:
    if isinstance(outcome, Suspended):
        return outcome.reason
    if isinstance(outcome, Failed):
        return outcome.error
    return None


def _detach(future: asyncio.Future[Any]) -> None:
    _detached.add(future)
    future.add_done_callback(_forget)


def _forget(future: asyncio.Future[Any]) -> None:
    _detached.discard(future)
    if not future.cancelled():
        future.exception()


async def _apply_hook(handle: ChainHandle[Any], on_error: ErrorHook, problem: Any) -> None:
    replacement = on_error(problem, handle.state)
    if inspect.isawaitable(replacement):
        replacement = await replacement
    if replacement is not None:
        handle.state = replacement


__all__ = ["Chain", "ErrorHook", "Step"]
