"""Tests for building chains and driving them with exec."""

import asyncio

import pytest
from beartype import beartype

from resumechain import Chain, ChainState, Interrupt


@pytest.mark.asyncio
async def test_empty_chain_is_identity() -> None:
    """A chain with no steps returns its input unchanged."""
    assert await Chain.new().exec() is None
    assert await Chain.new().exec(ChainState(value={"a": 1})) == {"a": 1}


@pytest.mark.asyncio
async def test_single_step() -> None:
    assert await Chain.new(lambda: 1).exec() == 1


def test_then_allocates_new_node() -> None:
    root = Chain.new(lambda x: x + 1)
    child = root.then(lambda x: x * 2)

    assert root.position == 0
    assert root.parent is None
    assert child.position == 1
    assert child.parent is root
    assert len(child) == 2
    assert child.nodes() == [root, child]


def test_invalid_positions_rejected() -> None:
    with pytest.raises(ValueError):
        Chain(lambda x: x, position=3)
    root = Chain.new()
    with pytest.raises(ValueError):
        Chain(lambda x: x, position=5, parent=root)


def test_non_callable_step_rejected() -> None:
    with pytest.raises(TypeError):
        Chain.new(42)  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        Chain.new().then("nope")  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_steps_run_in_order_exactly_once() -> None:
    calls: list[str] = []

    def record(name: str):
        def step(value: list[str]) -> list[str]:
            calls.append(name)
            return [*value, name]

        step.__name__ = name
        return step

    chain = Chain.new(record("a")).then(record("b")).then(record("c"))

    assert await chain.exec(ChainState(value=[])) == ["a", "b", "c"]
    assert calls == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_shared_prefix_is_not_mutated() -> None:
    base = Chain.new(lambda x: x + 1)
    doubled = base.then(lambda x: x * 2)
    negated = base.then(lambda x: -x)

    assert await doubled.exec(ChainState(value=1)) == 4
    assert await negated.exec(ChainState(value=1)) == -2
    assert await base.exec(ChainState(value=1)) == 2
    assert doubled.parent is negated.parent is base


@pytest.mark.asyncio
async def test_rshift_appends() -> None:
    chain = Chain.new(lambda x: x + 1) >> (lambda x: x * 10)
    assert await chain.exec(ChainState(value=2)) == 30


@pytest.mark.asyncio
async def test_async_and_sync_steps_mix() -> None:
    async def add_one(value: int) -> int:
        await asyncio.sleep(0)
        return value + 1

    chain = Chain.new(add_one).then(lambda value: value * 3).then(add_one)
    assert await chain.exec(ChainState(value=0)) == 4


@pytest.mark.asyncio
async def test_resolve() -> None:
    one = Chain.resolve(1)
    assert await one.exec() == 1
    assert Chain.resolve(one) is one
    assert await Chain.resolve(one).exec() == 1


@pytest.mark.asyncio
async def test_new_wraps_chain_as_single_step() -> None:
    inner = Chain.new(lambda x: x + 1).then(lambda x: x * 2)
    outer = Chain.new(inner).then(lambda x: x - 1)

    assert len(outer) == 2
    assert await outer.exec(ChainState(value=3)) == 7


@pytest.mark.asyncio
async def test_then_accepts_chain() -> None:
    inner = Chain.new(lambda x: f"<{x}>")
    chain = Chain.new(lambda x: x.upper()).then(inner)
    assert await chain.exec(ChainState(value="a")) == "<A>"


@pytest.mark.asyncio
async def test_step_returning_chain_fails() -> None:
    chain = Chain.new(lambda: Chain.resolve(1))
    with pytest.raises(TypeError, match="returned a Chain"):
        await chain.exec()


@pytest.mark.asyncio
async def test_nested_state_default_is_kept() -> None:
    """A defaulted nested parameter keeps its default on the first run."""
    seen: list[int] = []

    def step(_: object, attempt: int = 10) -> int:
        seen.append(attempt)
        return attempt

    assert await Chain.new(step).exec() == 10
    assert seen == [10]


@pytest.mark.asyncio
async def test_nested_state_without_default_receives_none() -> None:
    def step(value: int, nested: object) -> tuple[int, object]:
        return value, nested

    assert await Chain.new(step).exec(ChainState(value=5)) == (5, None)


@pytest.mark.asyncio
async def test_variadic_step() -> None:
    def step(*args: object) -> int:
        return len(args)

    assert await Chain.new(step).exec() == 1
    assert await Chain.new(step).exec(ChainState(nested="progress")) == 2


@pytest.mark.asyncio
async def test_beartype_decorated_steps() -> None:
    """Decorated steps keep their signatures, so argument adaptation still works."""

    @beartype
    def parse(value: str) -> int:
        return int(value)

    @beartype
    def bump(value: int, attempt: int = 0) -> int:
        return value + attempt

    chain = Chain.new(parse).then(bump)
    assert await chain.exec(ChainState(value="41")) == 41


@pytest.mark.asyncio
async def test_exec_returns_interrupt_owned_by_chain() -> None:
    chain = Chain.new(lambda x: x + 1).then(lambda x: Interrupt("wait", {"x": x}))

    result = await chain.exec(ChainState(value=1))

    assert isinstance(result, Interrupt)
    assert result.reason == "wait"
    assert result.chain is chain
    assert result.state == ChainState(position=1, value=2, nested={"x": 2})


@pytest.mark.asyncio
async def test_resume_skips_completed_steps() -> None:
    calls: list[str] = []
    gate = {"open": False}

    def first(value: int) -> int:
        calls.append("first")
        return value + 1

    def second(value: int):
        calls.append("second")
        if not gate["open"]:
            return Interrupt("gate closed")
        return value * 2

    chain = Chain.new(first).then(second)
    paused = await chain.exec(ChainState(value=1))
    assert isinstance(paused, Interrupt)

    gate["open"] = True
    assert await chain.exec(paused.state) == 4
    assert calls == ["first", "second", "second"]


def test_run_sync() -> None:
    chain = Chain.new(lambda x: x * 2)
    assert chain.run(ChainState(value=21)) == 42
