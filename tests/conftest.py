"""
Pytest configuration for resumechain tests.

Provides the small sample chains most tests compose: constant chains, a slow
and a fast async chain, a chain that always fails and one that always
suspends. Timings are module constants so tests can wait out slow branches.
"""

import asyncio
from collections.abc import Iterator
from typing import Any

import pytest
from loguru import logger

from resumechain import Chain, Interrupt


SLOW = 0.04
FAST = 0.01


@pytest.fixture
def one() -> Chain[int]:
    return Chain.resolve(1)


@pytest.fixture
def two() -> Chain[int]:
    return Chain.resolve(2)


@pytest.fixture
def slow() -> Chain[str]:
    async def slow_step() -> str:
        await asyncio.sleep(SLOW)
        return "slow"

    return Chain.new(slow_step)


@pytest.fixture
def fast() -> Chain[str]:
    async def fast_step() -> str:
        await asyncio.sleep(FAST)
        return "fast"

    return Chain.new(fast_step)


@pytest.fixture
def error() -> Chain[Any]:
    def failing_step() -> Any:
        raise ValueError("boom")

    return Chain.new(failing_step)


@pytest.fixture
def interrupt() -> Chain[Any]:
    return Chain.new(lambda: Interrupt("paused"))


@pytest.fixture
def log_messages() -> Iterator[list[str]]:
    """Capture resumechain's debug log for the duration of a test."""

    messages: list[str] = []
    logger.enable("resumechain")
    sink_id = logger.add(lambda message: messages.append(str(message)), level="DEBUG")
    try:
        yield messages
    finally:
        logger.remove(sink_id)
        logger.disable("resumechain")
