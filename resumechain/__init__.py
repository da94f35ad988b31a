"""
resumechain - resumable, composable step pipelines for Python.

A ``Chain`` is an immutable sequence of steps, each consuming the previous
step's value. Any step may return an ``Interrupt`` to pause; the chain then
hands back a ``ChainState`` snapshot from which it resumes later without
re-running completed steps.

Example:
    >>> from resumechain import Chain, ChainState, Interrupt
    >>>
    >>> def charge(order, attempt=0):
    ...     if attempt < 2:
    ...         return Interrupt("payment pending", attempt + 1)
    ...     return {**order, "paid": True}
    >>>
    >>> checkout = Chain.new(validate).then(charge).then(ship)
    >>> result = await checkout.exec_repeatedly(ChainState(value=order))
"""

from loguru import logger

from resumechain.cancellation import CancellationToken, cancellable, current_token
from resumechain.chain import Chain, ErrorHook, Step
from resumechain.errors import ChainCancelledError, ChainInterrupted
from resumechain.handle import Advance, ChainHandle
from resumechain.interrupt import Interrupt
from resumechain.outcome import Completed, Failed, Outcome, Suspended
from resumechain.state import ChainState
from resumechain.utils import DEBUG_CHAIN

__version__ = "0.1.0"

if DEBUG_CHAIN:
    logger.enable("resumechain")
else:
    logger.disable("resumechain")

__all__ = [
    "Advance",
    "CancellationToken",
    "Chain",
    "ChainCancelledError",
    "ChainHandle",
    "ChainInterrupted",
    "ChainState",
    "Completed",
    "ErrorHook",
    "Failed",
    "Interrupt",
    "Outcome",
    "Step",
    "Suspended",
    "cancellable",
    "current_token",
]
