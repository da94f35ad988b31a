"""
Utility functions for the resumechain library.
"""

from __future__ import annotations

import inspect
import os
from collections.abc import Callable
from typing import Any

# Environment variable to control debug logging
DEBUG_CHAIN = os.environ.get("RESUMECHAIN_DEBUG", "").lower() in ("1", "true", "yes")

_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


def _safe_signature(target: Any) -> inspect.Signature | None:
    try:
        return inspect.signature(target)
    except (TypeError, ValueError):
        return None


def step_name(step: Callable[..., Any]) -> str:
    return getattr(step, "__qualname__", None) or getattr(step, "__name__", None) or repr(step)


def adapt_step(step: Callable[..., Any]) -> Callable[[Any, Any], Any]:
    """Return a caller that invokes ``step`` with as many arguments as it takes.

    Steps are called as ``step(value, nested)``. Steps declaring fewer positional
    parameters get fewer arguments, and a defaulted second parameter keeps its
    default while there is no nested progress to hand back.
    """

    if not callable(step):
        raise TypeError(f"step must be callable, got {type(step).__name__}")

    signature = _safe_signature(step)
    if signature is None:
        return lambda value, nested: step(value)

    params = [p for p in signature.parameters.values() if p.kind in _POSITIONAL]
    variadic = any(
        p.kind == inspect.Parameter.VAR_POSITIONAL
        for p in signature.parameters.values()
    )

    if variadic:
        return lambda value, nested: (
            step(value) if nested is None else step(value, nested)
        )
    if not params:
        return lambda value, nested: step()
    if len(params) == 1:
        return lambda value, nested: step(value)

    nested_has_default = params[1].default is not inspect.Parameter.empty

    def call(value: Any, nested: Any) -> Any:
        if nested is None and nested_has_default:
            return step(value)
        return step(value, nested)

    return call


__all__ = ["DEBUG_CHAIN", "adapt_step", "step_name"]
