"""
Progress snapshots for resumable chains.

A ``ChainState`` names the position of the next step to run, the value the
previous step produced and, while that step is paused, whatever partial
progress it reported. Combinators and wrapped sub-chains store further
``ChainState`` objects in ``nested``, so a snapshot is a tree mirroring the
nesting of the composed chains.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from resumechain.outcome import Completed, Failed, Outcome

_STATE_KEY = "$chain"
_OUTCOME_KEY = "$outcome"


@dataclass
class ChainState:
    """Mutable snapshot owned by exactly one ``ChainHandle`` at a time."""

    position: int = 0
    value: Any = None
    nested: Any = None

    def __post_init__(self) -> None:
        if isinstance(self.position, bool) or not isinstance(self.position, int):
            raise TypeError(
                f"position must be int, got {type(self.position).__name__}"
            )
        if self.position < 0:
            raise ValueError(f"position must be >= 0, got {self.position}")

    @property
    def has_nested(self) -> bool:
        return self.nested is not None

    def clone(self) -> ChainState:
        """Copy the snapshot tree. Step values are shared, not copied."""

        return ChainState(self.position, self.value, _clone_nested(self.nested))

    def to_dict(self) -> dict[str, Any]:
        """Convert the snapshot tree into plain dicts and lists.

        Nested snapshots are tagged so :meth:`from_dict` can tell them apart
        from step-defined progress that happens to be a dict. A settled
        ``Completed`` or ``Failed`` value (held by ``recover`` and ``cleanup``
        while they run) is stored as its tagged ``[ok, payload]`` pair.
        """

        data: dict[str, Any] = {
            "position": self.position,
            "value": _encode_value(self.value),
        }
        if self.nested is not None:
            data["nested"] = _encode(self.nested)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChainState:
        if "position" not in data:
            raise ValueError("snapshot dict is missing 'position'")
        return cls(
            position=data["position"],
            value=_decode_value(data.get("value")),
            nested=_decode(data.get("nested")),
        )


def _clone_nested(nested: Any) -> Any:
    if isinstance(nested, ChainState):
        return nested.clone()
    if isinstance(nested, list):
        return [_clone_nested(item) for item in nested]
    if isinstance(nested, tuple):
        return tuple(_clone_nested(item) for item in nested)
    return nested


def _encode(nested: Any) -> Any:
    if isinstance(nested, ChainState):
        return {_STATE_KEY: nested.to_dict()}
    if isinstance(nested, (list, tuple)):
        return [_encode(item) for item in nested]
    return nested


def _encode_value(value: Any) -> Any:
    if isinstance(value, (Completed, Failed)):
        return {_OUTCOME_KEY: value.to_pair()}
    return value


def _decode_value(value: Any) -> Any:
    if isinstance(value, dict) and set(value) == {_OUTCOME_KEY}:
        return Outcome.from_pair(value[_OUTCOME_KEY])
    return value


def _decode(nested: Any) -> Any:
    if isinstance(nested, dict) and set(nested) == {_STATE_KEY}:
        return ChainState.from_dict(nested[_STATE_KEY])
    if isinstance(nested, list):
        return [_decode(item) for item in nested]
    return nested


__all__ = ["ChainState"]
