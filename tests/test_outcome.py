"""Tests for the Completed / Suspended / Failed outcome type."""

import pytest

from resumechain import ChainInterrupted, Completed, Failed, Interrupt, Suspended


def test_completed() -> None:
    outcome = Completed(3)
    assert outcome.is_completed()
    assert not outcome.is_failed()
    assert outcome.unwrap() == 3
    assert outcome.map(lambda x: x + 1) == Completed(4)
    assert bool(outcome)


def test_failed_unwrap_raises_original() -> None:
    error = KeyError("missing")
    outcome = Failed(error)
    assert outcome.is_failed()
    assert outcome.unwrap_or("default") == "default"
    assert outcome.map(lambda x: x) is outcome
    assert not outcome
    with pytest.raises(KeyError) as info:
        outcome.unwrap()
    assert info.value is error


def test_suspended_unwrap_raises_interrupted() -> None:
    interrupt = Interrupt("later", 1)
    outcome = Suspended(interrupt)
    assert outcome.is_suspended()
    assert outcome.reason == "later"
    with pytest.raises(ChainInterrupted) as info:
        outcome.unwrap()
    assert info.value.interrupt is interrupt


def test_interrupt_identity_equality() -> None:
    assert Interrupt("x") != Interrupt("x")
    interrupt = Interrupt("x")
    assert interrupt == interrupt


def test_pair_form() -> None:
    error = OSError("disk")
    assert Completed("v").to_pair() == [True, "v"]
    assert Failed(error).to_pair() == [False, error]
    assert Completed.from_pair([True, "v"]) == Completed("v")
    assert Failed.from_pair((False, error)) == Failed(error)
    with pytest.raises(TypeError):
        Suspended(Interrupt("later")).to_pair()
