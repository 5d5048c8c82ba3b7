# stalefsm/core/timers.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import dataclass

from stalefsm.interfaces.types import Milliseconds, NameOrFunction


class Timer:
    """
    A deadline measured against the machine's counting-down time budget rather
    than the wall clock. Nothing fires on its own; state functions ask whether
    it has elapsed.
    """

    def __init__(self, budget: Milliseconds, timeout: Milliseconds) -> None:
        """
        :param budget: Remaining machine budget at creation time.
        :param timeout: How much budget has to be spent before the timer elapses.
        """
        self._deadline = max(0, budget - timeout)

    @property
    def deadline(self) -> Milliseconds:
        """The remaining-budget value at or below which the timer is elapsed."""
        return self._deadline

    def elapsed(self, budget: Milliseconds) -> bool:
        """
        :param budget: The machine's current remaining budget.
        :return: True once the budget has dropped to the deadline or below.
        """
        return budget <= self._deadline

    def __repr__(self) -> str:
        return f"Timer(deadline={self._deadline})"


@dataclass(frozen=True)
class TimerRequest:
    """A timer a state asked to create when its cycle commits."""

    name: NameOrFunction
    timeout: Milliseconds
