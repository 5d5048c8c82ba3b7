# tests/fakes.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import asyncio
from dataclasses import dataclass
from typing import List

from stalefsm.core.context import BaseContext
from stalefsm.core.errors import StaleHandleError


@dataclass(frozen=True)
class WorkflowContext(BaseContext):
    """Context used across the tests."""

    label: str = ""
    visits: int = 0


class FakeClock:
    """Millisecond clock the tests advance by hand."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class FakeHandle:
    """Stand-in for a handle into a live external system."""

    def __init__(self, name: str = "handle", displayed: bool = True, enabled: bool = True) -> None:
        self.name = name
        self.displayed = displayed
        self.enabled = enabled
        self.stale = False
        self.clicks = 0

    def _ensure_live(self) -> None:
        if self.stale:
            raise StaleHandleError(f"{self.name} is gone")

    def is_displayed(self) -> bool:
        self._ensure_live()
        return self.displayed

    def is_enabled(self) -> bool:
        self._ensure_live()
        return self.enabled

    def click(self) -> None:
        self._ensure_live()
        self.clicks += 1

    async def fetch_text(self) -> str:
        await asyncio.sleep(0)
        self._ensure_live()
        return f"text of {self.name}"

    def __repr__(self) -> str:
        return f"FakeHandle({self.name!r})"


class AsyncFakeHandle(FakeHandle):
    """Handle whose probes are coroutines."""

    async def is_displayed(self) -> bool:
        await asyncio.sleep(0)
        return super().is_displayed()

    async def is_enabled(self) -> bool:
        await asyncio.sleep(0)
        return super().is_enabled()


class TransitionRecorder:
    """Transition listener remembering what the machine looked like when it fired."""

    def __init__(self) -> None:
        self.seen: List[tuple] = []

    def __call__(self, machine, logger) -> None:
        self.seen.append(
            (
                machine.current_state,
                machine.current_state in machine.reached_states,
                machine.iterations_on_current_state,
                machine.time_on_current_state,
            )
        )

    @property
    def states(self) -> List[str]:
        return [entry[0] for entry in self.seen]
