# stalefsm/core/provide.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Union

from stalefsm.core.base import resolve_name
from stalefsm.core.dependencies import Dependency
from stalefsm.core.errors import CriticalError
from stalefsm.core.timers import Timer, TimerRequest
from stalefsm.interfaces.types import DependencyID, Milliseconds, NameOrFunction

if TYPE_CHECKING:
    from stalefsm.core.context import BaseContext
    from stalefsm.core.states import State


@dataclass(frozen=True)
class Repeat:
    """Run the same state again without resetting its counters."""


@dataclass(frozen=True)
class Next:
    """Move to the state registered after the current one."""


@dataclass(frozen=True)
class Previous:
    """Move to the state registered before the current one."""


@dataclass(frozen=True)
class Goto:
    """Move to the state registered under ``name``."""

    name: str


Decision = Union[Repeat, Next, Previous, Goto]


class _Stage(Enum):
    START = auto()
    DEPENDENCIES = auto()
    NOTHING = auto()
    COMPLETE = auto()
    SEALED = auto()


@dataclass(frozen=True)
class ProvideConfig:
    """Read-only view of the machine a builder may consult while its state runs."""

    context: "BaseContext"
    timers: Mapping[str, Timer]
    budget: Milliseconds


@dataclass
class _Cycle:
    """Accumulator shared by all stages of one builder."""

    provider: "State"
    config: ProvideConfig
    stage: _Stage = _Stage.START
    decision: Optional[Decision] = None
    updates: Dict[DependencyID, Dependency] = field(default_factory=dict)
    new_timers: List[TimerRequest] = field(default_factory=list)
    stale_timers: List[str] = field(default_factory=list)
    context_patch: Dict[str, Any] = field(default_factory=dict)

    def advance(self, expected: _Stage, new: _Stage, verb: str) -> None:
        if self.stage is not expected:
            raise CriticalError(
                f"builder used out of order: {verb}() is not allowed after "
                f"{self.stage.name.lower()} in state \"{self.provider.name}\""
            )
        self.stage = new

    def write(self, dependency: Dependency, value: Any) -> None:
        key = dependency.id
        if key in self.updates:
            raise CriticalError(f'Cannot provide dependency with id "{key}" again.')
        self.updates[key] = dependency.set(value, self.provider)

    def complete(self, expected: _Stage, decision: Decision, verb: str) -> "ProvideComplete":
        self.advance(expected, _Stage.COMPLETE, verb)
        self.decision = decision
        return ProvideComplete(self)


class _Stageable:
    def __init__(self, cycle: _Cycle) -> None:
        self._cycle = cycle


class _Transitions(_Stageable):
    """Terminal verbs shared by the dependency and nothing stages."""

    _stage: _Stage

    def next(self) -> "ProvideComplete":
        """Transition to the next state."""
        return self._cycle.complete(self._stage, Next(), "next")

    def previous(self) -> "ProvideComplete":
        """Transition to the previous state."""
        return self._cycle.complete(self._stage, Previous(), "previous")

    def transition(self, name: NameOrFunction) -> "ProvideComplete":
        """
        Transition to a state by name.

        :param name: The state's name, or the function an unnamed state wraps.
        """
        return self._cycle.complete(self._stage, Goto(resolve_name(name)), "transition")


class Provide(_Stageable):
    """
    Entry stage of the per-cycle builder handed to every state function.

    A state function first either provides dependencies or declares it provides
    nothing, then picks exactly one transition, then may attach timers and a
    context patch:

        return provide.dependency(deps["form"], form).next().create_timer("poll", 500)
        return provide.nothing().try_again()
    """

    def __init__(self, provider: "State", config: ProvideConfig) -> None:
        super().__init__(_Cycle(provider=provider, config=config))

    @property
    def context(self) -> "BaseContext":
        """
        The machine context as it was when this cycle started. Patches queued
        with :meth:`ProvideComplete.update_context` are not visible here; they
        apply when the cycle commits.
        """
        return self._cycle.config.context

    @property
    def decision(self) -> Decision:
        """The chosen transition; only readable once a terminal verb was called."""
        if self._cycle.decision is None:
            raise CriticalError("unexpected state")
        return self._cycle.decision

    def has_timer(self, name: NameOrFunction) -> bool:
        return resolve_name(name) in self._cycle.config.timers

    def has_elapsed_timer(self, name: NameOrFunction) -> bool:
        """False for timers that do not exist."""
        timer = self._cycle.config.timers.get(resolve_name(name))
        return timer is not None and timer.elapsed(self._cycle.config.budget)

    def dependency(self, dependency: Dependency, value: Any) -> "DependencyProvider":
        """
        Provide a new value for ``dependency``. Chainable.

        :raises CriticalError: If the dependency was already written this cycle.
        """
        self._cycle.advance(_Stage.START, _Stage.DEPENDENCIES, "dependency")
        self._cycle.write(dependency, value)
        return DependencyProvider(self._cycle)

    def nothing(self) -> "ProvideNothing":
        """Declare that this cycle provides no dependencies."""
        self._cycle.advance(_Stage.START, _Stage.NOTHING, "nothing")
        return ProvideNothing(self._cycle)


class DependencyProvider(_Transitions):
    """Stage reached after providing at least one dependency."""

    _stage = _Stage.DEPENDENCIES

    def dependency(self, dependency: Dependency, value: Any) -> "DependencyProvider":
        self._cycle.advance(_Stage.DEPENDENCIES, _Stage.DEPENDENCIES, "dependency")
        self._cycle.write(dependency, value)
        return self


class ProvideNothing(_Transitions):
    """Stage reached after provide.nothing(); the only stage that may repeat."""

    _stage = _Stage.NOTHING

    def try_again(self) -> "ProvideComplete":
        """Run the same state again."""
        return self._cycle.complete(self._stage, Repeat(), "try_again")


class ProvideComplete(_Stageable):
    """
    Final stage. Carries the transition decision and the side effects the driver
    commits once the state function returns.
    """

    def _require_open(self, verb: str) -> None:
        if self._cycle.stage is not _Stage.COMPLETE:
            raise CriticalError(f"builder used out of order: {verb}() after the cycle was committed")

    def create_timer(self, name: NameOrFunction, timeout: Milliseconds) -> "ProvideComplete":
        """
        Create (or replace) a timer when this cycle commits.

        :param timeout: Budget to spend before the timer counts as elapsed.
        """
        self._require_open("create_timer")
        self._cycle.new_timers.append(TimerRequest(resolve_name(name), timeout))
        return self

    def clear_timer(self, name: NameOrFunction) -> "ProvideComplete":
        self._require_open("clear_timer")
        self._cycle.stale_timers.append(resolve_name(name))
        return self

    def update_context(self, **patch: Any) -> "ProvideComplete":
        """Shallow-merge ``patch`` into the machine context when this cycle commits."""
        self._require_open("update_context")
        self._cycle.context_patch.update(patch)
        return self

    @property
    def provider(self) -> "State":
        return self._cycle.provider

    @property
    def decision(self) -> Decision:
        return self._cycle.decision

    @property
    def updates(self) -> Mapping[DependencyID, Dependency]:
        return dict(self._cycle.updates)

    @property
    def new_timers(self) -> List[TimerRequest]:
        return list(self._cycle.new_timers)

    @property
    def stale_timers(self) -> List[str]:
        return list(self._cycle.stale_timers)

    @property
    def context_patch(self) -> Mapping[str, Any]:
        return dict(self._cycle.context_patch)

    def belongs_to(self, provide: Provide) -> bool:
        """Whether this result was built from ``provide``."""
        return self._cycle is provide._cycle

    def seal(self) -> None:
        """Close the builder once the driver has committed it."""
        self._require_open("seal")
        self._cycle.stage = _Stage.SEALED
