# stalefsm/core/state_machine.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
import inspect
import logging
import math
import time
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Generic, Iterable, List, Optional, Set, Tuple, Type

from stalefsm.core.base import END_STATE, resolve_name
from stalefsm.core.context import CancellationToken, TContext, merge_context
from stalefsm.core.dependencies import Dependency, DependencyMap
from stalefsm.core.errors import (
    DEFAULT_BENIGN_ERRORS,
    CriticalError,
    StaleReferenceError,
    StateMachineTimeoutError,
    is_stale_handle_error,
)
from stalefsm.core.provide import Goto, Next, Previous, ProvideComplete, ProvideConfig, Repeat
from stalefsm.core.states import State, StateData, StateFunction
from stalefsm.core.timers import Timer
from stalefsm.interfaces.types import ErrorTypes, Milliseconds, NameOrFunction, StaleClassifier, StateName, TransitionListener

_logger = logging.getLogger("stalefsm.machine")


def _now_ms() -> Milliseconds:
    return time.monotonic() * 1000


class StateMachine(Generic[TContext]):
    """
    Drives a linear list of states that can recover from stale dependencies.

    The first registered state is the entry state. Moving past the last one
    reaches the terminal pseudo-state ``"end"``, which finishes the run. When a
    state fails because one of its dependencies went stale, the machine jumps
    back to the state that provided that dependency and carries on from there.

    Every attempt spends the measured wall-clock time from one shared budget,
    seeded from ``context.timeout``. Timers are measured against the same budget.

    Example:
        deps = declare_dependencies(form=ResourceDependency())
        machine = StateMachine(Context(timeout=30_000), deps)
        machine.state(open_form).state(submit_form)
        await machine.start()
    """

    def __init__(
        self,
        context: TContext,
        dependencies: DependencyMap,
        *,
        is_stale: Optional[StaleClassifier] = None,
        benign_errors: Optional[Iterable[Type[BaseException]]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """
        :param context: User context; ``context.timeout`` seeds the time budget (ms).
        :param dependencies: Declared dependencies, keyed by their names.
        :param is_stale: Classifier for stale handle errors raised outside a proxy.
        :param benign_errors: Handle failures after which the state is simply retried.
        :param logger: Logger for run information; also handed to transition listeners.
        """
        self._context = context
        self._budget: Milliseconds = context.timeout
        self._timers: Dict[str, Timer] = {}
        self._is_stale = is_stale or is_stale_handle_error
        self._dependencies: Dict[str, Dependency] = {}
        for key, dependency in dependencies.items():
            if dependency.name != key:
                raise CriticalError(f'dependency "{dependency.name}" is declared under key "{key}"')
            dependency.bind_classifier(self._is_stale)
            self._dependencies[key] = dependency
        self._dependency_view = MappingProxyType(self._dependencies)

        self._states: List[State] = []
        self._name_map: Dict[StateName, int] = {}
        self._index = 0
        self._iterations = 0
        self._time_on_state: Milliseconds = 0
        self._reached: Set[StateName] = set()

        self._running = False
        self._token = CancellationToken()
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[TransitionListener] = []
        self._pending_listeners: Set[asyncio.Future] = set()

        self._benign_errors: ErrorTypes = (
            tuple(benign_errors) if benign_errors is not None else DEFAULT_BENIGN_ERRORS
        )
        self._logger = logger or _logger

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def context(self) -> TContext:
        return self._context

    def update_context(self, **patch: Any) -> None:
        """Shallow-merge ``patch`` into the context. Values should be immutable."""
        self._context = merge_context(self._context, patch)

    @property
    def dependencies(self) -> DependencyMap:
        """Read-only live view of the current dependencies."""
        return self._dependency_view

    @property
    def states(self) -> Tuple[State, ...]:
        return tuple(self._states)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_state(self) -> str:
        """Name of the current state, or ``"end"`` once the terminal state is reached."""
        return self._state_name(self._index)

    @property
    def time_on_current_state(self) -> Milliseconds:
        return self._time_on_state

    @property
    def iterations_on_current_state(self) -> int:
        return self._iterations

    @property
    def reached_states(self) -> FrozenSet[str]:
        return frozenset(self._reached)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def timeout(self) -> Milliseconds:
        """Remaining time budget in milliseconds."""
        return self._budget

    @timeout.setter
    def timeout(self, value: Milliseconds) -> None:
        if self._running:
            raise CriticalError("cannot change timeout when the state machine is running")
        self._budget = value

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def create_timer(self, name: NameOrFunction, timeout: Milliseconds) -> None:
        """
        Create or replace a timer that elapses once ``timeout`` ms of budget are spent.
        """
        self._timers[resolve_name(name)] = Timer(self._budget, timeout)

    def clear_timer(self, name: NameOrFunction) -> None:
        self._timers.pop(resolve_name(name), None)

    def has_timer(self, name: NameOrFunction) -> bool:
        return resolve_name(name) in self._timers

    def has_elapsed_timer(self, name: NameOrFunction) -> bool:
        """
        :raises CriticalError: If no timer with that name exists.
        """
        key = resolve_name(name)
        timer = self._timers.get(key)
        if timer is None:
            raise CriticalError(f"unknown timer {key}")
        return timer.elapsed(self._budget)

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def add_state(self, data: StateData) -> "StateMachine[TContext]":
        """Register a state from its definition. Registration order is execution order."""
        state = State(data, len(self._states))
        if state.name in self._name_map:
            self._logger.warning(f'state name "{state.name}" registered twice, transitions use the latest')
        self._states.append(state)
        self._name_map[state.name] = state.index
        return self

    def state(self, function: StateFunction, timeout: Optional[Milliseconds] = None) -> "StateMachine[TContext]":
        """
        Register a state named after its function.

        The function gets a Provide and the dependency map every cycle. It must
        either provide dependencies with ``provide.dependency(dep, value)`` or
        declare ``provide.nothing()``, then choose ``next()``, ``previous()``,
        ``transition(name)`` or, after ``nothing()``, ``try_again()``.

        :param timeout: Milliseconds the state may take in total.
        """
        return self.add_state(StateData(function=function, timeout=timeout))

    def named_state(
        self, name: str, function: StateFunction, timeout: Optional[Milliseconds] = None
    ) -> "StateMachine[TContext]":
        """Register a state under an explicit name. See :meth:`state`."""
        return self.add_state(StateData(function=function, name=name, timeout=timeout))

    # ------------------------------------------------------------------
    # Listeners and waiting
    # ------------------------------------------------------------------

    def on_transition(self, callback: TransitionListener) -> None:
        """
        Register ``callback(machine, logger)``, called after every committed
        transition. Coroutine results are scheduled but never awaited by the loop.
        """
        self._listeners.append(callback)

    async def wait_until_reached(self, name: NameOrFunction, timeout: Optional[Milliseconds] = None) -> None:
        """
        Wait until the named state has been reached at least once. Returns quietly
        on timeout, and may report a state reached in the past, so check
        :attr:`current_state` afterwards.

        :param timeout: Milliseconds to wait; unbounded when omitted.
        """
        key = resolve_name(name)
        end = _now_ms() + (timeout if timeout is not None else math.inf)
        while key not in self._reached and _now_ms() < end:
            await asyncio.sleep(0)

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def start(self, token: Optional[CancellationToken] = None) -> asyncio.Task:
        """
        Schedule the run loop on the current event loop.

        :param token: Optional cancellation token; :meth:`stop` cancels it as well.
        :return: Task resolving when the end state is reached or the machine is
            stopped, and failing with the fatal error otherwise.
        :raises CriticalError: If the machine is already running.
        """
        if self._running or (self._task is not None and not self._task.done()):
            raise CriticalError("state machine is already running")
        self._token = token or CancellationToken()
        self._reached.add(self.current_state)
        self._task = asyncio.ensure_future(self.run(self._token))
        return self._task

    async def wait(self) -> None:
        """
        Wait for the task created by :meth:`start`.

        :raises CriticalError: If the machine was never started.
        """
        if self._task is None:
            raise CriticalError("state machine is not running")
        await self._task

    def stop(self) -> None:
        """Stop before the next cycle; a state function already running finishes first."""
        self._token.cancel()

    async def run(self, token: Optional[CancellationToken] = None) -> None:
        """
        Run the loop in the calling task.

        :raises StateMachineTimeoutError: If a state or the whole budget times out.
        :raises CriticalError: If the workflow is authored incorrectly.
        """
        if self._running:
            raise CriticalError("state machine is already running")
        if token is not None:
            self._token = token
        self._running = True
        self._reached.add(self.current_state)
        try:
            await self._loop()
        finally:
            self._running = False
            self._log_time_on_state()

    async def _loop(self) -> None:
        while not self._token.cancelled and self._budget > 0:
            if self._index >= len(self._states):
                self._logger.info("state machine has reached the end state")
                return

            state = self._states[self._index]
            if state.timeout <= self._time_on_state:
                raise StateMachineTimeoutError(
                    f'timed out on state "{state.name}", checkpoint number {self._index + 1} (indexing from 1)'
                )

            started = _now_ms()
            try:
                result = await state.execute(self._dependency_view, self._provide_config())
            except Exception as error:
                delta = _now_ms() - started
                self._budget -= delta
                self._recover(error, state, delta)
                continue

            delta = _now_ms() - started
            self._time_on_state += delta
            self._iterations += 1
            self._budget -= delta
            self._commit(result)

        if self._token.cancelled and self._budget > 0:
            self._logger.info(f"stopped the state machine on state {self.current_state}")
            return

        if self._index != len(self._states):
            self._logger.error(f"timed out the state machine on state {self.current_state}")
            raise StateMachineTimeoutError(f"timed out the state machine on state {self.current_state}")

    def _provide_config(self) -> ProvideConfig:
        return ProvideConfig(context=self._context, timers=MappingProxyType(dict(self._timers)), budget=self._budget)

    def _commit(self, result: ProvideComplete) -> None:
        """Apply a completed cycle. Everything is validated before anything changes."""
        updates = result.updates
        unknown = [key for key in updates if key not in self._dependencies]
        if unknown:
            raise CriticalError(f'unknown dependency "{unknown[0]}" provided in state "{result.provider.name}"')
        context = merge_context(self._context, result.context_patch)
        target = self._target_index(result)

        self._dependencies.update(updates)
        for name in result.stale_timers:
            self.clear_timer(name)
        for request in result.new_timers:
            self.create_timer(request.name, request.timeout)
        self._context = context
        result.seal()

        if target is not None:
            self._change_index(target)

    def _target_index(self, result: ProvideComplete) -> Optional[int]:
        decision = result.decision
        if isinstance(decision, Repeat):
            return None
        if isinstance(decision, Next):
            return self._index + 1
        if isinstance(decision, Previous):
            if self._index - 1 < 0:
                raise CriticalError("cannot go to previous checkpoint")
            return self._index - 1
        if isinstance(decision, Goto):
            index = self._name_map.get(decision.name)
            if index is None:
                raise CriticalError(f'state "{decision.name}" does not exist')
            return index
        raise CriticalError("unknown state transition")

    def _recover(self, error: Exception, state: State, delta: Milliseconds) -> None:
        """
        Decide what a failed attempt means: jump to a provider, retry, or give up.

        :raises Exception: The original error, when it cannot be recovered.
        """
        if isinstance(error, StaleReferenceError):
            dependency = error.dependency
            self._log_stale(dependency, state)
            if not dependency.has_provider:
                self._logger.error(f"cannot recover {dependency.display_name} from stale state in state {state.name}")
                raise error
            self._change_index(dependency.provider.index)
        elif isinstance(error, (CriticalError, StateMachineTimeoutError)):
            self._logger.error(f"critical error in state {state.name}: {error}")
            raise error
        elif isinstance(error, self._benign_errors):
            self._time_on_state += delta
            self._logger.debug(f"retrying state {state.name} after {type(error).__name__}")
        elif self._is_stale(error):
            self._time_on_state += delta
            self._logger.warning(f"unprotected handle is located in {state.name}")
        else:
            self._logger.error(f"non fixable unknown error in {state.name}", exc_info=error)
            raise error

    def _log_stale(self, dependency: Dependency, state: State) -> None:
        handle = getattr(dependency, "debug_handle", None)
        if handle is not None:
            self._logger.info(
                f"stale handle {type(handle).__name__} with name {dependency.display_name} located in {state.name}"
            )
        else:
            self._logger.info(f"stale dependency with name {dependency.display_name} located in {state.name}")

    def _change_index(self, index: int) -> None:
        """
        Commit a transition: reset per-state counters, record the target as
        reached, then notify listeners.
        """
        if index < 0:
            raise CriticalError("cannot go to previous checkpoint")

        new_name = self._state_name(index)
        self._log_time_on_state()
        self._logger.info(f"transition from {self.current_state} to {new_name}")
        self._index = index
        self._time_on_state = 0
        self._iterations = 0
        self._reached.add(new_name)
        self._notify()

    def _notify(self) -> None:
        for callback in self._listeners:
            try:
                result = callback(self, self._logger)
            except Exception:
                self._logger.exception("transition listener failed")
                continue
            if inspect.isawaitable(result):
                future = asyncio.ensure_future(result)
                self._pending_listeners.add(future)
                future.add_done_callback(self._listener_done)

    def _listener_done(self, future: asyncio.Future) -> None:
        self._pending_listeners.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self._logger.error("transition listener failed", exc_info=error)

    def _state_name(self, index: int) -> str:
        return self._states[index].name if index < len(self._states) else END_STATE

    def _log_time_on_state(self) -> None:
        self._logger.info(
            f"executed function in state {self.current_state} x{self._iterations} times "
            f"and spent {self._time_on_state:.0f}ms"
        )
