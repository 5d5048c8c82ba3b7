# stalefsm/core/states.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from stalefsm.core.base import resolve, resolve_name
from stalefsm.core.dependencies import DependencyMap
from stalefsm.core.errors import CriticalError
from stalefsm.core.provide import Provide, ProvideComplete, ProvideConfig
from stalefsm.interfaces.types import Milliseconds

StateFunction = Callable[[Provide, DependencyMap], Union[ProvideComplete, Awaitable[ProvideComplete]]]


@dataclass(frozen=True)
class StateData:
    """
    Definition of a state before it is registered with a machine.

    :param function: Called every cycle with a fresh Provide and the dependency map.
        Must return the completed builder, e.g. ``provide.nothing().next()``.
    :param name: Explicit name; defaults to the function's name.
    :param timeout: Milliseconds the state may spend in total before the machine
        gives up on it.
    """

    function: StateFunction
    name: Optional[str] = None
    timeout: Optional[Milliseconds] = None


class State:
    """
    A registered, indexed unit of workflow logic. Created once when the machine
    is built and never mutated afterwards.
    """

    def __init__(self, data: StateData, index: int) -> None:
        self._data = data
        self._index = index
        self._name = data.name if data.name is not None else resolve_name(data.function)

    @property
    def index(self) -> int:
        """Registration index; 0 is the entry state."""
        return self._index

    @property
    def name(self) -> str:
        return self._name

    @property
    def function(self) -> StateFunction:
        return self._data.function

    @property
    def timeout(self) -> Milliseconds:
        """Total time the state may take. Unbounded unless configured."""
        return self._data.timeout if self._data.timeout is not None else math.inf

    async def execute(self, dependencies: DependencyMap, config: ProvideConfig) -> ProvideComplete:
        """
        Call the state function with a fresh builder.

        :param dependencies: Read-only view of the machine's dependencies.
        :param config: What the builder may read from the machine.
        :return: The completed builder returned by the function.
        :raises CriticalError: If the function returns nothing, or anything other
            than the builder it was handed, completed.
        """
        provide = Provide(self, config)
        result: Any = await resolve(self._data.function(provide, dependencies))

        if result is None:
            raise CriticalError(f'None was returned in state "{self._name}".')
        if not isinstance(result, ProvideComplete) or not result.belongs_to(provide):
            raise CriticalError(f'state "{self._name}" did not return its completed builder, got {result!r}.')

        return result

    def __repr__(self) -> str:
        return f"State(index={self._index}, name={self._name!r})"
