# stalefsm/core/dependencies.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Generic, Mapping, NoReturn, Optional, TypeVar

from stalefsm.core.errors import CriticalError, StaleReferenceError
from stalefsm.interfaces.types import DependencyID, StaleClassifier

if TYPE_CHECKING:
    from stalefsm.core.states import State

T = TypeVar("T")

UNSET = object()


class Dependency(Generic[T]):
    """
    A named container for a value produced by exactly one state, its provider.

    Dependencies are immutable once handed to the driver: providing a new value
    yields a new instance via :meth:`set`, which is then swapped into the
    machine's dependency map. An old instance keeps its provider for good.
    """

    def __init__(self, value: T = UNSET, name: Optional[str] = None) -> None:
        """
        :param value: Optional initial value. Left unset when omitted.
        :param name: Optional name. Usually assigned by declare_dependencies().
        """
        self._value = value
        self._name = name
        self._provider: Optional["State"] = None

    @property
    def name(self) -> str:
        if self._name is None:
            raise CriticalError("dependency is missing name")
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self._name = value

    @property
    def id(self) -> DependencyID:
        return self.name

    @property
    def display_name(self) -> str:
        """Name for messages; never raises."""
        return f'"{self._name}"' if self._name is not None else "<unnamed>"

    @property
    def value(self) -> T:
        if self._value is UNSET:
            prefix = f"[{self._name}] " if self._name else ""
            raise CriticalError(f"{prefix}dependency not set.")
        return self._value

    @property
    def ready(self) -> bool:
        """True once a value has been assigned."""
        return self._value is not UNSET

    @property
    def provider(self) -> "State":
        """The state that supplied the current value."""
        if self._provider is None:
            raise CriticalError(f"provider of {self.display_name} is undefined.")
        return self._provider

    @provider.setter
    def provider(self, state: "State") -> None:
        if self._provider is not None:
            raise CriticalError(
                f"provider cannot be set more than once, {self.display_name} has conflicting providers."
            )
        self._provider = state

    @property
    def has_provider(self) -> bool:
        return self._provider is not None

    def invalidate(self) -> NoReturn:
        """
        Drop the value and raise StaleReferenceError pointing at this dependency.

        :raises StaleReferenceError: Always.
        """
        self._value = UNSET
        raise StaleReferenceError(self)

    def bind_classifier(self, is_stale: StaleClassifier) -> None:
        """Adopt the machine's stale classifier. Plain values have nothing to classify."""

    def set(self, value: T, provider: "State") -> "Dependency[T]":
        """
        Return a new dependency holding ``value`` and owned by ``provider``.
        The receiver is left untouched.
        """
        return self._clone(value, provider)

    def _clone(self, value: T, provider: "State") -> "Dependency[T]":
        dependency = type(self)(name=self._name)
        dependency._value = value
        dependency.provider = provider
        return dependency

    def __repr__(self) -> str:
        state = "ready" if self.ready else "unset"
        return f"{type(self).__name__}(name={self._name!r}, {state})"


DependencyMap = Mapping[DependencyID, Dependency]


def declare_dependencies(dependencies: Optional[Mapping[str, Dependency]] = None, **kwargs: Dependency) -> Dict[str, Dependency]:
    """
    Name every dependency after its key so it can be looked up either by name
    or through the handle itself.

    Example:
        deps = declare_dependencies(login_form=ResourceDependency(), user=Dependency())

    :return: A new dict of the same dependencies, each named after its key.
    """
    declared: Dict[str, Dependency] = dict(dependencies or {})
    declared.update(kwargs)
    for key, dependency in declared.items():
        dependency.name = key
    return declared
