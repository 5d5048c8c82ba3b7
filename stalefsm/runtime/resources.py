# stalefsm/runtime/resources.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import functools
import inspect
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Generic, NoReturn, Optional, TypeVar

from stalefsm.core.dependencies import UNSET, Dependency
from stalefsm.core.errors import CriticalError, StaleReferenceError, is_stale_handle_error
from stalefsm.interfaces.types import StaleClassifier

if TYPE_CHECKING:
    from stalefsm.core.states import State

H = TypeVar("H")


class ResourceProxy(Generic[H]):
    """
    Wrapper around an externally-owned handle stored in a ResourceDependency.

    Every operation goes through :meth:`invoke`, either directly or through
    attribute access on the proxy. When an operation fails with an error the
    classifier calls stale, the owning dependency is invalidated and the
    resulting StaleReferenceError propagates, chained to the original error.
    Everything else passes through untouched.
    """

    is_resource_proxy = True

    def __init__(self, handle: H, dependency: Dependency, is_stale: Optional[StaleClassifier] = None) -> None:
        """
        :param handle: The raw external handle.
        :param dependency: The dependency to invalidate when the handle goes stale.
        :param is_stale: Classifier for handle errors; defaults to StaleHandleError.
        """
        self._handle = handle
        self._dependency = dependency
        self._is_stale = is_stale or is_stale_handle_error

    @property
    def handle(self) -> H:
        """The raw, unobserved handle."""
        return self._handle

    @property
    def dependency(self) -> Dependency:
        return self._dependency

    def invoke(self, operation: str, *args: Any, **kwargs: Any) -> Any:
        """
        Call ``operation`` on the handle, observing the outcome.

        Awaitable results are returned as awaitables that are observed when awaited.
        """
        return self._observe(self._attribute(operation), *args, **kwargs)

    def _attribute(self, name: str) -> Any:
        try:
            return getattr(self._handle, name)
        except Exception as error:
            self._check(error)
            raise

    def _observe(self, method: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            result = method(*args, **kwargs)
        except Exception as error:
            self._check(error)
            raise

        if inspect.isawaitable(result):
            return self._observe_awaitable(result)
        return result

    async def _observe_awaitable(self, awaitable: Awaitable[Any]) -> Any:
        try:
            return await awaitable
        except Exception as error:
            self._check(error)
            raise

    def _check(self, error: Exception) -> None:
        if not self._is_stale(error):
            return
        try:
            self._dependency.invalidate()
        except StaleReferenceError as stale:
            raise stale from error

    def __getattr__(self, name: str) -> Any:
        # Only reached for names the proxy itself does not define.
        if name.startswith("__") or name in ("_handle", "_dependency", "_is_stale"):
            raise AttributeError(name)
        attribute = self._attribute(name)
        if callable(attribute):
            return functools.wraps(attribute)(functools.partial(self._observe, attribute))
        return attribute

    def __repr__(self) -> str:
        return f"ResourceProxy({self._handle!r}, dependency={self._dependency.display_name})"


def is_resource_proxy(handle: Any) -> bool:
    return bool(getattr(type(handle), "is_resource_proxy", False))


def wrap_resource(handle: H, dependency: Dependency, is_stale: Optional[StaleClassifier] = None) -> ResourceProxy[H]:
    """
    Wrap ``handle`` so staleness invalidates ``dependency``. A handle that is
    already wrapped is returned unchanged and keeps its original owner.
    """
    if is_resource_proxy(handle):
        return handle
    return ResourceProxy(handle, dependency, is_stale)


class ResourceDependency(Dependency[H]):
    """
    Dependency holding an external handle. Values are wrapped in a ResourceProxy
    bound to the dependency instance that holds them, so a stale handle sends
    the machine back to whichever state provided it.
    """

    def __init__(self, value: H = UNSET, name: Optional[str] = None, is_stale: Optional[StaleClassifier] = None) -> None:
        """
        :param is_stale: Classifier for this handle's errors. When omitted, the
            machine's classifier is adopted, falling back to StaleHandleError.
        """
        super().__init__(name=name)
        self._is_stale = is_stale
        self._stale_handle: Optional[H] = None
        if value is not UNSET:
            self._value = wrap_resource(value, self, self._is_stale)

    @property
    def value(self) -> H:
        if self._value is UNSET:
            prefix = f"[{self._name}] " if self._name else ""
            raise CriticalError(f"{prefix}ResourceDependency not set.")
        return self._value

    @property
    def is_stale(self) -> Optional[StaleClassifier]:
        return self._is_stale

    def bind_classifier(self, is_stale: StaleClassifier) -> None:
        """Use ``is_stale`` unless a classifier was given explicitly."""
        if self._is_stale is not None:
            return
        self._is_stale = is_stale
        if is_resource_proxy(self._value) and self._value.dependency is self:
            self._value = ResourceProxy(self._value.handle, self, is_stale)

    @property
    def debug_handle(self) -> Optional[H]:
        """The raw handle, for diagnostics only. After invalidation, the handle that went stale."""
        if self._value is UNSET:
            return self._stale_handle
        return self._value.handle if is_resource_proxy(self._value) else self._value

    def _clone(self, value: H, provider: "State") -> "ResourceDependency[H]":
        dependency = type(self)(name=self._name, is_stale=self._is_stale)
        dependency._value = wrap_resource(value, dependency, self._is_stale)
        dependency.provider = provider
        return dependency

    def invalidate(self) -> NoReturn:
        self._stale_handle = self.debug_handle
        super().invalidate()
