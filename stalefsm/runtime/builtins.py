# stalefsm/runtime/builtins.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Ready-made probes and states for handles that implement the Interactable protocol.
"""

from __future__ import annotations

from typing import Any, Optional

from stalefsm.core.base import resolve
from stalefsm.core.dependencies import DependencyMap
from stalefsm.core.errors import CriticalError, StaleReferenceError, is_stale_handle_error
from stalefsm.core.provide import Provide, ProvideComplete
from stalefsm.core.states import StateData
from stalefsm.interfaces.protocols import Interactable
from stalefsm.interfaces.types import Milliseconds, StaleClassifier
from stalefsm.runtime.resources import ResourceDependency, is_resource_proxy


def _raw_handle(element: Any) -> Optional[Interactable]:
    """Strip proxies and dependencies down to the raw handle, or None if there is none."""
    if isinstance(element, ResourceDependency):
        return element.value.handle if element.ready else None
    if is_resource_proxy(element):
        return element.handle
    return element


async def is_stale(element: Any, is_stale_error: Optional[StaleClassifier] = None) -> bool:
    """
    Check whether a handle went stale, without invalidating anything.

    :param element: A raw handle, a ResourceProxy or a ResourceDependency.
    :param is_stale_error: Classifier for handle errors; defaults to StaleHandleError.
    :return: True if the handle is stale or there is no handle at all.
    """
    classify = is_stale_error or is_stale_handle_error
    handle = _raw_handle(element)
    if handle is None:
        return True
    try:
        await resolve(handle.is_displayed())
        return False
    except Exception as error:
        if classify(error):
            return True
        raise


async def is_available(element: Any, is_stale_error: Optional[StaleClassifier] = None) -> bool:
    """
    :return: True if the handle still exists and is displayed.
    """
    classify = is_stale_error or is_stale_handle_error
    handle = _raw_handle(element)
    if handle is None:
        return False
    try:
        return bool(await resolve(handle.is_displayed()))
    except Exception as error:
        if classify(error):
            return False
        raise


async def is_interactive(element: Any, is_stale_error: Optional[StaleClassifier] = None) -> bool:
    """
    :return: True if the handle is displayed and enabled.
    """
    classify = is_stale_error or is_stale_handle_error
    handle = _raw_handle(element)
    if handle is None:
        return False
    try:
        return bool(await resolve(handle.is_displayed())) and bool(await resolve(handle.is_enabled()))
    except Exception as error:
        if classify(error):
            return False
        raise


def _resource_dependency(dependencies: DependencyMap, name: str) -> ResourceDependency:
    dependency = dependencies.get(name)
    if dependency is None:
        raise CriticalError(f'unknown dependency: "{name}"')
    if not isinstance(dependency, ResourceDependency):
        raise CriticalError(f'"{name}" is not a ResourceDependency')
    return dependency


def wait_interactive(dependency: str, timeout: Optional[Milliseconds] = None) -> StateData:
    """
    State that repeats until the handle in ``dependency`` is displayed and enabled.
    A stale handle sends the machine back to the dependency's provider.

    :param dependency: Name of a ResourceDependency.
    :param timeout: Optional state timeout in milliseconds.
    """

    async def wait_interactive_state(provide: Provide, dependencies: DependencyMap) -> ProvideComplete:
        handle = _resource_dependency(dependencies, dependency).value
        if await resolve(handle.is_displayed()) and await resolve(handle.is_enabled()):
            return provide.nothing().next()
        return provide.nothing().try_again()

    return StateData(function=wait_interactive_state, name=f"wait_interactive:{dependency}", timeout=timeout)


def wait_stale(dependency: str, timeout: Optional[Milliseconds] = None) -> StateData:
    """
    State that repeats until the handle in ``dependency`` goes stale.

    :param dependency: Name of a ResourceDependency.
    :param timeout: Optional state timeout in milliseconds.
    """

    async def wait_stale_state(provide: Provide, dependencies: DependencyMap) -> ProvideComplete:
        resource = _resource_dependency(dependencies, dependency)
        if not resource.ready:
            return provide.nothing().next()
        try:
            await resolve(resource.value.is_displayed())
            return provide.nothing().try_again()
        except StaleReferenceError:
            return provide.nothing().next()

    return StateData(function=wait_stale_state, name=f"wait_stale:{dependency}", timeout=timeout)


def wait_disappear(dependency: str, timeout: Optional[Milliseconds] = None) -> StateData:
    """
    State that repeats until the handle in ``dependency`` is hidden or stale.

    :param dependency: Name of a ResourceDependency.
    :param timeout: Optional state timeout in milliseconds.
    """

    async def wait_disappear_state(provide: Provide, dependencies: DependencyMap) -> ProvideComplete:
        resource = _resource_dependency(dependencies, dependency)
        if not resource.ready:
            return provide.nothing().next()
        try:
            if not await resolve(resource.value.is_displayed()):
                return provide.nothing().next()
            return provide.nothing().try_again()
        except StaleReferenceError:
            return provide.nothing().next()

    return StateData(function=wait_disappear_state, name=f"wait_disappear:{dependency}", timeout=timeout)
