# stalefsm/core/errors.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from stalefsm.core.dependencies import Dependency


class StaleFSMError(Exception):
    """
    Base exception class for errors raised by the state machine library.
    """


class CriticalError(StaleFSMError):
    """
    Raised when the workflow is authored incorrectly or the machine is driven
    against its contract. Never recovered by the driver.
    """


class StateMachineTimeoutError(StaleFSMError, TimeoutError):
    """
    Raised when a state exceeds its own timeout or the shared time budget runs
    out before the terminal state is reached.
    """


class StaleReferenceError(StaleFSMError):
    """
    Raised when a dependency is invalidated. Carries the invalidated dependency
    so the driver can jump back to the state that provided it.
    """

    def __init__(self, dependency: "Dependency", message: Optional[str] = None) -> None:
        """
        :param dependency: The dependency whose value became stale.
        :param message: Optional override of the default message.
        """
        self.dependency = dependency
        super().__init__(message or f"dependency {dependency.display_name} became stale")


class HandleError(Exception):
    """
    Base class for failures reported by externally-owned handles. Adapters for a
    concrete external system raise these, or subclasses of them.
    """


class StaleHandleError(HandleError):
    """
    The object a handle referred to no longer exists in the external system.
    """


class HandleNotFoundError(HandleError):
    """
    The external system could not locate the requested object (yet).
    """


class ActionInterceptedError(HandleError):
    """
    An action on a handle was intercepted by something else in the external system.
    """


def is_stale_handle_error(error: BaseException) -> bool:
    """
    Default stale classifier: only StaleHandleError (and subclasses) count as
    a handle going stale.
    """
    return isinstance(error, StaleHandleError)


DEFAULT_BENIGN_ERRORS = (HandleNotFoundError, ActionInterceptedError)
