"""stalefsm: state machines that recover from stale external handles

A workflow is a linear list of states. States produce dependencies, often
handles into a live external system, and later states consume them. When a
handle goes stale, the machine jumps back to the state that produced it
instead of failing the run.
"""

from stalefsm.core.context import BaseContext, CancellationToken
from stalefsm.core.dependencies import Dependency, declare_dependencies
from stalefsm.core.errors import (
    ActionInterceptedError,
    CriticalError,
    HandleError,
    HandleNotFoundError,
    StaleFSMError,
    StaleHandleError,
    StaleReferenceError,
    StateMachineTimeoutError,
)
from stalefsm.core.provide import DependencyProvider, Provide, ProvideComplete, ProvideNothing
from stalefsm.core.state_machine import StateMachine
from stalefsm.core.states import State, StateData
from stalefsm.core.timers import Timer
from stalefsm.runtime.builtins import (
    is_available,
    is_interactive,
    is_stale,
    wait_disappear,
    wait_interactive,
    wait_stale,
)
from stalefsm.runtime.log import LoggingSettings, configure_logging
from stalefsm.runtime.resources import ResourceDependency, ResourceProxy, wrap_resource

__version__ = "0.1.0"

__all__ = [
    "ActionInterceptedError",
    "BaseContext",
    "CancellationToken",
    "CriticalError",
    "Dependency",
    "DependencyProvider",
    "HandleError",
    "HandleNotFoundError",
    "LoggingSettings",
    "Provide",
    "ProvideComplete",
    "ProvideNothing",
    "ResourceDependency",
    "ResourceProxy",
    "StaleFSMError",
    "StaleHandleError",
    "StaleReferenceError",
    "State",
    "StateData",
    "StateMachine",
    "StateMachineTimeoutError",
    "Timer",
    "configure_logging",
    "declare_dependencies",
    "is_available",
    "is_interactive",
    "is_stale",
    "wait_disappear",
    "wait_interactive",
    "wait_stale",
    "wrap_resource",
]
