# stalefsm/interfaces/types.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
from typing import Any, Awaitable, Callable, Tuple, Type, Union

DependencyID = str
StateName = str
Milliseconds = float

# Classifier deciding whether a handle failure means the handle went stale
StaleClassifier = Callable[[BaseException], bool]
ErrorTypes = Tuple[Type[BaseException], ...]

# State functions and timers may be referenced by name or by the function itself
NameOrFunction = Union[str, Callable[..., Any]]

TransitionListener = Callable[..., Union[None, Awaitable[None]]]
