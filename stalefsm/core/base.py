# stalefsm/core/base.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import inspect
from typing import Any

from stalefsm.core.errors import CriticalError
from stalefsm.interfaces.types import NameOrFunction

END_STATE = "end"


def resolve_name(name: NameOrFunction) -> str:
    """
    Turn a state/timer reference into its string key. Functions resolve to
    their ``__name__``, which is also how unnamed states are registered.

    :param name: A string, or a function whose name is used.
    :raises CriticalError: If a callable carries no usable name.
    """
    if isinstance(name, str):
        return name
    resolved = getattr(name, "__name__", None)
    if not resolved or resolved == "<lambda>":
        raise CriticalError(f"cannot infer a name from {name!r}")
    return resolved


async def resolve(result: Any) -> Any:
    """Await ``result`` if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(result):
        return await result
    return result
