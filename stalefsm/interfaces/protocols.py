# stalefsm/interfaces/protocols.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
from typing import Awaitable, Protocol, Union, runtime_checkable


@runtime_checkable
class Interactable(Protocol):
    """
    Capability protocol for handles the built-in states know how to probe.

    Methods:
        is_displayed(): Whether the referenced object is currently visible.
        is_enabled(): Whether the referenced object accepts interaction.

    Runtime Invariants:
    - Either method may return a plain bool or an awaitable resolving to one.

    Error Handling:
    - A handle whose referenced object is gone raises an error that the
      machine's stale classifier recognises, usually a StaleHandleError.
    """

    def is_displayed(self) -> Union[bool, Awaitable[bool]]:
        """Return whether the referenced object is displayed."""
        ...

    def is_enabled(self) -> Union[bool, Awaitable[bool]]:
        """Return whether the referenced object is enabled."""
        ...
