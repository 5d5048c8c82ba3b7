# stalefsm/core/context.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Mapping, TypeVar

from stalefsm.core.errors import CriticalError
from stalefsm.interfaces.types import Milliseconds

TContext = TypeVar("TContext", bound="BaseContext")


@dataclass(frozen=True)
class BaseContext:
    """
    Base for user contexts. Subclass it to add workflow fields; the only field
    the machine requires is the time budget in milliseconds.

    The machine copies ``timeout`` into its own remaining budget when it is
    constructed, so this field keeps its initial value during a run.
    """

    timeout: Milliseconds


def merge_context(context: TContext, patch: Mapping[str, Any]) -> TContext:
    """
    Shallow-merge ``patch`` into ``context``, returning a new context.

    :raises CriticalError: If the patch names a field the context does not have.
    """
    if not patch:
        return context
    known = {f.name for f in dataclasses.fields(context)}
    unknown = sorted(set(patch) - known)
    if unknown:
        raise CriticalError(f"unknown context fields: {', '.join(unknown)}")
    return dataclasses.replace(context, **patch)


class CancellationToken:
    """
    Cooperative stop flag handed to the machine's run loop. The loop checks it
    only between cycles; a state function that is already running finishes first.
    """

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        """Request that the loop stop at its next iteration boundary."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled
