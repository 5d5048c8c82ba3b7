# tests/integration/test_scenarios.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""End-to-end workflows driven against fake handles."""

import asyncio
import logging

import pytest
from async_timeout import timeout

from stalefsm import (
    BaseContext,
    Dependency,
    ResourceDependency,
    StateMachine,
    declare_dependencies,
    wait_disappear,
    wait_interactive,
)
from tests.fakes import AsyncFakeHandle, FakeHandle, TransitionRecorder, WorkflowContext


class FakePage:
    """Produces a new handle per lookup, optionally stale from the start."""

    def __init__(self) -> None:
        self.lookups = 0
        self.handles = []
        self.stale_after_lookup = set()

    def find(self, name: str) -> FakeHandle:
        self.lookups += 1
        handle = FakeHandle(f"{name}-{self.lookups}")
        if self.lookups in self.stale_after_lookup:
            handle.stale = True
        self.handles.append(handle)
        return handle


@pytest.fixture
def page():
    return FakePage()


@pytest.mark.asyncio
async def test_two_state_workflow():
    machine = StateMachine(BaseContext(timeout=5000), {})
    recorder = TransitionRecorder()
    machine.on_transition(recorder)

    machine.named_state("A", lambda provide, dependencies: provide.nothing().next())
    machine.named_state("B", lambda provide, dependencies: provide.nothing().next())

    async with timeout(1):
        await machine.start()

    assert recorder.states == ["B", "end"]
    assert machine.reached_states == {"A", "B", "end"}


@pytest.mark.asyncio
async def test_stale_handle_jumps_back_to_provider(page, caplog):
    caplog.set_level(logging.INFO, logger="stalefsm.machine")
    page.stale_after_lookup.add(1)
    deps = declare_dependencies(form=ResourceDependency())
    machine = StateMachine(WorkflowContext(timeout=5000), deps)
    recorder = TransitionRecorder()
    machine.on_transition(recorder)

    def find_form(provide, dependencies):
        return provide.dependency(dependencies["form"], page.find("form")).next()

    def submit(provide, dependencies):
        dependencies["form"].value.click()
        return provide.nothing().next()

    machine.state(find_form).state(submit)

    async with timeout(1):
        await machine.start()

    assert recorder.states == ["submit", "find_form", "submit", "end"]
    assert recorder.seen[1] == ("find_form", True, 0, 0)
    assert page.lookups == 2
    assert page.handles[1].clicks == 1
    assert machine.dependencies["form"].value.handle is page.handles[1]
    assert 'stale handle FakeHandle with name "form" located in submit' in caplog.text


@pytest.mark.asyncio
async def test_stale_jump_skips_to_the_right_provider(page):
    deps = declare_dependencies(form=ResourceDependency(), token=Dependency())
    machine = StateMachine(WorkflowContext(timeout=5000), deps)
    recorder = TransitionRecorder()
    machine.on_transition(recorder)
    used_tokens = []

    def find_form(provide, dependencies):
        return provide.dependency(dependencies["form"], page.find("form")).next()

    def fetch_token(provide, dependencies):
        return provide.dependency(dependencies["token"], f"token-{page.lookups}").next()

    def submit(provide, dependencies):
        form = dependencies["form"].value
        if page.lookups == 1:
            form.handle.stale = True
        form.click()
        used_tokens.append(dependencies["token"].value)
        return provide.nothing().next()

    machine.state(find_form).state(fetch_token).state(submit)

    async with timeout(1):
        await machine.start()

    assert recorder.states == ["fetch_token", "submit", "find_form", "fetch_token", "submit", "end"]
    assert used_tokens == ["token-2"]


@pytest.mark.asyncio
async def test_builtin_states_in_a_workflow(page):
    deps = declare_dependencies(dialog=ResourceDependency())
    machine = StateMachine(WorkflowContext(timeout=5000), deps)

    def open_dialog(provide, dependencies):
        handle = AsyncFakeHandle("dialog", enabled=False)
        page.handles.append(handle)
        return provide.dependency(dependencies["dialog"], handle).next()

    def confirm(provide, dependencies):
        dialog = dependencies["dialog"].value
        dialog.click()
        dialog.handle.displayed = False
        return provide.nothing().next()

    async def enable_later(machine, logger):
        if machine.current_state == "wait_interactive:dialog":
            await asyncio.sleep(0)
            page.handles[-1].enabled = True

    machine.on_transition(enable_later)
    machine.state(open_dialog)
    machine.add_state(wait_interactive("dialog"))
    machine.state(confirm)
    machine.add_state(wait_disappear("dialog"))

    async with timeout(1):
        await machine.start()

    assert machine.current_state == "end"
    assert page.handles[0].clicks == 1
    assert "wait_disappear:dialog" in machine.reached_states


@pytest.mark.asyncio
async def test_stop_from_outside(page):
    machine = StateMachine(WorkflowContext(timeout=60_000), {})

    async def idle(provide, dependencies):
        await asyncio.sleep(0)
        return provide.nothing().try_again()

    machine.state(idle)
    task = machine.start()
    await machine.wait_until_reached(idle, 100)
    machine.stop()

    async with timeout(1):
        await task

    assert machine.current_state == "idle"
    assert machine.running is False
