# tests/conftest.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import pytest

from tests.fakes import FakeClock, FakeHandle, TransitionRecorder, WorkflowContext


def pytest_configure(config):
    """Register custom marks."""
    config.addinivalue_line("markers", "property: mark test as a property-based test")


@pytest.fixture
def clock(monkeypatch):
    """Replace the machine's wall clock with one the test advances explicitly."""
    fake = FakeClock()
    monkeypatch.setattr("stalefsm.core.state_machine._now_ms", fake)
    return fake


@pytest.fixture
def context():
    """A context with a one second budget."""
    return WorkflowContext(timeout=1000)


@pytest.fixture
def handle():
    return FakeHandle("button")


@pytest.fixture
def recorder():
    return TransitionRecorder()


@pytest.fixture
def dummy_state():
    """A registered state usable as a dependency provider."""
    from stalefsm.core.states import State, StateData

    def producer(provide, dependencies):
        return provide.nothing().next()

    return State(StateData(function=producer), 0)


@pytest.fixture
def error_classes():
    """Provides a tuple of error classes for quick reference."""
    from stalefsm.core.errors import CriticalError, StaleFSMError, StaleReferenceError, StateMachineTimeoutError

    return (StaleFSMError, CriticalError, StateMachineTimeoutError, StaleReferenceError)
