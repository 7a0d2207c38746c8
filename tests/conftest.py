"""Shared fixtures."""

import pytest

from scripts.lib.circuit_breaker import CircuitBreaker
from scripts.lib.run_context import RunContext


@pytest.fixture
def ctx():
    return RunContext("test")


@pytest.fixture(autouse=True)
def _reset_breakers():
    yield
    CircuitBreaker.reset_all()
