"""
Shared pytest fixtures for Loom tests.

This module provides common fixtures used across multiple test modules.
File logging is switched off before loom is imported so tests never write
to the working directory.
"""

import os

os.environ["LOOM_DEBUG_LOG"] = ""

from unittest.mock import Mock

import pytest

import loom
from loom.comm.hub import CommHub
from loom.runtime import Runtime


@pytest.fixture(autouse=True)
def fresh_default_runtime():
    """
    Give every test its own process-wide runtime.

    The module-level helpers (loom.create_service, loom.start, ...) share a
    default Runtime; resetting it keeps tests independent.
    """
    loom.reset_runtime()
    yield
    loom.reset_runtime()


@pytest.fixture
def publisher():
    """
    Mock event publisher installed on the hub.

    Returns:
        Mock: Called as publisher(client_id, LoomMessage) for every event.
    """
    return Mock()


@pytest.fixture
def hub(publisher):
    """
    Create a CommHub with a mock publisher.

    Args:
        publisher: The publisher fixture.

    Returns:
        CommHub: A hub that records published events on the mock.
    """
    return CommHub(publisher=publisher)


@pytest.fixture
def runtime(hub):
    """
    Create a Runtime backed by the test hub.

    Args:
        hub: The hub fixture.

    Returns:
        Runtime: A fresh runtime in NOT_STARTED state.
    """
    return Runtime(hub=hub)


@pytest.fixture
def binding(hub):
    """
    Create a ServiceBinding for a service named "TestService".

    Args:
        hub: The hub fixture.

    Returns:
        ServiceBinding: An empty binding.
    """
    return hub.new_binding("TestService")


@pytest.fixture
def published(publisher):
    """
    Read back what the mock publisher received.

    Returns:
        callable: Returns (client_id, LoomMessage) pairs published so far.
    """
    return lambda: [c.args for c in publisher.call_args_list]
