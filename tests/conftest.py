"""
Shared pytest fixtures for the exec controller tests.
"""

import pytest

from kube_exec_controller.channels import EventChannels
from kube_exec_controller.config import Settings
from kube_exec_controller.retry import BackoffPolicy
from tests.helpers import FakePodClient


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep KEC_* variables of the developer's shell out of the tests."""
    for key in ("KEC_TTL_SECONDS", "KEC_PORT", "KEC_NAMESPACE_ALLOWLIST", "KEC_API_SERVER"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def fake_client() -> FakePodClient:
    return FakePodClient()


@pytest.fixture
def fast_policy() -> BackoffPolicy:
    """Backoff that retries a few times without noticeable sleeps."""
    return BackoffPolicy(
        initial_interval=0.001,
        multiplier=1.0,
        max_interval=0.001,
        max_elapsed_seconds=5.0,
        max_attempts=4,
        jitter=0.0,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(ttl_seconds=600, namespace_allowlist="kube-system")


@pytest.fixture
def channels() -> EventChannels:
    return EventChannels(interaction_capacity=10, extension_capacity=10)
