import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from jewelbill.services.mock_store import reset_mock_store


class MockLatencyClient:
    """Client stub that records simulate_latency calls."""

    def __init__(self, use_mock_data: bool = True) -> None:
        self.use_mock_data = use_mock_data
        self.latency_called = False

    async def simulate_latency(self) -> None:
        self.latency_called = True


@pytest.fixture(autouse=True)
def _reset_store() -> None:
    reset_mock_store()
    yield
    reset_mock_store()


@pytest.fixture
def mock_client() -> MockLatencyClient:
    return MockLatencyClient()
