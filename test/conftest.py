from typing import AsyncGenerator, List, Tuple

import pytest
import pytest_asyncio
from enrichment_server import EnrichmentServer
from enrichment_monitor.models import EnrichmentRequest, PollingConfig, StatusSnapshot

BASE_URL_TEMPLATE = "http://localhost:{}"


class RecordingNotifier:
    """Notifier double that records calls and can be told to blow up"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[Tuple[str, EnrichmentRequest, StatusSnapshot]] = []

    async def notify_failed(self, request, snapshot):
        self.calls.append(("failed", request, snapshot))
        if self.fail:
            raise RuntimeError("webhook down")

    async def notify_cancelled(self, request, snapshot):
        self.calls.append(("cancelled", request, snapshot))
        if self.fail:
            raise RuntimeError("webhook down")


@pytest_asyncio.fixture
async def server(unused_tcp_port_factory) -> AsyncGenerator[Tuple[EnrichmentServer, str], None]:
    """Start and yield an EnrichmentServer on a random port with its base URL."""
    port = unused_tcp_port_factory()
    server_instance = EnrichmentServer()
    await server_instance.start(port=port)
    try:
        yield server_instance, BASE_URL_TEMPLATE.format(port)
    finally:
        await server_instance.stop()


@pytest.fixture
def config() -> PollingConfig:
    """Polling configuration fast enough for tests."""
    return PollingConfig(poll_interval=0.01, max_retries=5, request_timeout=2.0)


@pytest.fixture
def request_data() -> EnrichmentRequest:
    return EnrichmentRequest(
        apolloLink="https://app.apollo.io/#/people?q=cto",
        noOfLeads=2500,
        fileName="ctos.csv",
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
