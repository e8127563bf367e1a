"""Shared fixtures: in-memory span capture and fake collaborator services."""

import random

import httpx
import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from shopdemo.main import create_app
from shopdemo.telemetry import Telemetry


class FakeCollaborators:
    """Stands in for every downstream host; records what was sent to it."""

    def __init__(self):
        self.calls: list[httpx.Request] = []
        self.statuses: dict[str, int] = {}
        self.unreachable: set[str] = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        self.calls.append(request)
        if host in self.unreachable:
            raise httpx.ConnectError(f"dial tcp: lookup {host}: no such host", request=request)
        return httpx.Response(self.statuses.get(host, 200), json={"trace-id": "0" * 32})

    @property
    def hosts(self) -> list[str]:
        return [r.url.host for r in self.calls]


@pytest.fixture()
def span_exporter():
    return InMemorySpanExporter()


@pytest.fixture()
def telemetry(span_exporter):
    t = Telemetry("test-service", span_exporters=[span_exporter], batch=False).init()
    yield t
    t.shutdown()


@pytest.fixture()
def collaborators():
    return FakeCollaborators()


@pytest.fixture()
def http_client(collaborators):
    return httpx.AsyncClient(transport=httpx.MockTransport(collaborators))


@pytest.fixture()
def make_client(telemetry, http_client):
    """Build a TestClient for any service, wired to the fakes above."""
    clients = []

    def _make(service: str, **orchestrator_options) -> TestClient:
        options = {"pricing_delay": 0.0, "rng": random.Random(7), "policy": "best-effort"}
        options.update(orchestrator_options)
        app = create_app(
            service,
            telemetry=telemetry,
            http_client=http_client,
            orchestrator_options=options,
        )
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


def spans_by_name(exporter: InMemorySpanExporter) -> dict:
    return {s.name: s for s in exporter.get_finished_spans()}


def event_names(span) -> list[str]:
    return [e.name for e in span.events]
