"""Outbound calls to collaborator services.

One POST per invoke(), no retries. Whatever happens is classified into an
outcome and recorded on the caller's span; nothing is raised back.
"""

import enum
import logging
from dataclasses import dataclass

import httpx
from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.trace import SpanKind, Status, StatusCode
from pydantic import BaseModel

from . import config
from .telemetry import Telemetry

log = logging.getLogger(__name__)


class OutcomeKind(str, enum.Enum):
    OK = "ok"
    REJECTED = "rejected"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class CollaboratorOutcome:
    endpoint: str
    kind: OutcomeKind
    status_code: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.OK


class CollaboratorClient:
    def __init__(
        self,
        telemetry: Telemetry,
        http: httpx.AsyncClient,
        hosts: dict[str, str] | None = None,
    ):
        self.telemetry = telemetry
        self.http = http
        self.hosts = config.parse_pairs(config.COLLABORATOR_HOSTS) if hosts is None else hosts

    def url_for(self, endpoint: str) -> str:
        return f"http://{self.hosts.get(endpoint, endpoint)}/"

    async def invoke(
        self,
        ctx: Context,
        endpoint: str,
        payload: BaseModel,
        *,
        success_event: str | None = None,
        success_attributes: dict | None = None,
    ) -> CollaboratorOutcome:
        """POST ``payload`` to ``endpoint`` as a child of ``ctx`` and classify the result."""
        caller = trace.get_current_span(ctx)
        url = self.url_for(endpoint)

        with self.telemetry.tracer.start_as_current_span(
            f"POST {endpoint}", context=ctx, kind=SpanKind.CLIENT
        ) as span:
            span.set_attribute("http.method", "POST")
            span.set_attribute("http.url", url)
            span.set_attribute("peer.service", endpoint)

            headers = self.telemetry.inject(trace.set_span_in_context(span, ctx))
            headers["Content-Type"] = "application/json"

            log.info("Sending request to %s ...", endpoint)
            try:
                res = await self.http.post(url, content=payload.model_dump_json(), headers=headers)
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                error = str(e) or type(e).__name__
                span.set_status(Status(StatusCode.ERROR, error))
                outcome = CollaboratorOutcome(endpoint, OutcomeKind.TRANSPORT_ERROR, error=error)
            else:
                span.set_attribute("http.status_code", res.status_code)
                if res.status_code == 200:
                    outcome = CollaboratorOutcome(endpoint, OutcomeKind.OK, status_code=200)
                else:
                    span.set_status(Status(StatusCode.ERROR, f"HTTP {res.status_code}"))
                    outcome = CollaboratorOutcome(endpoint, OutcomeKind.REJECTED, status_code=res.status_code)

        if outcome.kind is OutcomeKind.TRANSPORT_ERROR:
            log.warning("Error sending %s request: %s", endpoint, outcome.error)
            caller.add_event(f"Error sending {endpoint} request", {"err": outcome.error})
        elif outcome.kind is OutcomeKind.REJECTED:
            log.warning("%s answered %d", endpoint, outcome.status_code)
            caller.add_event(f"Error from {endpoint}", {"status": outcome.status_code})
        else:
            caller.add_event(
                success_event or f"Successfully called {endpoint}",
                success_attributes or {"collaborator": endpoint},
            )
        return outcome
