"""Inbound request plumbing shared by every service: server spans and the decode gate."""

import logging
from contextlib import contextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from opentelemetry import trace
from opentelemetry.trace import SpanKind
from pydantic import BaseModel, ValidationError

from .orchestrator import CheckoutAborted
from .telemetry import Telemetry, trace_id_hex

log = logging.getLogger(__name__)


class DecodeError(Exception):
    """Inbound body did not match the expected schema."""


def telemetry_of(request: Request) -> Telemetry:
    return request.app.state.telemetry


@contextmanager
def server_span(request: Request, name: str):
    """Open the SERVER span for an inbound request.

    The parent comes from the request's propagation headers, so a caller's
    trace continues here; without them a new trace starts. Yields the span
    and a context carrying it for downstream calls.
    """
    telemetry = telemetry_of(request)
    parent = telemetry.extract(request.headers)
    with telemetry.tracer.start_as_current_span(name, context=parent, kind=SpanKind.SERVER) as span:
        span.set_attribute("http.method", request.method)
        span.set_attribute("http.route", request.url.path)
        log.info("Handle request with trace id: %s", trace_id_hex(span))
        yield span, trace.set_span_in_context(span, parent)


def decode(model: type[BaseModel], raw: bytes, span: trace.Span, kind: str):
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        span.add_event(f"Error decoding {kind} json", {"err": str(e)})
        raise DecodeError(str(e)) from e


async def _decode_error_handler(request: Request, exc: DecodeError):
    log.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return PlainTextResponse(str(exc), status_code=400)


async def _checkout_aborted_handler(request: Request, exc: CheckoutAborted):
    log.warning("Checkout %s aborted at %s leg", exc.trace_id, exc.leg)
    return JSONResponse({"trace-id": exc.trace_id, "failed-leg": exc.leg}, status_code=502)


def install_error_handlers(app: FastAPI):
    app.add_exception_handler(DecodeError, _decode_error_handler)
    app.add_exception_handler(CheckoutAborted, _checkout_aborted_handler)
