"""back-end: the front door. Accepts an order and runs the checkout fan-out."""

import logging

from fastapi import APIRouter, Request

from .handlers import decode, server_span
from .models import Order, TraceIdResponse
from .orchestrator import CheckoutOrchestrator

log = logging.getLogger(__name__)
router = APIRouter(tags=["checkout"])


@router.post("/checkout")
async def handle_checkout(request: Request):
    orchestrator: CheckoutOrchestrator = request.app.state.orchestrator
    with server_span(request, "handle-checkout") as (span, ctx):
        order = decode(Order, await request.body(), span, "order")
        log.info("New checkout received: %s", order)
        result = await orchestrator.checkout(ctx, order)
    log.info(
        "Checkout %s done (payment=%s shipped=%s invoiced=%s)",
        result.trace_id, result.payment.kind.value, result.shipped, result.invoiced,
    )
    return TraceIdResponse(trace_id=result.trace_id).body()
