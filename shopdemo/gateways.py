"""payment-gateway and shipping-gateway: decode, then forward to the vendor named in the body."""

import logging

from fastapi import APIRouter, Request

from .collaborator import CollaboratorClient
from .handlers import decode, server_span
from .models import PaymentRequest, ShippingRequest, TraceIdResponse, VendorPayment, VendorShipment
from .telemetry import trace_id_hex

log = logging.getLogger(__name__)

payment_router = APIRouter(tags=["payment-gateway"])
shipping_router = APIRouter(tags=["shipping-gateway"])


@payment_router.post("/")
async def handle_payment(request: Request):
    client: CollaboratorClient = request.app.state.client
    with server_span(request, "handle-payment") as (span, ctx):
        payment = decode(PaymentRequest, await request.body(), span, "payment")
        log.info("New request received: %s", payment)
        await client.invoke(
            ctx,
            payment.method,
            VendorPayment(name=payment.name, amount=payment.amount),
            success_event="Successfully paid",
            success_attributes={"payment-method": payment.method},
        )
        trace_id = trace_id_hex(span)
    return TraceIdResponse(trace_id=trace_id).body()


@shipping_router.post("/")
async def handle_shipping(request: Request):
    client: CollaboratorClient = request.app.state.client
    with server_span(request, "handle-shipping") as (span, ctx):
        shipping = decode(ShippingRequest, await request.body(), span, "shipping")
        log.info("New request received: %s", shipping)
        await client.invoke(
            ctx,
            shipping.vendor,
            VendorShipment(address=shipping.address, basket=shipping.basket),
            success_event="Successfully shipped",
            success_attributes={"shipping-method": shipping.vendor},
        )
        trace_id = trace_id_hex(span)
    return TraceIdResponse(trace_id=trace_id).body()
