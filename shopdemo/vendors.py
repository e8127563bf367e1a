"""Vendor services at the leaves of the trace. They only simulate work."""

import asyncio
import logging
import random

from fastapi import APIRouter, Request
from opentelemetry.context import Context

from . import config
from .handlers import decode, server_span, telemetry_of
from .models import TraceIdResponse, VendorPayment, VendorShipment
from .telemetry import Telemetry, trace_id_hex

log = logging.getLogger(__name__)

# service name → display name used in span events
PAYMENT_VENDORS = {"credit": "credit", "paypal": "paypal"}
SHIPPING_VENDORS = {"fedex": "FedEx", "dhl": "DHL", "toll": "Toll"}


def _delay() -> float:
    """Whole seconds, 0..VENDOR_MAX_DELAY inclusive."""
    return random.randint(0, config.VENDOR_MAX_DELAY)


async def pay(telemetry: Telemetry, ctx: Context, vendor: str, payment: VendorPayment):
    label = PAYMENT_VENDORS[vendor]
    with telemetry.tracer.start_as_current_span(f"{vendor}-pay", context=ctx) as span:
        span.add_event(f"Start paying with {label}")
        await asyncio.sleep(_delay())
        span.set_attribute("amount", payment.amount)
        span.add_event(f"Successfully paid with {label}")


async def ship(telemetry: Telemetry, ctx: Context, vendor: str, shipment: VendorShipment):
    label = SHIPPING_VENDORS[vendor]
    with telemetry.tracer.start_as_current_span(f"{vendor}-ship", context=ctx) as span:
        span.add_event(f"Start shipping with {label}")
        await asyncio.sleep(_delay())
        span.set_attribute("Products", list(shipment.basket))
        span.add_event(f"Successfully shipped with {label}")


def payment_vendor_router(vendor: str) -> APIRouter:
    if vendor not in PAYMENT_VENDORS:
        raise ValueError(f"Unknown payment vendor: {vendor}")
    router = APIRouter(tags=[vendor])

    @router.post("/")
    async def handle_vendor_payment(request: Request):
        with server_span(request, f"handle-{vendor}") as (span, ctx):
            payment = decode(VendorPayment, await request.body(), span, vendor)
            log.info("New request received: %s", payment)
            await pay(telemetry_of(request), ctx, vendor, payment)
            trace_id = trace_id_hex(span)
        return TraceIdResponse(trace_id=trace_id).body()

    return router


def shipping_vendor_router(vendor: str) -> APIRouter:
    if vendor not in SHIPPING_VENDORS:
        raise ValueError(f"Unknown shipping vendor: {vendor}")
    router = APIRouter(tags=[vendor])

    @router.post("/")
    async def handle_vendor_shipment(request: Request):
        with server_span(request, f"handle-{vendor}") as (span, ctx):
            shipment = decode(VendorShipment, await request.body(), span, vendor)
            log.info("New request received: %s", shipment)
            await ship(telemetry_of(request), ctx, vendor, shipment)
            trace_id = trace_id_hex(span)
        return TraceIdResponse(trace_id=trace_id).body()

    return router
