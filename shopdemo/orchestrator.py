"""Checkout orchestration.

Payment runs first and blocks; shipping and invoicing then run as two
sibling tasks under the same trace context and are joined before the
caller gets its answer. Under the default best-effort policy downstream
failures only show up as span events.
"""

import asyncio
import enum
import logging
import random
from dataclasses import dataclass

from opentelemetry import baggage, trace
from opentelemetry.context import Context

from . import config
from .collaborator import CollaboratorClient, CollaboratorOutcome
from .models import Order, PaymentRequest, ShippingRequest
from .telemetry import Telemetry, trace_id_hex

log = logging.getLogger(__name__)


class FanoutPolicy(str, enum.Enum):
    BEST_EFFORT = "best-effort"
    FAIL_FAST = "fail-fast"


@dataclass(frozen=True)
class CheckoutResult:
    trace_id: str
    payment: CollaboratorOutcome
    shipped: bool
    invoiced: bool


class CheckoutAborted(Exception):
    """A leg failed while running under the fail-fast policy."""

    def __init__(self, leg: str, trace_id: str):
        super().__init__(f"checkout aborted: {leg} leg failed")
        self.leg = leg
        self.trace_id = trace_id


class CheckoutOrchestrator:
    def __init__(
        self,
        telemetry: Telemetry,
        client: CollaboratorClient,
        *,
        payment_gateway: str | None = None,
        shipping_gateway: str | None = None,
        policy: FanoutPolicy | str | None = None,
        invoice_delay: float | None = None,
        pricing_delay: float | None = None,
        price_factor_max: int | None = None,
        baggage_items: dict[str, str] | None = None,
        rng: random.Random | None = None,
    ):
        self.telemetry = telemetry
        self.client = client
        self.payment_gateway = payment_gateway or config.PAYMENT_GATEWAY_HOST
        self.shipping_gateway = shipping_gateway or config.SHIPPING_GATEWAY_HOST
        self.policy = FanoutPolicy(policy or config.FANOUT_POLICY)
        self.invoice_delay = config.INVOICE_DELAY_MS / 1000 if invoice_delay is None else invoice_delay
        self.pricing_delay = config.PRICING_DELAY_MS / 1000 if pricing_delay is None else pricing_delay
        self.price_factor_max = price_factor_max or config.PRICE_FACTOR_MAX
        self.baggage_items = (
            config.parse_pairs(config.CHECKOUT_BAGGAGE) if baggage_items is None else baggage_items
        )
        self.rng = rng or random.Random()

    @property
    def tracer(self) -> trace.Tracer:
        return self.telemetry.tracer

    async def checkout(self, ctx: Context, order: Order) -> CheckoutResult:
        """Run the three legs of a checkout under ``ctx``.

        Raises CheckoutAborted only under the fail-fast policy.
        """
        for key, value in self.baggage_items.items():
            ctx = baggage.set_baggage(key, value, context=ctx)
        trace_id = trace_id_hex(trace.get_current_span(ctx))

        payment = await self._pay(ctx, order)
        if self.policy is FanoutPolicy.FAIL_FAST and not payment.ok:
            raise CheckoutAborted("payment", trace_id)

        shipped, invoiced = await self._fan_out(ctx, order, trace_id)
        return CheckoutResult(trace_id=trace_id, payment=payment, shipped=shipped, invoiced=invoiced)

    async def _fan_out(self, ctx: Context, order: Order, trace_id: str) -> tuple[bool, bool]:
        shipping = asyncio.create_task(self._ship(ctx, order), name="checkout-shipping")
        invoicing = asyncio.create_task(self._invoice(ctx, order), name="checkout-invoicing")

        if self.policy is FanoutPolicy.BEST_EFFORT:
            shipped, invoiced = await asyncio.gather(shipping, invoicing)
            return shipped, invoiced

        legs = {shipping: "shipping", invoicing: "invoicing"}
        results: dict[str, bool] = {}
        pending = set(legs)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    results[legs[task]] = task.result()
                    if not results[legs[task]]:
                        raise CheckoutAborted(legs[task], trace_id)
        finally:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        return results["shipping"], results["invoicing"]

    # ── Legs ────────────────────────────────────────────────────

    async def _pay(self, ctx: Context, order: Order) -> CollaboratorOutcome:
        with self.tracer.start_as_current_span("payment", context=ctx) as span:
            leg_ctx = trace.set_span_in_context(span, ctx)
            amount = await self.calc_amount(leg_ctx, order.basket)
            outcome = await self.client.invoke(
                leg_ctx,
                self.payment_gateway,
                PaymentRequest(name=order.name, amount=amount, method=order.payment),
                success_event="Successfully payment handled",
            )
            span.set_attribute("outcome", outcome.kind.value)
            return outcome

    async def _ship(self, ctx: Context, order: Order) -> bool:
        with self.tracer.start_as_current_span("shipping", context=ctx) as span:
            outcome = await self.client.invoke(
                trace.set_span_in_context(span, ctx),
                self.shipping_gateway,
                ShippingRequest(address=order.address, vendor=order.shipping, basket=order.basket),
                success_event="Successfully shipping handled",
            )
            span.set_attribute("outcome", outcome.kind.value)
            return outcome.ok

    async def _invoice(self, ctx: Context, order: Order) -> bool:
        with self.tracer.start_as_current_span("generating-invoice", context=ctx) as span:
            span.add_event("Start generating invoice")
            await asyncio.sleep(self.invoice_delay)
            log.info("Basket is %s", order.basket)
            span.set_attribute("basket.size", len(order.basket))
            span.add_event("Successfully invoice generated")
            return True

    async def calc_amount(self, ctx: Context, basket: list[str]) -> int:
        with self.tracer.start_as_current_span("calculate-price", context=ctx) as span:
            span.add_event("Start calculating total price")
            await asyncio.sleep(self.pricing_delay)
            total = len(basket) * self.rng.randrange(self.price_factor_max)
            log.info("Total price is %d", total)
            span.set_attribute("total-price", total)
            span.add_event("Successfully total price calculated")
            return total
