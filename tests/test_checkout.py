"""Tests for the back-end checkout endpoint."""

import json
import re

import pytest
from pydantic import ValidationError

from conftest import event_names, spans_by_name
from shopdemo.models import Order

ORDER = {
    "name": "Bob",
    "address": "1 Main St",
    "payment": "payment-gateway",
    "shipping": "shipping-gateway",
    "basket": ["apple", "bread"],
}

TRACE_ID = re.compile(r"^[0-9a-f]{32}$")


@pytest.fixture()
def backend(make_client):
    return make_client("back-end", invoice_delay=0.06)


def _traceparent(request) -> tuple[str, str]:
    _version, trace_id, parent_id, _flags = request.headers["traceparent"].split("-")
    return trace_id, parent_id


class TestHappyPath:
    def test_returns_trace_id(self, backend, collaborators):
        res = backend.post("/checkout", json=ORDER)

        assert res.status_code == 200
        assert set(res.json()) == {"trace-id"}
        assert TRACE_ID.match(res.json()["trace-id"])
        assert sorted(collaborators.hosts) == ["payment-gateway", "shipping-gateway"]

    def test_payment_payload(self, backend, collaborators):
        backend.post("/checkout", json=ORDER)

        payment = json.loads(collaborators.calls[0].content)
        assert collaborators.calls[0].url.host == "payment-gateway"
        assert payment["name"] == "Bob"
        assert payment["method"] == "payment-gateway"
        assert isinstance(payment["amount"], int)

    def test_shipping_payload(self, backend, collaborators):
        backend.post("/checkout", json=ORDER)

        shipping = json.loads(collaborators.calls[1].content)
        assert shipping == {
            "address": "1 Main St",
            "vendor": "shipping-gateway",
            "basket": ["apple", "bread"],
        }

    def test_empty_basket_pays_zero(self, backend, collaborators, span_exporter):
        res = backend.post("/checkout", json={**ORDER, "basket": []})

        assert res.status_code == 200
        assert json.loads(collaborators.calls[0].content)["amount"] == 0
        price = spans_by_name(span_exporter)["calculate-price"]
        assert price.attributes["total-price"] == 0

    def test_missing_fields_are_tolerated(self, backend, collaborators):
        res = backend.post("/checkout", json={"name": "Ann"})

        assert res.status_code == 200
        assert json.loads(collaborators.calls[1].content)["basket"] == []


class TestDecodeGate:
    def test_not_json(self, backend, collaborators):
        with pytest.raises(ValidationError) as exc:
            Order.model_validate_json(b"not-json")

        res = backend.post("/checkout", content=b"not-json")

        assert res.status_code == 400
        assert res.text == str(exc.value)
        assert collaborators.calls == []

    @pytest.mark.parametrize("body", [
        b'{"basket": "apple"}',
        b'{"name": 42}',
        b"[1, 2, 3]",
        b"",
        b"null",
        b'{"name": "Bob"} {"name": "Ann"}',
        b'{"name": "Bob"} trailing',
        b'{"basket": ["apple"], "name": "Bob", "payment": 1}',
    ])
    def test_malformed_bodies_never_reach_downstream(self, backend, collaborators, body):
        res = backend.post("/checkout", content=body)

        assert res.status_code == 400
        assert collaborators.calls == []

    def test_decode_error_recorded_on_server_span(self, backend, span_exporter):
        backend.post("/checkout", content=b"not-json")

        server = spans_by_name(span_exporter)["handle-checkout"]
        assert "Error decoding order json" in event_names(server)
        assert "payment" not in spans_by_name(span_exporter)


class TestOrdering:
    def test_payment_completes_before_fan_out(self, backend, collaborators, span_exporter):
        backend.post("/checkout", json=ORDER)

        spans = spans_by_name(span_exporter)
        payment_end = spans["payment"].end_time
        assert spans["shipping"].start_time >= payment_end
        assert spans["generating-invoice"].start_time >= payment_end
        assert collaborators.hosts[0] == "payment-gateway"

    def test_response_waits_for_both_legs(self, backend, span_exporter):
        backend.post("/checkout", json=ORDER)

        spans = spans_by_name(span_exporter)
        server_end = spans["handle-checkout"].end_time
        assert spans["shipping"].end_time <= server_end
        assert spans["generating-invoice"].end_time <= server_end
        assert "Successfully invoice generated" in event_names(spans["generating-invoice"])

    def test_legs_are_siblings_under_checkout(self, backend, span_exporter):
        backend.post("/checkout", json=ORDER)

        spans = spans_by_name(span_exporter)
        server_id = spans["handle-checkout"].context.span_id
        for name in ("payment", "shipping", "generating-invoice"):
            assert spans[name].parent.span_id == server_id


class TestFailureIsolation:
    def test_shipping_unreachable(self, backend, collaborators, span_exporter):
        collaborators.unreachable.add("shipping-gateway")

        res = backend.post("/checkout", json=ORDER)

        assert res.status_code == 200
        assert TRACE_ID.match(res.json()["trace-id"])
        spans = spans_by_name(span_exporter)
        shipping = spans["shipping"]
        assert "Error sending shipping-gateway request" in event_names(shipping)
        assert shipping.attributes["outcome"] == "transport_error"
        assert spans["payment"].attributes["outcome"] == "ok"
        assert "Successfully invoice generated" in event_names(spans["generating-invoice"])

    def test_shipping_rejected(self, backend, collaborators, span_exporter):
        collaborators.statuses["shipping-gateway"] = 503

        res = backend.post("/checkout", json=ORDER)

        assert res.status_code == 200
        shipping = spans_by_name(span_exporter)["shipping"]
        [event] = [e for e in shipping.events if e.name == "Error from shipping-gateway"]
        assert event.attributes["status"] == 503

    def test_payment_failure_does_not_gate_fan_out(self, backend, collaborators, span_exporter):
        collaborators.unreachable.add("payment-gateway")

        res = backend.post("/checkout", json=ORDER)

        assert res.status_code == 200
        assert collaborators.hosts == ["payment-gateway", "shipping-gateway"]
        assert spans_by_name(span_exporter)["payment"].attributes["outcome"] == "transport_error"


class TestTracePropagation:
    def test_outbound_requests_carry_response_trace_id(self, backend, collaborators):
        res = backend.post("/checkout", json=ORDER)

        trace_id = res.json()["trace-id"]
        assert len(collaborators.calls) == 2
        for request in collaborators.calls:
            assert _traceparent(request)[0] == trace_id

    def test_outbound_parent_is_client_span(self, backend, collaborators, span_exporter):
        backend.post("/checkout", json=ORDER)

        client_span = spans_by_name(span_exporter)["POST payment-gateway"]
        assert _traceparent(collaborators.calls[0])[1] == format(client_span.context.span_id, "016x")

    def test_inbound_trace_is_continued(self, backend, collaborators):
        upstream = "0af7651916cd43dd8448eb211c80319c"
        res = backend.post(
            "/checkout",
            json=ORDER,
            headers={"traceparent": f"00-{upstream}-b7ad6b7169203331-01"},
        )

        assert res.json()["trace-id"] == upstream
        assert all(_traceparent(r)[0] == upstream for r in collaborators.calls)

    def test_checkout_baggage_is_propagated(self, backend, collaborators):
        backend.post("/checkout", json=ORDER)

        for request in collaborators.calls:
            assert "method=repl" in request.headers["baggage"]
            assert "client=cli" in request.headers["baggage"]


class TestFailFast:
    def test_payment_failure_aborts(self, make_client, collaborators):
        client = make_client("back-end", policy="fail-fast", invoice_delay=0.0)
        collaborators.statuses["payment-gateway"] = 500

        res = client.post("/checkout", json=ORDER)

        assert res.status_code == 502
        assert res.json()["failed-leg"] == "payment"
        assert TRACE_ID.match(res.json()["trace-id"])
        assert collaborators.hosts == ["payment-gateway"]

    def test_shipping_failure_aborts(self, make_client, collaborators):
        client = make_client("back-end", policy="fail-fast", invoice_delay=0.0)
        collaborators.unreachable.add("shipping-gateway")

        res = client.post("/checkout", json=ORDER)

        assert res.status_code == 502
        assert res.json()["failed-leg"] == "shipping"
