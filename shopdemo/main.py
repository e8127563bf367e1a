"""Service runner. Builds the FastAPI app for one of the demo services.

Usage:
    shopdemo-serve --service back-end --port 8080
    SERVICE_NAME=paypal shopdemo-serve
    uvicorn --factory shopdemo.main:create_app
"""

import argparse
import logging
from contextlib import asynccontextmanager
from functools import partial

import httpx
import uvicorn
from fastapi import FastAPI

from . import checkout, config, gateways, vendors
from .collaborator import CollaboratorClient
from .handlers import install_error_handlers
from .orchestrator import CheckoutOrchestrator
from .telemetry import Telemetry

log = logging.getLogger(__name__)

ROUTERS = {
    "back-end":         lambda: checkout.router,
    "payment-gateway":  lambda: gateways.payment_router,
    "shipping-gateway": lambda: gateways.shipping_router,
    **{name: partial(vendors.payment_vendor_router, name) for name in vendors.PAYMENT_VENDORS},
    **{name: partial(vendors.shipping_vendor_router, name) for name in vendors.SHIPPING_VENDORS},
}


def create_app(
    service: str | None = None,
    *,
    telemetry: Telemetry | None = None,
    http_client: httpx.AsyncClient | None = None,
    orchestrator_options: dict | None = None,
) -> FastAPI:
    service = service or config.SERVICE_NAME
    if service not in ROUTERS:
        raise ValueError(f"Unknown service {service!r}; expected one of {sorted(ROUTERS)}")
    telemetry = telemetry or Telemetry(service, install_global=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        telemetry.init()
        http = http_client or httpx.AsyncClient(timeout=config.COLLABORATOR_TIMEOUT)
        app.state.telemetry = telemetry
        app.state.client = CollaboratorClient(telemetry, http)
        if service == "back-end":
            app.state.orchestrator = CheckoutOrchestrator(
                telemetry, app.state.client, **(orchestrator_options or {})
            )
        log.info("Hello, this is the %s service, ready to demonstrate how OpenTelemetry works!", service)
        try:
            yield
        finally:
            if http_client is None:
                await http.aclose()
            telemetry.shutdown()

    app = FastAPI(title=f"shopdemo {service}", version=config.SERVICE_VERSION, lifespan=lifespan)
    app.include_router(ROUTERS[service]())
    install_error_handlers(app)

    @app.get("/health")
    def health():
        return {"status": "ok", "service": service}

    return app


def main():
    parser = argparse.ArgumentParser(description="Run one of the traced checkout demo services")
    parser.add_argument("--service", choices=sorted(ROUTERS), default=config.SERVICE_NAME,
                        help=f"Service to run (default: {config.SERVICE_NAME})")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=config.PORT,
                        help=f"Listen port (default: {config.PORT})")
    args = parser.parse_args()

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    log.info("Listening on port %d", args.port)
    uvicorn.run(create_app(args.service), host=args.host, port=args.port, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
