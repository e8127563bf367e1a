import os

# Service identity
SERVICE_NAME = os.getenv("SERVICE_NAME", "back-end")
SERVICE_VERSION = os.getenv("SERVICE_VERSION", "1.0.0")
DEPLOYMENT_ENVIRONMENT = os.getenv("DEPLOYMENT_ENVIRONMENT", "demo")
PORT = int(os.getenv("PORT", "80"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# OTEL pipeline
OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://otel-collector:4317")
OTEL_TRACES_EXPORTER = os.getenv("OTEL_TRACES_EXPORTER", "otlp")  # otlp | console | none
OTEL_LOGS_EXPORT = os.getenv("OTEL_LOGS_EXPORT", "true").lower() == "true"

# Collaborators
PAYMENT_GATEWAY_HOST = os.getenv("PAYMENT_GATEWAY_HOST", "payment-gateway")
SHIPPING_GATEWAY_HOST = os.getenv("SHIPPING_GATEWAY_HOST", "shipping-gateway")
# "paypal=localhost:8003,fedex=localhost:8005" remaps logical names for local runs
COLLABORATOR_HOSTS = os.getenv("COLLABORATOR_HOSTS", "")
COLLABORATOR_TIMEOUT = float(os.getenv("COLLABORATOR_TIMEOUT", "5.0"))  # seconds, httpx default

# Checkout behavior
FANOUT_POLICY = os.getenv("FANOUT_POLICY", "best-effort")  # best-effort | fail-fast
INVOICE_DELAY_MS = int(os.getenv("INVOICE_DELAY_MS", "60"))
PRICING_DELAY_MS = int(os.getenv("PRICING_DELAY_MS", "6"))
PRICE_FACTOR_MAX = int(os.getenv("PRICE_FACTOR_MAX", "500"))
CHECKOUT_BAGGAGE = os.getenv("CHECKOUT_BAGGAGE", "method=repl,client=cli")

# Vendors
VENDOR_MAX_DELAY = int(os.getenv("VENDOR_MAX_DELAY", "2"))  # seconds


def parse_pairs(raw: str) -> dict[str, str]:
    """Parse "a=b,c=d" into a dict, skipping blank or malformed entries."""
    pairs = {}
    for item in raw.split(","):
        key, sep, value = item.partition("=")
        if sep and key.strip():
            pairs[key.strip()] = value.strip()
    return pairs
