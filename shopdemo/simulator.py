"""
Checkout simulator: keeps the back-end busy with fake orders so traces
show up in the backend without anyone clicking around.

Usage:
    shopdemo-simulate                                  # 1 order/sec forever
    shopdemo-simulate --target http://localhost:8080 --rate 5 --count 100
"""

import argparse
import logging
import os
import random
import time

import httpx
from faker import Faker

from .models import Order

log = logging.getLogger("shopdemo.simulator")

PAYMENT_METHODS = [
    ("credit", 0.65),
    ("paypal", 0.35),
]

SHIPPING_VENDORS = [
    ("fedex", 0.40),
    ("dhl", 0.35),
    ("toll", 0.25),
]

PRODUCTS = [
    "apple", "bread", "milk", "coffee", "eggs", "cheese",
    "rice", "pasta", "tomato", "olive-oil", "chocolate", "tea",
]

MAX_BASKET = 5


def _weighted_choice(options, rng: random.Random):
    """Pick from list of (value, weight) tuples."""
    values, weights = zip(*options)
    return rng.choices(values, weights=weights, k=1)[0]


def generate_order(fake: Faker, rng: random.Random) -> Order:
    size = rng.randint(0, MAX_BASKET)
    return Order(
        name=fake.name(),
        address=fake.address().replace("\n", ", "),
        payment=_weighted_choice(PAYMENT_METHODS, rng),
        shipping=_weighted_choice(SHIPPING_VENDORS, rng),
        basket=rng.sample(PRODUCTS, size),
    )


def send_order(client: httpx.Client, target: str, order: Order) -> httpx.Response:
    return client.post(
        f"{target.rstrip('/')}/checkout",
        content=order.model_dump_json(),
        headers={"Content-Type": "application/json"},
    )


def run(
    target: str,
    rate: float,
    count: int | None,
    seed: int | None = None,
    client: httpx.Client | None = None,
) -> dict:
    fake = Faker()
    rng = random.Random(seed)
    if seed is not None:
        Faker.seed(seed)
    interval = 1.0 / rate if rate > 0 else 0.0

    stats = {"sent": 0, "ok": 0, "failed": 0}
    log.info("Simulating checkouts against %s (%.1f/sec)", target, rate)

    own_client = client is None
    client = client or httpx.Client(timeout=30.0)
    try:
        while count is None or stats["sent"] < count:
            order = generate_order(fake, rng)
            stats["sent"] += 1
            try:
                res = send_order(client, target, order)
                trace_id = res.json().get("trace-id") if res.status_code == 200 else None
            except (httpx.HTTPError, ValueError) as e:
                # ValueError: a 200 whose body is not JSON
                stats["failed"] += 1
                log.error("Checkout for %s failed: %s", order.name, e)
            else:
                if res.status_code == 200:
                    stats["ok"] += 1
                    log.info("Checkout for %s → trace %s", order.name, trace_id)
                else:
                    stats["failed"] += 1
                    log.warning("Checkout for %s answered %d: %s", order.name, res.status_code, res.text)

            if stats["sent"] % 100 == 0:
                log.info("Sent %d checkouts (%d ok, %d failed)", stats["sent"], stats["ok"], stats["failed"])
            if interval:
                time.sleep(interval)
    finally:
        if own_client:
            client.close()

    return stats


def main():
    parser = argparse.ArgumentParser(description="Send fake checkout orders to the back-end")
    parser.add_argument("--target", default=os.getenv("SIMULATOR_TARGET", "http://back-end"),
                        help="Back-end base URL (default: http://back-end)")
    parser.add_argument("--rate", type=float, default=float(os.getenv("SIMULATOR_RATE", "1")),
                        help="Orders per second (default: 1)")
    parser.add_argument("--count", type=int, default=None,
                        help="Stop after this many orders (default: run forever)")
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible orders")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    stats = run(args.target, args.rate, args.count, args.seed)
    log.info("Done: %d sent, %d ok, %d failed", stats["sent"], stats["ok"], stats["failed"])


if __name__ == "__main__":
    main()
