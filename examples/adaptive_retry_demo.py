#!/usr/bin/env python3
"""
Example: Adaptive retries against a simulated flaky service.

This example demonstrates:
1. Retrying transient failures with learned, per-endpoint delays
2. Permanent errors failing fast
3. The circuit breaker rejecting calls to an unhealthy endpoint
4. Persisting learned statistics to a JSON file between runs
5. Optionally, retrying a real HTTP endpoint with requests
"""

import asyncio
import logging
import random
import sys

import requests

from adaptive_retry import (
    AdaptiveRetry, CircuitOpenError, FileStorage, RetryInfo, with_adaptive_retry
)


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class HttpStatusError(Exception):
    """Simulated HTTP failure."""

    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class FlakyService:
    """Service that fails a configurable share of calls."""

    def __init__(self, failure_rate: float = 0.5):
        self.failure_rate = failure_rate
        self.call_count = 0

    async def fetch(self, item_id: int) -> dict:
        self.call_count += 1
        await asyncio.sleep(0.01)
        if random.random() < self.failure_rate:
            raise ConnectionResetError("connection reset by peer")
        return {"id": item_id, "call": self.call_count}


def log_retry(info: RetryInfo) -> None:
    logger.info(
        f"  attempt {info.attempt} failed ({info.category.value}), "
        f"waiting {info.delay}ms (p={info.success_probability:.2f})"
    )


async def demo_transient(retry: AdaptiveRetry) -> None:
    logger.info("Transient failures with learned delays")
    service = FlakyService(failure_rate=0.5)

    for item_id in range(5):
        try:
            outcome = await retry.execute(
                lambda: service.fetch(item_id), "inventory", max_retries=6, on_retry=log_retry
            )
            logger.info(f"item {item_id}: {outcome.result} after {outcome.attempts} attempt(s)")
        except ConnectionResetError as e:
            logger.warning(f"item {item_id}: gave up ({e})")

    stats = retry.get_stats("inventory")
    logger.info(f"inventory streak outcomes: {stats.streak_outcomes}")


async def demo_permanent(retry: AdaptiveRetry) -> None:
    logger.info("Permanent errors fail fast")

    async def missing():
        raise HttpStatusError(404)

    try:
        await retry.execute(missing, "catalog", max_retries=5)
    except HttpStatusError as e:
        logger.info(f"not retried: {e}")


async def demo_circuit_breaker(retry: AdaptiveRetry) -> None:
    logger.info("Circuit breaker opening on an unhealthy endpoint")

    @with_adaptive_retry(retry, "payments", max_retries=1)
    async def charge():
        raise HttpStatusError(503)

    for _ in range(4):
        try:
            await charge()
        except HttpStatusError as e:
            logger.info(f"charge failed: {e}")
        except CircuitOpenError as e:
            logger.info(f"rejected: {e}")

    status = retry.get_circuit_breaker_status("payments")
    logger.info(f"payments breaker: {status.to_dict()}")


async def demo_http(retry: AdaptiveRetry, url: str) -> None:
    logger.info(f"Real HTTP call to {url}")

    def get():
        response = requests.get(url, timeout=5)
        response.raise_for_status()
        return response.status_code

    try:
        outcome = await retry.execute(lambda: asyncio.to_thread(get), url, max_retries=3)
        logger.info(f"{url}: HTTP {outcome.result} after {outcome.attempts} attempt(s)")
    except requests.RequestException as e:
        logger.warning(f"{url}: failed ({e})")


async def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Adaptive Retry Demo")
    parser.add_argument("--stats-file", default="retry-stats.json", help="Where learned statistics are kept")
    parser.add_argument("--url", help="Optional real URL to fetch with retries")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    retry = AdaptiveRetry(
        config={"max_delay": 2000},
        circuit_breaker_config={"failure_threshold": 2, "reset_timeout": 10000},
        storage=FileStorage(args.stats_file),
    )

    async with retry:
        loaded = await retry.load_from_storage()
        logger.info(f"Loaded {loaded} endpoint(s) from {args.stats_file}")

        await demo_transient(retry)
        await demo_permanent(retry)
        await demo_circuit_breaker(retry)
        if args.url:
            await demo_http(retry, args.url)

    logger.info(f"Metrics: {retry.get_metrics()['totals']}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Demo interrupted by user")
        sys.exit(0)
