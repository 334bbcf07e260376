"""
Fetch a URL with tiny_http_client and print the response.

Usage:
    python examples/get.py http://localhost:8080/hello --timeout 2.5
    python examples/get.py http://example.com/ --pooled --repeat 3
"""

import argparse
import asyncio
import logging
import sys

from tiny_http_client import Client, ClientConfig, ConnectionStrategy, HTTPCoreError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("url", help="http:// or https:// URL to fetch")
    parser.add_argument("--timeout", type=float, default=None, help="request timeout in seconds")
    parser.add_argument("--pooled", action="store_true", help="reuse connections between requests")
    parser.add_argument("--repeat", type=int, default=1, help="number of sequential requests")
    parser.add_argument("--verbose", "-v", action="store_true", help="enable debug logging")
    return parser.parse_args(argv)


async def fetch(args) -> int:
    strategy = ConnectionStrategy.POOLED if args.pooled else ConnectionStrategy.ONESHOT
    config = ClientConfig(request_timeout=args.timeout, connection_strategy=strategy)

    async with Client(config=config) as client:
        for _ in range(args.repeat):
            response = await client.request(args.url).header("Accept", "*/*").get()
            logger.info(f"STATUS: {response.status_code} {response.reason_phrase.decode()}")
            print(response.text())
        logger.info(f"Provider metrics: {client.metrics}")
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    if args.verbose:
        logging.getLogger("tiny_http_client").setLevel(logging.DEBUG)
    try:
        return asyncio.run(fetch(args))
    except HTTPCoreError as e:
        logger.error(f"Request failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
