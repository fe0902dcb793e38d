"""
Minimal script that buys premium sources for a query and optionally publishes them.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Iterable, Tuple

from x402_premium import ConfigError, create_gateway, load_gateway_config


def _override(value: str) -> Tuple[str, str]:
    if "=" not in value:
        raise argparse.ArgumentTypeError("Overrides must look like KEY=VALUE")
    key, val = value.split("=", 1)
    key = key.strip()
    if not key:
        raise argparse.ArgumentTypeError("Override key must not be empty")
    return key, val


def _build_overrides(pairs: Iterable[Tuple[str, str]]) -> dict[str, str]:
    return {key: value for key, value in pairs}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Purchase premium medical sources over x402")
    parser.add_argument("query", help="Medical research query, e.g. 'cancer immunotherapy'")
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to the .env file containing X402_* settings",
    )
    parser.add_argument(
        "--set",
        action="append",
        type=_override,
        metavar="KEY=VALUE",
        default=None,
        help="Override an environment variable without editing the .env file",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO)",
    )
    parser.add_argument(
        "--tx",
        help="Use an already-sent payment instead of paying from the configured wallet",
    )
    parser.add_argument(
        "--publish",
        action="store_true",
        help="Publish the purchased sources to the knowledge node afterwards",
    )
    parser.add_argument(
        "--payment-address",
        help="Override the recipient of premium payments",
    )
    parser.add_argument(
        "--amount",
        help="Override the price in token units (e.g. 0.02)",
    )
    parser.add_argument(
        "--rpc-url",
        help="Override the chain JSON-RPC endpoint",
    )
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> int:
    overrides = _build_overrides(args.set or ())
    parameter_kwargs = {
        key: value
        for key, value in {
            "payment_address": args.payment_address,
            "amount": args.amount,
            "rpc_url": args.rpc_url,
        }.items()
        if value is not None
    }

    try:
        config = load_gateway_config(
            env_file=args.env_file,
            overrides=overrides,
            **parameter_kwargs,
        )
    except (ConfigError, ValueError) as exc:
        logging.error("Invalid configuration: %s", exc)
        return 1

    gateway = create_gateway(config=config)
    logging.info("Purchasing premium sources for %r via %s", args.query, config.rpc_url)

    response = await gateway.purchase(args.query, transaction_id=args.tx, auto_pay=args.tx is None)
    print(response.text)
    if response.is_error:
        return 1

    if args.publish:
        published = await gateway.publish_purchased(args.query)
        print(published.text)
        if published.is_error:
            return 1
    return 0


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
