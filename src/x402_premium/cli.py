"""
Command-line interface for the premium gateway.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Iterable, List, Sequence, Tuple

from .api import ConfigError, create_gateway, load_gateway_config
from .orchestrator import GatewayResponse
from .tools import invoke_tool


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )


def _env_override(value: str) -> Tuple[str, str]:
    if "=" not in value:
        raise argparse.ArgumentTypeError("Overrides must look like KEY=VALUE")
    key, val = value.split("=", 1)
    key = key.strip()
    if not key:
        raise argparse.ArgumentTypeError("Override key must not be empty")
    return key, val


def _collect_overrides(pairs: Iterable[Tuple[str, str]]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, value in pairs:
        overrides[key] = value
    return overrides


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="x402-premium",
        description="Buy, publish and look up premium medical sources paid over x402",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to the .env file containing X402_* settings (default: .env)",
    )
    parser.add_argument(
        "--set",
        action="append",
        type=_env_override,
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
        "--json",
        action="store_true",
        help="Print the full response envelope as JSON instead of plain text",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    purchase = commands.add_parser("purchase", help="Pay for and fetch premium sources")
    purchase.add_argument("query", help="Medical research query, e.g. 'diabetes treatment'")
    purchase.add_argument("--tx", dest="tx", help="Hash of a payment you already sent")
    purchase.add_argument(
        "--auto-pay",
        action="store_true",
        help="Pay automatically from the configured wallet",
    )
    purchase.add_argument(
        "--publish",
        action="store_true",
        help="Publish the purchased sources to the knowledge node once paid",
    )

    commands.add_parser("payment-request", help="Show how to pay manually")

    query = commands.add_parser("query", help="Look up previously published sources")
    query.add_argument("query")
    query.add_argument("--tier", choices=("free", "premium"), default=None)
    return parser


def _tool_call(args: argparse.Namespace) -> Tuple[str, dict]:
    if args.command == "purchase":
        return "purchase_premium_medical_sources", {
            "query": args.query,
            "paymentTxHash": args.tx,
            "autoPay": args.auto_pay,
        }
    if args.command == "query":
        return "query_dkg_medical_sources", {"query": args.query, "tier": args.tier}
    return "get_payment_request", {}


async def _run(
    gateway, name: str, arguments: dict, args: argparse.Namespace
) -> List[Tuple[str, GatewayResponse]]:
    results = [(name, await invoke_tool(gateway, name, arguments))]
    # Purchases live in process memory, so publishing has to follow in the same run.
    if args.command == "purchase" and args.publish and not results[0][1].is_error:
        publish = "publish_premium_medical_sources"
        results.append((publish, await invoke_tool(gateway, publish, {"query": args.query})))
    return results


def run_cli(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.log_level)
    overrides = _collect_overrides(args.set or ())

    try:
        config = load_gateway_config(env_file=args.env_file, overrides=overrides)
    except (ConfigError, ValueError) as exc:
        logging.error("Invalid configuration: %s", exc)
        return 1

    gateway = create_gateway(config=config)
    name, arguments = _tool_call(args)
    results = asyncio.run(_run(gateway, name, arguments, args))

    if args.json:
        envelopes = [response.to_dict() for _, response in results]
        print(json.dumps(envelopes[0] if len(envelopes) == 1 else envelopes, indent=2))
    else:
        for _, response in results:
            print(response.text)
    name, response = results[-1]
    if response.is_error:
        logging.error("%s did not succeed", name)
        return 1
    return 0


def main() -> None:
    sys.exit(run_cli())
