"""
Named actions over the orchestrator, for tool/RPC style front ends.

Each action takes a small mapping of arguments and returns a
:class:`~x402_premium.orchestrator.GatewayResponse`.
"""

from __future__ import annotations

import re
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from .orchestrator import AcquisitionOrchestrator, GatewayResponse

__all__ = [
    "TOOL_NAMES",
    "clean_query",
    "invoke_tool",
    "parse_flag",
]

_QUERY_PREFIXES = (
    re.compile(r"^sources:\s*", re.IGNORECASE),
    re.compile(r"^get medical sources for:\s*", re.IGNORECASE),
)


def clean_query(raw: Any) -> str:
    """Strip conversational prefixes and wrapping quotes from a query."""
    if not isinstance(raw, str):
        return ""
    query = raw.strip()
    for prefix in _QUERY_PREFIXES:
        query = prefix.sub("", query)
    return query.strip().strip('"').strip()


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "y", "on")
    return bool(value)


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


async def _purchase(orchestrator: AcquisitionOrchestrator, args: Mapping[str, Any]) -> GatewayResponse:
    return await orchestrator.purchase(
        clean_query(args.get("query")),
        transaction_id=_optional_str(args.get("paymentTxHash")),
        auto_pay=parse_flag(args.get("autoPay", False)),
    )


async def _publish(orchestrator: AcquisitionOrchestrator, args: Mapping[str, Any]) -> GatewayResponse:
    return await orchestrator.publish_purchased(clean_query(args.get("query")))


async def _payment_request(
    orchestrator: AcquisitionOrchestrator, args: Mapping[str, Any]
) -> GatewayResponse:
    return orchestrator.payment_request()


async def _query_published(
    orchestrator: AcquisitionOrchestrator, args: Mapping[str, Any]
) -> GatewayResponse:
    return await orchestrator.query_published(
        clean_query(args.get("query")), _optional_str(args.get("tier"))
    )


_TOOLS: Dict[
    str, Callable[[AcquisitionOrchestrator, Mapping[str, Any]], Awaitable[GatewayResponse]]
] = {
    "purchase_premium_medical_sources": _purchase,
    "publish_premium_medical_sources": _publish,
    "get_payment_request": _payment_request,
    "query_dkg_medical_sources": _query_published,
}

TOOL_NAMES = tuple(_TOOLS)


async def invoke_tool(
    orchestrator: AcquisitionOrchestrator,
    name: str,
    arguments: Optional[Mapping[str, Any]] = None,
) -> GatewayResponse:
    """Run the action called ``name``. Unknown names raise ``KeyError``."""
    try:
        handler = _TOOLS[name]
    except KeyError:
        raise KeyError(f"Unknown tool '{name}'") from None
    return await handler(orchestrator, arguments or {})
