"""Unit tests for the named tool actions."""

import pytest

from x402_premium.tools import TOOL_NAMES, clean_query, invoke_tool, parse_flag

from conftest import tx_hash


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("diabetes treatment", "diabetes treatment"),
        ("  Sources: diabetes treatment ", "diabetes treatment"),
        ("get medical sources for: \"long covid\"", "long covid"),
        ('"asthma"', "asthma"),
        (None, ""),
        (42, ""),
    ],
)
def test_clean_query(raw, expected) -> None:
    assert clean_query(raw) == expected


@pytest.mark.parametrize(
    "value, expected",
    [(True, True), (False, False), ("true", True), ("Yes", True), ("no", False), ("", False), (1, True), (None, False)],
)
def test_parse_flag(value, expected) -> None:
    assert parse_flag(value) is expected


def test_tool_names() -> None:
    assert TOOL_NAMES == (
        "purchase_premium_medical_sources",
        "publish_premium_medical_sources",
        "get_payment_request",
        "query_dkg_medical_sources",
    )


@pytest.mark.asyncio
class TestInvokeTool:
    async def test_purchase_with_string_auto_pay(self, orchestrator, chain):
        response = await invoke_tool(
            orchestrator,
            "purchase_premium_medical_sources",
            {"query": "sources: cancer immunotherapy", "autoPay": "true"},
        )

        assert response.is_error is False
        assert len(chain.sent) == 1

    async def test_purchase_with_hash(self, orchestrator, chain):
        chain.add_transaction(tx_hash(60))

        response = await invoke_tool(
            orchestrator,
            "purchase_premium_medical_sources",
            {"query": "asthma", "paymentTxHash": f" {tx_hash(60)} "},
        )

        assert response.data["txHash"] == tx_hash(60)
        assert chain.sent == []

    async def test_blank_hash_means_no_payment(self, orchestrator, chain):
        response = await invoke_tool(
            orchestrator, "purchase_premium_medical_sources", {"query": "asthma", "paymentTxHash": "  "}
        )

        assert response.data["status"] == "payment_required"
        assert chain.sent == []

    async def test_publish_routes_to_orchestrator(self, orchestrator, knowledge):
        await invoke_tool(
            orchestrator, "purchase_premium_medical_sources", {"query": "asthma", "autoPay": True}
        )

        response = await invoke_tool(orchestrator, "publish_premium_medical_sources", {"query": "Asthma"})

        assert response.is_error is False
        assert len(knowledge.published) == 1

    async def test_payment_request_takes_no_arguments(self, orchestrator):
        response = await invoke_tool(orchestrator, "get_payment_request")

        assert response.data["chainId"] == "20430"

    async def test_query_passes_tier(self, orchestrator, knowledge):
        await invoke_tool(
            orchestrator, "query_dkg_medical_sources", {"query": "asthma", "tier": "free"}
        )

        assert knowledge.queries == [{"query": "asthma", "tier": "free"}]

    async def test_unknown_tool(self, orchestrator):
        with pytest.raises(KeyError, match="Unknown tool"):
            await invoke_tool(orchestrator, "refund_everything", {})
