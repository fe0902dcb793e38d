"""Unit tests for the knowledge node client and document builder."""

from unittest.mock import MagicMock

import pytest
import requests

from x402_premium.core.errors import KnowledgeStoreError
from x402_premium.core.knowledge import KnowledgeNodeClient, build_sources_document
from x402_premium.core.sources import ContentItem

ITEM = ContentItem(
    id="PMC7",
    title="Inhaled steroids",
    authors="Lee K",
    venue="Thorax",
    year="2022",
    doi="10.1000/seven",
    alt_id="PMC7",
)


def _session(status: int = 200, payload=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.text = "body"
    response.json.return_value = payload or {}
    session = MagicMock()
    session.post.return_value = response
    return session


def test_document_links_bundle_to_articles() -> None:
    document = build_sources_document([ITEM], "asthma", "premium")

    bundle, article = document["@graph"]
    assert bundle["schema:itemListElement"][0]["schema:item"]["@id"] == article["@id"]
    assert article["@id"] == "urn:medical:source:PMC7"
    assert article["schema:about"] == "asthma"
    assert article["schema:url"] == "https://doi.org/10.1000/seven"
    tiers = [p["schema:value"] for p in article["schema:identifier"] if p["schema:propertyID"] == "accessTier"]
    assert tiers == ["premium"]


@pytest.mark.asyncio
class TestKnowledgeNodeClient:
    async def test_publish_returns_ual(self):
        session = _session(payload={"UAL": "did:dkg:otp:20430/0x1/5"})
        client = KnowledgeNodeClient("http://node:8900/", session=session, timeout=5)

        reference = await client.publish({"@graph": []})

        assert reference == "did:dkg:otp:20430/0x1/5"
        url = session.post.call_args.args[0]
        assert url == "http://node:8900/publish"
        assert session.post.call_args.kwargs["json"] == {
            "content": {"public": {"@graph": []}},
            "privacy": "public",
        }

    async def test_publish_without_ual_fails(self):
        client = KnowledgeNodeClient("http://node", session=_session(payload={"status": "ok"}))

        with pytest.raises(KnowledgeStoreError, match="no UAL"):
            await client.publish({})

    async def test_http_error(self):
        client = KnowledgeNodeClient("http://node", session=_session(status=500))

        with pytest.raises(KnowledgeStoreError, match="500"):
            await client.publish({})

    async def test_unreachable(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("refused")
        client = KnowledgeNodeClient("http://node", session=session)

        with pytest.raises(KnowledgeStoreError, match="unreachable"):
            await client.query({"query": "asthma"})

    async def test_query_returns_data(self):
        session = _session(payload={"data": [{"title": "Inhaled steroids"}]})
        client = KnowledgeNodeClient("http://node", session=session)

        results = await client.query({"query": "asthma", "tier": "premium"})

        assert results == [{"title": "Inhaled steroids"}]
        assert session.post.call_args.args[0] == "http://node/query"
