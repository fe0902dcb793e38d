"""Unit tests for Europe PMC parsing and retrieval."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import requests

from x402_premium.core.errors import InsufficientFundsError, UpstreamFetchFailure
from x402_premium.core.sources import (
    ABSTRACT_LIMIT,
    ContentItem,
    EuropePmcSource,
    dedupe_items,
    parse_results,
)

BASE_URL = "https://www.ebi.ac.uk/europepmc/webservices/rest/search"


def _record(**fields):
    record = {
        "pmid": "1",
        "title": "A title",
        "authorString": "Doe J",
        "journalInfo": {"journal": {"title": "BMJ"}, "yearOfPublication": 2020},
        "pubYear": "2021",
        "abstractText": "Short abstract",
    }
    record.update(fields)
    return record


def _payload(*records):
    return {"resultList": {"result": list(records)}}


def test_parse_maps_fields() -> None:
    item = parse_results(_payload(_record(pmcid="PMC9", doi="10.1/x")))[0]

    assert item.id == "PMC9"
    assert item.title == "A title"
    assert item.authors == "Doe J"
    assert item.venue == "BMJ"
    assert item.year == "2021"
    assert item.doi == "10.1/x"
    assert item.alt_id == "PMC9"
    assert item.abstract == "Short abstract"


def test_link_preference() -> None:
    open_access = _record(
        pmcid="PMC1",
        doi="10.1/a",
        fullTextUrlList={
            "fullTextUrl": [
                {"availabilityCode": "S", "url": "https://paywalled.example"},
                {"availabilityCode": "OA", "url": "https://oa.example/1"},
            ]
        },
    )
    pmc_only = _record(pmcid="PMC2", doi="10.1/b")
    doi_only = _record(doi="10.1/c")
    bare = _record()

    items = parse_results(_payload(open_access, pmc_only, doi_only, bare))

    assert [item.url for item in items] == [
        "https://oa.example/1",
        "https://europepmc.org/articles/PMC2?pdf=render",
        "https://doi.org/10.1/c",
        None,
    ]


def test_missing_fields_get_placeholders() -> None:
    item = parse_results(_payload({"doi": "10.1/z"}))[0]

    assert item.id == "10.1/z"
    assert item.title == "No title"
    assert item.authors == "Unknown"
    assert item.venue == "Unknown"
    assert item.year == "N/A"
    assert item.abstract == "No abstract available"


def test_record_without_identifiers_gets_generated_id() -> None:
    item = parse_results(_payload({"title": "Orphan"}))[0]

    assert item.id.startswith("epmc_")


def test_abstract_is_truncated() -> None:
    item = parse_results(_payload(_record(abstractText="x" * 2000)))[0]

    assert len(item.abstract) == ABSTRACT_LIMIT


def test_dedupe_prefers_doi_then_alt_id_then_url_then_id() -> None:
    items = [
        ContentItem(id="1", title="first", authors="", venue="", year="", doi="10.1/A"),
        ContentItem(id="2", title="same doi", authors="", venue="", year="", doi="10.1/a"),
        ContentItem(id="3", title="pmc", authors="", venue="", year="", alt_id="PMC5"),
        ContentItem(id="4", title="same pmc", authors="", venue="", year="", alt_id="pmc5"),
        ContentItem(id="5", title="url", authors="", venue="", year="", url="https://x"),
        ContentItem(id="6", title="same url", authors="", venue="", year="", url="https://X"),
        ContentItem(id="7", title="id", authors="", venue="", year=""),
        ContentItem(id="7", title="same id", authors="", venue="", year=""),
    ]

    assert [item.title for item in dedupe_items(items)] == ["first", "pmc", "url", "id"]


def test_dedupe_respects_limit() -> None:
    items = [ContentItem(id=str(n), title=str(n), authors="", venue="", year="") for n in range(5)]

    assert [item.id for item in dedupe_items(items, 2)] == ["0", "1"]


def _source(response=None, error=None) -> tuple:
    client = MagicMock()
    client.fetch_with_payment = AsyncMock(return_value=response, side_effect=error)
    return EuropePmcSource(BASE_URL, client), client


def _http(status: int, payload=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.reason = "OK" if status == 200 else "Error"
    response.json.return_value = payload
    return response


@pytest.mark.asyncio
class TestEuropePmcSource:
    async def test_fetch_sends_search_parameters(self):
        source, client = _source(_http(200, _payload(_record(pmcid="PMC1"), _record(pmcid="PMC2"))))

        items = await source.fetch("  cancer immunotherapy ", 2)

        assert [item.id for item in items] == ["PMC1", "PMC2"]
        url, headers, params = client.fetch_with_payment.call_args.args
        assert url == BASE_URL
        assert headers["Accept"] == "application/json"
        assert params == {
            "query": "cancer immunotherapy",
            "format": "json",
            "pageSize": 2,
            "resultType": "core",
        }

    async def test_non_2xx_raises_upstream_failure(self):
        source, _ = _source(_http(503))

        with pytest.raises(UpstreamFetchFailure) as exc_info:
            await source.fetch("q", 2)

        assert exc_info.value.status_code == 503

    async def test_unreachable_raises_upstream_failure(self):
        source, _ = _source(error=requests.ConnectionError("refused"))

        with pytest.raises(UpstreamFetchFailure, match="unreachable"):
            await source.fetch("q", 2)

    async def test_payment_errors_propagate(self):
        error = InsufficientFundsError(balance=0, required=1, amount=1, fee=0, currency="NEURO")
        source, _ = _source(error=error)

        with pytest.raises(InsufficientFundsError):
            await source.fetch("q", 2)

    async def test_empty_query_is_rejected(self):
        source, client = _source(_http(200, _payload()))

        with pytest.raises(ValueError):
            await source.fetch("   ", 2)

        client.fetch_with_payment.assert_not_called()
