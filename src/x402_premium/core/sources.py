"""
Research-article retrieval from Europe PMC.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional

import requests

from .challenge import ChallengeClient
from .errors import UpstreamFetchFailure

__all__ = [
    "ABSTRACT_LIMIT",
    "ContentItem",
    "EuropePmcSource",
    "dedupe_items",
    "parse_results",
]

ABSTRACT_LIMIT = 800

_HEADERS = {
    "User-Agent": "x402-premium/0.1 (mailto:info@example.com)",
    "Accept": "application/json",
}


@dataclass(frozen=True)
class ContentItem:
    id: str
    title: str
    authors: str
    venue: str
    year: str
    doi: Optional[str] = None
    alt_id: Optional[str] = None
    abstract: str = "No abstract available"
    url: Optional[str] = None

    @property
    def dedup_key(self) -> str:
        return (self.doi or self.alt_id or self.url or self.id or "").lower()

    @property
    def link(self) -> Optional[str]:
        return self.url or self.doi

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _pick_url(item: Dict[str, Any]) -> Optional[str]:
    full_text = (item.get("fullTextUrlList") or {}).get("fullTextUrl") or []
    for entry in full_text:
        if entry.get("availabilityCode") == "OA" and entry.get("url"):
            return entry["url"]
    if item.get("pmcid"):
        return f"https://europepmc.org/articles/{item['pmcid']}?pdf=render"
    if item.get("doi"):
        return f"https://doi.org/{item['doi']}"
    return None


def _to_item(item: Dict[str, Any]) -> ContentItem:
    journal_info = item.get("journalInfo") or {}
    abstract = item.get("abstractText")
    return ContentItem(
        id=item.get("pmcid") or item.get("pmid") or item.get("doi") or f"epmc_{uuid.uuid4().hex[:9]}",
        title=item.get("title") or "No title",
        authors=item.get("authorString") or "Unknown",
        venue=(journal_info.get("journal") or {}).get("title") or "Unknown",
        year=str(item.get("pubYear") or journal_info.get("yearOfPublication") or "N/A"),
        doi=item.get("doi"),
        alt_id=item.get("pmcid"),
        abstract=abstract[:ABSTRACT_LIMIT] if isinstance(abstract, str) else "No abstract available",
        url=_pick_url(item),
    )


def dedupe_items(items: Iterable[ContentItem], limit: Optional[int] = None) -> List[ContentItem]:
    """First occurrence wins; upstream order is kept."""
    seen = set()
    unique: List[ContentItem] = []
    for item in items:
        key = item.dedup_key
        if key and key in seen:
            continue
        if key:
            seen.add(key)
        unique.append(item)
        if limit is not None and len(unique) >= limit:
            break
    return unique


def parse_results(payload: Dict[str, Any], limit: Optional[int] = None) -> List[ContentItem]:
    results = ((payload or {}).get("resultList") or {}).get("result") or []
    return dedupe_items((_to_item(item) for item in results), limit)


class EuropePmcSource:
    def __init__(self, base_url: str, client: ChallengeClient) -> None:
        self.base_url = base_url
        self.client = client

    async def fetch(self, query: str, limit: int) -> List[ContentItem]:
        """
        Search Europe PMC and return up to ``limit`` deduplicated items.

        Raises :class:`UpstreamFetchFailure` if the service is unreachable or
        answers with a non-2xx status. Payment errors from a 402 challenge
        propagate unchanged.
        """
        trimmed = query.strip()
        if not trimmed:
            raise ValueError("Query is required to fetch medical sources")
        params = {"query": trimmed, "format": "json", "pageSize": limit, "resultType": "core"}

        logging.info("Calling Europe PMC for %r (limit=%d)", trimmed, limit)
        try:
            response = await self.client.fetch_with_payment(self.base_url, _HEADERS, params)
        except requests.RequestException as exc:
            logging.error("Europe PMC unreachable: %s", exc)
            raise UpstreamFetchFailure(f"Europe PMC unreachable: {exc}") from exc

        if not 200 <= response.status_code < 300:
            logging.warning("Europe PMC HTTP %s %s", response.status_code, response.reason)
            raise UpstreamFetchFailure(
                f"Europe PMC responded with {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            raise UpstreamFetchFailure(f"Europe PMC returned invalid JSON: {exc}") from exc

        sources = parse_results(payload, limit)
        logging.info("Processed %d sources from Europe PMC", len(sources))
        if not sources:
            logging.warning("Europe PMC returned 0 sources for query=%r", trimmed)
        return sources
