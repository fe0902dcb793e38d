"""
Knowledge store boundary: publish purchased sources, read them back.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import requests

from .errors import KnowledgeStoreError
from .sessions import SessionLike, SessionProvider
from .sources import ContentItem

__all__ = [
    "KnowledgeNodeClient",
    "KnowledgeStore",
    "build_sources_document",
]

_CONTEXT = {
    "schema": "https://schema.org/",
    "dkg": "https://ontology.origintrail.io/dkg/1.0#",
}


class KnowledgeStore(Protocol):
    async def publish(self, document: Mapping[str, Any]) -> str: ...

    async def query(self, filter: Mapping[str, Any]) -> List[Dict[str, Any]]: ...


def _property(name: str, value: Any) -> Dict[str, Any]:
    return {"@type": "schema:PropertyValue", "schema:propertyID": name, "schema:value": value}


def build_sources_document(
    sources: Sequence[ContentItem], query: str, tier: str = "premium"
) -> Dict[str, Any]:
    """Bundle sources for one query into a single JSON-LD graph."""
    articles = [
        {
            "@type": "schema:ScholarlyArticle",
            "@id": f"urn:medical:source:{source.id}",
            "schema:name": source.title,
            "schema:author": {"@type": "schema:Person", "schema:name": source.authors},
            "schema:isPartOf": {"@type": "schema:Periodical", "schema:name": source.venue},
            "schema:datePublished": source.year,
            "schema:about": query,
            "schema:description": source.abstract,
            "schema:url": source.url or (f"https://doi.org/{source.doi}" if source.doi else None),
            "schema:identifier": [
                _property("sourceId", source.id),
                _property("PMCID", source.alt_id),
                _property("DOI", source.doi),
                _property("accessTier", tier),
                _property("searchQuery", query),
            ],
        }
        for source in sources
    ]
    bundle = {
        "@type": "schema:ItemList",
        "@id": f"urn:medical:bundle:{tier}:{int(time.time() * 1000)}",
        "schema:name": f'Medical sources for "{query}" ({tier} tier)',
        "schema:itemListElement": [
            {
                "@type": "schema:ListItem",
                "schema:position": index,
                "schema:item": {"@id": article["@id"]},
            }
            for index, article in enumerate(articles, start=1)
        ],
        "schema:identifier": [_property("accessTier", tier), _property("searchQuery", query)],
    }
    return {"@context": _CONTEXT, "@graph": [bundle, *articles]}


class KnowledgeNodeClient:
    """
    HTTP client for a knowledge node exposing ``/publish`` and ``/query``.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        session: SessionLike = None,
        timeout: float = 30.0,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.http = SessionProvider.of(session)
        self.timeout = timeout

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.endpoint}{path}"
        try:
            with self.http.session() as session:
                response = session.post(url, json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            raise KnowledgeStoreError(f"Knowledge node unreachable at {url}: {exc}") from exc
        if response.status_code >= 400:
            raise KnowledgeStoreError(
                f"Knowledge node responded with {response.status_code}: {response.text}"
            )
        try:
            return response.json()
        except json.JSONDecodeError as exc:
            raise KnowledgeStoreError(
                f"Failed to parse JSON from knowledge node at {url}: {response.text}"
            ) from exc

    async def publish(self, document: Mapping[str, Any]) -> str:
        logging.info("Publishing knowledge asset to %s", self.endpoint)
        payload = await asyncio.to_thread(
            self._post, "/publish", {"content": {"public": dict(document)}, "privacy": "public"}
        )
        reference = payload.get("UAL") or payload.get("ual")
        if not reference:
            raise KnowledgeStoreError("Knowledge node returned success but no UAL")
        logging.info("Knowledge asset published: %s", reference)
        return reference

    async def query(self, filter: Mapping[str, Any]) -> List[Dict[str, Any]]:
        payload = await asyncio.to_thread(self._post, "/query", dict(filter))
        return list(payload.get("data") or [])
