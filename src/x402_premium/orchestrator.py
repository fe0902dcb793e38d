"""
Purchase and publish premium sources, one payment per query.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Tuple

from .core.cache import CacheStatus, Claim, Hit, Miss, Pending, QueryStore, normalize_query
from .core.config import GatewayConfig
from .core.errors import (
    CacheOwnershipError,
    ConfigError,
    GatewayError,
    KnowledgeStoreError,
    PaymentError,
    UpstreamFetchFailure,
    VerificationFailure,
)
from .core.knowledge import KnowledgeStore, build_sources_document
from .core.requirements import PaymentRequirement, RequirementResolver
from .core.settlement import PaymentAttempt, SettlementEngine
from .core.sources import ContentItem
from .core.verifier import PaymentVerifier

__all__ = [
    "AcquisitionOrchestrator",
    "ContentSource",
    "GatewayResponse",
    "PremiumPayload",
]


class ContentSource(Protocol):
    async def fetch(self, query: str, limit: int) -> List[ContentItem]: ...


@dataclass(frozen=True)
class GatewayResponse:
    text: str
    is_error: bool = False
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"content": [{"type": "text", "text": self.text}]}
        if self.is_error:
            body["isError"] = True
        if self.data:
            body["data"] = self.data
        return body


@dataclass(frozen=True)
class PremiumPayload:
    response: GatewayResponse
    sources: Tuple[ContentItem, ...] = ()
    transaction_id: Optional[str] = None


def _error(text: str, exc: Optional[BaseException] = None, **data: Any) -> GatewayResponse:
    if exc is not None:
        data.setdefault("error", type(exc).__name__)
    return GatewayResponse(text=text, is_error=True, data=data)


class AcquisitionOrchestrator:
    """
    Composes requirement resolution, settlement, verification, content
    retrieval and the dedup store into idempotent purchase/publish actions.
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        resolver: RequirementResolver,
        settlement: SettlementEngine,
        verifier: PaymentVerifier,
        source: ContentSource,
        store: QueryStore,
        knowledge: KnowledgeStore,
    ) -> None:
        self.config = config
        self.resolver = resolver
        self.settlement = settlement
        self.verifier = verifier
        self.source = source
        self.store = store
        self.knowledge = knowledge
        self._publish_locks: Dict[str, asyncio.Lock] = {}
        self._publish_waiters: Dict[str, int] = {}

    @property
    def price(self) -> str:
        return f"{self.config.amount} {self.config.currency}"

    # -- purchase ------------------------------------------------------------

    async def purchase(
        self,
        query: str,
        *,
        transaction_id: Optional[str] = None,
        auto_pay: bool = False,
    ) -> GatewayResponse:
        query = (query or "").strip()
        key = normalize_query(query)
        if not key:
            return _error(
                "Query is required to fetch premium medical sources. "
                "Please include your topic (e.g., 'diabetes treatment')."
            )

        result = self.store.claim_or_get(key)
        if isinstance(result, Pending):
            logging.info("Premium request already in progress for %r", query)
            return GatewayResponse(
                text=(
                    f'Premium sources for "{query}" are already being retrieved. '
                    "Reusing in-progress request; please wait a moment."
                ),
                data={"status": "pending"},
            )
        if isinstance(result, Hit):
            logging.info("Replaying %s premium result for %r", result.entry.status.value, query)
            return result.entry.payload.response

        if not isinstance(result, Miss):
            raise TypeError(f"Unexpected claim result {result!r}")
        claim = result.claim
        transaction_id = (transaction_id or "").strip() or None

        if transaction_id is None and not auto_pay:
            self.store.release(claim)
            return self._payment_instructions_response()

        try:
            return await self._acquire(claim, query, transaction_id)
        except asyncio.CancelledError:
            self._commit_failure(claim, _error("Premium request was cancelled."))
            raise
        except GatewayError as exc:
            logging.error("Premium purchase for %r failed: %s", query, exc)
            return self._commit_failure(
                claim, _error(f"Error fetching premium sources: {exc}", exc)
            )
        except Exception:
            logging.exception("Unexpected error purchasing premium sources for %r", query)
            self._commit_failure(claim, _error("Unexpected error fetching premium sources."))
            raise

    def _payment_instructions_response(self) -> GatewayResponse:
        try:
            requirement = self.resolver.resolve()
        except ConfigError as exc:
            return _error(f"Premium sources are unavailable: {exc}", exc)
        return _error(
            f"Premium sources require payment: {requirement.amount} {requirement.currency} "
            f"on {requirement.network}.\n"
            f"Send to: {requirement.recipient}\n"
            f"Chain: {requirement.chain_id}\n\n"
            f"Confirm to proceed: reply with autoPay: true, or provide paymentTxHash "
            f"after sending {self.price}.",
            status="payment_required",
            payment=requirement.as_dict(),
        )

    def _commit_failure(self, claim: Claim, response: GatewayResponse) -> GatewayResponse:
        self.store.commit(claim, CacheStatus.FAILED, PremiumPayload(response=response))
        return response

    async def _settle(self, requirement: PaymentRequirement, attempt: PaymentAttempt) -> str:
        deadline = self.config.confirmation_deadline_seconds
        if deadline is None:
            await self.settlement.settle(requirement, attempt)
        else:
            await asyncio.wait_for(self.settlement.settle(requirement, attempt), deadline)
        logging.info("Premium tx hash: %s", attempt.transaction_id)
        return attempt.transaction_id

    def _attempt_data(self, attempt: PaymentAttempt) -> Dict[str, Any]:
        if attempt.transaction_id is None:
            return {}
        return {
            "transactionId": attempt.transaction_id,
            "explorer": self.config.explorer_link(attempt.transaction_id),
        }

    async def _acquire(
        self, claim: Claim, query: str, transaction_id: Optional[str]
    ) -> GatewayResponse:
        requirement = self.resolver.resolve()

        if transaction_id is None:
            attempt = PaymentAttempt()
            try:
                transaction_id = await self._settle(requirement, attempt)
            except asyncio.TimeoutError:
                sent = attempt.transaction_id
                if sent is None:
                    text = (
                        "Payment failed: no transaction was submitted within "
                        f"{self.config.confirmation_deadline_seconds}s. Retry with autoPay:true."
                    )
                else:
                    text = (
                        f"Payment failed: transaction {sent} was sent but confirmation was not "
                        f"observed within {self.config.confirmation_deadline_seconds}s.\n"
                        f"Explorer: {self.config.explorer_link(sent)}\n"
                        "Retry later with this transaction hash once it has been mined."
                    )
                return self._commit_failure(
                    claim, _error(text, status="timeout", **self._attempt_data(attempt))
                )
            except (PaymentError, ConfigError) as exc:
                sent = attempt.transaction_id
                if sent is None:
                    hint = (
                        f"Provide a valid tx hash for {self.price} "
                        "or retry with autoPay:true once funded."
                    )
                else:
                    hint = (
                        f"Transaction {sent} was sent; check it at "
                        f"{self.config.explorer_link(sent)} before paying again."
                    )
                return self._commit_failure(
                    claim,
                    _error(f"Payment failed: {exc}. {hint}", exc, **self._attempt_data(attempt)),
                )

        verification = await self.verifier.verify(transaction_id, requirement)
        if not verification.verified:
            failure = VerificationFailure(verification)
            return self._commit_failure(
                claim,
                _error(
                    f"Payment verification failed for {transaction_id} "
                    f"({', '.join(verification.failures)}). No premium sources returned. "
                    f"Please provide a valid {self.price} tx hash.",
                    failure,
                    transactionId=transaction_id,
                    failures=list(verification.failures),
                ),
            )
        logging.info("Premium tx verified: %s", transaction_id)

        fetch_error: Optional[UpstreamFetchFailure] = None
        try:
            sources = await self.source.fetch(query, self.config.result_limit)
        except UpstreamFetchFailure as exc:
            if not self.config.soft_fetch_failure:
                return self._commit_failure(
                    claim,
                    _error(
                        f"Premium fetch failed after verified payment {transaction_id}: {exc}",
                        exc,
                        transactionId=transaction_id,
                    ),
                )
            logging.warning("Premium fetch failed despite valid payment %s: %s", transaction_id, exc)
            fetch_error = exc
            sources = []

        response = self._success_response(transaction_id, sources, fetch_error)
        self.store.commit(
            claim,
            CacheStatus.SUCCESS,
            PremiumPayload(response=response, sources=tuple(sources), transaction_id=transaction_id),
        )
        return response

    def _success_response(
        self,
        transaction_id: str,
        sources: List[ContentItem],
        fetch_error: Optional[UpstreamFetchFailure],
    ) -> GatewayResponse:
        if sources:
            answer = (
                f"Premium evidence supports the claim with {len(sources)} recent sources "
                "(see links below)."
            )
        else:
            answer = "No premium sources found."
        result: Dict[str, Any] = {
            "isPremium": True,
            "txHash": transaction_id,
            "totalSources": len(sources),
            "premiumSources": [source.to_dict() for source in sources],
            "dkgPublished": None,
            "premiumAnswer": answer,
        }
        if fetch_error is not None:
            result["fetchError"] = str(fetch_error)

        lines = [
            json.dumps(result, indent=2),
            "",
            f"Payment tx hash: {transaction_id}",
            f"Explorer: {self.config.explorer_link(transaction_id)}",
        ]
        if fetch_error is not None:
            lines.append(
                "Premium fetch partially failed despite valid payment; no sources could be retrieved."
            )
        lines.append("Premium sources:")
        lines.extend(
            f"{index}. {source.title} ({source.year}) - {source.link or 'no link'}"
            for index, source in enumerate(sources, start=1)
        )
        lines.append(
            '\nWant this published as a DKG Knowledge Asset? Reply with "publish premium sources" '
            "to publish this result."
        )
        return GatewayResponse(text="\n".join(lines), data=result)

    # -- publish -------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _publish_lock(self, key: str) -> AsyncIterator[None]:
        """Serialize publishes per key; the lock is dropped once nobody waits on it."""
        lock = self._publish_locks.get(key)
        if lock is None:
            lock = self._publish_locks[key] = asyncio.Lock()
        self._publish_waiters[key] = self._publish_waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._publish_waiters[key] -= 1
            if not self._publish_waiters[key]:
                del self._publish_waiters[key]
                del self._publish_locks[key]

    async def publish_purchased(self, query: str) -> GatewayResponse:
        query = (query or "").strip()
        key = normalize_query(query)
        if not key:
            return _error(
                "Query is required to publish premium sources. Please provide the same query "
                "you used for purchase (e.g., 'diabetes treatment')."
            )

        async with self._publish_lock(key):
            entry = self.store.get(key)
            payload = entry.payload if entry is not None else None
            if (
                entry is None
                or entry.status is not CacheStatus.SUCCESS
                or not isinstance(payload, PremiumPayload)
                or not payload.sources
            ):
                return _error(
                    f'No recent premium sources found for "{query}". Please run '
                    "purchase_premium_medical_sources first, then retry publish."
                )

            if entry.published_reference is not None:
                return GatewayResponse(
                    text=f"Already published to DKG: {entry.published_reference}",
                    data={"reference": entry.published_reference, "alreadyPublished": True},
                )

            document = build_sources_document(payload.sources, query, "premium")
            try:
                reference = await self.knowledge.publish(document)
            except KnowledgeStoreError as exc:
                logging.error("Publishing premium sources for %r failed: %s", query, exc)
                return _error(f"Publishing to DKG failed: {exc}", exc)

            try:
                reference = self.store.attach_reference(key, reference)
            except CacheOwnershipError:
                logging.warning("Cache entry for %r expired while publishing %s", query, reference)

        return GatewayResponse(
            text=f"Published premium sources to DKG: {reference}",
            data={"reference": reference, "alreadyPublished": False},
        )

    # -- supporting actions --------------------------------------------------

    def payment_request(self) -> GatewayResponse:
        try:
            info = self.resolver.payment_instructions()
        except ConfigError as exc:
            return _error(f"Premium sources are unavailable: {exc}", exc)
        return GatewayResponse(text=json.dumps(info, indent=2), data=info)

    async def query_published(self, query: str, tier: Optional[str] = None) -> GatewayResponse:
        tier_filter = tier if tier in ("free", "premium") else None
        search: Dict[str, Any] = {"query": query}
        if tier_filter:
            search["tier"] = tier_filter
        try:
            results = await self.knowledge.query(search)
        except KnowledgeStoreError as exc:
            return _error(f"Querying DKG failed: {exc}", exc)

        logging.info("DKG query for %r returned %d results", query, len(results))
        body = {
            "query": query,
            "tierFilter": tier_filter or "all",
            "totalResults": len(results),
            "sources": results,
        }
        return GatewayResponse(text=json.dumps(body, indent=2), data=body)
