"""
HTTP client that answers 402 Payment Required challenges.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import requests

from .errors import PaymentRejectedError, SettlementFailure, VerificationFailure
from .requirements import PaymentRequirement, RequirementResolver
from .sessions import SessionLike, SessionProvider
from .settlement import SettlementEngine
from .verifier import PaymentVerifier

__all__ = [
    "PAYMENT_PROOF_HEADER",
    "PAYMENT_REQUIRED",
    "ChallengeClient",
    "ChallengeTerms",
    "parse_challenge",
]

PAYMENT_REQUIRED = 402
PAYMENT_PROOF_HEADER = "x-402-payment-tx"


@dataclass(frozen=True)
class ChallengeTerms:
    pay_to: Optional[str]
    amount: Optional[str]
    chain_id: Optional[str]


def parse_challenge(response: requests.Response) -> ChallengeTerms:
    """Extract payment terms from the headers of a 402 response."""
    headers = response.headers
    return ChallengeTerms(
        pay_to=headers.get("x-402-payto") or None,
        amount=headers.get("x-402-amount") or None,
        chain_id=headers.get("x-402-chainid") or None,
    )


class ChallengeClient:
    """
    Issues a GET and, if it is answered with 402, pays and retries exactly once.
    """

    def __init__(
        self,
        resolver: RequirementResolver,
        settlement: SettlementEngine,
        verifier: PaymentVerifier,
        *,
        session: SessionLike = None,
        timeout: float = 30.0,
    ) -> None:
        self.resolver = resolver
        self.settlement = settlement
        self.verifier = verifier
        self.http = SessionProvider.of(session)
        self.timeout = timeout

    def _get_sync(
        self, url: str, headers: Dict[str, str], params: Optional[Mapping[str, Any]]
    ) -> requests.Response:
        with self.http.session() as session:
            return session.get(url, headers=headers, params=params, timeout=self.timeout)

    async def _get(
        self, url: str, headers: Mapping[str, str], params: Optional[Mapping[str, Any]]
    ) -> requests.Response:
        return await asyncio.to_thread(self._get_sync, url, dict(headers), params)

    def _requirement_for(self, terms: ChallengeTerms) -> PaymentRequirement:
        expected_chain = self.resolver.config.chain_id
        if terms.chain_id is not None and terms.chain_id.strip() != str(expected_chain):
            raise SettlementFailure(
                f"Challenge requested chain {terms.chain_id}, configured chain is {expected_chain}"
            )
        return self.resolver.resolve(recipient=terms.pay_to, amount=terms.amount)

    async def fetch_with_payment(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> requests.Response:
        base_headers: Dict[str, str] = dict(headers or {})
        initial = await self._get(url, base_headers, params)
        if initial.status_code != PAYMENT_REQUIRED:
            return initial

        terms = parse_challenge(initial)
        logging.info(
            "Payment required by %s: pay_to=%s amount=%s chain=%s",
            url,
            terms.pay_to,
            terms.amount,
            terms.chain_id,
        )
        requirement = self._requirement_for(terms)
        attempt = await self.settlement.settle(requirement)
        verification = await self.verifier.verify(attempt.transaction_id, requirement)
        if not verification.verified:
            raise VerificationFailure(verification)

        retry_headers = dict(base_headers)
        retry_headers[PAYMENT_PROOF_HEADER] = attempt.transaction_id
        paid = await self._get(url, retry_headers, params)
        if paid.status_code == PAYMENT_REQUIRED:
            raise PaymentRejectedError(
                f"{url} still requires payment after transaction {attempt.transaction_id}; "
                "check the configured recipient and amount"
            )
        return paid
