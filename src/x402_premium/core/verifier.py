"""
Trustless payment verification against chain state.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from .chain import ChainClient, is_transaction_hash
from .config import GatewayConfig, from_base_units
from .errors import ChainRpcError
from .requirements import PaymentRequirement

__all__ = [
    "PaymentVerification",
    "PaymentVerifier",
]


@dataclass(frozen=True)
class PaymentVerification:
    verified: bool
    transaction_id: str
    amount: Optional[Decimal] = None
    sender: Optional[str] = None
    block_number: Optional[int] = None
    failures: Tuple[str, ...] = ()

    @property
    def found(self) -> bool:
        return self.amount is not None


class PaymentVerifier:
    """
    Confirms that a transaction pays a requirement, whoever submitted it.

    Results are computed from chain state on every call and never cached.
    """

    def __init__(self, config: GatewayConfig, chain: ChainClient) -> None:
        self.config = config
        self.chain = chain

    async def verify(
        self, transaction_id: str, requirement: PaymentRequirement
    ) -> PaymentVerification:
        logging.info("Verifying transaction: %s", transaction_id)
        if not is_transaction_hash(transaction_id):
            logging.warning("Not a transaction hash: %r", transaction_id)
            return PaymentVerification(False, transaction_id, failures=("not_found",))

        try:
            receipt, transaction = await asyncio.gather(
                self.chain.get_transaction_receipt(transaction_id),
                self.chain.get_transaction(transaction_id),
            )
        except ChainRpcError as exc:
            logging.error("Error verifying payment %s: %s", transaction_id, exc)
            return PaymentVerification(False, transaction_id, failures=("not_found",))

        if receipt is None or transaction is None:
            logging.info("Transaction not found or pending: %s", transaction_id)
            return PaymentVerification(False, transaction_id, failures=("not_found",))

        required = requirement.amount_base_units(self.config.token_decimals)
        failures = []
        if (transaction.recipient or "").lower() != requirement.recipient.lower():
            failures.append("recipient")
        if transaction.value < required:
            failures.append("amount")
        if not receipt.success:
            failures.append("status")

        verification = PaymentVerification(
            verified=not failures,
            transaction_id=transaction_id,
            amount=from_base_units(transaction.value, self.config.token_decimals),
            sender=transaction.sender,
            block_number=receipt.block_number,
            failures=tuple(failures),
        )
        logging.info(
            "Payment details: from=%s to=%s amount=%s block=%s verified=%s",
            transaction.sender,
            transaction.recipient,
            verification.amount,
            receipt.block_number,
            verification.verified,
        )
        if "recipient" in failures:
            logging.warning("Wrong recipient (expected %s)", requirement.recipient)
        if "amount" in failures:
            logging.warning(
                "Insufficient amount (expected %s %s)", requirement.amount, requirement.currency
            )
        if "status" in failures:
            logging.warning("Transaction failed on-chain: %s", transaction_id)
        return verification
