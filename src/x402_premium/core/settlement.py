"""
Payment settlement: preflight, submit, wait for the receipt.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from .chain import ChainClient
from .config import GatewayConfig, from_base_units
from .errors import ChainRpcError, ConfigError, InsufficientFundsError, SettlementFailure
from .requirements import PaymentRequirement

__all__ = [
    "AttemptStatus",
    "PaymentAttempt",
    "SettlementEngine",
]


class AttemptStatus(str, enum.Enum):
    NOT_SUBMITTED = "not-submitted"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class PaymentAttempt:
    transaction_id: Optional[str] = None
    status: AttemptStatus = AttemptStatus.NOT_SUBMITTED
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (AttemptStatus.CONFIRMED, AttemptStatus.FAILED)

    def fail(self, error: str) -> None:
        self.status = AttemptStatus.FAILED
        self.error = error


class SettlementEngine:
    """
    Submits a native-token transfer that satisfies a :class:`PaymentRequirement`.

    The engine never retries. Waiting for the receipt has no timeout of its
    own; wrap :meth:`settle` in ``asyncio.wait_for`` to bound it.
    """

    def __init__(self, config: GatewayConfig, chain: ChainClient) -> None:
        self.config = config
        self.chain = chain

    async def settle(
        self, requirement: PaymentRequirement, attempt: Optional[PaymentAttempt] = None
    ) -> PaymentAttempt:
        """
        Pay ``requirement`` and wait for the receipt.

        Pass ``attempt`` to keep the submitted transaction hash visible to the
        caller even if this coroutine is cancelled while waiting.
        """
        payer = self.chain.address
        if payer is None:
            raise ConfigError("Payment wallet not configured (set X402_PAYER_PRIVATE_KEY)")

        if attempt is None:
            attempt = PaymentAttempt()
        decimals = self.config.token_decimals
        value = requirement.amount_base_units(decimals)

        balance, fee_rate = await asyncio.gather(
            self.chain.get_balance(payer),
            self.chain.get_fee_estimate(),
        )
        estimated_fee = fee_rate * self.config.gas_limit
        total_cost = value + estimated_fee
        if balance < total_cost:
            error = InsufficientFundsError(
                balance=from_base_units(balance, decimals),
                required=from_base_units(total_cost, decimals),
                amount=requirement.amount,
                fee=from_base_units(estimated_fee, decimals),
                currency=requirement.currency,
            )
            attempt.fail(str(error))
            logging.warning("Settlement preflight failed: %s", error)
            raise error

        logging.info(
            "Sending payment %s %s to %s", requirement.amount, requirement.currency, requirement.recipient
        )
        try:
            attempt.transaction_id = await self.chain.send_transfer(requirement.recipient, value)
        except ChainRpcError as exc:
            attempt.fail(str(exc))
            logging.error("Payment submission rejected: %s", exc)
            raise SettlementFailure(f"Payment submission rejected: {exc}", attempt) from exc
        attempt.status = AttemptStatus.SUBMITTED

        logging.info("Waiting for confirmation: %s", attempt.transaction_id)
        try:
            receipt = await self._wait_for_receipt(attempt.transaction_id)
        except ChainRpcError as exc:
            attempt.fail(str(exc))
            logging.error("Receipt lookup for %s failed: %s", attempt.transaction_id, exc)
            raise SettlementFailure(
                f"Payment {attempt.transaction_id} submitted but its receipt could not be read: {exc}",
                attempt,
            ) from exc
        if not receipt.success:
            attempt.fail("Payment transaction failed")
            logging.error("Payment failed on-chain: %s", attempt.transaction_id)
            raise SettlementFailure("Payment transaction failed", attempt)

        attempt.status = AttemptStatus.CONFIRMED
        logging.info(
            "Payment confirmed: %s (explorer: %s)",
            attempt.transaction_id,
            self.config.explorer_link(attempt.transaction_id),
        )
        return attempt

    async def _wait_for_receipt(self, transaction_id: str):
        while True:
            receipt = await self.chain.get_transaction_receipt(transaction_id)
            if receipt is not None:
                return receipt
            await asyncio.sleep(self.config.receipt_poll_seconds)
