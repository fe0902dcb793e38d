"""
Payment requirement model and resolver.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from .config import GatewayConfig, normalize_address, parse_amount, to_base_units
from .errors import ConfigError

__all__ = [
    "PaymentRequirement",
    "RequirementResolver",
]


@dataclass(frozen=True)
class PaymentRequirement:
    recipient: str
    amount: Decimal
    currency: str
    chain_id: int
    network: str

    def amount_base_units(self, decimals: int) -> int:
        return to_base_units(self.amount, decimals)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "address": self.recipient,
            "amount": str(self.amount),
            "currency": self.currency,
            "chainId": str(self.chain_id),
            "network": self.network,
            "requirement": {
                "scheme": "exact",
                "network": self.network.lower().replace(" ", "-"),
                "resource": "premium-medical-sources",
                "description": "Premium medical sources retrieval",
                "amount": f"{self.amount} {self.currency}",
            },
        }


class RequirementResolver:
    """
    Derives the canonical payment terms for a purchase.

    Defaults come from the configuration; a caller (usually the 402 challenge
    handler) may override the recipient and amount.
    """

    def __init__(self, config: GatewayConfig) -> None:
        self.config = config

    def resolve(
        self,
        *,
        recipient: Optional[str] = None,
        amount: Optional[Decimal | str] = None,
    ) -> PaymentRequirement:
        if recipient:
            resolved_recipient = normalize_address(recipient, "payment recipient")
        elif self.config.default_recipient:
            resolved_recipient = self.config.default_recipient
        else:
            raise ConfigError(
                "Payment recipient not configured (set X402_PAYMENT_ADDRESS or X402_PAYER_PRIVATE_KEY)"
            )

        resolved_amount = (
            parse_amount(amount, "payment amount") if amount is not None else self.config.amount
        )
        # Reject amounts the token cannot express before anyone pays them.
        to_base_units(resolved_amount, self.config.token_decimals)

        requirement = PaymentRequirement(
            recipient=resolved_recipient,
            amount=resolved_amount,
            currency=self.config.currency,
            chain_id=self.config.chain_id,
            network=self.config.network,
        )
        logging.debug(
            "Resolved payment requirement: %s %s to %s on chain %s",
            requirement.amount,
            requirement.currency,
            requirement.recipient,
            requirement.chain_id,
        )
        return requirement

    def payment_instructions(self) -> Dict[str, Any]:
        """
        Human-facing summary of how to pay for premium access manually.
        """
        requirement = self.resolve()
        price = f"{requirement.amount} {requirement.currency}"
        return {
            "message": f"Send {price} to unlock {self.config.result_limit} premium medical sources",
            "network": requirement.network,
            "chainId": str(requirement.chain_id),
            "paymentAddress": requirement.recipient,
            "amount": price,
            "instructions": [
                "1. Open your wallet (MetaMask, etc.)",
                f"2. Switch to {requirement.network}",
                f"3. Send {price} to the payment address",
                "4. Copy the transaction hash",
                "5. Use purchase_premium_medical_sources with paymentTxHash parameter",
            ],
        }
