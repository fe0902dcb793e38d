"""
Exception hierarchy shared by the gateway components.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .settlement import PaymentAttempt
    from .verifier import PaymentVerification

__all__ = [
    "CacheOwnershipError",
    "ChainRpcError",
    "ConfigError",
    "GatewayError",
    "InsufficientFundsError",
    "KnowledgeStoreError",
    "PaymentError",
    "PaymentRejectedError",
    "SettlementFailure",
    "UpstreamFetchFailure",
    "VerificationFailure",
]


class GatewayError(Exception):
    """Base class for every error raised by the gateway."""


class ConfigError(GatewayError):
    """Raised when the supplied configuration is invalid or incomplete."""


class ChainRpcError(GatewayError):
    """Raised when the chain node rejects or fails a JSON-RPC call."""

    def __init__(self, method: str, message: str, code: Optional[int] = None) -> None:
        self.method = method
        self.code = code
        super().__init__(f"{method} failed: {message}")


class PaymentError(GatewayError):
    """Base class for failures while paying or checking a payment."""


class InsufficientFundsError(PaymentError):
    """The payer cannot cover amount plus fee. Nothing was submitted."""

    def __init__(
        self,
        *,
        balance: Decimal,
        required: Decimal,
        amount: Decimal,
        fee: Decimal,
        currency: str,
    ) -> None:
        self.balance = balance
        self.required = required
        self.amount = amount
        self.fee = fee
        self.currency = currency
        super().__init__(
            f"Insufficient funds: balance {balance} {currency}, need ~{required} {currency} "
            f"(value {amount} + fee {fee})."
        )


class SettlementFailure(PaymentError):
    """Submission was rejected or the transaction receipt was unsuccessful."""

    def __init__(self, message: str, attempt: Optional["PaymentAttempt"] = None) -> None:
        self.attempt = attempt
        super().__init__(message)

    @property
    def transaction_id(self) -> Optional[str]:
        return self.attempt.transaction_id if self.attempt is not None else None


class VerificationFailure(PaymentError):
    """A transaction did not satisfy the payment requirement."""

    def __init__(self, verification: "PaymentVerification") -> None:
        self.verification = verification
        reasons = ", ".join(verification.failures) or "unknown"
        super().__init__(
            f"Payment verification failed for {verification.transaction_id} ({reasons})"
        )


class PaymentRejectedError(PaymentError):
    """The resource answered 402 again after a paid retry."""


class UpstreamFetchFailure(GatewayError):
    """The content source was unreachable or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class KnowledgeStoreError(GatewayError):
    """Publishing to or querying the knowledge store failed."""


class CacheOwnershipError(GatewayError):
    """A commit or release was attempted without owning the pending claim."""
