"""
Configuration objects and helpers for the premium gateway.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from eth_account import Account
from eth_utils import is_hex_address, to_checksum_address

from .environment import build_environment
from .errors import ConfigError

__all__ = [
    "ConfigError",
    "GatewayConfig",
    "GatewayParameters",
    "load_gateway_config",
    "normalize_address",
    "to_base_units",
]

_PARAMETER_TO_ENV_KEY = {
    "payer_private_key": "X402_PAYER_PRIVATE_KEY",
    "payment_address": "X402_PAYMENT_ADDRESS",
    "amount": "X402_PAYMENT_AMOUNT",
    "currency": "X402_PAYMENT_CURRENCY",
    "token_decimals": "X402_PAYMENT_TOKEN_DECIMALS",
    "chain_id": "X402_PAYMENT_CHAIN_ID",
    "network": "X402_PAYMENT_NETWORK",
    "rpc_url": "X402_RPC_URL",
    "explorer_url": "X402_EXPLORER_URL",
    "gas_limit": "X402_GAS_LIMIT",
    "receipt_poll_seconds": "X402_RECEIPT_POLL_SECONDS",
    "confirmation_deadline_seconds": "X402_CONFIRMATION_DEADLINE_SECONDS",
    "http_timeout_seconds": "X402_HTTP_TIMEOUT_SECONDS",
    "cache_ttl_seconds": "PREMIUM_CACHE_TTL_SECONDS",
    "result_limit": "PREMIUM_RESULT_LIMIT",
    "soft_fetch_failure": "PREMIUM_SOFT_FETCH_FAILURE",
    "europe_pmc_url": "EUROPE_PMC_URL",
    "knowledge_node_url": "DKG_OTNODE_URL",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class GatewayParameters:
    """
    Explicit parameter bundle for constructing :class:`GatewayConfig`.

    Equivalent to passing the same keyword arguments to
    :func:`load_gateway_config`.
    """

    payer_private_key: Optional[str] = None
    payment_address: Optional[str] = None
    amount: Optional[Decimal | str | float | int] = None
    currency: Optional[str] = None
    token_decimals: Optional[int | str] = None
    chain_id: Optional[int | str] = None
    network: Optional[str] = None
    rpc_url: Optional[str] = None
    explorer_url: Optional[str] = None
    gas_limit: Optional[int | str] = None
    receipt_poll_seconds: Optional[float | str] = None
    confirmation_deadline_seconds: Optional[float | str] = None
    http_timeout_seconds: Optional[float | str] = None
    cache_ttl_seconds: Optional[float | str] = None
    result_limit: Optional[int | str] = None
    soft_fetch_failure: Optional[bool | str] = None
    europe_pmc_url: Optional[str] = None
    knowledge_node_url: Optional[str] = None

    def as_overrides(self) -> Dict[str, str]:
        overrides: Dict[str, str] = {}
        for field_name, env_key in _PARAMETER_TO_ENV_KEY.items():
            value = getattr(self, field_name)
            if value is None:
                continue
            overrides[env_key] = _stringify(value)
        return overrides


def _collect_parameter_overrides(
    parameters: Optional[GatewayParameters],
    explicit: Mapping[str, Any],
) -> Dict[str, str]:
    overrides: Dict[str, str] = {}
    if parameters is not None:
        overrides.update(parameters.as_overrides())

    for key, value in explicit.items():
        if value is None:
            continue
        try:
            env_key = _PARAMETER_TO_ENV_KEY[key]
        except KeyError as exc:
            raise TypeError(f"Unknown gateway parameter '{key}'") from exc
        overrides[env_key] = _stringify(value)
    return overrides


def _normalize_private_key(raw_key: str) -> str:
    key = raw_key.strip()
    if not key:
        raise ConfigError("X402_PAYER_PRIVATE_KEY must not be empty")
    if not key.startswith("0x"):
        key = "0x" + key
    if len(key) != 66:
        raise ConfigError("X402_PAYER_PRIVATE_KEY must be 32 bytes (64 hex chars)")
    return key


def normalize_address(raw_address: str, field_name: str) -> str:
    """Validate an EVM address and return its checksummed form."""
    value = raw_address.strip()
    if not value:
        raise ConfigError(f"{field_name} must not be empty")
    if not value.startswith("0x"):
        value = "0x" + value
    if not is_hex_address(value):
        raise ConfigError(f"{field_name} is not a valid EVM address")

    return to_checksum_address(value)


def parse_amount(raw_amount: Decimal | str | float | int, field_name: str) -> Decimal:
    try:
        amount = Decimal(str(raw_amount).strip())
    except InvalidOperation as exc:
        raise ConfigError(
            f"{field_name} must be a valid decimal number, got '{raw_amount}'"
        ) from exc
    if not amount.is_finite() or amount <= 0:
        raise ConfigError(f"{field_name} must be greater than zero")
    return amount


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert a token amount to integer base units, refusing lossy values."""
    scaled = amount * (Decimal(10) ** decimals)
    try:
        integral = scaled.to_integral_exact()
    except InvalidOperation as exc:
        raise ConfigError(
            f"Amount {amount} cannot be represented with {decimals} decimals"
        ) from exc

    if integral != scaled:
        raise ConfigError(
            f"Amount {amount} cannot be represented with {decimals} decimals"
        )
    as_int = int(integral)
    if as_int <= 0:
        raise ConfigError("Payment amount must be greater than zero")

    return as_int


def from_base_units(value: int, decimals: int) -> Decimal:
    return Decimal(value) / (Decimal(10) ** decimals)


def _int_setting(values: Mapping[str, str], key: str, default: str) -> int:
    raw = values.get(key) or default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got '{raw}'") from exc


def _float_setting(values: Mapping[str, str], key: str, default: Optional[str]) -> Optional[float]:
    raw = values.get(key) or default
    if raw is None:
        return None
    try:
        parsed = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got '{raw}'") from exc
    if parsed < 0:
        raise ConfigError(f"{key} must not be negative")
    return parsed


def _bool_setting(values: Mapping[str, str], key: str, default: bool) -> bool:
    raw = values.get(key)
    if raw is None or raw.strip() == "":
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{key} must be a boolean, got '{raw}'")


@dataclass(frozen=True)
class GatewayConfig:
    payer_private_key: Optional[str]
    payer_address: Optional[str]
    payment_address: Optional[str]
    amount: Decimal
    currency: str = "NEURO"
    token_decimals: int = 18
    chain_id: int = 20430
    network: str = "NeuroWeb Testnet"
    rpc_url: str = "https://rpc-testnet.origin-trail.network"
    explorer_url: str = "https://neuroweb-testnet.subscan.io/extrinsic/"
    gas_limit: int = 21_000
    receipt_poll_seconds: float = 2.0
    confirmation_deadline_seconds: Optional[float] = None
    http_timeout_seconds: float = 30.0
    cache_ttl_seconds: float = 300.0
    result_limit: int = 2
    soft_fetch_failure: bool = True
    europe_pmc_url: str = "https://www.ebi.ac.uk/europepmc/webservices/rest/search"
    knowledge_node_url: str = "http://localhost:8900"

    @property
    def has_signer(self) -> bool:
        return self.payer_private_key is not None

    @property
    def default_recipient(self) -> Optional[str]:
        """Configured recipient, falling back to the payer's own address."""
        return self.payment_address or self.payer_address

    @property
    def amount_base_units(self) -> int:
        return to_base_units(self.amount, self.token_decimals)

    def explorer_link(self, transaction_id: str) -> str:
        return f"{self.explorer_url}{transaction_id}"

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> "GatewayConfig":
        def get(key: str) -> Optional[str]:
            value = values.get(key)
            if value is None or value.strip() == "":
                return None
            return value

        private_key: Optional[str] = None
        payer_address: Optional[str] = None
        raw_key = get("X402_PAYER_PRIVATE_KEY")
        if raw_key is not None:
            private_key = _normalize_private_key(raw_key)
            try:
                payer_address = Account.from_key(private_key).address
            except ValueError as exc:
                raise ConfigError("X402_PAYER_PRIVATE_KEY is not a valid private key") from exc

        payment_address: Optional[str] = None
        raw_payment_address = get("X402_PAYMENT_ADDRESS")
        if raw_payment_address is not None:
            payment_address = normalize_address(raw_payment_address, "X402_PAYMENT_ADDRESS")

        amount = parse_amount(get("X402_PAYMENT_AMOUNT") or "0.02", "X402_PAYMENT_AMOUNT")
        decimals = _int_setting(values, "X402_PAYMENT_TOKEN_DECIMALS", "18")
        # Fail early on amounts the token cannot express.
        to_base_units(amount, decimals)

        result_limit = _int_setting(values, "PREMIUM_RESULT_LIMIT", "2")
        if result_limit <= 0:
            raise ConfigError("PREMIUM_RESULT_LIMIT must be positive")

        return cls(
            payer_private_key=private_key,
            payer_address=payer_address,
            payment_address=payment_address,
            amount=amount,
            currency=get("X402_PAYMENT_CURRENCY") or "NEURO",
            token_decimals=decimals,
            chain_id=_int_setting(values, "X402_PAYMENT_CHAIN_ID", "20430"),
            network=get("X402_PAYMENT_NETWORK") or "NeuroWeb Testnet",
            rpc_url=(get("X402_RPC_URL") or "https://rpc-testnet.origin-trail.network").rstrip("/"),
            explorer_url=get("X402_EXPLORER_URL") or "https://neuroweb-testnet.subscan.io/extrinsic/",
            gas_limit=_int_setting(values, "X402_GAS_LIMIT", "21000"),
            receipt_poll_seconds=_float_setting(values, "X402_RECEIPT_POLL_SECONDS", "2"),
            confirmation_deadline_seconds=_float_setting(
                values, "X402_CONFIRMATION_DEADLINE_SECONDS", None
            ),
            http_timeout_seconds=_float_setting(values, "X402_HTTP_TIMEOUT_SECONDS", "30"),
            cache_ttl_seconds=_float_setting(values, "PREMIUM_CACHE_TTL_SECONDS", "300"),
            result_limit=result_limit,
            soft_fetch_failure=_bool_setting(values, "PREMIUM_SOFT_FETCH_FAILURE", True),
            europe_pmc_url=get("EUROPE_PMC_URL")
            or "https://www.ebi.ac.uk/europepmc/webservices/rest/search",
            knowledge_node_url=(get("DKG_OTNODE_URL") or "http://localhost:8900").rstrip("/"),
        )

    @classmethod
    def from_env(
        cls,
        *,
        env_file: Optional[str] = ".env",
        overrides: Optional[Mapping[str, str]] = None,
        base: Optional[Mapping[str, str]] = None,
        parameters: Optional[GatewayParameters] = None,
        **explicit: Any,
    ) -> "GatewayConfig":
        parameter_overrides = _collect_parameter_overrides(parameters, explicit)
        merged_overrides = dict(overrides or {})
        merged_overrides.update(parameter_overrides)

        environment = build_environment(
            env_file=env_file,
            base=base,
            overrides=merged_overrides,
        )
        return cls.from_mapping(environment.variables)


def load_gateway_config(
    *,
    env_file: Optional[str] = ".env",
    overrides: Optional[Mapping[str, str]] = None,
    base: Optional[Mapping[str, str]] = None,
    parameters: Optional[GatewayParameters] = None,
    **explicit: Any,
) -> GatewayConfig:
    """
    Convenience wrapper that mirrors :meth:`GatewayConfig.from_env`.

    Settings can come from environment variables, a ``.env`` file, keyword
    arguments named like the fields of :class:`GatewayParameters`, or any
    combination of them. Keyword arguments win.
    """
    return GatewayConfig.from_env(
        env_file=env_file,
        overrides=overrides,
        base=base,
        parameters=parameters,
        **explicit,
    )
