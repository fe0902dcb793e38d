"""
Public facade for the x402 premium content gateway.

Integrators can ``from x402_premium import ...`` the orchestrator, its
factories and the error types without navigating the package.
"""

from .api import create_chain_client, create_gateway, verify_transaction
from .core import (
    ConfigError,
    ContentItem,
    GatewayConfig,
    GatewayError,
    GatewayParameters,
    InMemoryQueryStore,
    InsufficientFundsError,
    PaymentRequirement,
    PaymentVerification,
    QueryStore,
    SettlementFailure,
    UpstreamFetchFailure,
    VerificationFailure,
    load_gateway_config,
)
from .orchestrator import AcquisitionOrchestrator, GatewayResponse
from .tools import TOOL_NAMES, invoke_tool

__all__ = (
    "AcquisitionOrchestrator",
    "ConfigError",
    "ContentItem",
    "GatewayConfig",
    "GatewayError",
    "GatewayParameters",
    "GatewayResponse",
    "InMemoryQueryStore",
    "InsufficientFundsError",
    "PaymentRequirement",
    "PaymentVerification",
    "QueryStore",
    "SettlementFailure",
    "TOOL_NAMES",
    "UpstreamFetchFailure",
    "VerificationFailure",
    "create_chain_client",
    "create_gateway",
    "invoke_tool",
    "load_gateway_config",
    "verify_transaction",
)
