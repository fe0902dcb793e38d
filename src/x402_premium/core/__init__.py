"""
Core primitives of the pay-per-query gateway.
"""

from .cache import (
    CacheEntry,
    CacheStatus,
    Claim,
    Hit,
    InMemoryQueryStore,
    Miss,
    Pending,
    QueryStore,
    normalize_query,
)
from .chain import ChainClient, ChainReceipt, ChainTransaction, JsonRpcChainClient
from .challenge import PAYMENT_PROOF_HEADER, ChallengeClient, parse_challenge
from .config import GatewayConfig, GatewayParameters, load_gateway_config
from .environment import GatewayEnvironment, build_environment, load_env_file
from .errors import (
    CacheOwnershipError,
    ChainRpcError,
    ConfigError,
    GatewayError,
    InsufficientFundsError,
    KnowledgeStoreError,
    PaymentError,
    PaymentRejectedError,
    SettlementFailure,
    UpstreamFetchFailure,
    VerificationFailure,
)
from .knowledge import KnowledgeNodeClient, KnowledgeStore, build_sources_document
from .requirements import PaymentRequirement, RequirementResolver
from .settlement import AttemptStatus, PaymentAttempt, SettlementEngine
from .sources import ContentItem, EuropePmcSource
from .verifier import PaymentVerification, PaymentVerifier

__all__ = [
    "AttemptStatus",
    "CacheEntry",
    "CacheOwnershipError",
    "CacheStatus",
    "ChainClient",
    "ChainReceipt",
    "ChainRpcError",
    "ChainTransaction",
    "ChallengeClient",
    "Claim",
    "ConfigError",
    "ContentItem",
    "EuropePmcSource",
    "GatewayConfig",
    "GatewayEnvironment",
    "GatewayError",
    "GatewayParameters",
    "Hit",
    "InMemoryQueryStore",
    "InsufficientFundsError",
    "JsonRpcChainClient",
    "KnowledgeNodeClient",
    "KnowledgeStore",
    "KnowledgeStoreError",
    "Miss",
    "PAYMENT_PROOF_HEADER",
    "PaymentAttempt",
    "PaymentError",
    "PaymentRejectedError",
    "PaymentRequirement",
    "PaymentVerification",
    "PaymentVerifier",
    "Pending",
    "QueryStore",
    "RequirementResolver",
    "SettlementEngine",
    "SettlementFailure",
    "UpstreamFetchFailure",
    "VerificationFailure",
    "build_environment",
    "build_sources_document",
    "load_env_file",
    "load_gateway_config",
    "normalize_query",
    "parse_challenge",
]
