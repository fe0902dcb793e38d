"""
Public, high-level helpers for wiring up the premium gateway.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

import requests

from .core.cache import InMemoryQueryStore, QueryStore
from .core.challenge import ChallengeClient
from .core.chain import ChainClient, JsonRpcChainClient
from .core.config import ConfigError, GatewayConfig, GatewayParameters, load_gateway_config
from .core.knowledge import KnowledgeNodeClient, KnowledgeStore
from .core.requirements import RequirementResolver
from .core.sessions import SessionLike, SessionProvider
from .core.settlement import SettlementEngine
from .core.sources import EuropePmcSource
from .core.verifier import PaymentVerification, PaymentVerifier
from .orchestrator import AcquisitionOrchestrator

__all__ = [
    "ConfigError",
    "create_chain_client",
    "create_gateway",
    "load_gateway_config",
    "verify_transaction",
]


def _resolve_config(
    config: Optional[GatewayConfig],
    *,
    env_file: Optional[str],
    overrides: Optional[Mapping[str, str]],
    base: Optional[Mapping[str, str]],
    parameters: Optional[GatewayParameters],
    explicit: Mapping[str, Any],
) -> GatewayConfig:
    if config is not None:
        extras = (overrides, base, parameters, *explicit.values())
        if any(item is not None and item != {} for item in extras):
            raise ValueError(
                "Provide either a pre-built GatewayConfig or individual parameters, not both."
            )
        return config
    return load_gateway_config(
        env_file=env_file,
        overrides=overrides,
        base=base,
        parameters=parameters,
        **explicit,
    )


def create_chain_client(
    config: GatewayConfig, *, session: SessionLike = None
) -> JsonRpcChainClient:
    return JsonRpcChainClient(
        config.rpc_url,
        chain_id=config.chain_id,
        private_key=config.payer_private_key,
        gas_limit=config.gas_limit,
        timeout=config.http_timeout_seconds,
        session=session,
    )


def create_gateway(
    *,
    config: Optional[GatewayConfig] = None,
    session: Optional[requests.Session] = None,
    chain: Optional[ChainClient] = None,
    store: Optional[QueryStore] = None,
    knowledge: Optional[KnowledgeStore] = None,
    env_file: Optional[str] = ".env",
    overrides: Optional[Mapping[str, str]] = None,
    base: Optional[Mapping[str, str]] = None,
    parameters: Optional[GatewayParameters] = None,
    **explicit: Any,
) -> AcquisitionOrchestrator:
    """
    Construct an :class:`AcquisitionOrchestrator` with default collaborators.

    Callers can supply a ready-made :class:`GatewayConfig` or let the helper
    assemble one from environment data. ``chain``, ``store`` and ``knowledge``
    replace the JSON-RPC client, the in-memory dedup store and the HTTP
    knowledge node client respectively. All HTTP clients share one
    :class:`SessionProvider`: a supplied ``session`` is used by every client
    with its calls serialized, otherwise each worker thread keeps its own.
    """
    cfg = _resolve_config(
        config,
        env_file=env_file,
        overrides=overrides,
        base=base,
        parameters=parameters,
        explicit=explicit,
    )
    http = SessionProvider(session)
    chain_client = chain if chain is not None else create_chain_client(cfg, session=http)

    resolver = RequirementResolver(cfg)
    settlement = SettlementEngine(cfg, chain_client)
    verifier = PaymentVerifier(cfg, chain_client)
    challenge = ChallengeClient(
        resolver, settlement, verifier, session=http, timeout=cfg.http_timeout_seconds
    )
    return AcquisitionOrchestrator(
        cfg,
        resolver=resolver,
        settlement=settlement,
        verifier=verifier,
        source=EuropePmcSource(cfg.europe_pmc_url, challenge),
        store=store if store is not None else InMemoryQueryStore(cfg.cache_ttl_seconds),
        knowledge=knowledge
        if knowledge is not None
        else KnowledgeNodeClient(cfg.knowledge_node_url, session=http, timeout=cfg.http_timeout_seconds),
    )


async def verify_transaction(
    transaction_id: str,
    *,
    config: Optional[GatewayConfig] = None,
    chain: Optional[ChainClient] = None,
    recipient: Optional[str] = None,
    amount: Optional[str] = None,
    env_file: Optional[str] = ".env",
    overrides: Optional[Mapping[str, str]] = None,
) -> PaymentVerification:
    """
    Check a transaction against the configured (or overridden) payment terms.
    """
    cfg = config or load_gateway_config(env_file=env_file, overrides=overrides)
    chain_client = chain if chain is not None else create_chain_client(cfg)
    requirement = RequirementResolver(cfg).resolve(recipient=recipient, amount=amount)
    return await PaymentVerifier(cfg, chain_client).verify(transaction_id, requirement)
