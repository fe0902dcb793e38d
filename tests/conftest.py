"""Pytest configuration and shared fakes."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional

import pytest
from eth_account import Account

from x402_premium.core.cache import InMemoryQueryStore
from x402_premium.core.chain import ChainReceipt, ChainTransaction
from x402_premium.core.config import GatewayConfig
from x402_premium.core.errors import KnowledgeStoreError
from x402_premium.core.requirements import RequirementResolver
from x402_premium.core.settlement import SettlementEngine
from x402_premium.core.sources import ContentItem
from x402_premium.core.verifier import PaymentVerifier
from x402_premium.orchestrator import AcquisitionOrchestrator

PAYER_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
PAYER_ADDRESS = Account.from_key(PAYER_KEY).address
RECIPIENT = "0x1231231231231231231231231231231231231234"
PRICE_WEI = 2 * 10**16  # 0.02 at 18 decimals
GAS_PRICE = 10**9


def tx_hash(n: int) -> str:
    return "0x" + f"{n:064x}"


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeChainClient:
    """In-memory chain: transfers are mined instantly unless told otherwise."""

    def __init__(
        self,
        *,
        address: Optional[str] = PAYER_ADDRESS,
        balance: int = 10**18,
        gas_price: int = GAS_PRICE,
    ) -> None:
        self._address = address
        self.balance = balance
        self.gas_price = gas_price
        self.receipt_success = True
        self.unmined_polls = 0
        self.sent: List[tuple] = []
        self.transactions: Dict[str, ChainTransaction] = {}
        self.receipts: Dict[str, ChainReceipt] = {}
        self.receipt_lookups = 0

    @property
    def address(self) -> Optional[str]:
        return self._address

    def add_transaction(
        self,
        transaction_id: str,
        *,
        to: str = RECIPIENT,
        value: int = PRICE_WEI,
        success: bool = True,
        sender: str = "0x00000000000000000000000000000000000000aa",
        block: int = 4242,
    ) -> str:
        self.transactions[transaction_id] = ChainTransaction(transaction_id, sender, to, value)
        self.receipts[transaction_id] = ChainReceipt(transaction_id, success, block)
        return transaction_id

    async def get_balance(self, address: str) -> int:
        await asyncio.sleep(0)
        return self.balance

    async def get_fee_estimate(self) -> int:
        await asyncio.sleep(0)
        return self.gas_price

    async def send_transfer(self, to: str, amount: int) -> str:
        await asyncio.sleep(0)
        self.sent.append((to, amount))
        return self.add_transaction(
            tx_hash(len(self.sent)),
            to=to,
            value=amount,
            success=self.receipt_success,
            sender=self._address,
        )

    async def get_transaction_receipt(self, transaction_id: str) -> Optional[ChainReceipt]:
        await asyncio.sleep(0)
        self.receipt_lookups += 1
        if self.unmined_polls:
            self.unmined_polls -= 1
            return None
        return self.receipts.get(transaction_id)

    async def get_transaction(self, transaction_id: str) -> Optional[ChainTransaction]:
        await asyncio.sleep(0)
        return self.transactions.get(transaction_id)


class FakeSource:
    def __init__(self, items: Optional[List[ContentItem]] = None) -> None:
        self.items = items if items is not None else [
            ContentItem(
                id="PMC1",
                title="Checkpoint inhibitors in solid tumours",
                authors="Doe J, Roe R",
                venue="Lancet Oncol",
                year="2024",
                doi="10.1000/one",
                alt_id="PMC1",
                abstract="Abstract one",
                url="https://europepmc.org/articles/PMC1?pdf=render",
            ),
            ContentItem(
                id="PMC2",
                title="CAR-T outcomes",
                authors="Smith A",
                venue="NEJM",
                year="2023",
                doi="10.1000/two",
                alt_id="PMC2",
                abstract="Abstract two",
                url="https://doi.org/10.1000/two",
            ),
        ]
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None

    async def fetch(self, query: str, limit: int) -> List[ContentItem]:
        await asyncio.sleep(0)
        self.calls.append((query, limit))
        if self.error is not None:
            raise self.error
        return self.items[:limit]


class FakeKnowledgeStore:
    def __init__(self) -> None:
        self.published: List[Mapping[str, Any]] = []
        self.queries: List[Mapping[str, Any]] = []
        self.fail = False

    async def publish(self, document: Mapping[str, Any]) -> str:
        await asyncio.sleep(0)
        if self.fail:
            raise KnowledgeStoreError("node offline")
        self.published.append(document)
        return f"did:dkg:otp:20430/0xabc/{len(self.published)}"

    async def query(self, filter: Mapping[str, Any]) -> List[Dict[str, Any]]:
        self.queries.append(dict(filter))
        return [{"title": "Published source", "tier": filter.get("tier", "premium")}]


def make_config(**values: str) -> GatewayConfig:
    mapping = {
        "X402_PAYER_PRIVATE_KEY": PAYER_KEY,
        "X402_PAYMENT_ADDRESS": RECIPIENT,
        "X402_RECEIPT_POLL_SECONDS": "0",
    }
    mapping.update(values)
    return GatewayConfig.from_mapping(mapping)


@pytest.fixture
def config() -> GatewayConfig:
    return make_config()


@pytest.fixture
def chain() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def knowledge() -> FakeKnowledgeStore:
    return FakeKnowledgeStore()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryQueryStore:
    return InMemoryQueryStore(300, clock=clock)


def build_orchestrator(
    config: GatewayConfig,
    chain: FakeChainClient,
    source: FakeSource,
    store: InMemoryQueryStore,
    knowledge: FakeKnowledgeStore,
) -> AcquisitionOrchestrator:
    return AcquisitionOrchestrator(
        config,
        resolver=RequirementResolver(config),
        settlement=SettlementEngine(config, chain),
        verifier=PaymentVerifier(config, chain),
        source=source,
        store=store,
        knowledge=knowledge,
    )


@pytest.fixture
def orchestrator(config, chain, source, store, knowledge) -> AcquisitionOrchestrator:
    return build_orchestrator(config, chain, source, store, knowledge)
