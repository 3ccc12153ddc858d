"""Shared fixtures: SQLite database, fake order-management system, scripted planner."""
import os

os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LANGCHAIN_TRACING_V2"] = "false"
os.environ["ERP_BASE_URL"] = "http://erp.test/api"
os.environ["STREAM_CHUNK_DELAY_SECONDS"] = "0"

from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.drafts.store import DraftStore
from app.erp.client import ERPErrorKind, ERPResult
from app.llm.client import PlannerReply, PlannerToolCall
from app.models.database import Base

REFERENCE_NOW = datetime(2026, 1, 10, 9, 30, tzinfo=timezone.utc)

ACME = {
    "id": "cust-001",
    "name": "Acme Foods S.r.l.",
    "vat_no": "IT01234567890",
    "default_currency": "EUR",
    "addresses": [
        {"name": "HQ", "address": "Via Roma 1, Milano", "country": "IT"},
        {"name": "Warehouse", "address": "Via Po 20, Torino", "country": "IT"},
    ],
}

BETA = {
    "id": "cust-002",
    "name": "Beta Market",
    "addresses": [{"name": "Store", "address": "Rue de Lyon 5, Paris", "country": "FR"}],
}

PARSLEY = {
    "id": "0b7e8a4c-1f5d-4c1e-9a3b-2d6f8e9a1b2c",
    "internal_id": "PARSLEY 12 - RAW",
    "name": "Parsley bunch 12",
    "uom": "kg",
    "prices": {"unit": 4.5, "currency": "EUR", "vat": 4},
}

BASIL = {
    "id": "5c2d1e3f-4a5b-4c6d-8e7f-9a0b1c2d3e4f",
    "internal_id": "BASIL-GENOVESE",
    "name": "Basil Genovese",
    "uom": "kg",
    "prices": {"unit": 10.0, "currency": "EUR", "vat": 10},
}


class FakeERP:
    """In-memory stand-in for ERPClient with per-method call counters."""

    def __init__(self, parties: Optional[List[dict]] = None, products: Optional[List[dict]] = None):
        self.parties = {p["id"]: dict(p) for p in (parties if parties is not None else [ACME, BETA])}
        self.products = [dict(p) for p in (products if products is not None else [PARSLEY, BASIL])]
        self.calls: Dict[str, int] = defaultdict(int)
        self.search_queries: List[str] = []
        self.orders: List[Dict[str, Any]] = []
        self.failures: Dict[str, ERPResult] = {}

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def fail(self, method: str, kind: ERPErrorKind = ERPErrorKind.NETWORK, error: str = "connection refused"):
        self.failures[method] = ERPResult.fail(kind, error)

    def recover(self, method: str):
        self.failures.pop(method, None)

    def _failure(self, method: str) -> Optional[ERPResult]:
        self.calls[method] += 1
        return self.failures.get(method)

    async def search_parties(self, query: str, limit: int) -> ERPResult:
        failure = self._failure("search_parties")
        if failure:
            return failure
        wanted = query.lower()
        return ERPResult.ok([p for p in self.parties.values() if wanted in p["name"].lower()][:limit])

    async def get_party(self, party_id: str) -> ERPResult:
        failure = self._failure("get_party")
        if failure:
            return failure
        if party_id not in self.parties:
            return ERPResult.fail(ERPErrorKind.NOT_FOUND, "404 - customer not found")
        return ERPResult.ok(dict(self.parties[party_id]))

    async def search_items(self, query: str, limit: int) -> ERPResult:
        failure = self._failure("search_items")
        if failure:
            return failure
        self.search_queries.append(query)
        wanted = query.lower()
        hits = [
            dict(p) for p in self.products
            if wanted in p["internal_id"].lower() or wanted in p["name"].lower()
        ]
        return ERPResult.ok(hits[:limit])

    async def get_item(self, item_id: str) -> ERPResult:
        failure = self._failure("get_item")
        if failure:
            return failure
        for product in self.products:
            if product["id"] == item_id:
                return ERPResult.ok(dict(product))
        return ERPResult.fail(ERPErrorKind.NOT_FOUND, "404 - product not found")

    async def create_sales_order(self, payload: Dict[str, Any]) -> ERPResult:
        failure = self._failure("create_sales_order")
        if failure:
            return failure
        self.orders.append(payload)
        return ERPResult.ok({"id": f"order-{len(self.orders)}", "internal_id": f"SO-{len(self.orders):04d}"})

    def set_price(self, code: str, unit: float):
        for product in self.products:
            if product["internal_id"] == code:
                product["prices"] = {**product["prices"], "unit": unit}


class FakePlanner:
    """Planner returning scripted replies in order, recording every request."""

    def __init__(self, replies: List[PlannerReply], repeat_last: bool = False):
        self.replies = list(replies)
        self.repeat_last = repeat_last
        self.requests: List[Dict[str, Any]] = []

    async def plan(self, system_prompt, messages, tools) -> PlannerReply:
        self.requests.append({
            "system_prompt": system_prompt,
            "messages": [dict(m) for m in messages],
            "tools": tools,
        })
        if len(self.replies) > 1 or not self.repeat_last:
            return self.replies.pop(0)
        return self.replies[0]


def tool_call(name: str, arguments: str = "{}", call_id: Optional[str] = None) -> PlannerToolCall:
    return PlannerToolCall(id=call_id or f"call_{name}", name=name, arguments=arguments)


def tool_reply(*calls: PlannerToolCall) -> PlannerReply:
    return PlannerReply(content=None, tool_calls=list(calls))


def text_reply(content: str) -> PlannerReply:
    return PlannerReply(content=content)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """SQLite file database per test; every session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def draft_store(session_factory):
    return DraftStore(session_factory)


@pytest.fixture
def fake_erp():
    return FakeERP()


@pytest.fixture
def clock():
    return lambda: REFERENCE_NOW


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette keeps a module-level exit event bound to the first event loop."""
    from sse_starlette.sse import AppStatus

    AppStatus.should_exit_event = None
    yield
    AppStatus.should_exit_event = None
