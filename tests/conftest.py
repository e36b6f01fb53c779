"""Shared test fixtures."""

import pytest
from sqlalchemy import BigInteger, Integer, JSON, create_engine, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

import lending_core.db.tables  # noqa: F401 register tables on Base.metadata
from lending_core.cache import CacheSet
from lending_core.config.schema import AppConfig
from lending_core.context import AppContext
from lending_core.db.base import Base
from lending_core.db.engine import make_session_factory
from lending_core.errors import UpstreamError
from lending_core.models.market import MarketConfig, StablecoinConfig
from lending_core.models.reserve import Reserve
from lending_core.registry import Registry

USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
RAY_ONE = 10**27


def _sqlite_engine():
    """In-memory SQLite engine with all schemas/tables created.

    Patches JSONB→JSON and BigInteger→Integer for SQLite compatibility.
    A StaticPool keeps one connection so threads (TestClient) share the DB.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, _rec):
        dbapi_conn.execute("PRAGMA foreign_keys=ON")

    # SQLite doesn't support schemas, JSONB, or BigInteger autoincrement
    for table in Base.metadata.tables.values():
        table.schema = None
        for col in table.columns:
            if isinstance(col.type, JSONB):
                col.type = JSON()
            if isinstance(col.type, BigInteger):
                col.type = Integer()

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_engine():
    engine = _sqlite_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    session = Session(db_engine, expire_on_commit=False)
    yield session
    session.close()


def make_market(key: str, subgraph_id: str = "", rpc_urls: list[str] | None = None) -> MarketConfig:
    return MarketConfig(
        market_key=key,
        display_name=key.replace("-", " ").title(),
        pool_address="0x87870bca3f3fd6335c3f4ce8392d69350b4fa4e2",
        subgraph_id=subgraph_id,
        chain_id=1,
        rpc_urls=rpc_urls or [],
    )


@pytest.fixture
def registry():
    return Registry(
        markets=[
            make_market("ethereum-v3", subgraph_id="sg-eth", rpc_urls=["https://rpc-a", "https://rpc-b"]),
            make_market("arbitrum-v3"),
            make_market("base-v3"),
        ],
        stablecoins=[
            StablecoinConfig(symbol="USDC", address=USDC, markets=["ethereum-v3", "arbitrum-v3"]),
        ],
    )


def aavekit_payload(
    symbol: str = "USDC",
    address: str = USDC,
    decimals: int = 6,
    supplied: str = "1000",
    borrowed: str = "400",
    price: str = "1.0",
    supply_rate: str = "0.03",
    borrow_rate: str = "0.05",
    **extra,
) -> dict:
    """Raw-snapshot reserve payload as the AaveKit collector stores it."""
    payload = {
        "underlyingAsset": address,
        "symbol": symbol,
        "name": symbol,
        "decimals": decimals,
        "currentLiquidityRate": supply_rate,
        "currentVariableBorrowRate": borrow_rate,
        "totalATokenSupply": supplied,
        "totalCurrentVariableDebt": borrowed,
        "availableLiquidity": str(float(supplied) - float(borrowed)),
        "liquidityIndex": "0",
        "variableBorrowIndex": "0",
        "price": {"priceInEth": price},
    }
    payload.update(extra)
    return payload


@pytest.fixture
def usdc_payload():
    return aavekit_payload()


@pytest.fixture
def weth_payload():
    return aavekit_payload(
        symbol="WETH", address=WETH, decimals=18, supplied="10", borrowed="5", price="2000", supply_rate="0.01",
        borrow_rate="0.02",
    )


def subgraph_payload(symbol: str = "USDC", address: str = USDC, decimals: int = 6, **extra) -> dict:
    """Reserve payload in the subgraph encoding: on-chain amounts, ray rates."""
    payload = {
        "supplied": str(1000 * 10**decimals),
        "borrowed": str(400 * 10**decimals),
        "price": "1",
        "supply_rate": str(3 * 10**25),
        "borrow_rate": str(5 * 10**25),
    }
    payload.update(extra)
    return aavekit_payload(symbol, address, decimals, **payload)


class FakeAaveKit:
    """Stand-in for AaveKitClient serving fixed reserves per market.

    Markets in *failing* raise UpstreamError; markets in *empty* return no reserves.
    """

    def __init__(self, reserves: list[dict] | None = None, failing=(), empty=()):
        self.payloads = reserves if reserves is not None else [aavekit_payload()]
        self.failing = set(failing)
        self.empty = set(empty)
        self.calls: list[str] = []

    async def query_reserves(self, market):
        self.calls.append(market.market_key)
        if market.market_key in self.failing:
            raise UpstreamError("aavekit", f"down for {market.market_key}")
        if market.market_key in self.empty:
            return []
        return [Reserve.model_validate(p) for p in self.payloads]

    async def query_reserve(self, market, underlying_asset):
        wanted = underlying_asset.lower()
        for r in await self.query_reserves(market):
            if r.underlying_asset.lower() == wanted:
                return r
        return None

    async def close(self):
        pass


def make_ctx(registry, engine=None, aavekit=None, subgraph=None, config: AppConfig | None = None) -> AppContext:
    """AppContext over fakes; *engine* backs ``ctx.session()`` when given."""
    config = config or AppConfig()
    return AppContext(
        config=config,
        registry=registry,
        aavekit=aavekit or FakeAaveKit(),
        subgraph=subgraph,
        rpc=None,
        caches=CacheSet(config.cache),
        session_factory=make_session_factory(engine) if engine is not None else None,
    )
