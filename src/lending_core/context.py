"""Application context: everything a sync run or API process needs, built once."""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from lending_core.cache import CacheSet
from lending_core.collectors.aavekit import AaveKitCollector, CollectorSettings
from lending_core.config.schema import AppConfig
from lending_core.db.engine import init_engine, make_session_factory
from lending_core.models.market import MarketConfig
from lending_core.registry import Registry
from lending_core.upstream.aavekit import AaveKitClient
from lending_core.upstream.rpc import BlockResolver, RpcClient
from lending_core.upstream.subgraph import SubgraphClient


@dataclass
class AppContext:
    config: AppConfig
    registry: Registry
    aavekit: AaveKitClient
    subgraph: SubgraphClient
    rpc: RpcClient
    caches: CacheSet
    engine: Engine | None = None
    session_factory: sessionmaker[Session] | None = None
    _resolvers: dict[str, BlockResolver] = field(default_factory=dict, repr=False)

    @classmethod
    def from_config(cls, config: AppConfig, registry: Registry | None = None, connect: bool = True) -> AppContext:
        """Build clients and caches from *config*; open the engine unless *connect* is False."""
        up = config.upstream
        engine = init_engine(config.database.url) if connect else None
        if registry is None:
            paths = config.registry
            registry = Registry.from_files(paths.markets_path, paths.stablecoins_path, paths.scenarios_path)
        return cls(
            config=config,
            registry=registry,
            aavekit=AaveKitClient(up.aavekit_url, timeout_s=up.timeout_s),
            subgraph=SubgraphClient(up.graph_api_key, gateway_url=up.graph_gateway_url, timeout_s=up.timeout_s),
            rpc=RpcClient(timeout_s=up.timeout_s),
            caches=CacheSet(config.cache),
            engine=engine,
            session_factory=make_session_factory(engine) if engine is not None else None,
        )

    def resolver_for(self, market: MarketConfig) -> BlockResolver:
        """Block resolver over the market's own RPC list, or the configured default."""
        resolver = self._resolvers.get(market.market_key)
        if resolver is None:
            up = self.config.upstream
            resolver = BlockResolver(
                self.rpc,
                market.rpc_urls or up.rpc_urls,
                max_iterations=up.block_search_max_iterations,
                timeout_s=up.rpc_timeout_s,
            )
            self._resolvers[market.market_key] = resolver
        return resolver

    def collector(self) -> AaveKitCollector:
        s = self.config.sync
        settings = CollectorSettings(
            canonical_subgraph_market=s.canonical_subgraph_market,
            pause_every=s.request_pause_every,
            pause_s=s.request_pause_s,
            market_delay_s=s.market_delay_s,
        )
        return AaveKitCollector(self.aavekit, self.registry, settings)

    def session(self) -> Session:
        if self.session_factory is None:
            raise RuntimeError("AppContext was built without a database connection")
        return self.session_factory()

    async def aclose(self) -> None:
        await self.aavekit.close()
        await self.subgraph.close()
        await self.rpc.close()
        if self.engine is not None:
            self.engine.dispose()
