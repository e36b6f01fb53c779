"""Read-only upstream clients: AaveKit, subgraph, JSON-RPC."""

from lending_core.upstream.aavekit import AaveKitClient
from lending_core.upstream.rpc import BlockResolver, RpcClient
from lending_core.upstream.subgraph import SubgraphClient

__all__ = ["AaveKitClient", "BlockResolver", "RpcClient", "SubgraphClient"]
