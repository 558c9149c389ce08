# provisioning_engine/core/resolver.py
"""Dependency resolver - orders node materialization."""

import heapq
import logging
from typing import Dict, List, Set

from provisioning_engine.core.errors import CyclicDependency, TopologyFrozenError
from provisioning_engine.core.models import EdgeKind
from provisioning_engine.core.topology import Topology

logger = logging.getLogger(__name__)


class DependencyResolver:
    """
    Kahn's algorithm over the depends-on subgraph.

    Ready nodes are released in declaration order, so identical input always
    yields an identical order.
    """

    @staticmethod
    def resolve(topology: Topology) -> List[str]:
        """Return node ids such that every dependency precedes its dependents."""
        if not topology.frozen:
            raise TopologyFrozenError(
                f"Topology '{topology.stack_id}' must be frozen before resolution",
                [topology.stack_id],
            )

        node_ids = topology.node_ids()
        index = {node_id: position for position, node_id in enumerate(node_ids)}

        deps: Dict[str, Set[str]] = {node_id: set() for node_id in node_ids}
        dependents: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}

        for edge in topology.edges(EdgeKind.DEPENDS_ON):
            if edge.source == edge.target:
                raise CyclicDependency([edge.source])
            if edge.target in deps[edge.source]:
                continue
            deps[edge.source].add(edge.target)
            dependents[edge.target].append(edge.source)

        in_degree = {node_id: len(deps[node_id]) for node_id in node_ids}
        ready = [(index[node_id], node_id) for node_id in node_ids if in_degree[node_id] == 0]
        heapq.heapify(ready)

        order: List[str] = []
        while ready:
            _, node_id = heapq.heappop(ready)
            order.append(node_id)

            for dependent in dependents[node_id]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, (index[dependent], dependent))

        if len(order) < len(node_ids):
            remaining = {node_id for node_id in node_ids if in_degree[node_id] > 0}
            cycle = DependencyResolver._find_cycle(remaining, deps, index)
            logger.error(f"Stack '{topology.stack_id}' has a dependency cycle: {cycle}")
            raise CyclicDependency(cycle)

        return order

    @staticmethod
    def waves(topology: Topology, order: List[str]) -> List[List[str]]:
        """
        Group an order into waves of mutually independent nodes.

        Every node in wave N only depends on nodes in earlier waves, so an
        executor may materialize a wave concurrently.
        """
        depth: Dict[str, int] = {}
        for node_id in order:
            node_deps = topology.dependencies(node_id)
            depth[node_id] = 1 + max((depth[dep] for dep in node_deps), default=-1)

        waves: List[List[str]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
        for node_id in order:
            waves[depth[node_id]].append(node_id)
        return waves

    @staticmethod
    def _find_cycle(
        remaining: Set[str],
        deps: Dict[str, Set[str]],
        index: Dict[str, int],
    ) -> List[str]:
        # every unresolved node still has an unresolved dependency, so
        # following dependencies from any of them must revisit a node
        node = min(remaining, key=index.__getitem__)
        path: List[str] = []
        seen_at: Dict[str, int] = {}

        while node not in seen_at:
            seen_at[node] = len(path)
            path.append(node)
            node = min(
                (dep for dep in deps[node] if dep in remaining),
                key=index.__getitem__,
            )

        return path[seen_at[node]:]
