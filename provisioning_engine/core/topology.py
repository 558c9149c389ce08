# provisioning_engine/core/topology.py
"""Topology model - add-only graph of typed nodes and edges."""

import logging
from typing import Any, Dict, List, Optional

from provisioning_engine.core.errors import (
    DuplicateIdentifier,
    TopologyFrozenError,
    UnknownNode,
)
from provisioning_engine.core.models import Edge, EdgeKind, NodeKind, PortRange, Protocol

logger = logging.getLogger(__name__)


class Topology:
    """
    Graph of stack resources.

    Nodes keep their declaration order, which the resolver uses to break
    ties. Nothing can be removed; after freeze() nothing can be added.
    """

    def __init__(self, stack_id: str = "stack"):
        self.stack_id = stack_id
        self._nodes: Dict[str, Any] = {}
        self._edges: List[Edge] = []
        self._edge_set = set()
        self._frozen = False

    # -------------------------
    # BUILD
    # -------------------------

    def add_node(self, node: Any) -> None:
        """Add a node; its id must be unique within the stack."""
        self._assert_mutable()

        if node.node_id in self._nodes:
            raise DuplicateIdentifier(
                f"Node '{node.node_id}' already exists in stack '{self.stack_id}'",
                [node.node_id],
            )

        self._nodes[node.node_id] = node

    def add_edge(
        self,
        source: str,
        target: str,
        kind: EdgeKind,
        *,
        protocol: Optional[Protocol] = None,
        ports: Optional[PortRange] = None,
        public_ingress: bool = False,
        description: Optional[str] = None,
    ) -> Edge:
        """Add a directed edge between two existing nodes."""
        self._assert_mutable()

        missing = [node_id for node_id in (source, target) if node_id not in self._nodes]
        if missing:
            raise UnknownNode(
                f"Edge {source} -[{kind.value}]-> {target} references unknown node(s): "
                f"{', '.join(missing)}",
                missing,
            )

        edge = Edge(
            source=source,
            target=target,
            kind=kind,
            protocol=protocol,
            ports=ports,
            public_ingress=public_ingress,
            description=description,
        )

        if edge not in self._edge_set:
            self._edge_set.add(edge)
            self._edges.append(edge)

        return edge

    def freeze(self) -> None:
        self._frozen = True
        logger.debug(
            f"Topology '{self.stack_id}' frozen with {len(self._nodes)} nodes "
            f"and {len(self._edges)} edges"
        )

    @property
    def frozen(self) -> bool:
        return self._frozen

    # -------------------------
    # QUERY
    # -------------------------

    def get(self, node_id: str) -> Any:
        node = self._nodes.get(node_id)
        if node is None:
            raise UnknownNode(f"Node '{node_id}' not found", [node_id])
        return node

    def nodes(self, kind: Optional[NodeKind] = None) -> List[Any]:
        """Nodes in declaration order, optionally filtered by kind."""
        if kind is None:
            return list(self._nodes.values())
        return [node for node in self._nodes.values() if node.KIND == kind]

    def node_ids(self) -> List[str]:
        return list(self._nodes)

    def edges(self, kind: Optional[EdgeKind] = None) -> List[Edge]:
        if kind is None:
            return list(self._edges)
        return [edge for edge in self._edges if edge.kind == kind]

    def dependencies(self, node_id: str) -> List[str]:
        """Ids that node_id depends on, in edge declaration order."""
        return [
            edge.target
            for edge in self._edges
            if edge.kind == EdgeKind.DEPENDS_ON and edge.source == node_id
        ]

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    # -------------------------
    # HELPERS
    # -------------------------

    def _assert_mutable(self) -> None:
        if self._frozen:
            raise TopologyFrozenError(
                f"Topology '{self.stack_id}' is frozen", [self.stack_id]
            )
