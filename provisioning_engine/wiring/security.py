# provisioning_engine/wiring/security.py
"""Security wiring - turns communicates-with edges into boundary rules."""

import logging
from typing import List, Optional, Union

from provisioning_engine.core.errors import InsecurePeerRejected, TopologyValidationError
from provisioning_engine.core.models import (
    OPEN_CIDR,
    Direction,
    Edge,
    EdgeKind,
    ExternalReference,
    NodeKind,
    PeerKind,
    PortRange,
    Protocol,
    SecurityBoundary,
    SecurityRule,
)
from provisioning_engine.core.topology import Topology

logger = logging.getLogger(__name__)

Boundary = Union[SecurityBoundary, ExternalReference]

BOUNDARY_OWNERS = (
    NodeKind.DATA_STORE,
    NodeKind.COMPUTE_SERVICE,
    NodeKind.VOLUME,
    NodeKind.LOAD_BALANCER,
)


class SecurityWiring:
    """
    Owns every rule mutation on the stack's security boundaries.

    Intra-stack peers are always boundary references. The open CIDR is the
    only literal peer, and only on edges marked public-ingress.
    """

    def __init__(self, topology: Topology):
        self._topology = topology

    # -------------------------
    # GRANT
    # -------------------------

    def grant(self, boundary_id: str, rule: SecurityRule) -> bool:
        """
        Add a rule to a boundary.

        Returns False when an identical rule is already present.
        """
        boundary = self.boundary(boundary_id)

        if any(existing.key == rule.key for existing in boundary.rules):
            return False

        boundary.rules.append(rule)
        logger.debug(
            f"[{boundary_id}] {rule.direction.value} {rule.protocol.value}/{rule.ports} "
            f"{rule.peer_kind.value}:{rule.peer}"
        )
        return True

    # -------------------------
    # EDGES
    # -------------------------

    def wire(self, edge: Edge) -> SecurityRule:
        """Emit the ingress rule (and egress, if needed) for one communicates-with edge."""
        if edge.kind != EdgeKind.COMMUNICATES_WITH:
            raise TopologyValidationError(
                f"Cannot wire {edge.kind.value} edge {edge.source} -> {edge.target}",
                [edge.source, edge.target],
            )
        if edge.protocol is None or edge.ports is None:
            raise TopologyValidationError(
                f"Edge {edge.source} -> {edge.target} needs a protocol and port",
                [edge.source, edge.target],
            )

        source = self._topology.get(edge.source)
        target_boundary = self.boundary_of(edge.target)

        if source.KIND == NodeKind.PEER:
            return self.allow_cidr(
                target_boundary,
                source.cidr,
                edge.protocol,
                edge.ports,
                public_ingress=edge.public_ingress,
                description=edge.description,
                requested_by=edge.source,
            )

        if edge.public_ingress:
            return self.allow_cidr(
                target_boundary,
                OPEN_CIDR,
                edge.protocol,
                edge.ports,
                public_ingress=True,
                description=edge.description,
                requested_by=edge.source,
            )

        source_boundary = self.boundary_of(edge.source)
        if source_boundary == target_boundary:
            return self.allow_self(target_boundary, edge.protocol, edge.ports, edge.description)

        return self.allow_from(
            target_boundary, source_boundary, edge.protocol, edge.ports, edge.description
        )

    def wire_all(self) -> List[SecurityRule]:
        return [self.wire(edge) for edge in self._topology.edges(EdgeKind.COMMUNICATES_WITH)]

    # -------------------------
    # RULE SHAPES
    # -------------------------

    def allow_from(
        self,
        target_boundary: str,
        source_boundary: str,
        protocol: Protocol,
        ports: PortRange,
        description: Optional[str] = None,
    ) -> SecurityRule:
        """Group-to-group ingress on target, plus egress on source if it restricts outbound."""
        ingress = SecurityRule(
            direction=Direction.INGRESS,
            protocol=protocol,
            ports=ports,
            peer_kind=PeerKind.BOUNDARY,
            peer=source_boundary,
            description=description,
        )
        self.grant(target_boundary, ingress)

        if not self.boundary(source_boundary).allow_all_outbound:
            self.grant(
                source_boundary,
                SecurityRule(
                    direction=Direction.EGRESS,
                    protocol=protocol,
                    ports=ports,
                    peer_kind=PeerKind.BOUNDARY,
                    peer=target_boundary,
                    description=description,
                ),
            )

        return ingress

    def allow_self(
        self,
        boundary_id: str,
        protocol: Protocol,
        ports: PortRange,
        description: Optional[str] = None,
    ) -> SecurityRule:
        """Admit traffic between members of the same boundary."""
        ingress = SecurityRule(
            direction=Direction.INGRESS,
            protocol=protocol,
            ports=ports,
            peer_kind=PeerKind.SELF,
            peer=boundary_id,
            description=description,
        )
        self.grant(boundary_id, ingress)

        if not self.boundary(boundary_id).allow_all_outbound:
            self.grant(
                boundary_id,
                SecurityRule(
                    direction=Direction.EGRESS,
                    protocol=protocol,
                    ports=ports,
                    peer_kind=PeerKind.SELF,
                    peer=boundary_id,
                    description=description,
                ),
            )

        return ingress

    def allow_cidr(
        self,
        boundary_id: str,
        cidr: str,
        protocol: Protocol,
        ports: PortRange,
        *,
        public_ingress: bool = False,
        description: Optional[str] = None,
        requested_by: Optional[str] = None,
    ) -> SecurityRule:
        """Literal peer ingress; only the open CIDR on a public-ingress request."""
        requester = requested_by or boundary_id

        if not public_ingress:
            raise InsecurePeerRejected(
                f"Literal peer {cidr} for '{boundary_id}' requested by '{requester}' "
                f"is not marked public-ingress; use a security boundary reference",
                [requester, boundary_id],
            )
        if cidr != OPEN_CIDR:
            raise InsecurePeerRejected(
                f"Public-ingress peer for '{boundary_id}' must be {OPEN_CIDR}, got {cidr}",
                [requester, boundary_id],
            )

        ingress = SecurityRule(
            direction=Direction.INGRESS,
            protocol=protocol,
            ports=ports,
            peer_kind=PeerKind.CIDR,
            peer=OPEN_CIDR,
            description=description,
        )
        self.grant(boundary_id, ingress)
        return ingress

    # -------------------------
    # LOOKUP
    # -------------------------

    def boundary(self, boundary_id: str) -> Boundary:
        node = self._topology.get(boundary_id)
        if node.KIND not in (NodeKind.SECURITY_BOUNDARY, NodeKind.EXTERNAL_REFERENCE):
            raise TopologyValidationError(
                f"'{boundary_id}' is not a security boundary", [boundary_id]
            )
        return node

    def boundary_of(self, node_id: str) -> str:
        """Security boundary that governs traffic to and from node_id."""
        node = self._topology.get(node_id)

        if node.KIND in (NodeKind.SECURITY_BOUNDARY, NodeKind.EXTERNAL_REFERENCE):
            return node.node_id
        if node.KIND in BOUNDARY_OWNERS:
            return node.security_boundary

        raise TopologyValidationError(
            f"'{node_id}' ({node.KIND.value}) has no security boundary", [node_id]
        )

    def public_rules(self, boundary_id: str) -> List[SecurityRule]:
        return [
            rule
            for rule in self.boundary(boundary_id).rules
            if rule.direction == Direction.INGRESS and rule.peer_kind == PeerKind.CIDR
        ]
