#tests\test_topology.py

"""Test topology model."""

import pytest

from provisioning_engine.core.errors import DuplicateIdentifier, TopologyFrozenError, UnknownNode
from provisioning_engine.core.models import EdgeKind, NodeKind, PortRange, Protocol, SecurityBoundary
from provisioning_engine.core.topology import Topology

from conftest import make_network


class TestTopology:
    """Test add-only graph behaviour."""

    @pytest.fixture
    def graph(self):
        graph = Topology(stack_id="graph")
        graph.add_node(make_network())
        graph.add_node(SecurityBoundary(node_id="sg", network="vpc"))
        return graph

    # -------------------------
    # NODES
    # -------------------------

    def test_nodes_keep_declaration_order(self, graph):
        """Test nodes come back in the order they were added."""
        graph.add_node(SecurityBoundary(node_id="another-sg", network="vpc"))

        assert graph.node_ids() == ["vpc", "sg", "another-sg"]
        assert [node.node_id for node in graph.nodes(NodeKind.SECURITY_BOUNDARY)] == ["sg", "another-sg"]

    def test_duplicate_identifier_fails(self, graph):
        """Test adding an existing id fails."""
        with pytest.raises(DuplicateIdentifier) as exc_info:
            graph.add_node(SecurityBoundary(node_id="sg", network="vpc"))

        assert exc_info.value.identifiers == ("sg",)

    def test_get_unknown_node_fails(self, graph):
        """Test looking up a missing node fails."""
        with pytest.raises(UnknownNode):
            graph.get("missing")

    # -------------------------
    # EDGES
    # -------------------------

    def test_add_edge(self, graph):
        """Test edges are stored and queryable by kind."""
        graph.add_edge("sg", "vpc", EdgeKind.DEPENDS_ON)

        assert graph.dependencies("sg") == ["vpc"]
        assert len(graph.edges(EdgeKind.COMMUNICATES_WITH)) == 0

    def test_edge_to_unknown_node_fails(self, graph):
        """Test either missing endpoint is reported."""
        with pytest.raises(UnknownNode) as exc_info:
            graph.add_edge("sg", "nowhere", EdgeKind.DEPENDS_ON)

        assert exc_info.value.identifiers == ("nowhere",)

        with pytest.raises(UnknownNode):
            graph.add_edge("nowhere", "sg", EdgeKind.DEPENDS_ON)

    def test_identical_edges_are_stored_once(self, graph):
        """Test re-adding the same edge does not duplicate it."""
        graph.add_edge("sg", "vpc", EdgeKind.DEPENDS_ON)
        graph.add_edge("sg", "vpc", EdgeKind.DEPENDS_ON)

        assert len(graph.edges()) == 1

    def test_communication_edge_carries_ports(self, graph):
        """Test communicates-with edges keep protocol and port range."""
        edge = graph.add_edge(
            "sg", "sg", EdgeKind.COMMUNICATES_WITH,
            protocol=Protocol.TCP, ports=PortRange.single(2049),
        )

        assert edge.protocol == Protocol.TCP
        assert str(edge.ports) == "2049"
        assert edge.public_ingress is False

    # -------------------------
    # FREEZE
    # -------------------------

    def test_frozen_topology_rejects_nodes_and_edges(self, graph):
        """Test nothing can be added after freeze."""
        graph.freeze()

        assert graph.frozen
        with pytest.raises(TopologyFrozenError):
            graph.add_node(SecurityBoundary(node_id="late-sg", network="vpc"))
        with pytest.raises(TopologyFrozenError):
            graph.add_edge("sg", "vpc", EdgeKind.DEPENDS_ON)
