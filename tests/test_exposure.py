#tests\test_exposure.py

"""Test service exposure through load balancer target groups."""

import pytest

from provisioning_engine.core.errors import UnroutableService
from provisioning_engine.core.models import (
    Direction,
    PeerKind,
    PortRange,
    Stickiness,
    TargetGroup,
)
from provisioning_engine.wiring.exposure import ServiceExposureConfigurator
from provisioning_engine.wiring.security import SecurityWiring


@pytest.fixture
def wiring(topology):
    return SecurityWiring(topology)


@pytest.fixture
def exposure(topology, wiring):
    return ServiceExposureConfigurator(topology, wiring)


@pytest.fixture
def lb(topology):
    return topology.get("lb")


class TestAttach:
    """Test attaching services to target groups."""

    def test_attach_exposed_port(self, exposure, lb):
        """Test a target group on an exposed port attaches with its settings."""
        listener = lb.listeners[0]
        target_group = listener.target_groups[0]

        attached = exposure.attach(lb, listener, target_group)

        assert attached.attached is True
        assert attached.container_name == "web"
        assert attached.stickiness == Stickiness(cookie_name="SESSION", duration_seconds=3600)
        assert attached.unhealthy_grace_seconds == 600

    def test_unexposed_port_is_unroutable(self, exposure, lb):
        """Test port 9090 fails when containers only expose 8080."""
        listener = lb.listeners[0]
        target_group = TargetGroup(target_group_id="admin-tg", service="app", port=9090)

        with pytest.raises(UnroutableService) as exc_info:
            exposure.attach(lb, listener, target_group)

        assert "app" in exc_info.value.identifiers
        assert target_group.attached is False

    def test_named_container_must_expose_port(self, exposure, lb):
        """Test a named container without the port is unroutable."""
        listener = lb.listeners[0]
        target_group = TargetGroup(
            target_group_id="sidecar-tg", service="app", port=8080, container_name="sidecar"
        )

        with pytest.raises(UnroutableService):
            exposure.attach(lb, listener, target_group)

    def test_stickiness_argument_replaces_group_policy(self, exposure, lb):
        """Test stickiness passed to attach wins over the group's own."""
        listener = lb.listeners[0]
        target_group = listener.target_groups[0]
        sticky = Stickiness(cookie_name="JSESSIONID", duration_seconds=86400)

        attached = exposure.attach(lb, listener, target_group, stickiness=sticky)

        assert attached.stickiness.cookie_name == "JSESSIONID"
        assert attached.stickiness.duration_seconds == 86400

    def test_reattach_same_group_is_idempotent(self, topology, exposure, lb):
        """Test attaching the same group twice adds no extra rule."""
        listener = lb.listeners[0]
        target_group = listener.target_groups[0]

        exposure.attach(lb, listener, target_group)
        exposure.attach(lb, listener, target_group)

        assert len(topology.get("app-sg").rules) == 1

    def test_service_on_two_groups_of_one_listener_fails(self, exposure, lb):
        """Test a service is attached to at most one group per listener."""
        listener = lb.listeners[0]
        exposure.attach(lb, listener, listener.target_groups[0])

        second = TargetGroup(target_group_id="app-tg-2", service="app", port=8080)
        listener.target_groups.append(second)

        with pytest.raises(UnroutableService) as exc_info:
            exposure.attach(lb, listener, second)

        assert "app-tg" in exc_info.value.identifiers


class TestExposureRules:
    """Test rules requested while exposing a service."""

    def test_service_admits_load_balancer(self, topology, exposure, lb):
        """Test the service boundary admits the LB boundary on the target port."""
        exposure.configure(lb)

        rules = topology.get("app-sg").rules
        assert len(rules) == 1
        assert rules[0].direction == Direction.INGRESS
        assert rules[0].peer_kind == PeerKind.BOUNDARY
        assert rules[0].peer == "lb-sg"
        assert rules[0].ports == PortRange.single(8080)

    def test_configure_attaches_every_group(self, exposure, lb):
        """Test configure returns every attached target group."""
        attached = exposure.configure(lb)

        assert [group.target_group_id for group in attached] == ["app-tg"]
