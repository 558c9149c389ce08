# provisioning_engine/wiring/exposure.py
"""Service exposure - attaches services to load balancer target groups."""

import logging
from typing import List, Optional

from provisioning_engine.core.errors import UnroutableService
from provisioning_engine.core.models import (
    ComputeService,
    Listener,
    LoadBalancer,
    NodeKind,
    PortRange,
    Protocol,
    Stickiness,
    TargetGroup,
)
from provisioning_engine.core.topology import Topology
from provisioning_engine.core.validation import require_kind
from provisioning_engine.wiring.security import SecurityWiring

logger = logging.getLogger(__name__)


class ServiceExposureConfigurator:
    """Routes listener traffic to a service's container port."""

    def __init__(self, topology: Topology, wiring: SecurityWiring):
        self._topology = topology
        self._wiring = wiring

    def attach(
        self,
        load_balancer: LoadBalancer,
        listener: Listener,
        target_group: TargetGroup,
        stickiness: Optional[Stickiness] = None,
    ) -> TargetGroup:
        """
        Attach target_group's service to the listener.

        - the service must expose target_group.port on some container
        - the service's health check grace period becomes the group's
          initial unhealthy grace window
        - stickiness, if given, replaces the group's own policy
        """
        owner = f"{load_balancer.node_id}/{listener.listener_id}/{target_group.target_group_id}"
        service: ComputeService = require_kind(
            self._topology, owner, target_group.service, (NodeKind.COMPUTE_SERVICE,)
        )

        for other in listener.target_groups:
            if other is not target_group and other.attached and other.service == service.node_id:
                raise UnroutableService(
                    f"Service '{service.node_id}' is already attached to target group "
                    f"'{other.target_group_id}' of listener '{listener.listener_id}'",
                    [service.node_id, other.target_group_id, target_group.target_group_id],
                )

        container_name = self._routable_container(service, target_group, owner)

        target_group.container_name = container_name
        target_group.unhealthy_grace_seconds = service.health_check_grace_seconds
        if stickiness is not None:
            target_group.stickiness = stickiness

        ports = PortRange.single(target_group.port)
        description = f"{load_balancer.node_id} forwards to {service.node_id}"
        if load_balancer.security_boundary == service.security_boundary:
            self._wiring.allow_self(service.security_boundary, Protocol.TCP, ports, description)
        else:
            self._wiring.allow_from(
                service.security_boundary,
                load_balancer.security_boundary,
                Protocol.TCP,
                ports,
                description,
            )

        target_group.attached = True

        logger.info(
            f"[{owner}] routes :{listener.port} to {service.node_id}/{container_name}:"
            f"{target_group.port}"
        )
        return target_group

    def configure(self, load_balancer: LoadBalancer) -> List[TargetGroup]:
        """Attach every target group of every listener."""
        attached = []
        for listener in load_balancer.listeners:
            for target_group in listener.target_groups:
                attached.append(self.attach(load_balancer, listener, target_group))
        return attached

    @staticmethod
    def _routable_container(service: ComputeService, target_group: TargetGroup, owner: str) -> str:
        if target_group.container_name is not None:
            container = service.container(target_group.container_name)
            candidates = [container] if container is not None else []
        else:
            candidates = service.task.containers

        for container in candidates:
            if container.exposes(target_group.port):
                return container.name

        where = f"container '{target_group.container_name}'" if target_group.container_name else "any container"
        raise UnroutableService(
            f"Service '{service.node_id}' exposes no port {target_group.port} on {where} "
            f"for target group '{target_group.target_group_id}'",
            [service.node_id, owner],
        )
