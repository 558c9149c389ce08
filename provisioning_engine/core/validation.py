# provisioning_engine/core/validation.py
from typing import Any, Tuple

from provisioning_engine.core.errors import IdentityMismatch, TopologyValidationError
from provisioning_engine.core.models import (
    ComputeService,
    DataStore,
    LoadBalancer,
    Network,
    NodeKind,
    SubnetPlacement,
    Volume,
)
from provisioning_engine.core.topology import Topology


BOUNDARY_KINDS = (NodeKind.SECURITY_BOUNDARY, NodeKind.EXTERNAL_REFERENCE)
PRIVATE_PLACEMENTS = (SubnetPlacement.PRIVATE_WITH_EGRESS, SubnetPlacement.ISOLATED)


def require_kind(topology: Topology, owner: str, node_id: str, kinds: Tuple[NodeKind, ...]) -> Any:
    """Resolve a reference held by `owner` and check the kind it points at."""
    node = topology.get(node_id)
    if node.KIND not in kinds:
        expected = " or ".join(kind.value for kind in kinds)
        raise TopologyValidationError(
            f"'{owner}' references '{node_id}' as {expected}, "
            f"but it is {node.KIND.value}",
            [owner, node_id],
        )
    return node


def validate_topology(topology: Topology) -> None:
    for node in topology.nodes():
        kind = node.KIND

        # -------------------------
        # Network references
        # -------------------------
        if kind in (
            NodeKind.SECURITY_BOUNDARY,
            NodeKind.DATA_STORE,
            NodeKind.COMPUTE_CLUSTER,
            NodeKind.VOLUME,
            NodeKind.LOAD_BALANCER,
        ):
            require_kind(topology, node.node_id, node.network, (NodeKind.NETWORK,))

        if kind in (NodeKind.DATA_STORE, NodeKind.COMPUTE_SERVICE, NodeKind.VOLUME, NodeKind.LOAD_BALANCER):
            require_kind(topology, node.node_id, node.security_boundary, BOUNDARY_KINDS)

        # -------------------------
        # Placement
        # -------------------------
        if kind == NodeKind.DATA_STORE:
            _validate_data_store(topology, node)

        elif kind == NodeKind.COMPUTE_SERVICE:
            _validate_service(topology, node)

        elif kind == NodeKind.LOAD_BALANCER:
            _validate_load_balancer(topology, node)

        elif kind == NodeKind.VOLUME:
            _validate_volume(node)


def _validate_data_store(topology: Topology, data_store: DataStore) -> None:
    network: Network = topology.get(data_store.network)

    if data_store.subnet_class not in PRIVATE_PLACEMENTS:
        raise TopologyValidationError(
            f"Data store '{data_store.node_id}' must not be placed in "
            f"{data_store.subnet_class.value} subnets",
            [data_store.node_id],
        )

    if data_store.subnet_class not in network.placements():
        raise TopologyValidationError(
            f"Network '{network.node_id}' has no {data_store.subnet_class.value} "
            f"subnets for data store '{data_store.node_id}'",
            [data_store.node_id, network.node_id],
        )


def _validate_service(topology: Topology, service: ComputeService) -> None:
    cluster = require_kind(topology, service.node_id, service.cluster, (NodeKind.COMPUTE_CLUSTER,))
    network: Network = topology.get(cluster.network)

    if service.subnet_class not in network.placements():
        raise TopologyValidationError(
            f"Network '{network.node_id}' has no {service.subnet_class.value} "
            f"subnets for service '{service.node_id}'",
            [service.node_id, network.node_id],
        )

    if service.subnet_class == SubnetPlacement.PUBLIC and not service.assign_public_ip:
        raise TopologyValidationError(
            f"Service '{service.node_id}' in public subnets needs assign_public_ip",
            [service.node_id],
        )

    names = [container.name for container in service.task.containers]
    if not names:
        raise TopologyValidationError(
            f"Service '{service.node_id}' has no containers", [service.node_id]
        )
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise TopologyValidationError(
            f"Service '{service.node_id}' declares duplicate containers: {', '.join(duplicates)}",
            [service.node_id, *duplicates],
        )

    for container in service.task.containers:
        owner = f"{service.node_id}/{container.name}"

        if container.credentials is not None:
            require_kind(topology, owner, container.credentials.data_store, (NodeKind.DATA_STORE,))

        for source in container.secrets.values():
            require_kind(topology, owner, source.data_store, (NodeKind.DATA_STORE,))

        for mount in container.mount_points:
            require_kind(topology, owner, mount.volume, (NodeKind.VOLUME,))


def _validate_load_balancer(topology: Topology, load_balancer: LoadBalancer) -> None:
    network: Network = topology.get(load_balancer.network)
    placements = network.placements()

    if load_balancer.internet_facing and SubnetPlacement.PUBLIC not in placements:
        raise TopologyValidationError(
            f"Internet-facing load balancer '{load_balancer.node_id}' needs public "
            f"subnets in network '{network.node_id}'",
            [load_balancer.node_id, network.node_id],
        )

    if not load_balancer.internet_facing and not placements.intersection(PRIVATE_PLACEMENTS):
        raise TopologyValidationError(
            f"Internal load balancer '{load_balancer.node_id}' needs private "
            f"subnets in network '{network.node_id}'",
            [load_balancer.node_id, network.node_id],
        )

    for listener in load_balancer.listeners:
        for target_group in listener.target_groups:
            require_kind(
                topology,
                f"{load_balancer.node_id}/{listener.listener_id}/{target_group.target_group_id}",
                target_group.service,
                (NodeKind.COMPUTE_SERVICE,),
            )


def _validate_volume(volume: Volume) -> None:
    if not volume.access_point.path.startswith("/"):
        raise TopologyValidationError(
            f"Access point path of volume '{volume.node_id}' must be absolute",
            [volume.node_id],
        )

    access_point = volume.access_point
    if access_point.posix_user != access_point.owner:
        raise IdentityMismatch(
            f"Access point of volume '{volume.node_id}' enforces {access_point.posix_user} "
            f"but {access_point.path} is created for {access_point.owner} "
            f"({access_point.permissions})",
            [volume.node_id],
        )
