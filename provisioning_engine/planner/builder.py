# provisioning_engine/planner/builder.py
"""Topology builder - turns a stack document into a frozen topology."""

import logging
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from provisioning_engine.core.errors import TopologyValidationError
from provisioning_engine.core.models import (
    AccessPoint,
    CapacityProvider,
    ComputeCluster,
    ComputeService,
    Container,
    Credential,
    CredentialBinding,
    DataStore,
    EdgeKind,
    ExternalReference,
    Listener,
    LoadBalancer,
    MountPoint,
    Network,
    Peer,
    PortMapping,
    PortRange,
    PosixIdentity,
    SecretSource,
    SecurityBoundary,
    Stickiness,
    Subnet,
    TargetGroup,
    TaskSpec,
    Volume,
)
from provisioning_engine.core.topology import Topology
from provisioning_engine.core.validation import validate_topology
from provisioning_engine.domain.schemas import (
    CommunicationSchema,
    ContainerSchema,
    LoadBalancerSchema,
    ServiceSchema,
    StackDocument,
    VolumeSchema,
)

logger = logging.getLogger(__name__)


def parse_document(data: Union[StackDocument, Dict[str, Any]]) -> StackDocument:
    """Validate a raw document; schema errors become TopologyValidationError."""
    if isinstance(data, StackDocument):
        return data

    try:
        return StackDocument.model_validate(data)
    except ValidationError as e:
        locations = [".".join(str(part) for part in error["loc"]) for error in e.errors()]
        raise TopologyValidationError(
            f"Invalid stack document: {e.error_count()} error(s): {'; '.join(locations)}",
            locations,
        ) from e


class TopologyBuilder:
    """
    Builds a topology from a document.

    Nodes are added in document section order, then edges implied by
    references, then communications and explicit dependencies.
    """

    def build(self, data: Union[StackDocument, Dict[str, Any]]) -> Topology:
        document = parse_document(data)
        topology = Topology(stack_id=document.stack_id)

        self._add_nodes(topology, document)
        validate_topology(topology)
        self._add_reference_edges(topology)

        for communication in document.communications:
            self._add_communication(topology, communication)

        for dependency in document.depends_on:
            topology.add_edge(dependency.node, dependency.on, EdgeKind.DEPENDS_ON)

        topology.freeze()

        logger.info(
            f"Built topology '{topology.stack_id}': {len(topology)} nodes, "
            f"{len(topology.edges())} edges"
        )
        return topology

    # -------------------------
    # NODES
    # -------------------------

    def _add_nodes(self, topology: Topology, document: StackDocument) -> None:
        for network in document.networks:
            topology.add_node(Network(
                node_id=network.id,
                cidr=network.cidr,
                max_azs=network.max_azs,
                subnets=[
                    Subnet(name=subnet.name, placement=subnet.placement, cidr=subnet.cidr)
                    for subnet in network.subnets
                ],
            ))

        for boundary in document.security_boundaries:
            topology.add_node(SecurityBoundary(
                node_id=boundary.id,
                network=boundary.network,
                description=boundary.description,
                allow_all_outbound=boundary.allow_all_outbound,
            ))

        for reference in document.external_references:
            topology.add_node(ExternalReference(
                node_id=reference.id,
                external_id=reference.external_id,
                referenced_kind=reference.referenced_kind,
            ))

        for peer in document.peers:
            topology.add_node(Peer(node_id=peer.id, cidr=peer.cidr))

        for data_store in document.data_stores:
            topology.add_node(DataStore(
                node_id=data_store.id,
                engine=data_store.engine,
                version=data_store.version,
                instance_class=data_store.instance_class,
                network=data_store.network,
                subnet_class=data_store.subnet_class,
                security_boundary=data_store.security_boundary,
                database_name=data_store.database_name,
                credential=Credential(username=data_store.username),
                port=data_store.port,
                subnet_group_name=data_store.subnet_group.name if data_store.subnet_group else None,
                subnet_group_description=(
                    data_store.subnet_group.description if data_store.subnet_group else None
                ),
            ))

        for cluster in document.clusters:
            topology.add_node(ComputeCluster(
                node_id=cluster.id,
                network=cluster.network,
                enable_capacity_providers=cluster.enable_capacity_providers,
                capacity_strategy=_strategy(cluster.capacity_strategy),
            ))

        for volume in document.volumes:
            topology.add_node(_volume(volume))

        for service in document.services:
            topology.add_node(_service(service))

        for load_balancer in document.load_balancers:
            topology.add_node(_load_balancer(load_balancer))

    # -------------------------
    # EDGES
    # -------------------------

    def _add_reference_edges(self, topology: Topology) -> None:
        for node in topology.nodes():
            network = getattr(node, "network", None)
            if network is not None:
                topology.add_edge(node.node_id, network, EdgeKind.DEPENDS_ON)

            boundary = getattr(node, "security_boundary", None)
            if boundary is not None:
                topology.add_edge(node.node_id, boundary, EdgeKind.DEPENDS_ON)

            if isinstance(node, ComputeService):
                self._add_service_edges(topology, node)

            elif isinstance(node, LoadBalancer):
                for listener in node.listeners:
                    for target_group in listener.target_groups:
                        topology.add_edge(node.node_id, target_group.service, EdgeKind.DEPENDS_ON)
                        topology.add_edge(node.node_id, target_group.service, EdgeKind.TARGETS)

    @staticmethod
    def _add_service_edges(topology: Topology, service: ComputeService) -> None:
        topology.add_edge(service.node_id, service.cluster, EdgeKind.DEPENDS_ON)

        for container in service.task.containers:
            if container.credentials is not None:
                topology.add_edge(service.node_id, container.credentials.data_store, EdgeKind.DEPENDS_ON)

            for source in container.secrets.values():
                topology.add_edge(service.node_id, source.data_store, EdgeKind.DEPENDS_ON)

            for mount in container.mount_points:
                topology.add_edge(service.node_id, mount.volume, EdgeKind.DEPENDS_ON)
                topology.add_edge(service.node_id, mount.volume, EdgeKind.MOUNTS)

    @staticmethod
    def _add_communication(topology: Topology, communication: CommunicationSchema) -> None:
        if communication.port_range is not None:
            ports = PortRange(communication.port_range.from_port, communication.port_range.to_port)
        elif communication.port is not None:
            ports = PortRange.single(communication.port)
        else:
            ports = PortRange(0, 65535)

        topology.add_edge(
            communication.source,
            communication.target,
            EdgeKind.COMMUNICATES_WITH,
            protocol=communication.protocol,
            ports=ports,
            public_ingress=communication.public_ingress,
            description=communication.description,
        )


# ============================================
# CONVERSION HELPERS
# ============================================

def _strategy(items: Optional[list]) -> Optional[list]:
    if items is None:
        return None
    return [
        CapacityProvider(provider=item.provider, weight=item.weight, base=item.base)
        for item in items
    ]


def _volume(volume: VolumeSchema) -> Volume:
    access_point = volume.access_point
    return Volume(
        node_id=volume.id,
        network=volume.network,
        security_boundary=volume.security_boundary,
        access_point=AccessPoint(
            path=access_point.path,
            owner=PosixIdentity(uid=access_point.owner_uid, gid=access_point.owner_gid),
            permissions=access_point.permissions,
            posix_user=PosixIdentity(uid=access_point.posix_uid, gid=access_point.posix_gid),
        ),
        transit_encryption=volume.transit_encryption,
        iam_authorization=volume.iam_authorization,
    )


def _container(container: ContainerSchema) -> Container:
    credentials = None
    if container.credentials is not None:
        credentials = CredentialBinding(
            data_store=container.credentials.data_store,
            env_prefix=container.credentials.env_prefix,
            env_names=dict(container.credentials.env_names),
        )

    return Container(
        name=container.name,
        image=container.image,
        environment=dict(container.environment),
        secrets={
            env_name: SecretSource(data_store=source.data_store, field=source.field)
            for env_name, source in container.secrets.items()
        },
        credentials=credentials,
        port_mappings=[
            PortMapping(container_port=mapping.container_port, protocol=mapping.protocol)
            for mapping in container.port_mappings
        ],
        mount_points=[
            MountPoint(
                volume=mount.volume,
                container_path=mount.container_path,
                read_only=mount.read_only,
                identity=PosixIdentity(uid=mount.uid, gid=mount.gid) if mount.uid is not None else None,
            )
            for mount in container.mount_points
        ],
        log_stream_prefix=container.log_stream_prefix,
    )


def _service(service: ServiceSchema) -> ComputeService:
    return ComputeService(
        node_id=service.id,
        cluster=service.cluster,
        security_boundary=service.security_boundary,
        task=TaskSpec(
            cpu=service.task.cpu,
            memory_mib=service.task.memory_mib,
            task_role=service.task.task_role,
            containers=[_container(container) for container in service.task.containers],
        ),
        desired_count=service.desired_count,
        health_check_grace_seconds=service.health_check_grace_seconds,
        subnet_class=service.subnet_class,
        assign_public_ip=service.assign_public_ip,
        enable_execute_command=service.enable_execute_command,
        capacity_strategy=_strategy(service.capacity_strategy),
    )


def _load_balancer(load_balancer: LoadBalancerSchema) -> LoadBalancer:
    return LoadBalancer(
        node_id=load_balancer.id,
        network=load_balancer.network,
        security_boundary=load_balancer.security_boundary,
        internet_facing=load_balancer.internet_facing,
        listeners=[
            Listener(
                listener_id=listener.id,
                port=listener.port,
                protocol=listener.protocol,
                target_groups=[
                    TargetGroup(
                        target_group_id=target_group.id,
                        service=target_group.service,
                        port=target_group.port,
                        container_name=target_group.container_name,
                        protocol=target_group.protocol,
                        stickiness=(
                            Stickiness(
                                cookie_name=target_group.stickiness.cookie_name,
                                duration_seconds=target_group.stickiness.duration_seconds,
                            )
                            if target_group.stickiness
                            else None
                        ),
                        health_check_path=target_group.health_check_path,
                    )
                    for target_group in listener.target_groups
                ],
            )
            for listener in load_balancer.listeners
        ],
    )
