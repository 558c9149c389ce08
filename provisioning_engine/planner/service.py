# provisioning_engine/planner/service.py

"""Plan service - resolves and wires a topology into an ordered plan."""

import logging
from typing import Any, Dict, List, Optional, Union

from provisioning_engine.core.errors import InsecurePeerRejected
from provisioning_engine.core.models import (
    CapacityProvider,
    ComputeCluster,
    ComputeService,
    DataStore,
    LoadBalancer,
    Network,
    NodeKind,
    Protocol,
    SecurityBoundary,
    Volume,
)
from provisioning_engine.core.resolver import DependencyResolver
from provisioning_engine.core.topology import Topology
from provisioning_engine.domain.schemas import StackDocument
from provisioning_engine.planner.builder import TopologyBuilder
from provisioning_engine.planner.models import Plan, PlanContext, PlanEntry, RuleSet
from provisioning_engine.wiring.credentials import CredentialInjector
from provisioning_engine.wiring.exposure import ServiceExposureConfigurator
from provisioning_engine.wiring.security import SecurityWiring
from provisioning_engine.wiring.volumes import DEFAULT_FILESYSTEM_PORT, VolumeIdentityBinder

logger = logging.getLogger(__name__)


class PlanService:
    """
    Builds plans from stack descriptions.

    Flow:
    1. Freeze the topology and resolve a materialization order
    2. Wire every communicates-with edge into boundary rules
    3. Walk the order, computing each node's parameters; services get
       their credentials and mounts, load balancers their targets
    4. Check public exposure, then emit the plan

    Any failure aborts the whole run; no partial plan is returned.
    """

    def __init__(
        self,
        filesystem_port: int = DEFAULT_FILESYSTEM_PORT,
        secret_name_template: str = "{stack_id}/{node_id}/credentials",
        reject_public_bypass: bool = False,
    ):
        self._filesystem_port = filesystem_port
        self._secret_name_template = secret_name_template
        self._reject_public_bypass = reject_public_bypass

    # ============================================
    # ENTRY POINTS
    # ============================================

    def plan_document(self, data: Union[StackDocument, Dict[str, Any]]) -> Plan:
        """Build a topology from a document and plan it."""
        return self.plan(TopologyBuilder().build(data))

    def plan(self, topology: Topology) -> Plan:
        if not topology.frozen:
            topology.freeze()

        logger.info(f"[{topology.stack_id}] planning {len(topology)} nodes")

        order = DependencyResolver.resolve(topology)
        context = PlanContext(stack_id=topology.stack_id)

        wiring = SecurityWiring(topology)
        injector = CredentialInjector(topology)
        binder = VolumeIdentityBinder(topology, wiring, self._filesystem_port)
        exposure = ServiceExposureConfigurator(topology, wiring)

        wiring.wire_all()

        entries: List[PlanEntry] = []
        for node_id in order:
            node = topology.get(node_id)

            if node.KIND.materializes:
                parameters = self._materialize(topology, context, node, injector, binder, exposure)
                entries.append(PlanEntry(node_id=node_id, kind=node.KIND, parameters=parameters))

            context.mark_materialized(node_id)

        self._check_public_exposure(topology, wiring, context)

        materialized = {entry.node_id for entry in entries}
        waves = [
            [node_id for node_id in wave if node_id in materialized]
            for wave in DependencyResolver.waves(topology, order)
        ]

        plan = Plan(
            stack_id=topology.stack_id,
            entries=entries,
            rule_sets=self._rule_sets(topology),
            waves=[wave for wave in waves if wave],
            warnings=list(context.warnings),
        )

        logger.info(
            f"[{topology.stack_id}] plan ready: {len(plan.entries)} entries, "
            f"{len(plan.rule_sets)} rule sets, {len(plan.warnings)} warnings, "
            f"digest {plan.digest()[:12]}"
        )
        return plan

    # ============================================
    # MATERIALIZATION
    # ============================================

    def _materialize(
        self,
        topology: Topology,
        context: PlanContext,
        node: Any,
        injector: CredentialInjector,
        binder: VolumeIdentityBinder,
        exposure: ServiceExposureConfigurator,
    ) -> Dict[str, Any]:
        kind = node.KIND

        if kind == NodeKind.NETWORK:
            return self._network_parameters(node)
        elif kind == NodeKind.SECURITY_BOUNDARY:
            return self._boundary_parameters(node)
        elif kind == NodeKind.DATA_STORE:
            return self._data_store_parameters(context, node)
        elif kind == NodeKind.COMPUTE_CLUSTER:
            return self._cluster_parameters(node)
        elif kind == NodeKind.VOLUME:
            return self._volume_parameters(node)
        elif kind == NodeKind.COMPUTE_SERVICE:
            return self._service_parameters(topology, context, node, injector, binder)
        elif kind == NodeKind.LOAD_BALANCER:
            return self._load_balancer_parameters(node, exposure)

        raise ValueError(f"Unknown node kind: {kind}")

    @staticmethod
    def _network_parameters(network: Network) -> Dict[str, Any]:
        return {
            "cidr": network.cidr,
            "max_azs": network.max_azs,
            "subnets": [
                {"name": subnet.name, "placement": subnet.placement.value, "cidr": subnet.cidr}
                for subnet in network.subnets
            ],
        }

    @staticmethod
    def _boundary_parameters(boundary: SecurityBoundary) -> Dict[str, Any]:
        return {
            "network": boundary.network,
            "description": boundary.description,
            "allow_all_outbound": boundary.allow_all_outbound,
        }

    def _data_store_parameters(self, context: PlanContext, data_store: DataStore) -> Dict[str, Any]:
        # the password is generated by the secret store; only its name is planned
        secret_name = self._secret_name_template.format(
            stack_id=context.stack_id, node_id=data_store.node_id
        )
        data_store.credential.secret_name = secret_name

        return {
            "engine": data_store.engine,
            "version": data_store.version,
            "instance_class": data_store.instance_class,
            "network": data_store.network,
            "subnet_class": data_store.subnet_class.value,
            "subnet_group": {
                "name": data_store.subnet_group_name or f"{data_store.node_id}-subnet-group",
                "description": data_store.subnet_group_description,
            },
            "security_boundaries": [data_store.security_boundary],
            "database_name": data_store.database_name,
            "port": data_store.resolved_port,
            "credentials": {
                "username": data_store.credential.username,
                "secret": secret_name,
                "generate_password": True,
            },
        }

    @staticmethod
    def _cluster_parameters(cluster: ComputeCluster) -> Dict[str, Any]:
        return {
            "network": cluster.network,
            "enable_capacity_providers": cluster.enable_capacity_providers,
            "capacity_strategy": _strategy_parameters(cluster.capacity_strategy),
        }

    @staticmethod
    def _volume_parameters(volume: Volume) -> Dict[str, Any]:
        access_point = volume.access_point
        return {
            "network": volume.network,
            "security_boundary": volume.security_boundary,
            "transit_encryption": volume.transit_encryption,
            "iam_authorization": volume.iam_authorization,
            "access_point": {
                "path": access_point.path,
                "create_acl": {
                    "owner_uid": access_point.owner.uid,
                    "owner_gid": access_point.owner.gid,
                    "permissions": access_point.permissions,
                },
                "posix_user": {
                    "uid": access_point.posix_user.uid,
                    "gid": access_point.posix_user.gid,
                },
            },
        }

    @staticmethod
    def _service_parameters(
        topology: Topology,
        context: PlanContext,
        service: ComputeService,
        injector: CredentialInjector,
        binder: VolumeIdentityBinder,
    ) -> Dict[str, Any]:
        cluster: ComputeCluster = topology.get(service.cluster)
        bound_mounts = binder.bind_service(service)

        containers = []
        volumes: Dict[str, Dict[str, Any]] = {}
        grants: List[Dict[str, Any]] = []

        for container in service.task.containers:
            secrets = injector.inject(context, container)
            mounts = bound_mounts[container.name]

            for mount in mounts:
                volumes.setdefault(mount.volume, {
                    "name": mount.volume,
                    "access_point_path": mount.access_point_path,
                    "transit_encryption": mount.transit_encryption,
                    "iam_authorization": mount.iam_authorization,
                })
                grant = {"volume": mount.volume, "principal": mount.grantee, "access": mount.access}
                if grant not in grants:
                    grants.append(grant)

            containers.append({
                "name": container.name,
                "image": container.image,
                "environment": dict(container.environment),
                "secrets": {env_name: ref.to_dict() for env_name, ref in secrets.items()},
                "port_mappings": [
                    {"container_port": mapping.container_port, "protocol": mapping.protocol.value}
                    for mapping in container.port_mappings
                ],
                "mount_points": [mount.to_dict() for mount in mounts],
                "log_stream_prefix": container.log_stream_prefix,
            })

        strategy = service.capacity_strategy
        if strategy is None:
            strategy = cluster.capacity_strategy

        return {
            "cluster": service.cluster,
            "network": cluster.network,
            "subnet_class": service.subnet_class.value,
            "assign_public_ip": service.assign_public_ip,
            "security_boundaries": [service.security_boundary],
            "desired_count": service.desired_count,
            "health_check_grace_seconds": service.health_check_grace_seconds,
            "enable_execute_command": service.enable_execute_command,
            "capacity_strategy": _strategy_parameters(strategy),
            "task": {
                "cpu": service.task.cpu,
                "memory_mib": service.task.memory_mib,
                "task_role": service.task.task_role,
                "volumes": list(volumes.values()),
                "containers": containers,
            },
            "grants": grants,
        }

    @staticmethod
    def _load_balancer_parameters(
        load_balancer: LoadBalancer,
        exposure: ServiceExposureConfigurator,
    ) -> Dict[str, Any]:
        exposure.configure(load_balancer)

        return {
            "network": load_balancer.network,
            "internet_facing": load_balancer.internet_facing,
            "security_boundaries": [load_balancer.security_boundary],
            "listeners": [
                {
                    "listener_id": listener.listener_id,
                    "port": listener.port,
                    "protocol": listener.protocol,
                    "target_groups": [
                        {
                            "target_group_id": target_group.target_group_id,
                            "service": target_group.service,
                            "container_name": target_group.container_name,
                            "port": target_group.port,
                            "protocol": target_group.protocol,
                            "health_check_path": target_group.health_check_path,
                            "unhealthy_grace_seconds": target_group.unhealthy_grace_seconds,
                            "stickiness": (
                                {
                                    "cookie_name": target_group.stickiness.cookie_name,
                                    "duration_seconds": target_group.stickiness.duration_seconds,
                                }
                                if target_group.stickiness
                                else None
                            ),
                        }
                        for target_group in listener.target_groups
                    ],
                }
                for listener in load_balancer.listeners
            ],
        }

    # ============================================
    # RULE SETS & EXPOSURE
    # ============================================

    @staticmethod
    def _rule_sets(topology: Topology) -> List[RuleSet]:
        rule_sets = []
        for node in topology.nodes():
            if node.KIND == NodeKind.SECURITY_BOUNDARY:
                rule_sets.append(RuleSet(
                    boundary_id=node.node_id,
                    allow_all_outbound=node.allow_all_outbound,
                    rules=list(node.rules),
                ))
            elif node.KIND == NodeKind.EXTERNAL_REFERENCE:
                rule_sets.append(RuleSet(
                    boundary_id=node.node_id,
                    external_id=node.external_id,
                    allow_all_outbound=node.allow_all_outbound,
                    rules=list(node.rules),
                ))
        return rule_sets

    def _check_public_exposure(
        self,
        topology: Topology,
        wiring: SecurityWiring,
        context: PlanContext,
    ) -> None:
        """
        Flag open-CIDR ingress that sidesteps a load balancer or reaches a
        data store directly. Warn by default, fail when configured to.
        """
        findings: List[tuple] = []

        for load_balancer in topology.nodes(NodeKind.LOAD_BALANCER):
            for listener in load_balancer.listeners:
                for target_group in listener.target_groups:
                    service: ComputeService = topology.get(target_group.service)
                    for rule in wiring.public_rules(service.security_boundary):
                        if _covers(rule, target_group.port):
                            findings.append((
                                f"Security boundary '{service.security_boundary}' admits "
                                f"{rule.peer} on {rule.protocol.value}/{rule.ports}, so "
                                f"service '{service.node_id}' is reachable without load "
                                f"balancer '{load_balancer.node_id}'",
                                [service.security_boundary, service.node_id, load_balancer.node_id],
                            ))

        for data_store in topology.nodes(NodeKind.DATA_STORE):
            for rule in wiring.public_rules(data_store.security_boundary):
                findings.append((
                    f"Security boundary '{data_store.security_boundary}' admits {rule.peer} "
                    f"on {rule.protocol.value}/{rule.ports} in front of data store "
                    f"'{data_store.node_id}'",
                    [data_store.security_boundary, data_store.node_id],
                ))

        for message, identifiers in findings:
            if self._reject_public_bypass:
                raise InsecurePeerRejected(message, identifiers)
            logger.warning(f"[{context.stack_id}] {message}")
            if message not in context.warnings:
                context.warnings.append(message)


def _strategy_parameters(strategy: Optional[List[CapacityProvider]]) -> List[Dict[str, Any]]:
    return [
        {"provider": item.provider, "weight": item.weight, "base": item.base}
        for item in strategy or []
    ]


def _covers(rule, port: int) -> bool:
    if rule.protocol not in (Protocol.TCP, Protocol.ALL):
        return False
    return rule.ports.from_port <= port <= rule.ports.to_port
