#tests\conftest.py

"""Pytest configuration and fixtures."""

import copy

import pytest

from provisioning_engine.core.models import (
    AccessPoint,
    ComputeCluster,
    ComputeService,
    Container,
    Credential,
    CredentialBinding,
    DataStore,
    Listener,
    LoadBalancer,
    MountPoint,
    Network,
    PortMapping,
    PosixIdentity,
    SecurityBoundary,
    Stickiness,
    Subnet,
    SubnetPlacement,
    TargetGroup,
    TaskSpec,
    Volume,
)
from provisioning_engine.core.topology import Topology
from provisioning_engine.domain.stacks import JASPERREPORTS_STACK
from provisioning_engine.planner.service import PlanService


def make_network(node_id="vpc"):
    return Network(
        node_id=node_id,
        subnets=[
            Subnet(name="public", placement=SubnetPlacement.PUBLIC, cidr="10.0.0.0/17"),
            Subnet(name="private", placement=SubnetPlacement.PRIVATE_WITH_EGRESS, cidr="10.0.128.0/17"),
        ],
    )


def make_service(node_id="app", boundary="app-sg", port=8080, mounts=None, credentials=None, environment=None):
    return ComputeService(
        node_id=node_id,
        cluster="cluster",
        security_boundary=boundary,
        task=TaskSpec(
            cpu=512,
            memory_mib=1024,
            task_role="app-role",
            containers=[
                Container(
                    name="web",
                    image="example/web:1.0",
                    environment=environment or {},
                    credentials=credentials,
                    port_mappings=[PortMapping(container_port=port)],
                    mount_points=mounts or [],
                ),
            ],
        ),
        desired_count=2,
        health_check_grace_seconds=600,
    )


def make_volume(node_id="data", boundary="app-sg", uid="1001", gid="1001"):
    identity = PosixIdentity(uid=uid, gid=gid)
    return Volume(
        node_id=node_id,
        network="vpc",
        security_boundary=boundary,
        access_point=AccessPoint(
            path="/srv/data",
            owner=identity,
            permissions="755",
            posix_user=identity,
        ),
    )


@pytest.fixture
def topology():
    """Unfrozen three-tier topology: network, boundaries, db, cluster, volume, service, ALB."""
    topology = Topology(stack_id="test-stack")

    topology.add_node(make_network())
    topology.add_node(SecurityBoundary(node_id="app-sg", network="vpc"))
    topology.add_node(SecurityBoundary(node_id="db-sg", network="vpc"))
    topology.add_node(SecurityBoundary(node_id="lb-sg", network="vpc"))
    topology.add_node(DataStore(
        node_id="db",
        engine="postgres",
        version="15.4",
        instance_class="t3.micro",
        network="vpc",
        subnet_class=SubnetPlacement.PRIVATE_WITH_EGRESS,
        security_boundary="db-sg",
        database_name="app",
        credential=Credential(username="app"),
    ))
    topology.add_node(ComputeCluster(node_id="cluster", network="vpc"))
    topology.add_node(make_volume())
    topology.add_node(make_service(
        mounts=[MountPoint(volume="data", container_path="/srv/data")],
        credentials=CredentialBinding(data_store="db", env_prefix="DB_"),
        environment={"APP_MODE": "production"},
    ))
    topology.add_node(LoadBalancer(
        node_id="lb",
        network="vpc",
        security_boundary="lb-sg",
        listeners=[
            Listener(
                listener_id="http",
                port=80,
                target_groups=[
                    TargetGroup(
                        target_group_id="app-tg",
                        service="app",
                        port=8080,
                        stickiness=Stickiness(cookie_name="SESSION", duration_seconds=3600),
                    ),
                ],
            ),
        ],
    ))

    return topology


@pytest.fixture
def jasper_document():
    """Fresh copy of the bundled JasperReports stack."""
    return copy.deepcopy(JASPERREPORTS_STACK)


@pytest.fixture
def plan_service():
    return PlanService()
