"""Pydantic schemas for the stack description document."""

import ipaddress
import re
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from provisioning_engine.core.models import (
    OPEN_CIDR,
    Protocol,
    SecretField,
    SubnetPlacement,
)


MAX_POSIX_ID = 4294967294  # 2**32 - 2; 2**32 - 1 is reserved
PERMISSIONS_PATTERN = re.compile(r"^[0-7]{3,4}$")


def _validate_cidr(value: str) -> str:
    try:
        ipaddress.ip_network(value, strict=True)
    except ValueError as e:
        raise ValueError(f"invalid CIDR block '{value}': {e}")
    return value


def _validate_posix_id(value: str) -> str:
    if not isinstance(value, str) or not (value.isascii() and value.isdigit()):
        raise ValueError(f"POSIX id must be a numeric string, got {value!r}")
    if int(value) > MAX_POSIX_ID:
        raise ValueError(f"POSIX id {value} is out of range (max {MAX_POSIX_ID})")
    # "01001" and "1001" are the same id
    return str(int(value))


class StackModel(BaseModel):
    """Base for all document sections; unknown fields are errors."""

    model_config = ConfigDict(extra="forbid")


# ============================================
# Network
# ============================================

class SubnetSchema(StackModel):
    name: str = Field(..., min_length=1)
    placement: SubnetPlacement
    cidr: str

    @field_validator("cidr")
    @classmethod
    def check_cidr(cls, value: str) -> str:
        return _validate_cidr(value)


class NetworkSchema(StackModel):
    """Private network. Without subnets it gets one public and one private half."""

    id: str = Field(..., min_length=1)
    cidr: str = "10.0.0.0/16"
    max_azs: int = Field(default=2, ge=1, le=6)
    subnets: List[SubnetSchema] = Field(default_factory=list)

    @field_validator("cidr")
    @classmethod
    def check_cidr(cls, value: str) -> str:
        return _validate_cidr(value)

    @model_validator(mode="after")
    def check_subnets(self) -> "NetworkSchema":
        network = ipaddress.ip_network(self.cidr)

        if not self.subnets:
            public, private = network.subnets(prefixlen_diff=1)
            self.subnets = [
                SubnetSchema(name="public", placement=SubnetPlacement.PUBLIC, cidr=str(public)),
                SubnetSchema(
                    name="private",
                    placement=SubnetPlacement.PRIVATE_WITH_EGRESS,
                    cidr=str(private),
                ),
            ]
            return self

        names = [subnet.name for subnet in self.subnets]
        if len(names) != len(set(names)):
            raise ValueError(f"subnet names must be unique in network '{self.id}'")

        for subnet in self.subnets:
            subnet_network = ipaddress.ip_network(subnet.cidr)
            if subnet_network.version != network.version or not subnet_network.subnet_of(network):
                raise ValueError(
                    f"subnet '{subnet.name}' ({subnet.cidr}) is outside network {self.cidr}"
                )

        return self


class SecurityBoundarySchema(StackModel):
    id: str = Field(..., min_length=1)
    network: str
    description: Optional[str] = None
    allow_all_outbound: bool = True


class ExternalReferenceSchema(StackModel):
    """Pre-existing resource referenced by its provider id."""

    id: str = Field(..., min_length=1)
    external_id: str = Field(..., min_length=1)
    referenced_kind: Literal["security-boundary"] = "security-boundary"


class PeerSchema(StackModel):
    id: str = Field(..., min_length=1)
    cidr: str = OPEN_CIDR

    @field_validator("cidr")
    @classmethod
    def check_cidr(cls, value: str) -> str:
        return _validate_cidr(value)


# ============================================
# Data Store
# ============================================

class SubnetGroupSchema(StackModel):
    name: str
    description: Optional[str] = None


class DataStoreSchema(StackModel):
    id: str = Field(..., min_length=1)
    engine: Literal["postgres", "mysql"]
    version: str
    instance_class: str
    network: str
    subnet_class: SubnetPlacement = SubnetPlacement.PRIVATE_WITH_EGRESS
    security_boundary: str
    database_name: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    subnet_group: Optional[SubnetGroupSchema] = None


# ============================================
# Compute
# ============================================

class CapacityProviderSchema(StackModel):
    provider: str
    weight: int = Field(default=1, ge=0)
    base: int = Field(default=0, ge=0)


def _validate_strategy(strategy: Optional[List[CapacityProviderSchema]]):
    if strategy and not any(item.weight > 0 for item in strategy):
        raise ValueError("capacity strategy needs at least one positive weight")
    return strategy


class ClusterSchema(StackModel):
    id: str = Field(..., min_length=1)
    network: str
    enable_capacity_providers: bool = True
    capacity_strategy: List[CapacityProviderSchema] = Field(default_factory=list)

    @field_validator("capacity_strategy")
    @classmethod
    def check_strategy(cls, value):
        return _validate_strategy(value)


class SecretSourceSchema(StackModel):
    data_store: str
    field: SecretField


class CredentialBindingSchema(StackModel):
    data_store: str
    env_prefix: str = ""
    env_names: Dict[SecretField, str] = Field(default_factory=dict)


class PortMappingSchema(StackModel):
    container_port: int = Field(..., ge=1, le=65535)
    protocol: Protocol = Protocol.TCP


class MountPointSchema(StackModel):
    volume: str
    container_path: str
    read_only: bool = False
    uid: Optional[str] = None
    gid: Optional[str] = None

    @field_validator("uid", "gid")
    @classmethod
    def check_posix_id(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _validate_posix_id(value)

    @model_validator(mode="after")
    def check_identity_pair(self) -> "MountPointSchema":
        if (self.uid is None) != (self.gid is None):
            raise ValueError("mount identity needs both uid and gid, or neither")
        return self


class ContainerSchema(StackModel):
    name: str = Field(..., min_length=1)
    image: str = Field(..., min_length=1)
    environment: Dict[str, str] = Field(default_factory=dict)
    secrets: Dict[str, SecretSourceSchema] = Field(default_factory=dict)
    credentials: Optional[CredentialBindingSchema] = None
    port_mappings: List[PortMappingSchema] = Field(default_factory=list)
    mount_points: List[MountPointSchema] = Field(default_factory=list)
    log_stream_prefix: Optional[str] = None


class TaskSchema(StackModel):
    cpu: int = Field(..., gt=0)
    memory_mib: int = Field(..., gt=0)
    task_role: Optional[str] = None
    containers: List[ContainerSchema] = Field(..., min_length=1)


class ServiceSchema(StackModel):
    id: str = Field(..., min_length=1)
    cluster: str
    security_boundary: str
    task: TaskSchema
    desired_count: int = Field(default=1, ge=0)
    health_check_grace_seconds: int = Field(default=0, ge=0)
    subnet_class: SubnetPlacement = SubnetPlacement.PRIVATE_WITH_EGRESS
    assign_public_ip: bool = False
    enable_execute_command: bool = False
    capacity_strategy: Optional[List[CapacityProviderSchema]] = None

    @field_validator("capacity_strategy")
    @classmethod
    def check_strategy(cls, value):
        return _validate_strategy(value)


# ============================================
# Shared Filesystem
# ============================================

class AccessPointSchema(StackModel):
    path: str
    owner_uid: str
    owner_gid: str
    permissions: str = "755"
    posix_uid: str
    posix_gid: str

    @field_validator("owner_uid", "owner_gid", "posix_uid", "posix_gid")
    @classmethod
    def check_posix_id(cls, value: str) -> str:
        return _validate_posix_id(value)

    @field_validator("permissions")
    @classmethod
    def check_permissions(cls, value: str) -> str:
        if not PERMISSIONS_PATTERN.match(value):
            raise ValueError(f"permissions must be an octal string like '755', got {value!r}")
        return value


class VolumeSchema(StackModel):
    id: str = Field(..., min_length=1)
    network: str
    security_boundary: str
    access_point: AccessPointSchema
    transit_encryption: bool = True
    iam_authorization: bool = True


# ============================================
# Load Balancer
# ============================================

class StickinessSchema(StackModel):
    cookie_name: str = Field(..., min_length=1)
    duration_seconds: int = Field(..., ge=1, le=604800)


class TargetGroupSchema(StackModel):
    id: str = Field(..., min_length=1)
    service: str
    port: int = Field(..., ge=1, le=65535)
    container_name: Optional[str] = None
    protocol: str = "HTTP"
    stickiness: Optional[StickinessSchema] = None
    health_check_path: Optional[str] = None


class ListenerSchema(StackModel):
    id: str = Field(..., min_length=1)
    port: int = Field(default=80, ge=1, le=65535)
    protocol: str = "HTTP"
    target_groups: List[TargetGroupSchema] = Field(default_factory=list)


class LoadBalancerSchema(StackModel):
    id: str = Field(..., min_length=1)
    network: str
    security_boundary: str
    internet_facing: bool = True
    listeners: List[ListenerSchema] = Field(default_factory=list)


# ============================================
# Edges
# ============================================

class PortRangeSchema(StackModel):
    from_port: int = Field(..., ge=0, le=65535)
    to_port: int = Field(..., ge=0, le=65535)

    @model_validator(mode="after")
    def check_order(self) -> "PortRangeSchema":
        if self.from_port > self.to_port:
            raise ValueError(f"port range {self.from_port}-{self.to_port} is reversed")
        return self


class CommunicationSchema(StackModel):
    """Declares that source talks to target on one protocol/port."""

    source: str
    target: str
    protocol: Protocol = Protocol.TCP
    port: Optional[int] = Field(default=None, ge=0, le=65535)
    port_range: Optional[PortRangeSchema] = None
    public_ingress: bool = False
    description: Optional[str] = None

    @model_validator(mode="after")
    def check_ports(self) -> "CommunicationSchema":
        if self.port is not None and self.port_range is not None:
            raise ValueError("give either port or port_range, not both")
        if self.port is None and self.port_range is None and self.protocol != Protocol.ALL:
            raise ValueError(f"{self.protocol.value} communication needs a port or port_range")
        return self


class DependsOnSchema(StackModel):
    node: str
    on: str


# ============================================
# Document
# ============================================

class StackDocument(StackModel):
    """A complete stack description submitted as a unit."""

    stack_id: str = Field(..., min_length=1)
    description: Optional[str] = None

    networks: List[NetworkSchema] = Field(default_factory=list)
    security_boundaries: List[SecurityBoundarySchema] = Field(default_factory=list)
    external_references: List[ExternalReferenceSchema] = Field(default_factory=list)
    peers: List[PeerSchema] = Field(default_factory=list)
    data_stores: List[DataStoreSchema] = Field(default_factory=list)
    clusters: List[ClusterSchema] = Field(default_factory=list)
    volumes: List[VolumeSchema] = Field(default_factory=list)
    services: List[ServiceSchema] = Field(default_factory=list)
    load_balancers: List[LoadBalancerSchema] = Field(default_factory=list)

    communications: List[CommunicationSchema] = Field(default_factory=list)
    depends_on: List[DependsOnSchema] = Field(default_factory=list)
