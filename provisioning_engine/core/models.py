"""Core topology models: nodes, edges, and security rules."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Set, Tuple


OPEN_CIDR = "0.0.0.0/0"

ENGINE_DEFAULT_PORTS = {
    "postgres": 5432,
    "mysql": 3306,
}


# ============================================
# ENUMS
# ============================================

class NodeKind(Enum):
    """Kinds of nodes in a stack topology."""
    NETWORK = "NETWORK"
    SECURITY_BOUNDARY = "SECURITY_BOUNDARY"
    EXTERNAL_REFERENCE = "EXTERNAL_REFERENCE"
    PEER = "PEER"
    DATA_STORE = "DATA_STORE"
    COMPUTE_CLUSTER = "COMPUTE_CLUSTER"
    COMPUTE_SERVICE = "COMPUTE_SERVICE"
    VOLUME = "VOLUME"
    LOAD_BALANCER = "LOAD_BALANCER"

    @property
    def materializes(self) -> bool:
        """External references and literal peers have no create step."""
        return self not in (NodeKind.EXTERNAL_REFERENCE, NodeKind.PEER)


class EdgeKind(Enum):
    """Kinds of directed edges."""
    DEPENDS_ON = "depends-on"
    COMMUNICATES_WITH = "communicates-with"
    MOUNTS = "mounts"
    TARGETS = "targets"


class SubnetPlacement(Enum):
    """Subnet placement class."""
    PUBLIC = "public"
    PRIVATE_WITH_EGRESS = "private-with-egress"
    ISOLATED = "isolated"


class Direction(Enum):
    INGRESS = "ingress"
    EGRESS = "egress"


class Protocol(Enum):
    TCP = "tcp"
    UDP = "udp"
    ALL = "all"


class PeerKind(Enum):
    """What a security rule's peer points at."""
    BOUNDARY = "boundary"
    SELF = "self"
    CIDR = "cidr"


class SecretField(Enum):
    """Fields of a generated database credential secret."""
    HOST = "host"
    PORT = "port"
    DBNAME = "dbname"
    USERNAME = "username"
    PASSWORD = "password"


# ============================================
# SECURITY RULES
# ============================================

@dataclass(frozen=True)
class PortRange:
    """Inclusive port range; a single port has from_port == to_port."""
    from_port: int
    to_port: int

    @classmethod
    def single(cls, port: int) -> "PortRange":
        return cls(port, port)

    def __str__(self) -> str:
        if self.from_port == self.to_port:
            return str(self.from_port)
        return f"{self.from_port}-{self.to_port}"


@dataclass(frozen=True)
class SecurityRule:
    """One ingress or egress grant on a security boundary."""
    direction: Direction
    protocol: Protocol
    ports: PortRange
    peer_kind: PeerKind
    peer: str  # boundary id or CIDR block
    description: Optional[str] = None

    @property
    def key(self) -> Tuple[Direction, Protocol, PortRange, PeerKind, str]:
        """Identity of a rule; descriptions don't count."""
        return (self.direction, self.protocol, self.ports, self.peer_kind, self.peer)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "protocol": self.protocol.value,
            "from_port": self.ports.from_port,
            "to_port": self.ports.to_port,
            "peer_kind": self.peer_kind.value,
            "peer": self.peer,
            "description": self.description,
        }


# ============================================
# NETWORK
# ============================================

@dataclass
class Subnet:
    name: str
    placement: SubnetPlacement
    cidr: str


@dataclass
class Network:
    """Private network owning a set of subnets."""
    KIND: ClassVar[NodeKind] = NodeKind.NETWORK

    node_id: str
    cidr: str = "10.0.0.0/16"
    max_azs: int = 2
    subnets: List[Subnet] = field(default_factory=list)

    def placements(self) -> Set[SubnetPlacement]:
        return {subnet.placement for subnet in self.subnets}


@dataclass
class SecurityBoundary:
    """
    Named set of ingress/egress rules.

    Rules only grow, and only through SecurityWiring.grant.
    """
    KIND: ClassVar[NodeKind] = NodeKind.SECURITY_BOUNDARY

    node_id: str
    network: str
    description: Optional[str] = None
    allow_all_outbound: bool = True
    rules: List[SecurityRule] = field(default_factory=list)


@dataclass
class ExternalReference:
    """
    Security boundary that exists outside the stack.

    Takes part in edges and may receive rules, but is never created.
    """
    KIND: ClassVar[NodeKind] = NodeKind.EXTERNAL_REFERENCE

    node_id: str
    external_id: str
    referenced_kind: str = "security-boundary"
    allow_all_outbound: bool = True
    rules: List[SecurityRule] = field(default_factory=list)


@dataclass
class Peer:
    """Literal CIDR peer, e.g. the public internet."""
    KIND: ClassVar[NodeKind] = NodeKind.PEER

    node_id: str
    cidr: str = OPEN_CIDR


# ============================================
# DATA STORE
# ============================================

@dataclass
class Credential:
    """
    Generated database credential.

    Only the username and the secret's name are known here; the password
    lives in the external secret store.
    """
    username: str
    secret_name: Optional[str] = None


@dataclass
class DataStore:
    """Managed relational database instance."""
    KIND: ClassVar[NodeKind] = NodeKind.DATA_STORE

    node_id: str
    engine: str
    version: str
    instance_class: str
    network: str
    subnet_class: SubnetPlacement
    security_boundary: str
    database_name: str
    credential: Credential
    port: Optional[int] = None
    subnet_group_name: Optional[str] = None
    subnet_group_description: Optional[str] = None

    @property
    def resolved_port(self) -> int:
        if self.port is not None:
            return self.port
        return ENGINE_DEFAULT_PORTS[self.engine]


# ============================================
# COMPUTE
# ============================================

@dataclass
class CapacityProvider:
    provider: str
    weight: int = 1
    base: int = 0


@dataclass
class ComputeCluster:
    """Logical grouping of services with a capacity mix policy."""
    KIND: ClassVar[NodeKind] = NodeKind.COMPUTE_CLUSTER

    node_id: str
    network: str
    enable_capacity_providers: bool = True
    capacity_strategy: List[CapacityProvider] = field(default_factory=list)


@dataclass(frozen=True)
class PosixIdentity:
    uid: str
    gid: str

    def __str__(self) -> str:
        return f"{self.uid}:{self.gid}"


@dataclass
class PortMapping:
    container_port: int
    protocol: Protocol = Protocol.TCP


@dataclass
class MountPoint:
    """Mount request; identity None means inherit from the access point."""
    volume: str
    container_path: str
    read_only: bool = False
    identity: Optional[PosixIdentity] = None


@dataclass(frozen=True)
class SecretSource:
    """Unresolved pointer at one field of a data store's credential."""
    data_store: str
    field: SecretField


@dataclass(frozen=True)
class SecretRef:
    """Resolved pointer into the secret store. Never holds a value."""
    secret_name: str
    field: SecretField

    def to_dict(self) -> Dict[str, str]:
        return {"secret": self.secret_name, "field": self.field.value}


DEFAULT_ENV_SUFFIXES = {
    SecretField.HOST: "HOST",
    SecretField.PORT: "PORT",
    SecretField.DBNAME: "NAME",
    SecretField.USERNAME: "USER",
    SecretField.PASSWORD: "PASSWORD",
}


@dataclass
class CredentialBinding:
    """Request to expose a data store's connection parameters to a container."""
    data_store: str
    env_prefix: str = ""
    env_names: Dict[SecretField, str] = field(default_factory=dict)

    def env_name(self, secret_field: SecretField) -> str:
        if secret_field in self.env_names:
            return self.env_names[secret_field]
        return f"{self.env_prefix}{DEFAULT_ENV_SUFFIXES[secret_field]}"


@dataclass
class Container:
    name: str
    image: str
    environment: Dict[str, str] = field(default_factory=dict)
    secrets: Dict[str, SecretSource] = field(default_factory=dict)
    credentials: Optional[CredentialBinding] = None
    port_mappings: List[PortMapping] = field(default_factory=list)
    mount_points: List[MountPoint] = field(default_factory=list)
    log_stream_prefix: Optional[str] = None

    def exposes(self, port: int) -> bool:
        return any(mapping.container_port == port for mapping in self.port_mappings)


@dataclass
class TaskSpec:
    cpu: int
    memory_mib: int
    task_role: Optional[str] = None
    containers: List[Container] = field(default_factory=list)


@dataclass
class ComputeService:
    """One deployable unit bound to a cluster."""
    KIND: ClassVar[NodeKind] = NodeKind.COMPUTE_SERVICE

    node_id: str
    cluster: str
    security_boundary: str
    task: TaskSpec
    desired_count: int = 1
    health_check_grace_seconds: int = 0
    subnet_class: SubnetPlacement = SubnetPlacement.PRIVATE_WITH_EGRESS
    assign_public_ip: bool = False
    enable_execute_command: bool = False
    capacity_strategy: Optional[List[CapacityProvider]] = None

    def container(self, name: str) -> Optional[Container]:
        for container in self.task.containers:
            if container.name == name:
                return container
        return None


# ============================================
# SHARED FILESYSTEM
# ============================================

@dataclass
class AccessPoint:
    """Fixed entry path and POSIX identity into a shared filesystem."""
    path: str
    owner: PosixIdentity  # applied when the path is first created
    permissions: str  # octal, e.g. "755"
    posix_user: PosixIdentity  # enforced on every mount


@dataclass
class Volume:
    """Shared network filesystem exposed through one access point."""
    KIND: ClassVar[NodeKind] = NodeKind.VOLUME

    node_id: str
    network: str
    security_boundary: str
    access_point: AccessPoint
    transit_encryption: bool = True
    iam_authorization: bool = True


# ============================================
# LOAD BALANCER
# ============================================

@dataclass
class Stickiness:
    cookie_name: str
    duration_seconds: int


@dataclass
class TargetGroup:
    """Forwards listener traffic to one service port."""
    target_group_id: str
    service: str
    port: int
    container_name: Optional[str] = None
    protocol: str = "HTTP"
    stickiness: Optional[Stickiness] = None
    health_check_path: Optional[str] = None
    unhealthy_grace_seconds: Optional[int] = None
    attached: bool = False


@dataclass
class Listener:
    listener_id: str
    port: int = 80
    protocol: str = "HTTP"
    target_groups: List[TargetGroup] = field(default_factory=list)


@dataclass
class LoadBalancer:
    KIND: ClassVar[NodeKind] = NodeKind.LOAD_BALANCER

    node_id: str
    network: str
    security_boundary: str
    internet_facing: bool = True
    listeners: List[Listener] = field(default_factory=list)


# ============================================
# EDGES
# ============================================

@dataclass(frozen=True)
class Edge:
    """Directed typed edge; communicates-with edges carry protocol/ports."""
    source: str
    target: str
    kind: EdgeKind
    protocol: Optional[Protocol] = None
    ports: Optional[PortRange] = None
    public_ingress: bool = False
    description: Optional[str] = None
