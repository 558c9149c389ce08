# provisioning_engine/wiring/volumes.py
"""Volume identity binder - keeps mount identity consistent with the access point."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from provisioning_engine.core.errors import IdentityMismatch
from provisioning_engine.core.models import (
    ComputeService,
    Container,
    MountPoint,
    NodeKind,
    PortRange,
    PosixIdentity,
    Protocol,
    Volume,
)
from provisioning_engine.core.topology import Topology
from provisioning_engine.core.validation import require_kind
from provisioning_engine.wiring.security import SecurityWiring

logger = logging.getLogger(__name__)

DEFAULT_FILESYSTEM_PORT = 2049


@dataclass
class BoundMount:
    """A mount whose identity and transport have been settled at plan time."""
    volume: str
    container_path: str
    read_only: bool
    identity: PosixIdentity
    access_point_path: str
    transit_encryption: bool
    iam_authorization: bool
    grantee: Optional[str] = None

    @property
    def access(self) -> str:
        return "read-only" if self.read_only else "read-write"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "volume": self.volume,
            "container_path": self.container_path,
            "read_only": self.read_only,
            "uid": self.identity.uid,
            "gid": self.identity.gid,
            "access_point_path": self.access_point_path,
            "transit_encryption": self.transit_encryption,
            "iam_authorization": self.iam_authorization,
            "grant": {"principal": self.grantee, "access": self.access},
        }


class VolumeIdentityBinder:
    """
    Binds container mount requests to a volume's access point.

    A mount without an identity inherits the access point's POSIX user; a
    mount with a different one is rejected here instead of failing on the
    first write.
    """

    def __init__(
        self,
        topology: Topology,
        wiring: SecurityWiring,
        filesystem_port: int = DEFAULT_FILESYSTEM_PORT,
    ):
        self._topology = topology
        self._wiring = wiring
        self._filesystem_port = filesystem_port

    def resolve_identity(self, volume: Volume, mount: MountPoint, owner: str = "") -> PosixIdentity:
        required = volume.access_point.posix_user

        if mount.identity is None:
            return required

        if mount.identity != required:
            raise IdentityMismatch(
                f"Mount of volume '{volume.node_id}' at {mount.container_path} in "
                f"'{owner or 'container'}' requests {mount.identity}, access point "
                f"enforces {required}",
                [volume.node_id, owner] if owner else [volume.node_id],
            )

        return required

    def ensure_transport(self, volume: Volume, service: ComputeService) -> None:
        """Request the filesystem protocol rules a mount needs to be reachable."""
        ports = PortRange.single(self._filesystem_port)

        self._wiring.allow_self(
            volume.security_boundary,
            Protocol.TCP,
            ports,
            f"shared filesystem traffic for {volume.node_id}",
        )

        if service.security_boundary != volume.security_boundary:
            self._wiring.allow_from(
                volume.security_boundary,
                service.security_boundary,
                Protocol.TCP,
                ports,
                f"{service.node_id} mounts {volume.node_id}",
            )

    def bind(self, service: ComputeService, container: Container, mount: MountPoint) -> BoundMount:
        owner = f"{service.node_id}/{container.name}"
        volume: Volume = require_kind(self._topology, owner, mount.volume, (NodeKind.VOLUME,))

        identity = self.resolve_identity(volume, mount, owner)
        self.ensure_transport(volume, service)

        logger.debug(f"[{owner}] mounts {volume.node_id} at {mount.container_path} as {identity}")

        return BoundMount(
            volume=volume.node_id,
            container_path=mount.container_path,
            read_only=mount.read_only,
            identity=identity,
            access_point_path=volume.access_point.path,
            transit_encryption=volume.transit_encryption,
            iam_authorization=volume.iam_authorization,
            grantee=service.task.task_role,
        )

    def bind_service(self, service: ComputeService) -> Dict[str, List[BoundMount]]:
        """Bound mounts for every container of a service, keyed by container name."""
        return {
            container.name: [
                self.bind(service, container, mount) for mount in container.mount_points
            ]
            for container in service.task.containers
        }
