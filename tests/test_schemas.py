#tests\test_schemas.py

"""Test stack document schemas."""

import pytest
from pydantic import ValidationError

from provisioning_engine.core.errors import TopologyValidationError
from provisioning_engine.core.models import SubnetPlacement
from provisioning_engine.domain.schemas import (
    AccessPointSchema,
    CommunicationSchema,
    MountPointSchema,
    NetworkSchema,
    PeerSchema,
    StackDocument,
)
from provisioning_engine.planner.builder import parse_document


class TestNetworkSchema:
    """Test network documents."""

    def test_default_subnets(self):
        """Test a network without subnets is split into public and private halves."""
        network = NetworkSchema(id="vpc", cidr="10.0.0.0/16")

        assert [(s.name, s.placement, s.cidr) for s in network.subnets] == [
            ("public", SubnetPlacement.PUBLIC, "10.0.0.0/17"),
            ("private", SubnetPlacement.PRIVATE_WITH_EGRESS, "10.0.128.0/17"),
        ]

    def test_invalid_cidr(self):
        """Test a malformed CIDR is rejected."""
        with pytest.raises(ValidationError):
            NetworkSchema(id="vpc", cidr="10.0.0.0/33")

    def test_subnet_outside_network(self):
        """Test subnets must lie inside the network block."""
        with pytest.raises(ValidationError, match="outside network"):
            NetworkSchema(
                id="vpc",
                cidr="10.0.0.0/16",
                subnets=[{"name": "stray", "placement": "public", "cidr": "192.168.0.0/24"}],
            )

    def test_duplicate_subnet_names(self):
        """Test subnet names are unique within a network."""
        with pytest.raises(ValidationError, match="unique"):
            NetworkSchema(
                id="vpc",
                cidr="10.0.0.0/16",
                subnets=[
                    {"name": "a", "placement": "public", "cidr": "10.0.0.0/24"},
                    {"name": "a", "placement": "isolated", "cidr": "10.0.1.0/24"},
                ],
            )

    def test_peer_defaults_to_open_cidr(self):
        """Test a peer without a CIDR means everywhere."""
        assert PeerSchema(id="internet").cidr == "0.0.0.0/0"


class TestIdentitySchemas:
    """Test POSIX identity fields."""

    def test_posix_id_out_of_range(self):
        """Test ids above 2**32 - 2 are rejected."""
        with pytest.raises(ValidationError, match="out of range"):
            MountPointSchema(volume="data", container_path="/data", uid="4294967295", gid="0")

    def test_posix_id_must_be_numeric(self):
        """Test names are not accepted as ids."""
        with pytest.raises(ValidationError):
            MountPointSchema(volume="data", container_path="/data", uid="jasper", gid="1001")

    def test_posix_id_rejects_non_ascii_digits(self):
        """Test digits outside ASCII are not ids."""
        with pytest.raises(ValidationError):
            MountPointSchema(volume="data", container_path="/data", uid="١٠٠١", gid="1001")

    def test_posix_id_leading_zeros_are_normalised(self):
        """Test '01001' is stored as '1001'."""
        mount = MountPointSchema(volume="data", container_path="/data", uid="01001", gid="0001001")

        assert (mount.uid, mount.gid) == ("1001", "1001")

    def test_posix_id_zero(self):
        """Test root stays '0'."""
        mount = MountPointSchema(volume="data", container_path="/data", uid="000", gid="0")

        assert (mount.uid, mount.gid) == ("0", "0")

    def test_uid_without_gid(self):
        """Test a mount identity is all or nothing."""
        with pytest.raises(ValidationError, match="both uid and gid"):
            MountPointSchema(volume="data", container_path="/data", uid="1001")

    def test_octal_permissions(self):
        """Test permissions must be octal."""
        with pytest.raises(ValidationError):
            AccessPointSchema(
                path="/data",
                owner_uid="1001",
                owner_gid="1001",
                permissions="789",
                posix_uid="1001",
                posix_gid="1001",
            )


class TestCommunicationSchema:
    """Test communication edges."""

    def test_port_and_range_are_exclusive(self):
        """Test port and port_range can't both be given."""
        with pytest.raises(ValidationError):
            CommunicationSchema(
                source="a", target="b", port=80, port_range={"from_port": 80, "to_port": 90}
            )

    def test_tcp_needs_port(self):
        """Test a TCP edge without ports is rejected."""
        with pytest.raises(ValidationError, match="needs a port"):
            CommunicationSchema(source="a", target="b")

    def test_all_protocol_without_port(self):
        """Test the all-traffic protocol needs no port."""
        communication = CommunicationSchema(source="a", target="b", protocol="all")

        assert communication.port is None


class TestParseDocument:
    """Test document parsing."""

    def test_bundled_stack_parses(self, jasper_document):
        """Test the bundled stack is a valid document."""
        document = parse_document(jasper_document)

        assert isinstance(document, StackDocument)
        assert document.stack_id == "jasperreports"

    def test_unknown_field_becomes_validation_error(self, jasper_document):
        """Test schema errors surface as TopologyValidationError with locations."""
        jasper_document["services"][0]["replicas"] = 3

        with pytest.raises(TopologyValidationError) as exc_info:
            parse_document(jasper_document)

        assert "services.0.replicas" in exc_info.value.identifiers

    def test_parsed_document_passes_through(self, jasper_document):
        """Test an already parsed document is returned as is."""
        document = StackDocument.model_validate(jasper_document)

        assert parse_document(document) is document
