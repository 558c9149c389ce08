#tests\test_plan_service.py

"""Test end-to-end planning of stack documents."""

import pytest

from provisioning_engine.core.errors import (
    CyclicDependency,
    DuplicateIdentifier,
    EnvironmentKeyCollision,
    IdentityMismatch,
    InsecurePeerRejected,
    UnknownNode,
    UnroutableService,
)
from provisioning_engine.core.models import NodeKind
from provisioning_engine.planner.service import PlanService


def rule_tuples(rule_set):
    return [
        (rule["direction"], rule["peer_kind"], rule["peer"], rule["from_port"], rule["to_port"])
        for rule in rule_set.to_dict()["rules"]
    ]


class TestJasperReportsPlan:
    """Test the bundled JasperReports stack."""

    def test_materialization_order(self, plan_service, jasper_document):
        """Test dependencies precede dependents."""
        order = plan_service.plan_document(jasper_document).order

        assert order.index("vpc") < order.index("db-sg") < order.index("db")
        assert order.index("db") < order.index("jasper-service")
        assert order.index("data") < order.index("jasper-service")
        assert order.index("cluster") < order.index("jasper-service")
        assert order.index("jasper-service") < order.index("alb")

    def test_external_nodes_are_not_materialized(self, plan_service, jasper_document):
        """Test external references and peers get no plan entry."""
        plan = plan_service.plan_document(jasper_document)

        assert "imported-db-sg" not in plan.order
        assert "internet" not in plan.order
        assert all("internet" not in wave for wave in plan.waves)

    def test_same_input_same_plan(self, jasper_document):
        """Test planning twice yields identical plans."""
        first = PlanService().plan_document(jasper_document)
        second = PlanService().plan_document(jasper_document)

        assert first.to_dict() == second.to_dict()
        assert first.digest() == second.digest()

    def test_data_store_entry(self, plan_service, jasper_document):
        """Test the data store gets its subnet group and secret name."""
        parameters = plan_service.plan_document(jasper_document).entry("db").parameters

        assert parameters["port"] == 5432
        assert parameters["subnet_group"]["name"] == "jasper-db-subnet-group"
        assert parameters["credentials"]["secret"] == "jasperreports/db/credentials"
        assert "password" not in parameters["credentials"]

    def test_service_secrets(self, plan_service, jasper_document):
        """Test the container gets five secret-backed connection variables."""
        parameters = plan_service.plan_document(jasper_document).entry("jasper-service").parameters
        container = parameters["task"]["containers"][0]

        assert sorted(container["secrets"]) == [
            "JASPERREPORTS_DATABASE_HOST",
            "JASPERREPORTS_DATABASE_NAME",
            "JASPERREPORTS_DATABASE_PASSWORD",
            "JASPERREPORTS_DATABASE_PORT_NUMBER",
            "JASPERREPORTS_DATABASE_USER",
        ]
        assert container["secrets"]["JASPERREPORTS_DATABASE_PASSWORD"] == {
            "secret": "jasperreports/db/credentials",
            "field": "password",
        }
        assert not set(container["secrets"]) & set(container["environment"])

    def test_service_mounts_and_capacity(self, plan_service, jasper_document):
        """Test mounts inherit the access point identity and the cluster strategy applies."""
        parameters = plan_service.plan_document(jasper_document).entry("jasper-service").parameters
        mount = parameters["task"]["containers"][0]["mount_points"][0]

        assert (mount["uid"], mount["gid"]) == ("1001", "1001")
        assert parameters["grants"] == [
            {"volume": "data", "principal": "jasper-task-role", "access": "read-write"},
        ]
        assert parameters["capacity_strategy"] == [
            {"provider": "FARGATE_SPOT", "weight": 2, "base": 0},
            {"provider": "FARGATE", "weight": 1, "base": 0},
        ]

    def test_load_balancer_entry(self, plan_service, jasper_document):
        """Test the target group carries stickiness and the grace window."""
        parameters = plan_service.plan_document(jasper_document).entry("alb").parameters
        target_group = parameters["listeners"][0]["target_groups"][0]

        assert target_group["container_name"] == "jasperreports"
        assert target_group["unhealthy_grace_seconds"] == 1800
        assert target_group["stickiness"] == {"cookie_name": "JSESSIONID", "duration_seconds": 86400}

    def test_rule_sets(self, plan_service, jasper_document):
        """Test boundaries carry group references, one self rule and public rules."""
        plan = plan_service.plan_document(jasper_document)

        imported = plan.rule_set("imported-db-sg")
        assert imported.external_id == "sg-066dd26ee430ad091"
        assert rule_tuples(imported) == [("ingress", "boundary", "service-sg", 5432, 5432)]

        service_rules = rule_tuples(plan.rule_set("service-sg"))
        assert ("ingress", "self", "service-sg", 2049, 2049) in service_rules
        assert ("ingress", "boundary", "alb-sg", 8080, 8080) in service_rules

        assert rule_tuples(plan.rule_set("alb-sg")) == [("ingress", "cidr", "0.0.0.0/0", 80, 80)]

    def test_public_bypass_is_warned(self, plan_service, jasper_document):
        """Test public rules on the service port and the data store become warnings."""
        plan = plan_service.plan_document(jasper_document)

        assert len(plan.warnings) == 2
        assert any("jasper-service" in warning for warning in plan.warnings)
        assert any("data store 'db'" in warning for warning in plan.warnings)

    def test_public_bypass_rejected_when_configured(self, jasper_document):
        """Test strict mode turns bypass findings into errors."""
        with pytest.raises(InsecurePeerRejected):
            PlanService(reject_public_bypass=True).plan_document(jasper_document)

    def test_no_warnings_without_bypass(self, plan_service, jasper_document):
        """Test dropping the public service and db edges clears the warnings."""
        jasper_document["communications"] = jasper_document["communications"][:2]

        assert plan_service.plan_document(jasper_document).warnings == []

    def test_custom_secret_name_template(self, jasper_document):
        """Test the secret name template is configurable."""
        plan = PlanService(secret_name_template="{node_id}-{stack_id}").plan_document(jasper_document)

        assert plan.entry("db").parameters["credentials"]["secret"] == "db-jasperreports"

    def test_entries_carry_kinds(self, plan_service, jasper_document):
        """Test entries are tagged with their node kinds."""
        plan = plan_service.plan_document(jasper_document)

        assert plan.entry("data").kind == NodeKind.VOLUME
        assert plan.to_dict()["entries"][0]["kind"] == "NETWORK"


class TestPlanFailures:
    """Test that broken documents abort the whole plan."""

    def test_declared_cycle(self, plan_service, jasper_document):
        """Test an explicit dependency back onto a dependent is a cycle."""
        jasper_document["depends_on"] = [{"node": "db", "on": "jasper-service"}]

        with pytest.raises(CyclicDependency) as exc_info:
            plan_service.plan_document(jasper_document)

        assert {"db", "jasper-service"} <= set(exc_info.value.cycle)

    def test_duplicate_identifier(self, plan_service, jasper_document):
        """Test node ids are unique across sections."""
        jasper_document["security_boundaries"].append({"id": "db", "network": "vpc"})

        with pytest.raises(DuplicateIdentifier):
            plan_service.plan_document(jasper_document)

    def test_unknown_reference(self, plan_service, jasper_document):
        """Test a dependency on a missing node fails."""
        jasper_document["depends_on"] = [{"node": "db", "on": "cache"}]

        with pytest.raises(UnknownNode):
            plan_service.plan_document(jasper_document)

    def test_conflicting_mount_identity(self, plan_service, jasper_document):
        """Test a mount identity differing from the access point fails."""
        mount = jasper_document["services"][0]["task"]["containers"][0]["mount_points"][0]
        mount.update({"uid": "2000", "gid": "2000"})

        with pytest.raises(IdentityMismatch):
            plan_service.plan_document(jasper_document)

    def test_unroutable_target_port(self, plan_service, jasper_document):
        """Test a target group port no container exposes fails."""
        target_group = jasper_document["load_balancers"][0]["listeners"][0]["target_groups"][0]
        target_group["port"] = 9090

        with pytest.raises(UnroutableService):
            plan_service.plan_document(jasper_document)

    def test_private_literal_peer_rejected(self, plan_service, jasper_document):
        """Test a literal peer narrower than the open CIDR is rejected."""
        jasper_document["peers"].append({"id": "office", "cidr": "203.0.113.0/24"})
        jasper_document["communications"].append(
            {"source": "office", "target": "alb", "port": 443, "public_ingress": True}
        )

        with pytest.raises(InsecurePeerRejected):
            plan_service.plan_document(jasper_document)

    def test_credential_names_overlapping(self, plan_service, jasper_document):
        """Test an env name override reusing another field's name fails."""
        credentials = jasper_document["services"][0]["task"]["containers"][0]["credentials"]
        credentials["env_names"] = {"host": "JASPERREPORTS_DATABASE_NAME"}

        with pytest.raises(EnvironmentKeyCollision):
            plan_service.plan_document(jasper_document)
