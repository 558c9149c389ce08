# provisioning_engine/core/errors.py

from typing import Iterable


# -----------------------------
# Base Errors
# -----------------------------

class PlanningError(Exception):
    """Base class for all plan construction errors."""

    def __init__(self, message: str, identifiers: Iterable[str] = ()):
        super().__init__(message)
        self.message = message
        self.identifiers = tuple(identifiers)


# -----------------------------
# Topology Errors
# -----------------------------

class DuplicateIdentifier(PlanningError):
    """Node id already present in the topology."""
    pass


class UnknownNode(PlanningError):
    """Edge endpoint or reference does not resolve to a node."""
    pass


class TopologyFrozenError(PlanningError):
    """Topology mutated after freeze, or resolved before freeze."""
    pass


class TopologyValidationError(PlanningError):
    """Malformed stack document or violated placement invariant."""
    pass


# -----------------------------
# Resolution Errors
# -----------------------------

class CyclicDependency(PlanningError):
    """No topological order exists for the depends-on subgraph."""

    def __init__(self, cycle: Iterable[str]):
        self.cycle = list(cycle)
        path = " -> ".join(self.cycle + self.cycle[:1])
        super().__init__(f"Cyclic dependency: {path}", self.cycle)


# -----------------------------
# Wiring Errors
# -----------------------------

class InsecurePeerRejected(PlanningError):
    """Literal address peer requested outside a public-ingress edge."""
    pass


class CredentialNotReady(PlanningError):
    """Credential requested before its data store was materialized."""
    pass


class EnvironmentKeyCollision(PlanningError):
    """Secret-backed and plaintext environment share a key."""
    pass


class IdentityMismatch(PlanningError):
    """Mount identity differs from the access point's POSIX identity."""
    pass


class UnroutableService(PlanningError):
    """Service exposes no port mapping for the target group port."""
    pass
