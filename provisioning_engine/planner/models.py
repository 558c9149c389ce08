"""Plan models - the artifact handed to the provisioning executor."""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from provisioning_engine.core.models import NodeKind, SecurityRule


@dataclass
class PlanContext:
    """Mutable state of one plan construction run."""
    stack_id: str
    materialized: Set[str] = field(default_factory=set)
    warnings: List[str] = field(default_factory=list)

    def mark_materialized(self, node_id: str) -> None:
        self.materialized.add(node_id)

    def is_materialized(self, node_id: str) -> bool:
        return node_id in self.materialized


@dataclass
class PlanEntry:
    """One node to materialize, with everything the executor needs."""
    node_id: str
    kind: NodeKind
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "kind": self.kind.value,
            "parameters": self.parameters,
        }


@dataclass
class RuleSet:
    """Accumulated rules of one security boundary."""
    boundary_id: str
    external_id: Optional[str] = None
    allow_all_outbound: bool = True
    rules: List[SecurityRule] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "boundary_id": self.boundary_id,
            "external_id": self.external_id,
            "allow_all_outbound": self.allow_all_outbound,
            "rules": [rule.to_dict() for rule in self.rules],
        }


@dataclass
class Plan:
    """Ordered, fully wired plan for one stack."""
    stack_id: str
    entries: List[PlanEntry] = field(default_factory=list)
    rule_sets: List[RuleSet] = field(default_factory=list)
    waves: List[List[str]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def order(self) -> List[str]:
        return [entry.node_id for entry in self.entries]

    def entry(self, node_id: str) -> PlanEntry:
        for entry in self.entries:
            if entry.node_id == node_id:
                return entry
        raise KeyError(node_id)

    def rule_set(self, boundary_id: str) -> RuleSet:
        for rule_set in self.rule_sets:
            if rule_set.boundary_id == boundary_id:
                return rule_set
        raise KeyError(boundary_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stack_id": self.stack_id,
            "order": self.order,
            "entries": [entry.to_dict() for entry in self.entries],
            "rule_sets": [rule_set.to_dict() for rule_set in self.rule_sets],
            "waves": self.waves,
            "warnings": self.warnings,
        }

    def digest(self) -> str:
        """SHA-256 of the canonical JSON form; equal plans have equal digests."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
