from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from provisioning_engine.planner.models import Plan


class PlanResponse(BaseModel):
    stack_id: str
    digest: str
    order: List[str]
    entries: List[Dict[str, Any]]
    rule_sets: List[Dict[str, Any]]
    waves: List[List[str]]
    warnings: List[str]

    @classmethod
    def from_plan(cls, plan: Plan) -> "PlanResponse":
        body = plan.to_dict()
        return cls(digest=plan.digest(), **body)


class PlanningErrorResponse(BaseModel):
    error: str
    message: str
    identifiers: List[str]


class StackListResponse(BaseModel):
    stacks: List[str]
    description: Optional[Dict[str, Optional[str]]] = None
