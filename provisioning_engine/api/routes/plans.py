from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

from provisioning_engine.api.container import get_plan_service
from provisioning_engine.api.schemas.plan import (
    PlanningErrorResponse,
    PlanResponse,
    StackListResponse,
)
from provisioning_engine.domain.stacks import STACKS

router = APIRouter(tags=["plans"])

ERROR_RESPONSES = {422: {"model": PlanningErrorResponse}}


@router.post("/plans", response_model=PlanResponse, responses=ERROR_RESPONSES)
def create_plan(
    document: Dict[str, Any] = Body(...),
    service=Depends(get_plan_service),
):
    """Dry-run: plan a posted stack document without touching any provider."""
    plan = service.plan_document(document)
    return PlanResponse.from_plan(plan)


@router.get("/stacks", response_model=StackListResponse)
def list_stacks():
    return StackListResponse(
        stacks=sorted(STACKS),
        description={name: stack.get("description") for name, stack in sorted(STACKS.items())},
    )


@router.post("/stacks/{name}/plan", response_model=PlanResponse, responses=ERROR_RESPONSES)
def plan_bundled_stack(
    name: str,
    service=Depends(get_plan_service),
):
    stack = STACKS.get(name)
    if stack is None:
        raise HTTPException(status_code=404, detail=f"Stack '{name}' not found")

    plan = service.plan_document(stack)
    return PlanResponse.from_plan(plan)
