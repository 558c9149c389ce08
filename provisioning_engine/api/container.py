#provisioning_engine\api\container.py
from provisioning_engine.container import plan_service
from provisioning_engine.planner.service import PlanService


def get_plan_service() -> PlanService:
    return plan_service
