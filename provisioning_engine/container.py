#provisioning_engine\container.py

"""Dependency injection container - wires all services together."""

from provisioning_engine.infrastructure.config import settings
from provisioning_engine.infrastructure.executor_client import ProvisioningExecutorClient
from provisioning_engine.planner.service import PlanService


# ============================================
# SERVICES
# ============================================

plan_service = PlanService(
    filesystem_port=settings.filesystem_port,
    secret_name_template=settings.secret_name_template,
    reject_public_bypass=settings.reject_public_bypass,
)


# ============================================
# EXTERNAL EXECUTOR
# ============================================

executor_client = (
    ProvisioningExecutorClient(settings.executor_url, timeout=settings.executor_timeout)
    if settings.executor_url
    else None
)
