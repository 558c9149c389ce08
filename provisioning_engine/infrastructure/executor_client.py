# provisioning_engine/infrastructure/executor_client.py
"""Client for the external provisioning executor."""

import logging
from typing import Any, Dict

import requests

from provisioning_engine.planner.models import Plan

logger = logging.getLogger(__name__)


class ProvisioningExecutorClient:
    """Hands finished plans to the executor that talks to the cloud control plane."""

    def __init__(self, executor_url: str, timeout: int = 30):
        """
        Initialize client.

        Args:
            executor_url: Base URL of the executor (e.g., "http://10.0.1.20:9100")
            timeout: Request timeout in seconds
        """
        self.base_url = executor_url.rstrip('/')
        self.timeout = timeout

    def health_check(self) -> bool:
        """
        Check if executor is healthy.

        Returns:
            True if healthy, False otherwise
        """
        try:
            response = requests.get(
                f"{self.base_url}/health",
                timeout=5
            )
            return response.status_code == 200
        except requests.RequestException as e:
            logger.error(f"Health check failed: {e}")
            return False

    def submit(self, plan: Plan) -> Dict[str, Any]:
        """
        Submit a plan for materialization.

        Returns:
            Executor's response body

        Raises:
            RuntimeError: If the executor rejects the plan
        """
        logger.info(f"[{plan.stack_id}] Submitting plan {plan.digest()[:12]} to {self.base_url}")

        response = requests.post(
            f"{self.base_url}/plans",
            json={"digest": plan.digest(), "plan": plan.to_dict()},
            timeout=self.timeout
        )

        if response.status_code != 200:
            raise RuntimeError(
                f"Executor rejected plan [{response.status_code}]: {response.text}"
            )

        return response.json()
