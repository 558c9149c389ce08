# provisioning_engine/run_planner.py
"""Plan the bundled stacks and hand them to the executor, if one is configured."""

import json
import logging
import sys

from provisioning_engine.container import executor_client, plan_service
from provisioning_engine.core.errors import PlanningError
from provisioning_engine.domain.stacks import STACKS
from provisioning_engine.infrastructure.config import settings

# Setup logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    logger.info("=" * 80)
    logger.info("STACK PROVISIONING PLANNER")
    logger.info("=" * 80)
    logger.info(f"Stacks: {', '.join(sorted(STACKS))}")
    logger.info(f"Executor: {settings.executor_url or 'none (dry run)'}")
    logger.info("=" * 80)

    failed = False

    for name, stack in sorted(STACKS.items()):
        try:
            plan = plan_service.plan_document(stack)
        except PlanningError as e:
            logger.error(f"[{name}] planning failed: {type(e).__name__}: {e.message}")
            failed = True
            continue

        for wave_number, wave in enumerate(plan.waves, start=1):
            logger.info(f"[{name}] wave {wave_number}: {', '.join(wave)}")

        if executor_client is None:
            print(json.dumps(plan.to_dict(), indent=2))
            continue

        if not executor_client.health_check():
            logger.error(f"[{name}] executor at {executor_client.base_url} is not healthy")
            failed = True
            continue

        result = executor_client.submit(plan)
        logger.info(f"[{name}] submitted: {result}")

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
