# provisioning_engine/wiring/credentials.py
"""Credential injector - binds secret fields to container environment names."""

import logging
from typing import Dict, List, Optional

from provisioning_engine.core.errors import CredentialNotReady, EnvironmentKeyCollision
from provisioning_engine.core.models import (
    Container,
    CredentialBinding,
    DataStore,
    NodeKind,
    SecretField,
    SecretRef,
)
from provisioning_engine.core.topology import Topology
from provisioning_engine.core.validation import require_kind
from provisioning_engine.planner.models import PlanContext

logger = logging.getLogger(__name__)


class CredentialInjector:
    """
    Produces secret-backed environment entries for containers.

    Entries point at (secret name, field) only; plaintext never passes
    through here.
    """

    def __init__(self, topology: Topology):
        self._topology = topology

    def map_credentials(
        self,
        context: PlanContext,
        container: Container,
        binding: Optional[CredentialBinding] = None,
    ) -> Dict[str, SecretRef]:
        """
        Map env names to all five connection fields of one data store.

        Uses the container's own binding unless another one is given.
        """
        binding = binding or container.credentials
        if binding is None:
            return {}

        self._assert_distinct_names(container, binding)

        mapping = {
            binding.env_name(secret_field): self._secret_ref(
                context, binding.data_store, secret_field, container.name
            )
            for secret_field in SecretField
        }

        self._assert_disjoint(container, mapping)
        return mapping

    def inject(self, context: PlanContext, container: Container) -> Dict[str, SecretRef]:
        """All secret-backed entries of a container: its binding plus explicit secrets."""
        mapping = self.map_credentials(context, container)

        for env_name, source in container.secrets.items():
            if env_name in mapping:
                raise EnvironmentKeyCollision(
                    f"Container '{container.name}' maps '{env_name}' both from its "
                    f"credential binding and from an explicit secret",
                    [container.name, env_name],
                )
            mapping[env_name] = self._secret_ref(
                context, source.data_store, source.field, container.name
            )

        self._assert_disjoint(container, mapping)

        logger.info(
            f"[{context.stack_id}] container '{container.name}' receives "
            f"{len(mapping)} secret-backed variables"
        )
        return mapping

    # -------------------------
    # HELPERS
    # -------------------------

    def _secret_ref(
        self,
        context: PlanContext,
        data_store_id: str,
        secret_field: SecretField,
        container_name: str,
    ) -> SecretRef:
        data_store: DataStore = require_kind(
            self._topology, container_name, data_store_id, (NodeKind.DATA_STORE,)
        )

        if not context.is_materialized(data_store_id) or data_store.credential.secret_name is None:
            raise CredentialNotReady(
                f"Credential of data store '{data_store_id}' requested by container "
                f"'{container_name}' before the data store was materialized",
                [data_store_id, container_name],
            )

        return SecretRef(secret_name=data_store.credential.secret_name, field=secret_field)

    @staticmethod
    def _assert_distinct_names(container: Container, binding: CredentialBinding) -> None:
        fields_by_name: Dict[str, List[SecretField]] = {}
        for secret_field in SecretField:
            fields_by_name.setdefault(binding.env_name(secret_field), []).append(secret_field)

        for env_name, fields in fields_by_name.items():
            if len(fields) > 1:
                raise EnvironmentKeyCollision(
                    f"Container '{container.name}' maps "
                    f"{', '.join(f.value for f in fields)} of data store "
                    f"'{binding.data_store}' to the same variable '{env_name}'",
                    [container.name, env_name, *(f.value for f in fields)],
                )

    @staticmethod
    def _assert_disjoint(container: Container, mapping: Dict[str, SecretRef]) -> None:
        collisions = sorted(set(mapping) & set(container.environment))
        if collisions:
            raise EnvironmentKeyCollision(
                f"Container '{container.name}' defines {', '.join(collisions)} "
                f"both as plaintext and as secrets",
                [container.name, *collisions],
            )
