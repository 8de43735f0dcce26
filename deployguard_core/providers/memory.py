from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterable

from deployguard_core.providers.interfaces import DeploymentRequest, ManagementService
from deployguard_core.targets.types import (
    Application,
    Collection,
    DistributionStatus,
    ExistingDeployment,
    UpdateGroup,
)


class InMemoryManagementService(ManagementService):
    """Management service backed by plain dictionaries.

    ``failures`` maps an operation name (``find_application``,
    ``create_deployment``, ...) to an exception raised when that operation
    is called, so callers can exercise service outages.
    """

    def __init__(
        self,
        *,
        applications: Iterable[Application] | None = None,
        update_groups: Iterable[UpdateGroup] | None = None,
        collections: Iterable[Collection] | None = None,
        distribution: dict[str, DistributionStatus] | None = None,
        deployments: Iterable[ExistingDeployment] | None = None,
        failures: dict[str, Exception] | None = None,
    ) -> None:
        self.applications = {item.name.lower(): item for item in applications or ()}
        self.update_groups = {item.name.lower(): item for item in update_groups or ()}
        self.collections = {item.name.lower(): item for item in collections or ()}
        self.distribution = dict(distribution or {})
        self.deployments = list(deployments or ())
        self.failures = dict(failures or {})
        self.requests: list[DeploymentRequest] = []
        self.calls: list[str] = []

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        failure = self.failures.get(operation)
        if failure is not None:
            raise failure

    def find_application(self, name: str) -> Application | None:
        self._enter("find_application")
        return self.applications.get(name.lower())

    def find_update_group(self, name: str) -> UpdateGroup | None:
        self._enter("find_update_group")
        return self.update_groups.get(name.lower())

    def find_collection(self, name: str) -> Collection | None:
        self._enter("find_collection")
        return self.collections.get(name.lower())

    def get_distribution_status(self, package_id: str) -> DistributionStatus | None:
        self._enter("get_distribution_status")
        return self.distribution.get(package_id)

    def find_deployments(
        self,
        deployable_name: str,
        collection_name: str,
    ) -> list[ExistingDeployment]:
        self._enter("find_deployments")
        return [
            item
            for item in self.deployments
            if item.deployable_name.lower() == deployable_name.lower()
            and item.collection_name.lower() == collection_name.lower()
        ]

    def create_deployment(self, request: DeploymentRequest) -> str:
        self._enter("create_deployment")
        self.requests.append(request)
        deployment_id = str(uuid.uuid4())
        self.deployments.append(
            ExistingDeployment(
                deployment_id=deployment_id,
                deployable_name=request.deployable_name,
                collection_name=request.collection_name,
                purpose=request.purpose,
                created_at=datetime.now(timezone.utc).isoformat(),
            )
        )
        return deployment_id
