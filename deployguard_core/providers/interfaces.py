from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from deployguard_core.targets.types import (
    Application,
    Collection,
    DistributionStatus,
    ExistingDeployment,
    UpdateGroup,
)


@dataclass(frozen=True)
class DeploymentRequest:
    deployable_name: str
    deployable_kind: str
    collection_name: str
    purpose: str
    available_at: datetime
    deadline_at: datetime | None
    notification_policy: str
    override_service_window: bool
    reboot_outside_service_window: bool
    use_metered_network: bool
    comment: str | None = None
    protected_download: str | None = None
    unprotected_download: str | None = None


class ManagementService(Protocol):
    def find_application(self, name: str) -> Application | None:
        ...

    def find_update_group(self, name: str) -> UpdateGroup | None:
        ...

    def find_collection(self, name: str) -> Collection | None:
        ...

    def get_distribution_status(self, package_id: str) -> DistributionStatus | None:
        ...

    def find_deployments(
        self,
        deployable_name: str,
        collection_name: str,
    ) -> list[ExistingDeployment]:
        ...

    def create_deployment(self, request: DeploymentRequest) -> str:
        ...
