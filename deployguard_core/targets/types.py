from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

KIND_APPLICATION = "application"
KIND_UPDATE_GROUP = "update_group"
DEPLOYABLE_KINDS = (KIND_APPLICATION, KIND_UPDATE_GROUP)

COLLECTION_DEVICE = "device"
COLLECTION_USER = "user"
COLLECTION_KINDS = (COLLECTION_DEVICE, COLLECTION_USER)


@dataclass(frozen=True)
class Application:
    name: str
    version: str
    package_id: str

    @property
    def kind(self) -> str:
        return KIND_APPLICATION


@dataclass(frozen=True)
class UpdateGroup:
    name: str
    update_count: int
    expired_update_count: int = 0

    @property
    def kind(self) -> str:
        return KIND_UPDATE_GROUP


Deployable = Union[Application, UpdateGroup]


@dataclass(frozen=True)
class Collection:
    name: str
    id: str
    kind: str
    member_count: int

    @property
    def is_device(self) -> bool:
        return self.kind == COLLECTION_DEVICE


@dataclass(frozen=True)
class DistributionStatus:
    targeted: int
    success: int
    in_progress: int
    error: int

    @property
    def is_fully_distributed(self) -> bool:
        return self.success >= self.targeted and self.targeted > 0 and self.error == 0


@dataclass(frozen=True)
class ExistingDeployment:
    deployment_id: str
    deployable_name: str
    collection_name: str
    purpose: str | None = None
    created_at: str | None = None


T = TypeVar("T")


@dataclass(frozen=True)
class ResolveResult(Generic[T]):
    value: T | None
    error_kind: str | None = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.value is not None


@dataclass(frozen=True)
class Resolution:
    deployable_name: str
    deployable_kind: str
    collection_name: str
    deployable: ResolveResult[Deployable]
    collection: ResolveResult[Collection]

    @property
    def resolved(self) -> bool:
        return self.deployable.ok and self.collection.ok


def normalize_deployable_kind(value: str | None) -> str:
    cleaned = (value or KIND_APPLICATION).strip().lower().replace("-", "_")
    if cleaned in {"app", "application"}:
        return KIND_APPLICATION
    if cleaned in {"update_group", "updategroup", "sug", "updates"}:
        return KIND_UPDATE_GROUP
    raise ValueError(f"Unsupported deployable kind: {value}")


def normalize_collection_kind(value: object) -> str:
    cleaned = str(value or "").strip().lower()
    if cleaned in {"device", "2"}:
        return COLLECTION_DEVICE
    if cleaned in {"user", "1"}:
        return COLLECTION_USER
    return cleaned
