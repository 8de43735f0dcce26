from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone

import fsspec

from deployguard_core.errors import ExecutionFailedError, ServiceUnavailableError
from deployguard_core.providers.interfaces import DeploymentRequest, ManagementService
from deployguard_core.storage.paths import parent_path
from deployguard_core.targets.types import (
    Application,
    Collection,
    DistributionStatus,
    ExistingDeployment,
    UpdateGroup,
    normalize_collection_kind,
)


class JsonManagementService(ManagementService):
    """Management service stand-in reading an inventory JSON document.

    The document holds ``applications``, ``update_groups``, ``collections``,
    ``distribution`` (keyed by package ID) and ``deployments``. Created
    deployments are appended to ``deployments`` and the document is
    rewritten.
    """

    def __init__(self, inventory_uri: str) -> None:
        self._inventory_uri = inventory_uri

    @property
    def inventory_uri(self) -> str:
        return self._inventory_uri

    def find_application(self, name: str) -> Application | None:
        for item in _items(self._load(), "applications"):
            if _matches(item.get("name"), name):
                return _application_from_dict(item)
        return None

    def find_update_group(self, name: str) -> UpdateGroup | None:
        for item in _items(self._load(), "update_groups"):
            if _matches(item.get("name"), name):
                return _update_group_from_dict(item)
        return None

    def find_collection(self, name: str) -> Collection | None:
        for item in _items(self._load(), "collections"):
            if _matches(item.get("name"), name):
                return _collection_from_dict(item)
        return None

    def get_distribution_status(self, package_id: str) -> DistributionStatus | None:
        payload = self._load()
        distribution = payload.get("distribution")
        if not isinstance(distribution, dict):
            return None
        item = distribution.get(package_id)
        if not isinstance(item, dict):
            return None
        return DistributionStatus(
            targeted=_coerce_int(item.get("targeted")),
            success=_coerce_int(item.get("success")),
            in_progress=_coerce_int(item.get("in_progress")),
            error=_coerce_int(item.get("error")),
        )

    def find_deployments(
        self,
        deployable_name: str,
        collection_name: str,
    ) -> list[ExistingDeployment]:
        results: list[ExistingDeployment] = []
        for item in _items(self._load(), "deployments"):
            if not _matches(item.get("deployable_name"), deployable_name):
                continue
            if not _matches(item.get("collection_name"), collection_name):
                continue
            results.append(_deployment_from_dict(item))
        return results

    def create_deployment(self, request: DeploymentRequest) -> str:
        payload = self._load()
        deployments = payload.get("deployments")
        if not isinstance(deployments, list):
            deployments = []
        deployment_id = str(uuid.uuid4())
        deployments.append(
            {
                "deployment_id": deployment_id,
                "deployable_name": request.deployable_name,
                "deployable_kind": request.deployable_kind,
                "collection_name": request.collection_name,
                "purpose": request.purpose,
                "available_at": request.available_at.isoformat(),
                "deadline_at": (
                    request.deadline_at.isoformat() if request.deadline_at else None
                ),
                "notification_policy": request.notification_policy,
                "override_service_window": request.override_service_window,
                "reboot_outside_service_window": request.reboot_outside_service_window,
                "use_metered_network": request.use_metered_network,
                "protected_download": request.protected_download,
                "unprotected_download": request.unprotected_download,
                "comment": request.comment,
                "created_at": datetime.now(timezone.utc).isoformat(),
            }
        )
        payload["deployments"] = deployments
        try:
            self._save(payload)
        except OSError as exc:
            raise ExecutionFailedError(
                f"Deployment could not be stored in {self._inventory_uri}: {exc}"
            ) from exc
        return deployment_id

    def _load(self) -> dict[str, object]:
        fs, path = fsspec.core.url_to_fs(self._inventory_uri)
        if not fs.exists(path):
            raise ServiceUnavailableError(
                f"Inventory not found: {self._inventory_uri}"
            )
        try:
            with fs.open(path, "rb") as handle:
                payload = json.loads(handle.read().decode("utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ServiceUnavailableError(
                f"Inventory unreadable: {self._inventory_uri}: {exc}"
            ) from exc
        if not isinstance(payload, dict):
            raise ServiceUnavailableError(
                f"Inventory must be a JSON object: {self._inventory_uri}"
            )
        return payload

    def _save(self, payload: dict[str, object]) -> None:
        fs, path = fsspec.core.url_to_fs(self._inventory_uri)
        fs.makedirs(parent_path(path), exist_ok=True)
        payload["updated_at"] = datetime.now(timezone.utc).isoformat()
        with fs.open(path, "wb") as handle:
            text = json.dumps(payload, ensure_ascii=True, indent=2)
            handle.write(text.encode("utf-8"))


def _items(payload: dict[str, object], key: str) -> list[dict[str, object]]:
    items = payload.get(key)
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def _matches(value: object, name: str) -> bool:
    if value is None:
        return False
    return str(value).strip().lower() == name.strip().lower()


def _coerce_int(value: object) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0


def _coerce_optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _application_from_dict(payload: dict[str, object]) -> Application:
    return Application(
        name=str(payload.get("name", "")),
        version=str(payload.get("version") or ""),
        package_id=str(payload.get("package_id") or ""),
    )


def _update_group_from_dict(payload: dict[str, object]) -> UpdateGroup:
    return UpdateGroup(
        name=str(payload.get("name", "")),
        update_count=_coerce_int(payload.get("update_count")),
        expired_update_count=_coerce_int(payload.get("expired_update_count")),
    )


def _collection_from_dict(payload: dict[str, object]) -> Collection:
    return Collection(
        name=str(payload.get("name", "")),
        id=str(payload.get("id") or ""),
        kind=normalize_collection_kind(payload.get("kind")),
        member_count=_coerce_int(payload.get("member_count")),
    )


def _deployment_from_dict(payload: dict[str, object]) -> ExistingDeployment:
    return ExistingDeployment(
        deployment_id=str(payload.get("deployment_id") or ""),
        deployable_name=str(payload.get("deployable_name", "")),
        collection_name=str(payload.get("collection_name", "")),
        purpose=_coerce_optional_str(payload.get("purpose")),
        created_at=_coerce_optional_str(payload.get("created_at")),
    )
