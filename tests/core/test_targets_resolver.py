from __future__ import annotations

import pytest

from deployguard_core.targets.resolver import (
    resolve_collection,
    resolve_deployable,
    resolve_targets,
)
from deployguard_core.targets.types import (
    KIND_APPLICATION,
    KIND_UPDATE_GROUP,
    normalize_collection_kind,
    normalize_deployable_kind,
)


def test_resolve_application_found(service):
    result = resolve_deployable(service, "app1", KIND_APPLICATION)
    assert result.ok
    assert result.value.name == "App1"
    assert result.value.version == "1.0"
    assert result.error_kind is None
    assert "version 1.0" in result.reason


def test_resolve_application_missing(service):
    result = resolve_deployable(service, "Nope", KIND_APPLICATION)
    assert not result.ok
    assert result.error_kind == "not_found"
    assert result.reason == "Application 'Nope' not found"


def test_resolve_update_group(service):
    result = resolve_deployable(service, "Patches", "sug")
    assert result.ok
    assert result.value.kind == KIND_UPDATE_GROUP
    assert result.value.update_count == 12
    assert service.calls == ["find_update_group"]


def test_resolve_deployable_service_failure(service_factory):
    service = service_factory(failures={"find_application": ConnectionError("down")})
    result = resolve_deployable(service, "App1", KIND_APPLICATION)
    assert not result.ok
    assert result.error_kind == "service_unavailable"
    assert "down" in result.reason


def test_resolve_collection_device(service):
    result = resolve_collection(service, "Workstations")
    assert result.ok
    assert result.value.id == "XYZ00010"
    assert result.value.member_count == 25


def test_resolve_collection_user_kind_rejected(service):
    result = resolve_collection(service, "Sales Users")
    assert not result.ok
    assert result.error_kind == "wrong_kind"
    assert "user collection" in result.reason


def test_resolve_collection_missing(service):
    result = resolve_collection(service, "Servers")
    assert result.error_kind == "not_found"


def test_resolve_collection_service_failure(service_factory):
    service = service_factory(failures={"find_collection": TimeoutError("slow")})
    result = resolve_collection(service, "Workstations")
    assert result.error_kind == "service_unavailable"


def test_resolve_targets_always_resolves_both(service):
    resolution = resolve_targets(
        service,
        deployable_name="Nope",
        deployable_kind="app",
        collection_name="Workstations",
    )
    assert resolution.deployable_kind == KIND_APPLICATION
    assert not resolution.deployable.ok
    assert resolution.collection.ok
    assert not resolution.resolved
    assert service.calls == ["find_application", "find_collection"]


def test_normalize_kinds():
    assert normalize_deployable_kind(None) == KIND_APPLICATION
    assert normalize_deployable_kind("Update-Group") == KIND_UPDATE_GROUP
    with pytest.raises(ValueError):
        normalize_deployable_kind("package")
    assert normalize_collection_kind(2) == "device"
    assert normalize_collection_kind("1") == "user"
