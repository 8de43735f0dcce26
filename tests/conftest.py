import json
import os
from pathlib import Path
from typing import Callable, Iterator

import pytest

from deployguard_core.config import get_config
from deployguard_core.providers import InMemoryManagementService
from deployguard_core.targets.types import (
    COLLECTION_DEVICE,
    COLLECTION_USER,
    Application,
    Collection,
    DistributionStatus,
    UpdateGroup,
)


@pytest.fixture(autouse=True)
def _deployguard_env(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Iterator[None]:
    def set_default(name: str, value: str) -> None:
        if not os.getenv(name):
            monkeypatch.setenv(name, value)

    data_root = tmp_path / "deployguard_data"
    set_default("ENV", "test")
    set_default("LOG_LEVEL", "INFO")
    monkeypatch.setenv("DEPLOYGUARD_DATA_ROOT", data_root.as_posix())
    monkeypatch.setenv("DEPLOYGUARD_MANAGEMENT_BACKEND", "json")
    monkeypatch.setenv("DEPLOYGUARD_ACTOR", "tester")
    for name in (
        "DEPLOYGUARD_AUDIT_LOG",
        "DEPLOYGUARD_TEMPLATE_DIR",
        "DEPLOYGUARD_INVENTORY",
        "DEPLOYGUARD_SITE_CODE",
        "DEPLOYGUARD_BLOCKED_COLLECTIONS",
        "DEPLOYGUARD_REQUIRE_CHANGE_TICKET",
        "DEPLOYGUARD_AUDIT_LOCK",
    ):
        monkeypatch.delenv(name, raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


APP1 = Application(name="App1", version="1.0", package_id="PKG00001")
APP_PARTIAL = Application(name="App2", version="2.3", package_id="PKG00002")
PATCHES = UpdateGroup(name="Patches", update_count=12, expired_update_count=2)
WORKSTATIONS = Collection(
    name="Workstations",
    id="XYZ00010",
    kind=COLLECTION_DEVICE,
    member_count=25,
)
ALL_SYSTEMS = Collection(
    name="All Systems",
    id="SMS00001",
    kind=COLLECTION_DEVICE,
    member_count=1200,
)
SALES_USERS = Collection(
    name="Sales Users",
    id="XYZ00020",
    kind=COLLECTION_USER,
    member_count=40,
)


def make_service(**overrides: object) -> InMemoryManagementService:
    params: dict[str, object] = {
        "applications": [APP1, APP_PARTIAL],
        "update_groups": [PATCHES],
        "collections": [WORKSTATIONS, ALL_SYSTEMS, SALES_USERS],
        "distribution": {
            "PKG00001": DistributionStatus(
                targeted=3, success=3, in_progress=0, error=0
            ),
            "PKG00002": DistributionStatus(
                targeted=3, success=2, in_progress=1, error=0
            ),
        },
    }
    params.update(overrides)
    return InMemoryManagementService(**params)  # type: ignore[arg-type]


@pytest.fixture
def service() -> InMemoryManagementService:
    return make_service()


@pytest.fixture
def service_factory() -> Callable[..., InMemoryManagementService]:
    return make_service


def inventory_payload() -> dict[str, object]:
    return {
        "applications": [
            {"name": "App1", "version": "1.0", "package_id": "PKG00001"},
            {"name": "App2", "version": "2.3", "package_id": "PKG00002"},
        ],
        "update_groups": [
            {"name": "Patches", "update_count": 12, "expired_update_count": 2}
        ],
        "collections": [
            {
                "name": "Workstations",
                "id": "XYZ00010",
                "kind": "device",
                "member_count": 25,
            },
            {
                "name": "All Systems",
                "id": "SMS00001",
                "kind": "device",
                "member_count": 1200,
            },
            {
                "name": "Sales Users",
                "id": "XYZ00020",
                "kind": "user",
                "member_count": 40,
            },
        ],
        "distribution": {
            "PKG00001": {"targeted": 3, "success": 3, "in_progress": 0, "error": 0},
            "PKG00002": {"targeted": 3, "success": 2, "in_progress": 1, "error": 0},
        },
        "deployments": [],
    }


@pytest.fixture
def inventory_file() -> Path:
    config = get_config()
    path = Path(config.inventory_uri)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(inventory_payload(), indent=2), encoding="utf-8")
    return path
