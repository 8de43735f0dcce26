from __future__ import annotations

from deployguard_core.config import Config
from deployguard_core.providers.interfaces import ManagementService
from deployguard_core.providers.json_inventory import JsonManagementService
from deployguard_core.providers.memory import InMemoryManagementService


def get_management_service(config: Config) -> ManagementService:
    backend = config.management_backend
    if backend == "json":
        return JsonManagementService(config.inventory_uri)
    if backend == "memory":
        return InMemoryManagementService()
    raise ValueError(f"Unsupported management backend: {backend}")
