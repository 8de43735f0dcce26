from deployguard_core.providers.interfaces import DeploymentRequest, ManagementService
from deployguard_core.providers.json_inventory import JsonManagementService
from deployguard_core.providers.memory import InMemoryManagementService
from deployguard_core.providers.registry import get_management_service

__all__ = [
    "DeploymentRequest",
    "InMemoryManagementService",
    "JsonManagementService",
    "ManagementService",
    "get_management_service",
]
