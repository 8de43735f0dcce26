from deployguard_core.targets.types import (
    KIND_APPLICATION,
    KIND_UPDATE_GROUP,
    Application,
    Collection,
    Deployable,
    DistributionStatus,
    ExistingDeployment,
    Resolution,
    ResolveResult,
    UpdateGroup,
)

__all__ = [
    "KIND_APPLICATION",
    "KIND_UPDATE_GROUP",
    "Application",
    "Collection",
    "Deployable",
    "DistributionStatus",
    "ExistingDeployment",
    "Resolution",
    "ResolveResult",
    "UpdateGroup",
]
