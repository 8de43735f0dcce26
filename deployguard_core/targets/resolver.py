from __future__ import annotations

from deployguard_core.errors import (
    ERROR_NOT_FOUND,
    ERROR_SERVICE_UNAVAILABLE,
    ERROR_WRONG_KIND,
)
from deployguard_core.logging import get_logger
from deployguard_core.providers.interfaces import ManagementService
from deployguard_core.targets.types import (
    KIND_APPLICATION,
    KIND_UPDATE_GROUP,
    Application,
    Collection,
    Deployable,
    Resolution,
    ResolveResult,
    normalize_deployable_kind,
)

logger = get_logger(__name__)


def resolve_deployable(
    service: ManagementService,
    name: str,
    kind: str,
) -> ResolveResult[Deployable]:
    kind = normalize_deployable_kind(kind)
    label = "Application" if kind == KIND_APPLICATION else "Software update group"
    try:
        if kind == KIND_APPLICATION:
            found: Deployable | None = service.find_application(name)
        else:
            found = service.find_update_group(name)
    except Exception as exc:
        logger.warning(
            "Deployable lookup failed",
            extra={
                "deployable": name,
                "deployable_kind": kind,
                "error_kind": ERROR_SERVICE_UNAVAILABLE,
                "error_message": str(exc),
            },
        )
        return ResolveResult(
            value=None,
            error_kind=ERROR_SERVICE_UNAVAILABLE,
            reason=f"{label} lookup failed: {exc}",
        )

    if found is None:
        return ResolveResult(
            value=None,
            error_kind=ERROR_NOT_FOUND,
            reason=f"{label} '{name}' not found",
        )

    if isinstance(found, Application):
        logger.info(
            "Found application",
            extra={
                "deployable": found.name,
                "deployable_kind": KIND_APPLICATION,
                "deployable_version": found.version,
            },
        )
        reason = f"Found application '{found.name}' (version {found.version or 'n/a'})"
    else:
        logger.info(
            "Found software update group",
            extra={
                "deployable": found.name,
                "deployable_kind": KIND_UPDATE_GROUP,
                "update_count": found.update_count,
                "expired_update_count": found.expired_update_count,
            },
        )
        reason = (
            f"Found software update group '{found.name}' "
            f"({found.update_count} updates)"
        )
    return ResolveResult(value=found, reason=reason)


def resolve_collection(
    service: ManagementService,
    name: str,
) -> ResolveResult[Collection]:
    try:
        found = service.find_collection(name)
    except Exception as exc:
        logger.warning(
            "Collection lookup failed",
            extra={
                "collection": name,
                "error_kind": ERROR_SERVICE_UNAVAILABLE,
                "error_message": str(exc),
            },
        )
        return ResolveResult(
            value=None,
            error_kind=ERROR_SERVICE_UNAVAILABLE,
            reason=f"Collection lookup failed: {exc}",
        )

    if found is None:
        return ResolveResult(
            value=None,
            error_kind=ERROR_NOT_FOUND,
            reason=f"Collection '{name}' not found",
        )
    if not found.is_device:
        return ResolveResult(
            value=None,
            error_kind=ERROR_WRONG_KIND,
            reason=(
                f"Collection '{found.name}' is a {found.kind or 'unknown'} collection; "
                "only device collections can be targeted"
            ),
        )

    logger.info(
        "Found collection",
        extra={
            "collection": found.name,
            "collection_id": found.id,
            "member_count": found.member_count,
        },
    )
    return ResolveResult(
        value=found,
        reason=f"Found device collection '{found.name}' ({found.member_count} members)",
    )


def resolve_targets(
    service: ManagementService,
    *,
    deployable_name: str,
    deployable_kind: str,
    collection_name: str,
) -> Resolution:
    kind = normalize_deployable_kind(deployable_kind)
    deployable = resolve_deployable(service, deployable_name, kind)
    collection = resolve_collection(service, collection_name)
    return Resolution(
        deployable_name=deployable_name,
        deployable_kind=kind,
        collection_name=collection_name,
        deployable=deployable,
        collection=collection,
    )
