from __future__ import annotations

import time

from deployguard_core.errors import ERROR_EXECUTION_FAILED, UnsafeTargetError
from deployguard_core.execution.config import (
    DeploymentConfig,
    DeploymentOutcome,
    validate_deployment_config,
)
from deployguard_core.gate.checks import GateReport
from deployguard_core.logging import get_logger
from deployguard_core.preview import build_preview
from deployguard_core.providers.interfaces import DeploymentRequest, ManagementService
from deployguard_core.targets.types import KIND_UPDATE_GROUP, Collection, Deployable

logger = get_logger(__name__)

# Update group deployments with a deadline always prefer a protected
# distribution point and fall back to an unprotected one.
PROTECTED_DOWNLOAD = "remote_distribution_point"
UNPROTECTED_DOWNLOAD = "unprotected_distribution_point"


def build_deployment_request(
    deployable: Deployable,
    collection: Collection,
    config: DeploymentConfig,
) -> DeploymentRequest:
    protected_download = None
    unprotected_download = None
    if deployable.kind == KIND_UPDATE_GROUP and config.is_required:
        protected_download = PROTECTED_DOWNLOAD
        unprotected_download = UNPROTECTED_DOWNLOAD
    return DeploymentRequest(
        deployable_name=deployable.name,
        deployable_kind=deployable.kind,
        collection_name=collection.name,
        purpose=config.purpose,
        available_at=config.available_at,
        deadline_at=config.effective_deadline,
        notification_policy=config.notification_policy,
        override_service_window=config.override_service_window,
        reboot_outside_service_window=config.reboot_outside_service_window,
        use_metered_network=config.allow_metered_connection,
        comment=config.comment or None,
        protected_download=protected_download,
        unprotected_download=unprotected_download,
    )


def execute_deployment(
    service: ManagementService,
    deployable: Deployable,
    collection: Collection,
    config: DeploymentConfig,
    *,
    gate: GateReport,
) -> DeploymentOutcome:
    """Create one deployment through the management service.

    The gate report must have passed for exactly this deployable and
    collection, otherwise ``UnsafeTargetError`` is raised before anything
    reaches the service. The creation call is made once; any failure is
    returned as an unsuccessful outcome and is not retried.
    """
    if not gate.passed:
        raise gate.refusal()
    if not gate.covers(deployable, collection):
        raise UnsafeTargetError(
            "Safety gate report does not match the deployable and collection"
        )
    validate_deployment_config(config)

    request = build_deployment_request(deployable, collection, config)
    preview = build_preview(deployable, collection)
    logger.info(
        "Creating deployment",
        extra={
            "deployable": preview.name,
            "deployable_kind": preview.deployable_kind,
            "deployable_version": preview.version_label,
            "collection": preview.collection_name,
            "collection_id": preview.collection_id,
            "member_count": preview.member_count,
            "purpose": config.purpose,
            "deadline_at": (
                request.deadline_at.isoformat() if request.deadline_at else None
            ),
        },
    )

    started = time.monotonic()
    try:
        deployment_id = service.create_deployment(request)
    except Exception as exc:
        detail = str(exc) or exc.__class__.__name__
        logger.error(
            "Deployment failed",
            extra={
                "deployable": preview.name,
                "collection": preview.collection_name,
                "error_kind": ERROR_EXECUTION_FAILED,
                "error_message": detail,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return DeploymentOutcome(
            success=False,
            error_detail=detail,
            error_kind=ERROR_EXECUTION_FAILED,
        )

    duration_ms = int((time.monotonic() - started) * 1000)
    if not deployment_id:
        detail = "Management service returned no deployment ID"
        logger.error(
            "Deployment failed",
            extra={
                "deployable": preview.name,
                "collection": preview.collection_name,
                "error_kind": ERROR_EXECUTION_FAILED,
                "error_message": detail,
                "duration_ms": duration_ms,
            },
        )
        return DeploymentOutcome(
            success=False,
            error_detail=detail,
            error_kind=ERROR_EXECUTION_FAILED,
        )

    logger.info(
        "Deployment created",
        extra={
            "deployable": preview.name,
            "collection": preview.collection_name,
            "deployment_id": str(deployment_id),
            "duration_ms": duration_ms,
        },
    )
    return DeploymentOutcome(success=True, deployment_id=str(deployment_id))
