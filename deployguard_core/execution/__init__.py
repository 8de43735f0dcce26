from deployguard_core.execution.config import (
    NOTIFICATION_POLICIES,
    PURPOSE_AVAILABLE,
    PURPOSE_REQUIRED,
    PURPOSES,
    DeploymentConfig,
    DeploymentOutcome,
    validate_deployment_config,
)
from deployguard_core.execution.executor import (
    build_deployment_request,
    execute_deployment,
)

__all__ = [
    "NOTIFICATION_POLICIES",
    "PURPOSES",
    "PURPOSE_AVAILABLE",
    "PURPOSE_REQUIRED",
    "DeploymentConfig",
    "DeploymentOutcome",
    "build_deployment_request",
    "execute_deployment",
    "validate_deployment_config",
]
