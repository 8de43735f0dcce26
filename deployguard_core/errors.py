ERROR_NOT_FOUND = "not_found"
ERROR_WRONG_KIND = "wrong_kind"
ERROR_SERVICE_UNAVAILABLE = "service_unavailable"
ERROR_UNSAFE = "unsafe"
ERROR_DUPLICATE = "duplicate"
ERROR_EXECUTION_FAILED = "execution_failed"
ERROR_LOG_WRITE_FAILED = "log_write_failed"
ERROR_PARSE_SKIPPED = "parse_skipped"


class DeployGuardError(Exception):
    """Base error for DeployGuard."""

    kind: str = "error"


class ValidationError(DeployGuardError):
    """Input validation failure."""

    kind = "validation"


class ServiceUnavailableError(DeployGuardError):
    """A query or command against the management service failed."""

    kind = ERROR_SERVICE_UNAVAILABLE


class UnsafeTargetError(DeployGuardError):
    """The safety gate blocked the deployment."""

    kind = ERROR_UNSAFE


class NotFoundError(UnsafeTargetError):
    """The management service has no entity with the requested name."""

    kind = ERROR_NOT_FOUND


class WrongKindError(UnsafeTargetError):
    """The entity exists but is of the wrong category."""

    kind = ERROR_WRONG_KIND


class DuplicateDeploymentError(UnsafeTargetError):
    """A matching deployment already exists."""

    kind = ERROR_DUPLICATE


class ExecutionFailedError(DeployGuardError):
    """The deployment creation call failed."""

    kind = ERROR_EXECUTION_FAILED


class LogWriteFailedError(DeployGuardError):
    """Appending to the audit log failed."""

    kind = ERROR_LOG_WRITE_FAILED
