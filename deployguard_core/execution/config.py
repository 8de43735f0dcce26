from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from deployguard_core.errors import ValidationError

PURPOSE_REQUIRED = "required"
PURPOSE_AVAILABLE = "available"
PURPOSES = (PURPOSE_REQUIRED, PURPOSE_AVAILABLE)

NOTIFY_DISPLAY_ALL = "display_all"
NOTIFY_SOFTWARE_CENTER_ONLY = "display_software_center_only"
NOTIFY_HIDE_ALL = "hide_all"
NOTIFICATION_POLICIES = (
    NOTIFY_DISPLAY_ALL,
    NOTIFY_SOFTWARE_CENTER_ONLY,
    NOTIFY_HIDE_ALL,
)


@dataclass(frozen=True)
class DeploymentConfig:
    purpose: str
    available_at: datetime
    deadline_at: datetime | None = None
    notification_policy: str = NOTIFY_DISPLAY_ALL
    override_service_window: bool = False
    reboot_outside_service_window: bool = False
    allow_metered_connection: bool = False
    comment: str = ""

    @property
    def is_required(self) -> bool:
        return self.purpose == PURPOSE_REQUIRED

    @property
    def effective_deadline(self) -> datetime | None:
        if not self.is_required:
            return None
        return self.deadline_at


@dataclass(frozen=True)
class DeploymentOutcome:
    success: bool
    deployment_id: str = ""
    error_detail: str = ""
    error_kind: str | None = None

    @property
    def result_text(self) -> str:
        if self.success:
            return "Success"
        return f"Failed: {self.error_detail}"


def normalize_purpose(value: str | None) -> str:
    cleaned = (value or "").strip().lower()
    if cleaned not in PURPOSES:
        allowed = ", ".join(PURPOSES)
        raise ValidationError(f"purpose must be one of: {allowed}")
    return cleaned


def normalize_notification_policy(value: str | None) -> str:
    cleaned = (value or NOTIFY_DISPLAY_ALL).strip().lower().replace("-", "_")
    if cleaned not in NOTIFICATION_POLICIES:
        allowed = ", ".join(NOTIFICATION_POLICIES)
        raise ValidationError(f"notification_policy must be one of: {allowed}")
    return cleaned


def parse_timestamp(value: str, *, field: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError(f"{field} must be an ISO 8601 timestamp") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validate_deployment_config(config: DeploymentConfig) -> DeploymentConfig:
    """Check the structural rules of a deployment configuration.

    Returns the config unchanged when it is valid. A required deployment
    needs a deadline at or after its available time; for an available
    deployment the deadline is ignored.
    """
    if config.purpose not in PURPOSES:
        allowed = ", ".join(PURPOSES)
        raise ValidationError(f"purpose must be one of: {allowed}")
    if config.notification_policy not in NOTIFICATION_POLICIES:
        allowed = ", ".join(NOTIFICATION_POLICIES)
        raise ValidationError(f"notification_policy must be one of: {allowed}")
    if config.available_at is None:
        raise ValidationError("available_at is required")
    if config.is_required:
        if config.deadline_at is None:
            raise ValidationError("deadline_at is required for required deployments")
        if _aware(config.deadline_at) < _aware(config.available_at):
            raise ValidationError("deadline_at must not be before available_at")
    return config


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
