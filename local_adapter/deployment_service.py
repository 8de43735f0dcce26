import os
import time
import uuid
from dataclasses import asdict
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from deployguard_core.audit import filter_history, read_audit_log
from deployguard_core.config import get_config
from deployguard_core.errors import UnsafeTargetError, ValidationError
from deployguard_core.execution.config import (
    NOTIFY_DISPLAY_ALL,
    PURPOSE_REQUIRED,
    DeploymentConfig,
    normalize_notification_policy,
    normalize_purpose,
)
from deployguard_core.gate.checks import GateReport
from deployguard_core.logging import configure_logging, get_logger
from deployguard_core.pipeline import DeploymentSession
from deployguard_core.preview import DeploymentPreview
from deployguard_core.providers import get_management_service
from deployguard_core.targets.types import normalize_deployable_kind
from deployguard_core.templates import (
    config_from_template,
    find_template,
    load_templates,
)

SERVICE_NAME = "deployguard-service"

configure_logging(
    service=SERVICE_NAME,
    env=os.getenv("ENV", "local"),
    version=os.getenv("DEPLOYGUARD_VERSION"),
)
logger = get_logger(__name__)

app = FastAPI()


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    commit: str
    timestamp: str


class ValidateRequest(BaseModel):
    deployable: str
    deployable_kind: str = "application"
    collection: str


class DeployRequest(ValidateRequest):
    purpose: str = "available"
    available_at: datetime | None = None
    deadline_at: datetime | None = None
    deadline_offset_hours: int | None = Field(default=None, ge=0)
    notification_policy: str = NOTIFY_DISPLAY_ALL
    override_service_window: bool = False
    reboot_outside_service_window: bool = False
    allow_metered_connection: bool = False
    comment: str = ""
    change_ticket: str = ""
    template: str | None = None
    actor: str | None = None


TEMPLATE_OWNED_FIELDS = frozenset(
    {
        "purpose",
        "deadline_offset_hours",
        "notification_policy",
        "override_service_window",
        "reboot_outside_service_window",
        "allow_metered_connection",
    }
)


class CheckResponse(BaseModel):
    number: int
    name: str
    status: str
    reason: str
    error_kind: str | None = None


class PreviewResponse(BaseModel):
    name: str
    version_label: str
    collection_name: str
    collection_id: str
    member_count: int
    deployable_kind: str


class GateResponse(BaseModel):
    deployable: str
    deployable_kind: str
    collection: str
    passed: bool
    checks: list[CheckResponse]
    preview: PreviewResponse | None = None


class DeployResponse(BaseModel):
    gate: GateResponse
    success: bool
    deployment_id: str
    error_detail: str
    result: str
    audit_written: bool
    warning: str | None = None


class AuditRecordResponse(BaseModel):
    timestamp: str
    actor: str
    change_ticket: str
    deployable_name: str
    deployable_version: str
    collection_name: str
    collection_id: str
    member_count: int
    purpose: str
    deadline_at: str
    deployment_id: str
    result: str
    comment: str
    deployable_kind: str


class TemplateResponse(BaseModel):
    name: str
    purpose: str
    notification_policy: str
    override_service_window: bool
    reboot_outside_service_window: bool
    allow_metered_connection: bool
    default_deadline_offset_hours: int


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS", "")
    if raw:
        return [origin.strip() for origin in raw.split(",") if origin.strip()]
    env = os.getenv("ENV", "dev").lower()
    if env in {"dev", "local", "test"}:
        return ["*"]
    return []


_cors = _cors_origins()
if _cors:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _build_session(actor: str | None = None) -> DeploymentSession:
    config = get_config()
    return DeploymentSession.from_config(
        config,
        get_management_service(config),
        actor=actor,
    )


def _preview_response(preview: DeploymentPreview | None) -> PreviewResponse | None:
    if preview is None:
        return None
    return PreviewResponse(**asdict(preview))


def _gate_response(
    report: GateReport,
    preview: DeploymentPreview | None,
) -> GateResponse:
    return GateResponse(
        deployable=report.deployable_name,
        deployable_kind=report.deployable_kind,
        collection=report.collection_name,
        passed=report.passed,
        checks=[CheckResponse(**asdict(check)) for check in report.checks],
        preview=_preview_response(preview),
    )


def _deployment_config(payload: DeployRequest) -> DeploymentConfig:
    available_at = payload.available_at or datetime.now(timezone.utc)
    if payload.template:
        conflicting = sorted(payload.model_fields_set & TEMPLATE_OWNED_FIELDS)
        if conflicting:
            raise ValidationError(
                f"template cannot be combined with {', '.join(conflicting)}"
            )
        template = find_template(
            load_templates(get_config().template_dir),
            payload.template,
        )
        if template is None:
            raise HTTPException(status_code=404, detail="Template not found")
        return config_from_template(
            template,
            available_at=available_at,
            comment=payload.comment,
            deadline_at=payload.deadline_at,
        )
    purpose = normalize_purpose(payload.purpose)
    deadline_at = payload.deadline_at
    if (
        purpose == PURPOSE_REQUIRED
        and deadline_at is None
        and payload.deadline_offset_hours is not None
    ):
        deadline_at = available_at + timedelta(hours=payload.deadline_offset_hours)
    return DeploymentConfig(
        purpose=purpose,
        available_at=available_at,
        deadline_at=deadline_at,
        notification_policy=normalize_notification_policy(payload.notification_policy),
        override_service_window=payload.override_service_window,
        reboot_outside_service_window=payload.reboot_outside_service_window,
        allow_metered_connection=payload.allow_metered_connection,
        comment=payload.comment,
    )


def _deployable_kind(value: str) -> str:
    try:
        return normalize_deployable_kind(value)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        service=SERVICE_NAME,
        version=os.getenv("DEPLOYGUARD_VERSION", "dev"),
        commit=os.getenv("GIT_COMMIT", "unknown"),
        timestamp=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
    )


@app.post("/deployments/validate", response_model=GateResponse)
def validate_deployment(payload: ValidateRequest) -> GateResponse:
    session = _build_session()
    resolution = session.resolve(
        payload.deployable,
        payload.collection,
        deployable_kind=_deployable_kind(payload.deployable_kind),
    )
    report = session.validate(resolution)
    return _gate_response(report, session.preview(resolution))


@app.post("/deployments", response_model=DeployResponse)
def create_deployment(request: Request, payload: DeployRequest) -> DeployResponse:
    session = _build_session(actor=payload.actor)
    try:
        config = _deployment_config(payload)
        session.check_request(config, payload.change_ticket)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    resolution = session.resolve(
        payload.deployable,
        payload.collection,
        deployable_kind=_deployable_kind(payload.deployable_kind),
    )
    report = session.validate(resolution)
    gate = _gate_response(report, session.preview(resolution))
    if not report.passed:
        raise HTTPException(status_code=409, detail=gate.model_dump())

    try:
        result = session.execute(report, config, change_ticket=payload.change_ticket)
    except UnsafeTargetError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    logger.info(
        "Deployment request completed",
        extra={
            "request_id": str(uuid.uuid4()),
            "correlation_id": request.headers.get("x-correlation-id"),
            "deployable": payload.deployable,
            "collection": payload.collection,
            "deployment_id": result.outcome.deployment_id or None,
            "status": result.record.result,
        },
    )
    return DeployResponse(
        gate=gate,
        success=result.outcome.success,
        deployment_id=result.outcome.deployment_id,
        error_detail=result.outcome.error_detail,
        result=result.record.result,
        audit_written=result.audit_written,
        warning=result.warning,
    )


@app.get("/deployments/history", response_model=list[AuditRecordResponse])
def deployment_history(
    deployable: str | None = None,
    collection: str | None = None,
    actor: str | None = None,
    failures_only: bool = False,
    since: datetime | None = None,
) -> list[AuditRecordResponse]:
    records = read_audit_log(get_config().audit_log_uri)
    records = filter_history(
        records,
        deployable=deployable,
        collection=collection,
        actor=actor,
        failures_only=failures_only,
        since=since,
    )
    return [AuditRecordResponse(**asdict(record)) for record in records]


@app.get("/templates", response_model=list[TemplateResponse])
def list_templates() -> list[TemplateResponse]:
    templates = load_templates(get_config().template_dir)
    return [TemplateResponse(**asdict(template)) for template in templates]
