"""Validate-then-execute-then-record pipeline.

A ``DeploymentSession`` carries the context a front-end would otherwise
keep in globals: the management service, the audit log location, the
operator identity and the site policy. Each stage returns an explicit
result so callers can render progress and keep the deploy action
disabled until ``GateReport.passed`` is true.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from deployguard_core.audit.logs import AuditLogStore, AuditRecord, build_audit_record
from deployguard_core.config import Config
from deployguard_core.errors import (
    ERROR_LOG_WRITE_FAILED,
    LogWriteFailedError,
    ValidationError,
)
from deployguard_core.execution.config import (
    DeploymentConfig,
    DeploymentOutcome,
    validate_deployment_config,
)
from deployguard_core.execution.executor import execute_deployment
from deployguard_core.gate.checks import GateReport, run_gate
from deployguard_core.logging import get_logger
from deployguard_core.preview import DeploymentPreview, build_preview
from deployguard_core.providers.interfaces import ManagementService
from deployguard_core.targets.resolver import resolve_targets
from deployguard_core.targets.types import Resolution

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ExecutionResult:
    outcome: DeploymentOutcome
    record: AuditRecord
    audit_written: bool
    warning: str | None = None
    warning_kind: str | None = None


@dataclass(frozen=True)
class PipelineResult:
    resolution: Resolution
    gate: GateReport
    preview: DeploymentPreview | None
    execution: ExecutionResult | None

    @property
    def executed(self) -> bool:
        return self.execution is not None

    @property
    def succeeded(self) -> bool:
        return self.execution is not None and self.execution.outcome.success


@dataclass
class DeploymentSession:
    service: ManagementService
    audit_log: AuditLogStore
    actor: str
    site_code: str | None = None
    blocked_collection_ids: tuple[str, ...] = ()
    require_change_ticket: bool = False
    clock: Callable[[], datetime] = field(default=_utcnow)

    @classmethod
    def from_config(
        cls,
        config: Config,
        service: ManagementService,
        *,
        actor: str | None = None,
    ) -> "DeploymentSession":
        return cls(
            service=service,
            audit_log=AuditLogStore(config.audit_log_uri, lock=config.audit_lock),
            actor=actor or config.actor,
            site_code=config.site_code,
            blocked_collection_ids=config.blocked_collection_ids,
            require_change_ticket=config.require_change_ticket,
        )

    def resolve(
        self,
        deployable_name: str,
        collection_name: str,
        *,
        deployable_kind: str = "application",
    ) -> Resolution:
        return resolve_targets(
            self.service,
            deployable_name=deployable_name,
            deployable_kind=deployable_kind,
            collection_name=collection_name,
        )

    def validate(self, resolution: Resolution) -> GateReport:
        return run_gate(
            self.service,
            resolution,
            blocked_collection_ids=self.blocked_collection_ids,
        )

    def preview(self, resolution: Resolution) -> DeploymentPreview | None:
        deployable = resolution.deployable.value
        collection = resolution.collection.value
        if deployable is None or collection is None:
            return None
        return build_preview(deployable, collection)

    def check_request(self, config: DeploymentConfig, change_ticket: str = "") -> None:
        validate_deployment_config(config)
        if self.require_change_ticket and not change_ticket.strip():
            raise ValidationError("A change ticket is required for deployments")

    def execute(
        self,
        gate: GateReport,
        config: DeploymentConfig,
        *,
        change_ticket: str = "",
    ) -> ExecutionResult:
        """Run the deployment for a passed gate report and record it.

        Raises ``UnsafeTargetError`` when the gate did not pass and
        ``ValidationError`` for a malformed configuration; neither case
        reaches the management service or the audit log. Once the service
        is called, an audit record is always appended.
        """
        if not gate.passed or gate.deployable is None or gate.collection is None:
            raise gate.refusal()
        self.check_request(config, change_ticket)

        deployable = gate.deployable
        collection = gate.collection
        preview = build_preview(deployable, collection)
        outcome = execute_deployment(
            self.service,
            deployable,
            collection,
            config,
            gate=gate,
        )
        record = build_audit_record(
            preview,
            config,
            outcome,
            actor=self.actor,
            change_ticket=change_ticket.strip(),
            timestamp=self.clock(),
        )
        try:
            self.audit_log.append(record)
        except LogWriteFailedError as exc:
            logger.warning(
                "Deployment outcome not recorded in audit log",
                extra={
                    "actor": self.actor,
                    "deployable": record.deployable_name,
                    "collection": record.collection_name,
                    "deployment_id": record.deployment_id or None,
                    "error_kind": ERROR_LOG_WRITE_FAILED,
                    "error_message": str(exc),
                },
            )
            return ExecutionResult(
                outcome=outcome,
                record=record,
                audit_written=False,
                warning=str(exc),
                warning_kind=ERROR_LOG_WRITE_FAILED,
            )
        return ExecutionResult(outcome=outcome, record=record, audit_written=True)

    def deploy(
        self,
        deployable_name: str,
        collection_name: str,
        config: DeploymentConfig,
        *,
        deployable_kind: str = "application",
        change_ticket: str = "",
        confirm: Callable[[DeploymentPreview], bool] | None = None,
    ) -> PipelineResult:
        """Resolve, gate and, when every check passes, execute and record.

        ``confirm`` receives the preview and may decline the deployment;
        a declined or gated-out run has ``execution`` set to ``None``.
        """
        self.check_request(config, change_ticket)
        resolution = self.resolve(
            deployable_name,
            collection_name,
            deployable_kind=deployable_kind,
        )
        gate = self.validate(resolution)
        preview = self.preview(resolution)
        if not gate.passed or preview is None:
            return PipelineResult(resolution, gate, preview, None)
        if confirm is not None and not confirm(preview):
            logger.info(
                "Deployment cancelled by operator",
                extra={
                    "actor": self.actor,
                    "deployable": preview.name,
                    "collection": preview.collection_name,
                },
            )
            return PipelineResult(resolution, gate, preview, None)
        execution = self.execute(gate, config, change_ticket=change_ticket)
        return PipelineResult(resolution, gate, preview, execution)
