from __future__ import annotations

import argparse
import json
import os
import subprocess
import sys
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from deployguard_core.audit import filter_history, read_audit_log
from deployguard_core.config import get_config
from deployguard_core.errors import ValidationError
from deployguard_core.execution.config import (
    NOTIFICATION_POLICIES,
    PURPOSE_AVAILABLE,
    PURPOSE_REQUIRED,
    PURPOSES,
    DeploymentConfig,
    normalize_notification_policy,
    normalize_purpose,
    parse_timestamp,
)
from deployguard_core.gate.checks import GateReport
from deployguard_core.logging import configure_logging
from deployguard_core.pipeline import DeploymentSession, ExecutionResult
from deployguard_core.preview import DeploymentPreview, render_preview
from deployguard_core.providers import get_management_service
from deployguard_core.storage.paths import is_local_uri
from deployguard_core.templates import (
    Template,
    config_from_template,
    find_template,
    load_templates,
    save_template,
)

SERVICE_NAME = "deployguard-cli"
DEPLOYABLE_KIND_CHOICES = ["application", "update_group"]
TEMPLATE_OWNED_OPTIONS = (
    ("purpose", "--purpose"),
    ("notification_policy", "--notification-policy"),
    ("override_service_window", "--override-service-window"),
    ("reboot_outside_service_window", "--reboot-outside-service-window"),
    ("allow_metered", "--allow-metered"),
    ("deadline_offset_hours", "--deadline-offset-hours"),
)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def _build_session() -> DeploymentSession:
    config = get_config()
    return DeploymentSession.from_config(config, get_management_service(config))


def _status_label(status: str) -> str:
    return {
        "pass": "PASS",
        "fail": "FAIL",
        "skipped": "SKIP",
        "not_applicable": "N/A ",
    }.get(status, status.upper())


def _print_gate(report: GateReport) -> None:
    for check in report.checks:
        label = _status_label(check.status)
        print(f"[{label}] {check.number}. {check.name}: {check.reason}")
    verdict = "PASSED" if report.passed else "BLOCKED"
    print(f"Safety gate: {verdict}")


def _gate_payload(report: GateReport) -> dict[str, Any]:
    return {
        "deployable": report.deployable_name,
        "deployable_kind": report.deployable_kind,
        "collection": report.collection_name,
        "passed": report.passed,
        "checks": [asdict(check) for check in report.checks],
    }


def _print_execution(result: ExecutionResult) -> None:
    outcome = result.outcome
    if outcome.success:
        print(f"Deployment created: {outcome.deployment_id}")
    else:
        print(f"Deployment failed: {outcome.error_detail}")
    if result.audit_written:
        print("Audit record written.")
    else:
        print(f"WARNING: audit record not written: {result.warning}", file=sys.stderr)


def _parse_when(value: str | None, *, field: str) -> datetime | None:
    if not value:
        return None
    return parse_timestamp(value, field=field)


def _confirm(preview: DeploymentPreview) -> bool:
    print(render_preview(preview))
    answer = input("Create this deployment? [y/N] ")
    return answer.strip().lower() in {"y", "yes"}


def _config_from_args(args: argparse.Namespace, templates_dir: str) -> DeploymentConfig:
    available_at = _parse_when(args.available_at, field="--available-at")
    if available_at is None:
        available_at = datetime.now(timezone.utc)
    deadline_at = _parse_when(args.deadline_at, field="--deadline-at")

    if args.template:
        conflicting = [
            flag
            for name, flag in TEMPLATE_OWNED_OPTIONS
            if getattr(args, name) not in (None, False)
        ]
        if conflicting:
            raise ValidationError(
                f"--template cannot be combined with {', '.join(conflicting)}"
            )
        template = find_template(load_templates(templates_dir), args.template)
        if template is None:
            raise ValidationError(f"Template not found: {args.template}")
        config = config_from_template(
            template,
            available_at=available_at,
            comment=args.comment or "",
            deadline_at=deadline_at,
        )
        return config

    purpose = normalize_purpose(args.purpose or PURPOSE_AVAILABLE)
    if purpose == PURPOSE_REQUIRED and deadline_at is None:
        if args.deadline_offset_hours is not None:
            deadline_at = available_at + timedelta(hours=args.deadline_offset_hours)
    return DeploymentConfig(
        purpose=purpose,
        available_at=available_at,
        deadline_at=deadline_at,
        notification_policy=normalize_notification_policy(args.notification_policy),
        override_service_window=args.override_service_window,
        reboot_outside_service_window=args.reboot_outside_service_window,
        allow_metered_connection=args.allow_metered,
        comment=args.comment or "",
    )


def cmd_validate(args: argparse.Namespace) -> int:
    session = _build_session()
    resolution = session.resolve(
        args.deployable,
        args.collection,
        deployable_kind=args.kind,
    )
    report = session.validate(resolution)
    if args.json:
        _print_json(_gate_payload(report))
    else:
        _print_gate(report)
        preview = session.preview(resolution)
        if preview is not None:
            print(render_preview(preview))
    return 0 if report.passed else 1


def cmd_deploy(args: argparse.Namespace) -> int:
    config = get_config()
    session = _build_session()
    deployment_config = _config_from_args(args, config.template_dir)
    session.check_request(deployment_config, args.change_ticket or "")

    resolution = session.resolve(
        args.deployable,
        args.collection,
        deployable_kind=args.kind,
    )
    report = session.validate(resolution)
    _print_gate(report)
    if not report.passed:
        return 1
    preview = session.preview(resolution)
    if args.dry_run:
        if preview is not None:
            print(render_preview(preview))
        print("Dry run: no deployment created.")
        return 0
    if not args.yes and preview is not None and not _confirm(preview):
        print("Deployment cancelled.")
        return 1

    result = session.execute(
        report,
        deployment_config,
        change_ticket=args.change_ticket or "",
    )
    _print_execution(result)
    return 0 if result.outcome.success else 1


def cmd_history(args: argparse.Namespace) -> int:
    config = get_config()
    records = read_audit_log(config.audit_log_uri)
    since = _parse_when(args.since, field="--since")
    records = filter_history(
        records,
        deployable=args.deployable,
        collection=args.collection,
        actor=args.actor,
        failures_only=args.failures_only,
        since=since,
    )
    if args.limit:
        records = records[-args.limit :]
    if args.json:
        _print_json([asdict(record) for record in records])
        return 0
    if not records:
        print("No deployment history.")
        return 0
    for record in records:
        print(
            f"{record.timestamp} {record.actor} {record.deployable_name} "
            f"({record.deployable_version}) -> {record.collection_name} "
            f"[{record.collection_id}] {record.purpose}: {record.result}"
        )
    return 0


def cmd_templates_list(args: argparse.Namespace) -> int:
    templates = load_templates(get_config().template_dir)
    if args.json:
        _print_json([asdict(template) for template in templates])
        return 0
    if not templates:
        print("No templates.")
        return 0
    for template in templates:
        deadline = ""
        if template.purpose == PURPOSE_REQUIRED:
            deadline = f", deadline +{template.default_deadline_offset_hours}h"
        print(
            f"{template.name}: {template.purpose}, "
            f"{template.notification_policy}{deadline}"
        )
    return 0


def cmd_templates_save(args: argparse.Namespace) -> int:
    template = Template(
        name=args.name,
        purpose=normalize_purpose(args.purpose),
        notification_policy=normalize_notification_policy(args.notification_policy),
        override_service_window=args.override_service_window,
        reboot_outside_service_window=args.reboot_outside_service_window,
        allow_metered_connection=args.allow_metered,
        default_deadline_offset_hours=args.deadline_offset_hours or 0,
    )
    uri = save_template(get_config().template_dir, template)
    print(f"Saved template {template.name} to {uri}")
    return 0


def _uvicorn_cmd(target: str, host: str, port: int, log_level: str) -> list[str]:
    return [
        "uvicorn",
        target,
        "--host",
        host,
        "--port",
        str(port),
        "--log-level",
        log_level,
    ]


def cmd_serve(args: argparse.Namespace) -> int:
    command = _uvicorn_cmd(
        "local_adapter.deployment_service:app",
        args.host,
        args.port,
        args.log_level,
    )
    if args.dry_run:
        print(" ".join(command))
        return 0
    return subprocess.call(command)


def cmd_doctor(args: argparse.Namespace) -> int:
    config = get_config()
    checks: list[tuple[str, bool, str]] = []

    def check_local_path(name: str, uri: str, *, parent: bool = False) -> None:
        if not is_local_uri(uri):
            checks.append((name, True, uri))
            return
        path = Path(uri)
        target = path.parent if parent else path
        checks.append((name, target.exists(), uri))

    check_local_path("DEPLOYGUARD_AUDIT_LOG", config.audit_log_uri, parent=True)
    check_local_path("DEPLOYGUARD_TEMPLATE_DIR", config.template_dir)
    if config.management_backend == "json":
        check_local_path("DEPLOYGUARD_INVENTORY", config.inventory_uri)
    checks.append(("DEPLOYGUARD_ACTOR", config.actor != "unknown", config.actor))

    ok = True
    for name, passed, info in checks:
        status = "ok" if passed else "missing"
        if not passed:
            ok = False
        print(f"{name}: {status} ({info})")
    return 0 if ok else 1


def _add_target_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--deployable", required=True, help="Application or update group name"
    )
    parser.add_argument(
        "--kind", choices=DEPLOYABLE_KIND_CHOICES, default="application"
    )
    parser.add_argument("--collection", required=True)


def _add_behaviour_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--notification-policy", choices=list(NOTIFICATION_POLICIES))
    parser.add_argument("--override-service-window", action="store_true")
    parser.add_argument("--reboot-outside-service-window", action="store_true")
    parser.add_argument("--allow-metered", action="store_true")
    parser.add_argument("--deadline-offset-hours", type=int)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deployguard")
    subparsers = parser.add_subparsers(dest="command")

    validate_parser = subparsers.add_parser(
        "validate", help="Run the safety checks for a deployment"
    )
    _add_target_args(validate_parser)
    validate_parser.add_argument("--json", action="store_true")
    validate_parser.set_defaults(func=cmd_validate)

    deploy_parser = subparsers.add_parser("deploy", help="Validate and deploy")
    _add_target_args(deploy_parser)
    _add_behaviour_args(deploy_parser)
    deploy_parser.add_argument("--purpose", choices=list(PURPOSES))
    deploy_parser.add_argument("--available-at")
    deploy_parser.add_argument("--deadline-at")
    deploy_parser.add_argument("--template")
    deploy_parser.add_argument("--comment")
    deploy_parser.add_argument("--change-ticket")
    deploy_parser.add_argument("--yes", action="store_true", help="Skip confirmation")
    deploy_parser.add_argument(
        "--dry-run", action="store_true", help="Stop after the safety checks"
    )
    deploy_parser.set_defaults(func=cmd_deploy)

    history_parser = subparsers.add_parser("history", help="Show deployment history")
    history_parser.add_argument("--deployable")
    history_parser.add_argument("--collection")
    history_parser.add_argument("--actor")
    history_parser.add_argument("--failures-only", action="store_true")
    history_parser.add_argument("--since")
    history_parser.add_argument("--limit", type=int)
    history_parser.add_argument("--json", action="store_true")
    history_parser.set_defaults(func=cmd_history)

    templates_parser = subparsers.add_parser("templates", help="Deployment templates")
    template_commands = templates_parser.add_subparsers(dest="templates_command")
    list_parser = template_commands.add_parser("list", help="List templates")
    list_parser.add_argument("--json", action="store_true")
    list_parser.set_defaults(func=cmd_templates_list)
    save_parser = template_commands.add_parser("save", help="Save a template")
    save_parser.add_argument("--name", required=True)
    save_parser.add_argument("--purpose", choices=list(PURPOSES), required=True)
    _add_behaviour_args(save_parser)
    save_parser.set_defaults(func=cmd_templates_save)

    serve_parser = subparsers.add_parser("serve", help="Run the deployment service")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8090)
    serve_parser.add_argument("--log-level", default="info")
    serve_parser.add_argument(
        "--dry-run", action="store_true", help="Print command only"
    )
    serve_parser.set_defaults(func=cmd_serve)

    doctor_parser = subparsers.add_parser("doctor", help="Check local prerequisites")
    doctor_parser.set_defaults(func=cmd_doctor)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 2
    configure_logging(
        service=SERVICE_NAME,
        env=os.getenv("ENV", "local"),
        version=os.getenv("DEPLOYGUARD_VERSION"),
    )
    try:
        return args.func(args)
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
