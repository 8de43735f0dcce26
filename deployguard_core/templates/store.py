from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

import fsspec
import yaml

from deployguard_core.errors import ERROR_PARSE_SKIPPED, ValidationError
from deployguard_core.execution.config import (
    NOTIFICATION_POLICIES,
    NOTIFY_DISPLAY_ALL,
    PURPOSE_REQUIRED,
    PURPOSES,
    DeploymentConfig,
)
from deployguard_core.logging import get_logger
from deployguard_core.storage.paths import join_uri

logger = get_logger(__name__)

TEMPLATE_SUFFIXES = (".json", ".yaml", ".yml")


@dataclass(frozen=True)
class Template:
    name: str
    purpose: str
    notification_policy: str = NOTIFY_DISPLAY_ALL
    override_service_window: bool = False
    reboot_outside_service_window: bool = False
    allow_metered_connection: bool = False
    default_deadline_offset_hours: int = 0


def load_templates(directory: str) -> list[Template]:
    fs, path = fsspec.core.url_to_fs(directory)
    if not fs.exists(path) or not fs.isdir(path):
        return []
    entries = sorted(
        str(entry)
        for entry in fs.ls(path, detail=False)
        if str(entry).lower().endswith(TEMPLATE_SUFFIXES)
    )
    templates: list[Template] = []
    for entry in entries:
        try:
            with fs.open(entry, "rb") as handle:
                text = handle.read().decode("utf-8")
            templates.append(parse_template(text, suffix=_suffix(entry)))
        except (
            OSError,
            UnicodeDecodeError,
            ValueError,
            ValidationError,
            yaml.YAMLError,
        ) as exc:
            logger.warning(
                "Skipping malformed template",
                extra={
                    "template_path": entry,
                    "error_kind": ERROR_PARSE_SKIPPED,
                    "error_message": str(exc),
                },
            )
    return templates


def parse_template(text: str, *, suffix: str = ".json") -> Template:
    if suffix in {".yaml", ".yml"}:
        payload = yaml.safe_load(text)
    else:
        payload = json.loads(text)
    if not isinstance(payload, dict):
        raise ValueError("template must be a mapping")
    return template_from_dict(payload)


def template_from_dict(payload: dict[str, object]) -> Template:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ValidationError("template name is required")
    purpose = str(payload.get("purpose") or "").strip().lower()
    if purpose not in PURPOSES:
        raise ValidationError(f"template '{name}' has invalid purpose: {purpose}")
    policy = (
        str(payload.get("notification_policy") or NOTIFY_DISPLAY_ALL)
        .strip()
        .lower()
    )
    if policy not in NOTIFICATION_POLICIES:
        raise ValidationError(
            f"template '{name}' has invalid notification_policy: {policy}"
        )
    offset = _coerce_offset(payload.get("default_deadline_offset_hours"), name)
    return Template(
        name=name,
        purpose=purpose,
        notification_policy=policy,
        override_service_window=_coerce_bool(payload.get("override_service_window")),
        reboot_outside_service_window=_coerce_bool(
            payload.get("reboot_outside_service_window")
        ),
        allow_metered_connection=_coerce_bool(payload.get("allow_metered_connection")),
        default_deadline_offset_hours=offset,
    )


def save_template(directory: str, template: Template) -> str:
    template_from_dict(asdict(template))
    dest_uri = join_uri(directory, f"{template_slug(template.name)}.json")
    fs, path = fsspec.core.url_to_fs(dest_uri)
    dir_fs, dir_path = fsspec.core.url_to_fs(directory)
    dir_fs.makedirs(dir_path, exist_ok=True)
    with fs.open(path, "wb") as handle:
        handle.write(json.dumps(asdict(template), indent=2).encode("utf-8"))
    logger.info(
        "Template saved",
        extra={"template": template.name, "template_path": dest_uri},
    )
    return dest_uri


def find_template(templates: list[Template], name: str) -> Template | None:
    for template in templates:
        if template.name.lower() == name.strip().lower():
            return template
    return None


def config_from_template(
    template: Template,
    *,
    available_at: datetime,
    comment: str = "",
    deadline_at: datetime | None = None,
) -> DeploymentConfig:
    deadline = None
    if template.purpose == PURPOSE_REQUIRED:
        deadline = deadline_at or available_at + timedelta(
            hours=template.default_deadline_offset_hours
        )
    return DeploymentConfig(
        purpose=template.purpose,
        available_at=available_at,
        deadline_at=deadline,
        notification_policy=template.notification_policy,
        override_service_window=template.override_service_window,
        reboot_outside_service_window=template.reboot_outside_service_window,
        allow_metered_connection=template.allow_metered_connection,
        comment=comment,
    )


def template_slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.strip().lower()).strip("-")
    return slug or "template"


def _suffix(path: str) -> str:
    lowered = path.lower()
    for suffix in TEMPLATE_SUFFIXES:
        if lowered.endswith(suffix):
            return suffix
    return ""


def _coerce_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return bool(value)


def _coerce_offset(value: object, name: str) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValidationError(f"template '{name}' has invalid deadline offset")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(
            f"template '{name}' has fractional deadline offset: {value}"
        )
    try:
        offset = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"template '{name}' has invalid deadline offset: {value}"
        ) from exc
    if offset < 0:
        raise ValidationError(f"template '{name}' has negative deadline offset")
    return offset
