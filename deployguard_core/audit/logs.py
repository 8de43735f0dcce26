from __future__ import annotations

import json
import os
from contextlib import contextmanager
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import fsspec

from deployguard_core.errors import ERROR_PARSE_SKIPPED, LogWriteFailedError
from deployguard_core.execution.config import DeploymentConfig, DeploymentOutcome
from deployguard_core.logging import get_logger
from deployguard_core.preview import DeploymentPreview
from deployguard_core.storage.paths import is_local_uri, parent_path

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuditRecord:
    timestamp: str = ""
    actor: str = ""
    change_ticket: str = ""
    deployable_name: str = ""
    deployable_version: str = ""
    collection_name: str = ""
    collection_id: str = ""
    member_count: int = 0
    purpose: str = ""
    deadline_at: str = ""
    deployment_id: str = ""
    result: str = ""
    comment: str = ""
    deployable_kind: str = ""

    @property
    def succeeded(self) -> bool:
        return self.result == "Success"


_INT_FIELDS = {"member_count"}
_FIELD_NAMES = tuple(field.name for field in fields(AuditRecord))


def build_audit_record(
    preview: DeploymentPreview,
    config: DeploymentConfig,
    outcome: DeploymentOutcome,
    *,
    actor: str,
    change_ticket: str = "",
    timestamp: datetime | None = None,
) -> AuditRecord:
    deadline = config.effective_deadline
    return AuditRecord(
        timestamp=(timestamp or datetime.now(timezone.utc)).isoformat(),
        actor=actor,
        change_ticket=change_ticket,
        deployable_name=preview.name,
        deployable_version=preview.version_label,
        collection_name=preview.collection_name,
        collection_id=preview.collection_id,
        member_count=preview.member_count,
        purpose=config.purpose,
        deadline_at=deadline.isoformat() if deadline else "",
        deployment_id=outcome.deployment_id,
        result=outcome.result_text,
        comment=config.comment,
        deployable_kind=preview.deployable_kind,
    )


def serialize_record(record: AuditRecord) -> str:
    return json.dumps(asdict(record), ensure_ascii=False)


def parse_record(line: str) -> AuditRecord:
    payload = json.loads(line)
    if not isinstance(payload, dict):
        raise ValueError("audit line is not a JSON object")
    values: dict[str, object] = {}
    for name in _FIELD_NAMES:
        raw = payload.get(name)
        if name in _INT_FIELDS:
            values[name] = _coerce_int(raw)
        else:
            values[name] = "" if raw is None else str(raw)
    return AuditRecord(**values)  # type: ignore[arg-type]


class AuditLogStore:
    """Append-only JSON Lines log of deployment attempts.

    Records are only ever appended. On a local filesystem each append holds
    an exclusive lock on ``<log>.lock`` so concurrent writers never
    interleave partial lines.
    """

    def __init__(self, uri: str, *, lock: bool = True) -> None:
        self.uri = uri
        self.lock = lock

    def append(self, record: AuditRecord) -> str:
        try:
            line = (serialize_record(record) + "\n").encode("utf-8")
            fs, path = fsspec.core.url_to_fs(self.uri)
            parent = parent_path(path)
            if parent:
                fs.makedirs(parent, exist_ok=True)
            with self._locked(path):
                with fs.open(path, "ab") as handle:
                    handle.write(line)
        except (OSError, ValueError) as exc:
            logger.error(
                "Audit log write failed",
                extra={"audit_log_uri": self.uri, "error_message": str(exc)},
            )
            raise LogWriteFailedError(
                f"Failed to append audit record to {self.uri}: {exc}"
            ) from exc
        logger.info(
            "Audit record written",
            extra={
                "audit_log_uri": self.uri,
                "deployable": record.deployable_name,
                "collection": record.collection_name,
                "deployment_id": record.deployment_id or None,
                "status": record.result,
            },
        )
        return self.uri

    def read_all(self) -> list[AuditRecord]:
        return read_audit_log(self.uri)

    @contextmanager
    def _locked(self, path: str) -> Iterator[None]:
        if not self.lock or not is_local_uri(self.uri):
            yield
            return
        lock_path = Path(f"{path}.lock")
        lock_path.touch(exist_ok=True)
        lock_fd = os.open(str(lock_path), os.O_RDWR)
        try:
            _acquire(lock_fd)
            try:
                yield
            finally:
                _release(lock_fd)
        finally:
            os.close(lock_fd)


def read_audit_log(uri: str) -> list[AuditRecord]:
    fs, path = fsspec.core.url_to_fs(uri)
    if not fs.exists(path):
        return []
    with fs.open(path, "rb") as handle:
        raw = handle.read()

    records: list[AuditRecord] = []
    for line_number, raw_line in enumerate(raw.split(b"\n"), start=1):
        if not raw_line.strip():
            continue
        try:
            records.append(parse_record(raw_line.decode("utf-8")))
        except (UnicodeDecodeError, ValueError, TypeError) as exc:
            logger.warning(
                "Skipping unreadable audit record",
                extra={
                    "audit_log_uri": uri,
                    "line_number": line_number,
                    "error_kind": ERROR_PARSE_SKIPPED,
                    "error_message": str(exc),
                },
            )
    return records


def _acquire(fd: int) -> None:
    if os.name == "nt":
        import msvcrt

        msvcrt.locking(fd, msvcrt.LK_LOCK, 1)
    else:
        import fcntl

        fcntl.flock(fd, fcntl.LOCK_EX)


def _release(fd: int) -> None:
    if os.name == "nt":
        import msvcrt

        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
    else:
        import fcntl

        fcntl.flock(fd, fcntl.LOCK_UN)


def _coerce_int(value: object) -> int:
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
