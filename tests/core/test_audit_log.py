from __future__ import annotations

import json
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from deployguard_core.audit import (
    AuditLogStore,
    AuditRecord,
    build_audit_record,
    read_audit_log,
)
from deployguard_core.audit.logs import parse_record, serialize_record
from deployguard_core.errors import LogWriteFailedError
from deployguard_core.execution import (
    PURPOSE_AVAILABLE,
    PURPOSE_REQUIRED,
    DeploymentConfig,
    DeploymentOutcome,
)
from deployguard_core.preview import build_preview
from deployguard_core.targets.types import Application, Collection

NOW = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


def _record(**overrides) -> AuditRecord:
    values = {
        "timestamp": NOW.isoformat(),
        "actor": "alice",
        "change_ticket": "CHG-42",
        "deployable_name": "App1",
        "deployable_version": "1.0",
        "collection_name": "Workstations",
        "collection_id": "XYZ00010",
        "member_count": 25,
        "purpose": "required",
        "deadline_at": (NOW + timedelta(hours=24)).isoformat(),
        "deployment_id": "16777220",
        "result": "Success",
        "comment": "rollout wave 1",
        "deployable_kind": "application",
    }
    values.update(overrides)
    return AuditRecord(**values)


@pytest.mark.core
def test_audit_log_round_trip(tmp_path):
    uri = (tmp_path / "audit" / "deployments.jsonl").as_posix()
    store = AuditLogStore(uri)
    first = _record()
    second = _record(
        change_ticket="",
        comment="",
        deadline_at="",
        deployment_id="",
        member_count=0,
        result="Failed: Access denied",
        purpose="available",
    )
    assert store.append(first) == uri
    store.append(second)

    records = read_audit_log(uri)
    assert records == [first, second]
    assert store.read_all() == records
    assert read_audit_log(uri) == records
    assert not records[1].succeeded


def test_audit_log_is_append_only(tmp_path):
    path = tmp_path / "deployments.jsonl"
    store = AuditLogStore(path.as_posix())
    store.append(_record(deployment_id="1"))
    before = path.read_bytes()
    store.append(_record(deployment_id="2"))
    after = path.read_bytes()
    assert after.startswith(before)
    assert len(after.splitlines()) == 2


def test_audit_log_preserves_unicode(tmp_path):
    path = tmp_path / "deployments.jsonl"
    store = AuditLogStore(path.as_posix())
    record = _record(comment="Déploiement \"urgent\", vague 2")
    store.append(record)
    assert "Déploiement" in path.read_text(encoding="utf-8")
    assert read_audit_log(path.as_posix()) == [record]


def test_missing_audit_log_reads_empty(tmp_path):
    assert read_audit_log((tmp_path / "nope.jsonl").as_posix()) == []


@pytest.mark.core
def test_corrupted_line_is_skipped(tmp_path, caplog):
    path = tmp_path / "deployments.jsonl"
    good = _record()
    path.write_text(
        "\n".join(
            [
                serialize_record(good),
                "{not json",
                "[1, 2]",
                "",
                serialize_record(_record(deployment_id="2")),
            ]
        )
        + "\n",
        encoding="utf-8",
    )
    records = read_audit_log(path.as_posix())
    assert [record.deployment_id for record in records] == ["16777220", "2"]
    assert "Skipping unreadable audit record" in caplog.text


def test_parse_record_tolerates_missing_and_unknown_fields():
    record = parse_record(
        json.dumps({"actor": "bob", "member_count": "7", "extra": "ignored"})
    )
    assert record.actor == "bob"
    assert record.member_count == 7
    assert record.deployable_name == ""


@pytest.mark.core
def test_write_failure_raises_log_write_failed(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    store = AuditLogStore((blocker / "deployments.jsonl").as_posix())
    with pytest.raises(LogWriteFailedError):
        store.append(_record())


@pytest.mark.parametrize(
    "uri_name,comment",
    [
        ("deployments.jsonl", "bad \udcff byte"),
        ("nosuchproto://audit/deployments.jsonl", ""),
    ],
)
def test_unwritable_append_raises_log_write_failed(tmp_path, uri_name, comment):
    uri = uri_name if "://" in uri_name else (tmp_path / uri_name).as_posix()
    store = AuditLogStore(uri)
    with pytest.raises(LogWriteFailedError):
        store.append(_record(comment=comment))
    assert not (tmp_path / "deployments.jsonl").exists()


def test_concurrent_appends_do_not_interleave(tmp_path):
    path = tmp_path / "deployments.jsonl"
    store = AuditLogStore(path.as_posix())

    def writer(prefix: str) -> None:
        for index in range(20):
            store.append(_record(deployment_id=f"{prefix}-{index}"))

    threads = [
        threading.Thread(target=writer, args=(name,)) for name in ("a", "b", "c")
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    records = read_audit_log(path.as_posix())
    assert len(records) == 60
    assert Path(f"{path}.lock").exists()


def test_build_audit_record_from_outcome():
    preview = build_preview(
        Application("App1", "1.0", "PKG00001"),
        Collection("Workstations", "XYZ00010", "device", 25),
    )
    required = DeploymentConfig(
        purpose=PURPOSE_REQUIRED,
        available_at=NOW,
        deadline_at=NOW + timedelta(hours=4),
        comment="wave 1",
    )
    record = build_audit_record(
        preview,
        required,
        DeploymentOutcome(success=True, deployment_id="16777220"),
        actor="alice",
        change_ticket="CHG-1",
        timestamp=NOW,
    )
    assert record.timestamp == NOW.isoformat()
    assert record.deadline_at == (NOW + timedelta(hours=4)).isoformat()
    assert record.result == "Success"
    assert record.member_count == 25

    available = DeploymentConfig(
        purpose=PURPOSE_AVAILABLE,
        available_at=NOW,
        deadline_at=NOW + timedelta(hours=4),
    )
    record = build_audit_record(
        preview,
        available,
        DeploymentOutcome(success=False, error_detail="Access denied"),
        actor="alice",
        timestamp=NOW,
    )
    assert record.deadline_at == ""
    assert record.deployment_id == ""
    assert record.result == "Failed: Access denied"
