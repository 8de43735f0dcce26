from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from deployguard_core.audit.logs import AuditRecord


def filter_history(
    records: Iterable[AuditRecord],
    *,
    deployable: str | None = None,
    collection: str | None = None,
    actor: str | None = None,
    failures_only: bool = False,
    since: datetime | None = None,
) -> list[AuditRecord]:
    results: list[AuditRecord] = []
    for record in records:
        if deployable and record.deployable_name.lower() != deployable.lower():
            continue
        if collection and not _matches_collection(record, collection):
            continue
        if actor and record.actor.lower() != actor.lower():
            continue
        if failures_only and record.succeeded:
            continue
        if since is not None:
            recorded_at = _parse_timestamp(record.timestamp)
            if recorded_at is None or recorded_at < _aware(since):
                continue
        results.append(record)
    return results


def latest_attempt(
    records: Iterable[AuditRecord],
    *,
    deployable: str,
    collection: str,
) -> AuditRecord | None:
    matches = filter_history(records, deployable=deployable, collection=collection)
    if not matches:
        return None
    return matches[-1]


def _matches_collection(record: AuditRecord, collection: str) -> bool:
    wanted = collection.lower()
    return wanted in {record.collection_name.lower(), record.collection_id.lower()}


def _parse_timestamp(value: str) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return _aware(parsed)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
