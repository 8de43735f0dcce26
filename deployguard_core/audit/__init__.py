from deployguard_core.audit.history import filter_history, latest_attempt
from deployguard_core.audit.logs import (
    AuditLogStore,
    AuditRecord,
    build_audit_record,
    read_audit_log,
)

__all__ = [
    "AuditLogStore",
    "AuditRecord",
    "build_audit_record",
    "filter_history",
    "latest_attempt",
    "read_audit_log",
]
