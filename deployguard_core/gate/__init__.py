from deployguard_core.gate.checks import (
    BUILTIN_COLLECTION_PATTERN,
    CHECK_FAIL,
    CHECK_NOT_APPLICABLE,
    CHECK_PASS,
    CHECK_SKIPPED,
    CheckResult,
    GateReport,
    SafetyVerdict,
    check_collection_safe,
    find_existing_deployments,
    is_builtin_collection,
    run_gate,
)

__all__ = [
    "BUILTIN_COLLECTION_PATTERN",
    "CHECK_FAIL",
    "CHECK_NOT_APPLICABLE",
    "CHECK_PASS",
    "CHECK_SKIPPED",
    "CheckResult",
    "GateReport",
    "SafetyVerdict",
    "check_collection_safe",
    "find_existing_deployments",
    "is_builtin_collection",
    "run_gate",
]
