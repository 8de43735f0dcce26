from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from deployguard_core.errors import (
    ERROR_DUPLICATE,
    ERROR_NOT_FOUND,
    ERROR_SERVICE_UNAVAILABLE,
    ERROR_UNSAFE,
    ERROR_WRONG_KIND,
    DuplicateDeploymentError,
    NotFoundError,
    UnsafeTargetError,
    WrongKindError,
)
from deployguard_core.logging import get_logger
from deployguard_core.providers.interfaces import ManagementService
from deployguard_core.targets.types import (
    KIND_UPDATE_GROUP,
    Application,
    Collection,
    Deployable,
    ExistingDeployment,
    Resolution,
)

logger = get_logger(__name__)

CHECK_PASS = "pass"
CHECK_FAIL = "fail"
CHECK_SKIPPED = "skipped"
CHECK_NOT_APPLICABLE = "not_applicable"

# Platform-reserved collections (All Systems, All Users, ...). Not configurable.
BUILTIN_COLLECTION_PATTERN = re.compile(r"^SMS000", re.IGNORECASE)

CHECK_DEPLOYABLE_EXISTS = "Deployable exists"
CHECK_CONTENT_DISTRIBUTED = "Content distributed"
CHECK_COLLECTION_VALID = "Collection valid"
CHECK_COLLECTION_SAFE = "Collection safe"
CHECK_NO_DUPLICATE = "No duplicate deployment"

_REFUSAL_ERRORS: dict[str, type[UnsafeTargetError]] = {
    ERROR_NOT_FOUND: NotFoundError,
    ERROR_WRONG_KIND: WrongKindError,
    ERROR_DUPLICATE: DuplicateDeploymentError,
}


@dataclass(frozen=True)
class SafetyVerdict:
    is_safe: bool
    reason: str


@dataclass(frozen=True)
class CheckResult:
    number: int
    name: str
    status: str
    reason: str
    error_kind: str | None = None

    @property
    def passed(self) -> bool:
        return self.status in {CHECK_PASS, CHECK_NOT_APPLICABLE}


@dataclass(frozen=True)
class GateReport:
    deployable_name: str
    deployable_kind: str
    collection_name: str
    checks: tuple[CheckResult, ...]
    deployable: Deployable | None
    collection: Collection | None

    @property
    def passed(self) -> bool:
        return bool(self.checks) and all(check.passed for check in self.checks)

    def failures(self) -> tuple[CheckResult, ...]:
        return tuple(check for check in self.checks if not check.passed)

    def covers(self, deployable: Deployable, collection: Collection) -> bool:
        return self.deployable == deployable and self.collection == collection

    def refusal(self) -> UnsafeTargetError:
        """Exception for a caller that tries to execute past this report.

        The class follows the first failed check with a specific error kind
        (not found, wrong kind, duplicate) and is ``UnsafeTargetError``
        otherwise.
        """
        failures = self.failures()
        failed = ", ".join(check.name for check in failures) or "no checks run"
        message = f"Safety gate did not pass: {failed}"
        for check in failures:
            error_cls = _REFUSAL_ERRORS.get(check.error_kind or "")
            if error_cls is not None:
                return error_cls(message)
        return UnsafeTargetError(message)


def is_builtin_collection(collection_id: str | None) -> bool:
    if not collection_id:
        return False
    return BUILTIN_COLLECTION_PATTERN.match(collection_id.strip()) is not None


def check_collection_safe(
    collection: Collection,
    *,
    blocked_ids: Iterable[str] = (),
) -> SafetyVerdict:
    collection_id = collection.id.strip()
    if is_builtin_collection(collection_id):
        return SafetyVerdict(
            is_safe=False,
            reason=(
                f"Collection '{collection.name}' ({collection_id}) is a built-in "
                "system collection and can never be a deployment target"
            ),
        )
    blocked = {item.strip().upper() for item in blocked_ids if item.strip()}
    if collection_id.upper() in blocked:
        return SafetyVerdict(
            is_safe=False,
            reason=(
                f"Collection '{collection.name}' ({collection_id}) is on the "
                "blocked collection list"
            ),
        )
    return SafetyVerdict(
        is_safe=True,
        reason=f"Collection '{collection.name}' ({collection_id}) is not protected",
    )


def find_existing_deployments(
    service: ManagementService,
    deployable_name: str,
    collection_name: str,
) -> list[ExistingDeployment]:
    """Deployments of the named deployable already targeting the collection."""
    return list(service.find_deployments(deployable_name, collection_name))


def check_deployable_exists(resolution: Resolution) -> CheckResult:
    result = resolution.deployable
    if result.ok:
        return CheckResult(1, CHECK_DEPLOYABLE_EXISTS, CHECK_PASS, result.reason)
    return CheckResult(
        1,
        CHECK_DEPLOYABLE_EXISTS,
        CHECK_FAIL,
        result.reason,
        error_kind=result.error_kind or ERROR_NOT_FOUND,
    )


def check_content_distributed(
    service: ManagementService,
    resolution: Resolution,
) -> CheckResult:
    deployable = resolution.deployable.value
    if deployable is None:
        return CheckResult(
            2,
            CHECK_CONTENT_DISTRIBUTED,
            CHECK_SKIPPED,
            "Skipped: deployable was not resolved",
        )
    if deployable.kind == KIND_UPDATE_GROUP or not isinstance(deployable, Application):
        return CheckResult(
            2,
            CHECK_CONTENT_DISTRIBUTED,
            CHECK_NOT_APPLICABLE,
            "Not applicable to software update groups",
        )

    try:
        status = service.get_distribution_status(deployable.package_id)
    except Exception as exc:
        return CheckResult(
            2,
            CHECK_CONTENT_DISTRIBUTED,
            CHECK_FAIL,
            f"Distribution status query failed: {exc}",
            error_kind=ERROR_SERVICE_UNAVAILABLE,
        )
    if status is None:
        return CheckResult(
            2,
            CHECK_CONTENT_DISTRIBUTED,
            CHECK_FAIL,
            f"No distribution status for package {deployable.package_id or 'n/a'}; "
            "content has not been distributed",
            error_kind=ERROR_UNSAFE,
        )
    counts = (
        f"{status.success}/{status.targeted} distribution points succeeded, "
        f"{status.in_progress} in progress, {status.error} errors"
    )
    if status.is_fully_distributed:
        return CheckResult(
            2,
            CHECK_CONTENT_DISTRIBUTED,
            CHECK_PASS,
            f"Content fully distributed ({counts})",
        )
    return CheckResult(
        2,
        CHECK_CONTENT_DISTRIBUTED,
        CHECK_FAIL,
        f"Content not fully distributed ({counts})",
        error_kind=ERROR_UNSAFE,
    )


def check_collection_valid(resolution: Resolution) -> CheckResult:
    result = resolution.collection
    if result.ok:
        return CheckResult(3, CHECK_COLLECTION_VALID, CHECK_PASS, result.reason)
    return CheckResult(
        3,
        CHECK_COLLECTION_VALID,
        CHECK_FAIL,
        result.reason,
        error_kind=result.error_kind or ERROR_NOT_FOUND,
    )


def check_collection_not_builtin(
    resolution: Resolution,
    *,
    blocked_ids: Iterable[str] = (),
) -> CheckResult:
    collection = resolution.collection.value
    if collection is None:
        return CheckResult(
            4,
            CHECK_COLLECTION_SAFE,
            CHECK_SKIPPED,
            "Skipped: collection was not resolved",
        )
    verdict = check_collection_safe(collection, blocked_ids=blocked_ids)
    if verdict.is_safe:
        return CheckResult(4, CHECK_COLLECTION_SAFE, CHECK_PASS, verdict.reason)
    return CheckResult(
        4,
        CHECK_COLLECTION_SAFE,
        CHECK_FAIL,
        verdict.reason,
        error_kind=ERROR_UNSAFE,
    )


def check_no_duplicate(
    service: ManagementService,
    resolution: Resolution,
) -> CheckResult:
    deployable = resolution.deployable.value
    collection = resolution.collection.value
    if deployable is not None and deployable.kind == KIND_UPDATE_GROUP:
        return CheckResult(
            5,
            CHECK_NO_DUPLICATE,
            CHECK_NOT_APPLICABLE,
            "Not applicable to software update groups",
        )
    if deployable is None or collection is None:
        return CheckResult(
            5,
            CHECK_NO_DUPLICATE,
            CHECK_SKIPPED,
            "Skipped: deployable or collection was not resolved",
        )

    try:
        existing = find_existing_deployments(
            service, deployable.name, collection.name
        )
    except Exception as exc:
        return CheckResult(
            5,
            CHECK_NO_DUPLICATE,
            CHECK_FAIL,
            f"Existing deployment query failed: {exc}",
            error_kind=ERROR_SERVICE_UNAVAILABLE,
        )
    if existing:
        ids = ", ".join(item.deployment_id for item in existing if item.deployment_id)
        suffix = f" ({ids})" if ids else ""
        return CheckResult(
            5,
            CHECK_NO_DUPLICATE,
            CHECK_FAIL,
            f"'{deployable.name}' is already deployed to '{collection.name}'{suffix}",
            error_kind=ERROR_DUPLICATE,
        )
    return CheckResult(
        5,
        CHECK_NO_DUPLICATE,
        CHECK_PASS,
        f"No existing deployment of '{deployable.name}' to '{collection.name}'",
    )


def run_gate(
    service: ManagementService,
    resolution: Resolution,
    *,
    blocked_collection_ids: Iterable[str] = (),
) -> GateReport:
    blocked = tuple(blocked_collection_ids)
    checks = (
        check_deployable_exists(resolution),
        check_content_distributed(service, resolution),
        check_collection_valid(resolution),
        check_collection_not_builtin(resolution, blocked_ids=blocked),
        check_no_duplicate(service, resolution),
    )
    for check in checks:
        log = logger.info if check.passed else logger.warning
        log(
            f"Safety check {check.number}: {check.name}",
            extra={
                "check": check.name,
                "status": check.status,
                "reason": check.reason,
                "error_kind": check.error_kind,
                "deployable": resolution.deployable_name,
                "collection": resolution.collection_name,
            },
        )
    report = GateReport(
        deployable_name=resolution.deployable_name,
        deployable_kind=resolution.deployable_kind,
        collection_name=resolution.collection_name,
        checks=checks,
        deployable=resolution.deployable.value,
        collection=resolution.collection.value,
    )
    logger.info(
        "Safety gate evaluated",
        extra={
            "status": "pass" if report.passed else "fail",
            "deployable": resolution.deployable_name,
            "collection": resolution.collection_name,
        },
    )
    return report
