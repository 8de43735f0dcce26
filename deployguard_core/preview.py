from __future__ import annotations

from dataclasses import dataclass

from deployguard_core.targets.types import (
    KIND_APPLICATION,
    Application,
    Collection,
    Deployable,
)


@dataclass(frozen=True)
class DeploymentPreview:
    name: str
    version_label: str
    collection_name: str
    collection_id: str
    member_count: int
    deployable_kind: str


def version_label(deployable: Deployable) -> str:
    if isinstance(deployable, Application):
        return deployable.version
    label = f"{deployable.update_count} updates"
    if deployable.expired_update_count:
        label = f"{label}, {deployable.expired_update_count} expired"
    return label


def build_preview(deployable: Deployable, collection: Collection) -> DeploymentPreview:
    return DeploymentPreview(
        name=deployable.name,
        version_label=version_label(deployable),
        collection_name=collection.name,
        collection_id=collection.id,
        member_count=collection.member_count,
        deployable_kind=deployable.kind,
    )


def render_preview(preview: DeploymentPreview) -> str:
    if preview.deployable_kind == KIND_APPLICATION:
        noun, detail = "Application", "Version"
    else:
        noun, detail = "Update group", "Contents"
    lines = [
        f"{noun}: {preview.name}",
        f"{detail}: {preview.version_label or 'n/a'}",
        f"Collection: {preview.collection_name} ({preview.collection_id})",
        f"Devices: {preview.member_count}",
    ]
    return "\n".join(lines)
