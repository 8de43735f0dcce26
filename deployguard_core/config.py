import os
from dataclasses import dataclass
from functools import lru_cache

from deployguard_core.storage.paths import join_uri

DEFAULT_DATA_ROOT = "./deployguard_data"
ALLOWED_MANAGEMENT_BACKENDS = ("json", "memory")


@dataclass(frozen=True)
class Config:
    env: str
    log_level: str
    site_code: str | None
    data_root: str
    audit_log_uri: str
    template_dir: str
    inventory_uri: str
    management_backend: str
    actor: str
    blocked_collection_ids: tuple[str, ...]
    require_change_ticket: bool
    audit_lock: bool

    @classmethod
    def from_env(cls) -> "Config":
        env = os.getenv("ENV", "local").strip() or "local"
        log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
        site_code = _optional(os.getenv("DEPLOYGUARD_SITE_CODE"))
        data_root = os.getenv("DEPLOYGUARD_DATA_ROOT", DEFAULT_DATA_ROOT).strip()
        if not data_root:
            data_root = DEFAULT_DATA_ROOT

        audit_log_uri = _optional(os.getenv("DEPLOYGUARD_AUDIT_LOG")) or join_uri(
            data_root, "audit", "deployments.jsonl"
        )
        template_dir = _optional(os.getenv("DEPLOYGUARD_TEMPLATE_DIR")) or join_uri(
            data_root, "templates"
        )
        inventory_uri = _optional(os.getenv("DEPLOYGUARD_INVENTORY")) or join_uri(
            data_root, "inventory.json"
        )

        management_backend = (
            os.getenv("DEPLOYGUARD_MANAGEMENT_BACKEND", "json").strip().lower()
        )
        if management_backend not in ALLOWED_MANAGEMENT_BACKENDS:
            allowed = ", ".join(ALLOWED_MANAGEMENT_BACKENDS)
            raise ValueError(
                f"DEPLOYGUARD_MANAGEMENT_BACKEND must be one of: {allowed}"
            )

        actor = (
            _optional(os.getenv("DEPLOYGUARD_ACTOR"))
            or _optional(os.getenv("USER"))
            or _optional(os.getenv("USERNAME"))
            or "unknown"
        )

        return cls(
            env=env,
            log_level=log_level,
            site_code=site_code,
            data_root=data_root,
            audit_log_uri=audit_log_uri,
            template_dir=template_dir,
            inventory_uri=inventory_uri,
            management_backend=management_backend,
            actor=actor,
            blocked_collection_ids=_parse_id_list(
                os.getenv("DEPLOYGUARD_BLOCKED_COLLECTIONS", "")
            ),
            require_change_ticket=_parse_bool(
                "DEPLOYGUARD_REQUIRE_CHANGE_TICKET",
                os.getenv("DEPLOYGUARD_REQUIRE_CHANGE_TICKET"),
                False,
            ),
            audit_lock=_parse_bool(
                "DEPLOYGUARD_AUDIT_LOCK",
                os.getenv("DEPLOYGUARD_AUDIT_LOCK"),
                True,
            ),
        )


def _optional(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def _parse_id_list(value: str) -> tuple[str, ...]:
    items: list[str] = []
    for raw in value.split(","):
        cleaned = raw.strip().upper()
        if cleaned and cleaned not in items:
            items.append(cleaned)
    return tuple(items)


def _parse_bool(name: str, value: str | None, default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "y", "on"}:
        return True
    if lowered in {"0", "false", "no", "n", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean")


@lru_cache(maxsize=1)
def get_config() -> Config:
    return Config.from_env()
