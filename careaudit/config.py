"""
Deployment configuration from CAREAUDIT_* environment variables.

Environment Variables:
    CAREAUDIT_STORE: file | s3 | memory - default: file
    CAREAUDIT_LOG_PATH: JSONL path for the file store - default: /var/log/careaudit/audit.jsonl
    CAREAUDIT_S3_BUCKET / _S3_PREFIX / _S3_ENDPOINT / _S3_REGION: S3 store location
    CAREAUDIT_S3_USE_HEAD: keep a head hint object for O(1) tip lookups - default: true
    CAREAUDIT_HASH_ALGORITHM: hashlib digest for the chain - default: sha256
    CAREAUDIT_APPEND_RETRIES: attempts per append on tip conflicts - default: 3
    CAREAUDIT_REDACT_KEYS: extra sensitive detail keys (comma separated)
    CAREAUDIT_LOG_LEVEL / CAREAUDIT_LOG_FORMAT: see logging_config
    CAREAUDIT_METRICS_ENABLED / CAREAUDIT_METRICS_PORT: see metrics
    CAREAUDIT_CHECKPOINT_DIR: directory for signed checkpoints
    CAREAUDIT_KEY_PATH: Ed25519 private key path
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from .log.file_store import FileAuditStore
from .log.integrity import DEFAULT_HASH_ALGORITHM, check_algorithm
from .log.memory_store import MemoryAuditStore
from .log.store import AuditStore

STORE_TYPES = ("file", "s3", "memory")
LOG_FORMATS = ("json", "text")

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def _parse_int(name: str, value: str, minimum: int) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None
    if parsed < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {parsed}")
    return parsed


@dataclass
class Settings:
    store: str = "file"
    log_path: str = "/var/log/careaudit/audit.jsonl"
    s3_bucket: str = "careaudit"
    s3_prefix: str = "audit"
    s3_endpoint: Optional[str] = None
    s3_region: str = "us-east-1"
    s3_use_head: bool = True
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    append_retries: int = 3
    redact_keys: Tuple[str, ...] = field(default_factory=tuple)
    log_level: str = "INFO"
    log_format: str = "json"
    metrics_enabled: bool = False
    metrics_port: int = 9464
    checkpoint_dir: str = "checkpoints"
    key_path: Optional[str] = None

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from the environment (or the given mapping).

        Raises:
            ValueError: If any value is invalid
        """
        env = os.environ if env is None else env

        def get(name: str, default: Optional[str] = None) -> Optional[str]:
            return env.get(f"CAREAUDIT_{name}", default)

        store = get("STORE", "file").strip().lower()
        if store not in STORE_TYPES:
            raise ValueError(f"CAREAUDIT_STORE must be one of {STORE_TYPES}, got {store!r}")

        hash_algorithm = check_algorithm(get("HASH_ALGORITHM", DEFAULT_HASH_ALGORITHM))

        log_format = get("LOG_FORMAT", "json").strip().lower()
        if log_format not in LOG_FORMATS:
            raise ValueError(f"CAREAUDIT_LOG_FORMAT must be one of {LOG_FORMATS}, got {log_format!r}")

        redact_keys = tuple(k.strip() for k in get("REDACT_KEYS", "").split(",") if k.strip())

        return Settings(
            store=store,
            log_path=get("LOG_PATH", "/var/log/careaudit/audit.jsonl"),
            s3_bucket=get("S3_BUCKET", "careaudit"),
            s3_prefix=get("S3_PREFIX", "audit"),
            s3_endpoint=get("S3_ENDPOINT") or None,  # For MinIO
            s3_region=get("S3_REGION", "us-east-1"),
            s3_use_head=_parse_bool("CAREAUDIT_S3_USE_HEAD", get("S3_USE_HEAD", "true")),
            hash_algorithm=hash_algorithm,
            append_retries=_parse_int("CAREAUDIT_APPEND_RETRIES", get("APPEND_RETRIES", "3"), 1),
            redact_keys=redact_keys,
            log_level=get("LOG_LEVEL", "INFO").strip().upper(),
            log_format=log_format,
            metrics_enabled=_parse_bool("CAREAUDIT_METRICS_ENABLED", get("METRICS_ENABLED", "false")),
            metrics_port=_parse_int("CAREAUDIT_METRICS_PORT", get("METRICS_PORT", "9464"), 1),
            checkpoint_dir=get("CHECKPOINT_DIR", "checkpoints"),
            key_path=get("KEY_PATH") or None,
        )


def build_store(settings: Settings) -> AuditStore:
    """Instantiate the configured storage backend."""
    if settings.store == "s3":
        from .log.s3_store import S3AuditStore

        return S3AuditStore(
            bucket=settings.s3_bucket,
            prefix=settings.s3_prefix,
            endpoint_url=settings.s3_endpoint,
            region=settings.s3_region,
            use_head=settings.s3_use_head,
        )
    if settings.store == "memory":
        return MemoryAuditStore()
    return FileAuditStore(settings.log_path)
