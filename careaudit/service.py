"""
Service wiring: one store, one hasher and one writer per process.
"""

import logging
from typing import Optional

from .config import Settings, build_store
from .log.integrity import ChainHasher
from .log.store import AuditStore
from .metrics import start_metrics_server
from .query import AuditLogReader
from .redaction import DEFAULT_SENSITIVE_KEYS, DetailsRedactor
from .verify.integrity import IntegrityVerifier
from .writer import AuditLogWriter

logger = logging.getLogger(__name__)


class AuditService:
    """
    Bundles the audit components over a shared store and hasher.

    Usage:
        service = AuditService.from_settings(Settings.from_env())
        await service.start()
        await service.writer.append("login_success", actor=Actor(1, "amy"))
    """

    def __init__(
        self,
        store: AuditStore,
        hash_algorithm: str = "sha256",
        redactor: Optional[DetailsRedactor] = None,
        max_retries: int = 3,
        clock=None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.hasher = ChainHasher(store, hash_algorithm)
        self.writer = AuditLogWriter(
            store,
            hasher=self.hasher,
            clock=clock,
            redactor=redactor,
            max_retries=max_retries,
        )
        self.reader = AuditLogReader(store)
        self.verifier = IntegrityVerifier(store, self.hasher)

    @classmethod
    def from_settings(cls, settings: Settings, store: Optional[AuditStore] = None, clock=None) -> "AuditService":
        redactor = DetailsRedactor(DEFAULT_SENSITIVE_KEYS | frozenset(settings.redact_keys))
        return cls(
            store if store is not None else build_store(settings),
            hash_algorithm=settings.hash_algorithm,
            redactor=redactor,
            max_retries=settings.append_retries,
            clock=clock,
            settings=settings,
        )

    async def start(self) -> str:
        """
        Start metrics and re-derive the chain tip from storage.

        Returns:
            Current chain tip
        """
        start_metrics_server(enabled=self.settings.metrics_enabled, port=self.settings.metrics_port)
        tip = await self.writer.initialize()
        logger.info(
            f"Audit service started (store={type(self.store).__name__}, "
            f"algorithm={self.hasher.algorithm})"
        )
        return tip
