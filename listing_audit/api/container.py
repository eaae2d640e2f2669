"""
Lazily created, process-wide service handles.

Each handle is built once behind an asyncio.Lock and cached. A handle whose
backing service is not configured raises ConfigurationError, which the API
answers with 503.
"""

import asyncio
from typing import Optional

from listing_audit.config.settings import Settings, get_settings
from listing_audit.pipeline.orchestrator import LeadPipeline
from listing_audit.services.auth_service import AccountService, SessionVerifier
from listing_audit.services.report_store import InMemoryReportStore, ReportStore
from listing_audit.utils.errors import ConfigurationError
from listing_audit.utils.logger import get_logger
from listing_audit.utils.observability import PipelineObserver

logger = get_logger(__name__)


class ServiceContainer:
    """Holds the store, the pipeline and the account services for the app."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[ReportStore] = None,
        pipeline: Optional[LeadPipeline] = None,
        observer: Optional[PipelineObserver] = None,
    ):
        self.settings = settings or get_settings()
        self._store = store if store is not None else (pipeline.store if pipeline is not None else None)
        self._pipeline = pipeline
        self._observer = observer
        self._lock = asyncio.Lock()

    async def get_store(self) -> ReportStore:
        if self._store is not None:
            return self._store
        async with self._lock:
            if self._store is None:
                if self.settings.store_backend == "disabled":
                    raise ConfigurationError("Storage is not configured", code="STORE_UNAVAILABLE")
                self._store = InMemoryReportStore()
                logger.info("Report store created", backend=self._store.name)
        return self._store

    async def get_pipeline(self) -> LeadPipeline:
        if self._pipeline is not None:
            return self._pipeline
        store = None
        if self.settings.store_backend != "disabled":
            store = await self.get_store()
        async with self._lock:
            if self._pipeline is None:
                self._pipeline = LeadPipeline(settings=self.settings, store=store, observer=self._observer)
                logger.info("Pipeline created")
        return self._pipeline

    async def get_account_service(self) -> AccountService:
        return AccountService(await self.get_store(), self.settings)

    async def get_session_verifier(self) -> SessionVerifier:
        return SessionVerifier(await self.get_store(), self.settings)

    async def close(self) -> None:
        if self._pipeline is not None:
            await self._pipeline.close()
            self._pipeline = None


__all__ = ["ServiceContainer"]
