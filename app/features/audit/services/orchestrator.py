import logging
import uuid
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from functools import partial
from typing import Optional

from app.features.audit.schemas.audit import AuditStartOut, ScanRecord
from app.features.audit.services.accessibility import AccessibilityAuditor
from app.features.audit.services.browser import BrowserSessionManager
from app.features.audit.services.enrichment import EnrichmentService
from app.features.audit.services.lighthouse import LighthouseAnalyzer
from app.features.audit.services.runner import AuditRunner
from app.features.audit.services.security import SecurityProber
from app.features.audit.services.store import ScanStore, build_scan_store
from app.features.audit.services.suggestions import SuggestionGenerator
from app.platform.config import settings
from app.platform.exceptions import ValidationError
from app.platform.utils.url_validator import validate_url

logger = logging.getLogger(__name__)


def _log_job_outcome(scan_id: str, future: Future) -> None:
    """Done-callback for background jobs: nothing the runner raises is dropped silently."""
    if future.cancelled():
        logger.warning(f"Background audit for scan {scan_id} was cancelled")
        return
    exc = future.exception()
    if exc is not None:
        logger.error(f"Unhandled error in background audit for scan {scan_id}: {exc}", exc_info=exc)


class AuditOrchestrator:
    """
    Public entry point of the audit engine.

    submit() probes security inline, stores a running record and hands the
    rest of the audit to the worker pool without waiting for it. fetch()
    returns the record, enriching it with suggestions on the first read
    after completion.
    """

    def __init__(
        self,
        store: ScanStore,
        prober: SecurityProber,
        runner: AuditRunner,
        enrichment: EnrichmentService,
        executor: Optional[Executor] = None,
    ):
        self.store = store
        self.prober = prober
        self.runner = runner
        self.enrichment = enrichment
        self.executor = executor or ThreadPoolExecutor(
            max_workers=settings.AUDIT_MAX_WORKERS,
            thread_name_prefix="audit-job",
        )

    def submit(self, url: str) -> AuditStartOut:
        is_valid, normalized_url, error = validate_url(url or "")
        if not is_valid:
            logger.warning(f"Rejected audit request for {url!r}: {error}")
            raise ValidationError(error)

        scan_id = str(uuid.uuid4())
        security = self.prober.probe(normalized_url)

        record = ScanRecord(scan_id=scan_id, url=normalized_url, security=security)
        self.store.create(record)

        future = self.executor.submit(self.runner.run, scan_id, normalized_url)
        future.add_done_callback(partial(_log_job_outcome, scan_id))

        logger.info(f"Scan {scan_id} submitted for {normalized_url}")
        return AuditStartOut(scan_id=scan_id, initial=record)

    def fetch(self, scan_id: str) -> ScanRecord:
        record = self.store.get(scan_id)
        if not record.needs_enrichment:
            return record

        # only the claim holder calls the generator; other polls get the
        # completed record as-is and pick up suggestions on a later poll
        token = self.store.claim_enrichment(scan_id)
        if token is None:
            return record

        try:
            record = self.store.get(scan_id)
            if not record.needs_enrichment:
                return record

            logger.info(f"Enriching scan {scan_id} with AI suggestions")
            enriched = self.enrichment.enrich(record)

            # compare-and-set on ai_enhanced for the write itself
            with self.store.lock(scan_id):
                current = self.store.get(scan_id)
                if not current.needs_enrichment:
                    logger.warning(f"Scan {scan_id} was enriched concurrently; discarding duplicate")
                    return current
                self.store.put(scan_id, enriched)

            return enriched
        finally:
            self.store.release_enrichment(scan_id, token)

    def shutdown(self, wait: bool = False) -> None:
        self.executor.shutdown(wait=wait)


def build_orchestrator(store: Optional[ScanStore] = None) -> AuditOrchestrator:
    """Wire the production collaborators from settings."""
    store = store or build_scan_store(settings.REDIS_URL, settings.SCAN_LOCK_TIMEOUT)
    runner = AuditRunner(
        store=store,
        session_manager=BrowserSessionManager(),
        analyzer=LighthouseAnalyzer(),
        auditor=AccessibilityAuditor(),
    )
    return AuditOrchestrator(
        store=store,
        prober=SecurityProber(),
        runner=runner,
        enrichment=EnrichmentService(SuggestionGenerator()),
    )
