import logging
from datetime import datetime
from typing import List, Tuple, Union

from app.features.audit.schemas.audit import (
    AccessibilityViolation,
    PerformanceReport,
    ScanStatus,
    SectionError,
    SeoReport,
)
from app.features.audit.services.accessibility import AccessibilityAuditor
from app.features.audit.services.browser import BrowserSession, BrowserSessionManager
from app.features.audit.services.lighthouse import LighthouseAnalyzer
from app.features.audit.services.store import ScanStore

logger = logging.getLogger(__name__)


class AuditRunner:
    """
    Background job for one scan: Lighthouse (performance + SEO) and axe-core
    (accessibility) against a single browser session, merged into the record
    in one write.

    Each sub-audit failure is recorded in its own section. Anything that
    escapes both (browser launch, store errors) marks the scan as error while
    keeping the sections already stored.
    """

    def __init__(
        self,
        store: ScanStore,
        session_manager: BrowserSessionManager,
        analyzer: LighthouseAnalyzer,
        auditor: AccessibilityAuditor,
    ):
        self.store = store
        self.session_manager = session_manager
        self.analyzer = analyzer
        self.auditor = auditor

    def run(self, scan_id: str, url: str) -> None:
        logger.info(f"Starting background audit for scan {scan_id} ({url})")
        try:
            with self.session_manager.session() as session:
                performance, seo = self._run_lighthouse(url, session)
                accessibility = self._run_accessibility(url, session)

            self._complete(scan_id, performance, seo, accessibility)
            logger.info(f"Scan {scan_id} completed")

        except Exception as e:
            logger.exception(f"Background audit failed for scan {scan_id}: {str(e)}")
            self._fail(scan_id, str(e) or e.__class__.__name__)

    def _run_lighthouse(
        self, url: str, session: BrowserSession
    ) -> Tuple[Union[PerformanceReport, SectionError], Union[SeoReport, SectionError]]:
        try:
            result = self.analyzer.run(url, session.port)
            return result.performance, result.seo
        except Exception as e:
            logger.error(f"Lighthouse scan failed for {url}: {str(e)}")
            placeholder = SectionError(error="Lighthouse scan failed", details=str(e))
            return placeholder, placeholder.model_copy()

    def _run_accessibility(
        self, url: str, session: BrowserSession
    ) -> List[Union[AccessibilityViolation, SectionError]]:
        try:
            return self.auditor.audit(session, url)
        except Exception as e:
            logger.error(f"Accessibility scan failed for {url}: {str(e)}")
            return [SectionError(error="Accessibility scan failed", details=str(e))]

    def _complete(self, scan_id: str, performance, seo, accessibility) -> None:
        with self.store.lock(scan_id):
            record = self.store.get(scan_id)
            if record.is_terminal:
                logger.warning(f"Scan {scan_id} already {record.status.value}; dropping results")
                return
            self.store.put(
                scan_id,
                record.model_copy(
                    update={
                        "status": ScanStatus.completed,
                        "performance": performance,
                        "seo": seo,
                        "accessibility": accessibility,
                        "completed_at": datetime.utcnow(),
                    }
                ),
            )

    def _fail(self, scan_id: str, message: str) -> None:
        with self.store.lock(scan_id):
            record = self.store.get(scan_id)
            if record.is_terminal:
                logger.warning(f"Scan {scan_id} already {record.status.value}; not marking as error")
                return
            self.store.put(
                scan_id,
                record.model_copy(
                    update={
                        "status": ScanStatus.error,
                        "error": message,
                        "completed_at": datetime.utcnow(),
                    }
                ),
            )
