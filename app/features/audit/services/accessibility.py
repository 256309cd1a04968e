import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from selenium.common.exceptions import WebDriverException

from app.features.audit.schemas.audit import AccessibilityViolation
from app.features.audit.services.browser import BrowserSession
from app.platform.config import settings
from app.platform.exceptions import SubAuditFailure

logger = logging.getLogger(__name__)

AXE_RUN_SCRIPT = """
var done = arguments[arguments.length - 1];
axe.run()
    .then(function (results) { done(results); })
    .catch(function (err) { done({error: String(err)}); });
"""


class AccessibilityAuditor:
    """
    Runs axe-core inside a fresh tab of the job's browser.

    The axe-core bundle is read from AXE_CORE_PATH when set, otherwise
    downloaded once from AXE_CORE_URL and cached for the process.
    """

    def __init__(
        self,
        axe_source: Optional[str] = None,
        axe_path: Optional[str] = None,
        axe_url: Optional[str] = None,
        script_timeout: Optional[int] = None,
    ):
        self._axe_source = axe_source
        self.axe_path = axe_path or settings.AXE_CORE_PATH
        self.axe_url = axe_url or settings.AXE_CORE_URL
        self.script_timeout = script_timeout or settings.PAGE_LOAD_TIMEOUT
        self._source_lock = threading.Lock()

    def axe_source(self) -> str:
        with self._source_lock:
            if self._axe_source is None:
                self._axe_source = self._load_axe_source()
            return self._axe_source

    def _load_axe_source(self) -> str:
        if self.axe_path:
            try:
                return Path(self.axe_path).read_text(encoding="utf-8")
            except OSError as e:
                raise SubAuditFailure(f"Cannot read axe-core from {self.axe_path}: {str(e)}") from e

        try:
            response = httpx.get(self.axe_url, timeout=30.0, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SubAuditFailure(f"Cannot download axe-core: {str(e)}") from e
        logger.info(f"Loaded axe-core from {self.axe_url}")
        return response.text

    def audit(self, session: BrowserSession, url: str) -> List[AccessibilityViolation]:
        source = self.axe_source()
        driver = session.driver

        original_window = driver.current_window_handle
        driver.switch_to.new_window("tab")
        try:
            driver.get(url)
            driver.set_script_timeout(self.script_timeout)
            driver.execute_script(source)
            results = driver.execute_async_script(AXE_RUN_SCRIPT)
        except WebDriverException as e:
            raise SubAuditFailure(f"axe-core run failed: {e.msg or str(e)}") from e
        finally:
            try:
                driver.close()
                driver.switch_to.window(original_window)
            except WebDriverException as e:
                logger.warning(f"Could not close accessibility tab: {str(e)}")

        if not isinstance(results, dict):
            raise SubAuditFailure("axe-core returned no results")
        if results.get("error"):
            raise SubAuditFailure(f"axe-core error: {results['error']}")

        violations = [self.map_violation(v) for v in results.get("violations", [])]
        logger.info(f"Accessibility audit for {url}: {len(violations)} violations")
        return violations

    @staticmethod
    def map_violation(violation: Dict[str, Any]) -> AccessibilityViolation:
        description = violation.get("description", "")
        help_text = violation.get("help", "")
        return AccessibilityViolation(
            id=violation.get("id", "unknown"),
            impact=violation.get("impact"),
            description=description,
            help=help_text,
            help_url=violation.get("helpUrl", ""),
            friendly_note=f"This affects accessibility: {description}. {help_text}",
        )
