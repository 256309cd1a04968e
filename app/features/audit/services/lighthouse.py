import json
import logging
import subprocess
from typing import Any, Dict, List, Optional, Sequence

from app.features.audit.schemas.audit import (
    LighthouseResult,
    MetricResult,
    PerformanceReport,
    SeoAuditItem,
    SeoReport,
)
from app.features.audit.utils.explanations import PERFORMANCE_METRICS
from app.platform.config import settings
from app.platform.exceptions import SubAuditFailure

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = ("performance", "seo")


class LighthouseAnalyzer:
    """
    Runs the Lighthouse CLI against an already running Chrome (via its
    remote debugging port) and turns the JSON report into performance and
    SEO sections.
    """

    def __init__(self, lighthouse_bin: Optional[str] = None, timeout: Optional[int] = None):
        self.lighthouse_bin = lighthouse_bin or settings.LIGHTHOUSE_BIN
        self.timeout = timeout or settings.LIGHTHOUSE_TIMEOUT

    def build_command(self, url: str, port: int, categories: Sequence[str]) -> List[str]:
        return [
            self.lighthouse_bin,
            url,
            f"--port={port}",
            "--output=json",
            "--output-path=stdout",
            "--quiet",
            f"--only-categories={','.join(categories)}",
        ]

    def run(self, url: str, port: int, categories: Sequence[str] = DEFAULT_CATEGORIES) -> LighthouseResult:
        cmd = self.build_command(url, port, categories)
        logger.info(f"Running Lighthouse for {url} on port {port}")

        try:
            completed = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
                check=True,
            )
        except FileNotFoundError as e:
            raise SubAuditFailure(f"Lighthouse binary not found: {self.lighthouse_bin}") from e
        except subprocess.TimeoutExpired as e:
            raise SubAuditFailure(f"Lighthouse timed out after {self.timeout}s") from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()[-500:]
            raise SubAuditFailure(f"Lighthouse exited with code {e.returncode}: {stderr}") from e

        try:
            lhr = json.loads(completed.stdout)
        except json.JSONDecodeError as e:
            raise SubAuditFailure(f"Lighthouse returned invalid JSON: {str(e)}") from e

        return self.parse_report(lhr)

    @staticmethod
    def parse_report(lhr: Dict[str, Any]) -> LighthouseResult:
        runtime_error = lhr.get("runtimeError")
        if runtime_error:
            raise SubAuditFailure(
                f"Lighthouse runtime error {runtime_error.get('code')}: {runtime_error.get('message', '')}"
            )

        categories = lhr.get("categories") or {}
        audits = lhr.get("audits") or {}

        performance = PerformanceReport(
            performance_score=LighthouseAnalyzer._category_score(categories, "performance"),
            audits={
                key: MetricResult(value=LighthouseAnalyzer._pick(audits, audit_id), explanation=explanation)
                for audit_id, (key, explanation) in PERFORMANCE_METRICS.items()
            },
        )

        seo = SeoReport(
            seo_score=LighthouseAnalyzer._category_score(categories, "seo"),
            failed_audits=LighthouseAnalyzer._failed_audits(categories.get("seo") or {}, audits),
        )

        return LighthouseResult(performance=performance, seo=seo)

    @staticmethod
    def _category_score(categories: Dict[str, Any], name: str) -> int:
        score = (categories.get(name) or {}).get("score")
        if not isinstance(score, (int, float)):
            raise SubAuditFailure(f"Lighthouse report has no {name} score")
        return round(score * 100)

    @staticmethod
    def _pick(audits: Dict[str, Any], audit_id: str):
        """Display value when Lighthouse provides one, otherwise the raw score."""
        audit = audits.get(audit_id)
        if not audit:
            return None
        return audit.get("displayValue") or audit.get("score")

    @staticmethod
    def _failed_audits(category: Dict[str, Any], audits: Dict[str, Any]) -> List[SeoAuditItem]:
        failed = []
        for ref in category.get("auditRefs", []):
            audit = audits.get(ref.get("id"), {})
            score = audit.get("score")
            # score None = not applicable / informative
            if score is None or score >= 1:
                continue
            failed.append(
                SeoAuditItem(
                    id=ref["id"],
                    title=audit.get("title", ref["id"]),
                    description=audit.get("description", ""),
                )
            )
        return failed
