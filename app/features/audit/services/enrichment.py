import logging
from typing import Any

from app.features.audit.schemas.audit import ScanRecord
from app.features.audit.services.suggestions import SuggestionGenerator
from app.features.audit.utils.explanations import AI_SUGGESTION_FALLBACK

logger = logging.getLogger(__name__)

# (label sent to the generator, record field)
SECTIONS = (
    ("Security", "security"),
    ("Performance", "performance"),
    ("SEO", "seo"),
    ("Accessibility", "accessibility"),
)


class EnrichmentService:
    """
    Attaches generated advice to every populated section of a completed scan.

    enrich() is pure: it returns a new record with ai_enhanced=True and leaves
    persisting (and the at-most-once gate) to the caller. A failing section
    gets the fallback text; the others are still enriched.
    """

    def __init__(self, generator: SuggestionGenerator):
        self.generator = generator

    def enrich(self, record: ScanRecord) -> ScanRecord:
        updates = {}
        for label, field in SECTIONS:
            value = getattr(record, field)
            if value is None:
                continue

            suggestion = self._suggest(record.scan_id, label, self._findings(value))

            if field == "accessibility":
                # a JSON list cannot carry an extra key
                updates["accessibility_ai_suggestion"] = suggestion
            else:
                updates[field] = value.model_copy(update={"ai_suggestion": suggestion})

        updates["ai_enhanced"] = True
        return record.model_copy(update=updates)

    def _suggest(self, scan_id: str, label: str, findings: Any) -> str:
        try:
            return self.generator.generate(label, findings)
        except Exception as e:
            logger.error(f"{label} suggestion failed for scan {scan_id}: {str(e)}")
            return AI_SUGGESTION_FALLBACK

    @staticmethod
    def _findings(value: Any) -> Any:
        if isinstance(value, list):
            return [item.model_dump(mode="json", exclude_none=True) for item in value]
        return value.model_dump(mode="json", exclude_none=True, exclude={"ai_suggestion"})
