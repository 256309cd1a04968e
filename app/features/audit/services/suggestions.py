import json
import logging
import re
from typing import Any, Optional

from openai import OpenAI

from app.platform.config import settings
from app.platform.exceptions import EnrichmentFailure

logger = logging.getLogger(__name__)

BOLD_MARKUP_RE = re.compile(r"\*\*(.*?)\*\*")


def strip_bold_markup(text: str) -> str:
    """Remove **bold** artifacts the model adds despite being asked not to."""
    return BOLD_MARKUP_RE.sub(r"\1", text).strip()


class SuggestionGenerator:
    """
    Produces short remediation advice for one audit section.

    Gemini is called through its OpenAI-compatible endpoint. The client is
    created on first use so the app can start without an API key; a missing
    key then surfaces as a per-section enrichment failure.
    """

    def __init__(self, client: Optional[OpenAI] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.GEMINI_MODEL

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(
                api_key=settings.GOOGLE_GEMINI_API_KEY,
                base_url=settings.GEMINI_BASE_URL,
                timeout=settings.GEMINI_TIMEOUT,
                max_retries=settings.GEMINI_MAX_RETRIES,
            )
        return self._client

    @staticmethod
    def build_prompt(section: str, findings: Any) -> str:
        return f"""
    You are a senior web auditor.
    Section: {section}
    Issues detected: {json.dumps(findings, default=str)}

    Please give 2-3 clear, actionable, developer-friendly suggestions to fix these issues.
    Keep the language concise and practical.
    Do not use Markdown formatting like **bold**, just plain text.
    """

    def generate(self, section: str, findings: Any) -> str:
        completion = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": "You are a web auditing expert."},
                {"role": "user", "content": self.build_prompt(section, findings)},
            ],
        )

        text = completion.choices[0].message.content if completion.choices else None
        if not text or not text.strip():
            raise EnrichmentFailure(f"Empty suggestion returned for {section}")

        logger.info(f"Generated {section} suggestion ({len(text)} chars)")
        return strip_bold_markup(text)
