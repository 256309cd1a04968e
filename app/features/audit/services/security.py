import logging
import re
from typing import Optional

import httpx

from app.features.audit.schemas.audit import SecurityReport
from app.features.audit.utils.explanations import HEADER_EXPLANATIONS, REQUIRED_SECURITY_HEADERS
from app.platform.config import settings

logger = logging.getLogger(__name__)

# Textual heuristic, not a DOM parse: any src/href pointing at plain http.
MIXED_CONTENT_RE = re.compile(r"""(?:src|href)=["']http://""", re.IGNORECASE)


class SecurityProber:
    """
    Fast HTTP security check run inside the submit request.

    Every step degrades its own field on network failure; probe() never raises.
    Worst case latency is two sequential fetches (headers, then body for
    mixed content), each bounded by SECURITY_FETCH_TIMEOUT.
    """

    def __init__(self, client: Optional[httpx.Client] = None, timeout: Optional[float] = None):
        self.client = client
        self.timeout = timeout if timeout is not None else settings.SECURITY_FETCH_TIMEOUT

    def probe(self, url: str) -> SecurityReport:
        is_https = url.lower().startswith("https://")
        try:
            headers = self._fetch_headers(url)
            detected = list(dict.fromkeys(name.lower() for name in headers.keys()))
            missing = [h for h in REQUIRED_SECURITY_HEADERS if h not in detected]

            mixed_content = self._has_mixed_content(url) if is_https else False

            report = SecurityReport(
                url=url,
                https=is_https,
                reachable=bool(headers),
                detected_headers=detected,
                missing_headers=missing,
                missing_headers_explanation={h: HEADER_EXPLANATIONS.get(h, "") for h in missing},
                mixed_content=mixed_content,
            )
            logger.info(
                f"Security probe for {url}: reachable={report.reachable}, "
                f"missing={len(missing)}, mixed_content={mixed_content}"
            )
            return report

        except Exception as e:
            logger.error(f"Security check failed for {url}: {str(e)}")
            return SecurityReport(url=url, https=is_https, error=f"Security check failed: {str(e)}")

    def _get(self, url: str) -> httpx.Response:
        if self.client is not None:
            return self.client.get(url, timeout=self.timeout, follow_redirects=True)
        with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
            return client.get(url)

    def _fetch_headers(self, url: str) -> httpx.Headers:
        try:
            return self._get(url).headers
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Header fetch failed for {url}: {str(e)}")
            return httpx.Headers()

    def _has_mixed_content(self, url: str) -> bool:
        try:
            body = self._get(url).text
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Body fetch failed for {url}: {str(e)}")
            return False
        return bool(MIXED_CONTENT_RE.search(body or ""))
