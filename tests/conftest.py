"""
Test configuration and fixtures for the Site Audit Engine API.

External collaborators (browser, Lighthouse, axe-core, HTTP probe, LLM) are
replaced with fakes so the orchestration logic runs without network access.
"""

from concurrent.futures import Executor, Future
from contextlib import contextmanager
from typing import Generator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app.features.audit.schemas.audit import (
    AccessibilityViolation,
    LighthouseResult,
    MetricResult,
    PerformanceReport,
    ScanRecord,
    ScanStatus,
    SecurityReport,
    SeoReport,
)
from app.features.audit.services.enrichment import EnrichmentService
from app.features.audit.services.orchestrator import AuditOrchestrator
from app.features.audit.services.runner import AuditRunner
from app.features.audit.services.store import InMemoryScanStore


class ImmediateExecutor(Executor):
    """Runs submitted jobs inline so background audits finish before submit returns."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class FakeSession:
    def __init__(self, port: int = 9222):
        self.port = port
        self.driver = MagicMock()


class FakeSessionManager:
    def __init__(self, fail_with: Exception = None):
        self.fail_with = fail_with
        self.acquired = 0
        self.released = 0

    @contextmanager
    def session(self):
        if self.fail_with is not None:
            raise self.fail_with
        self.acquired += 1
        try:
            yield FakeSession()
        finally:
            self.released += 1


def make_security_report(url: str = "https://example.com") -> SecurityReport:
    return SecurityReport(
        url=url,
        https=url.startswith("https://"),
        reachable=True,
        detected_headers=["content-type"],
        missing_headers=["strict-transport-security"],
        missing_headers_explanation={"strict-transport-security": "Forces HTTPS."},
    )


def make_lighthouse_result() -> LighthouseResult:
    return LighthouseResult(
        performance=PerformanceReport(
            performance_score=87,
            audits={"first_contentful_paint": MetricResult(value="1.2 s", explanation="First paint.")},
        ),
        seo=SeoReport(seo_score=92),
    )


def make_violation() -> AccessibilityViolation:
    return AccessibilityViolation(
        id="image-alt",
        impact="critical",
        description="Ensures <img> elements have alternate text",
        help="Images must have alternate text",
        help_url="https://dequeuniversity.com/rules/axe/4.10/image-alt",
        friendly_note="This affects accessibility: Ensures <img> elements have alternate text. Images must have alternate text",
    )


@pytest.fixture
def completed_record():
    """Factory for a completed, not yet enriched scan record."""

    def factory(**overrides):
        lighthouse = make_lighthouse_result()
        data = dict(
            scan_id="scan-1",
            url="https://example.com",
            status=ScanStatus.completed,
            security=make_security_report(),
            performance=lighthouse.performance,
            seo=lighthouse.seo,
            accessibility=[make_violation()],
        )
        data.update(overrides)
        return ScanRecord(**data)

    return factory


@pytest.fixture
def store():
    return InMemoryScanStore()


@pytest.fixture
def prober():
    prober = MagicMock()
    prober.probe.side_effect = make_security_report
    return prober


@pytest.fixture
def session_manager():
    return FakeSessionManager()


@pytest.fixture
def analyzer():
    analyzer = MagicMock()
    analyzer.run.return_value = make_lighthouse_result()
    return analyzer


@pytest.fixture
def auditor():
    auditor = MagicMock()
    auditor.audit.return_value = [make_violation()]
    return auditor


@pytest.fixture
def generator():
    generator = MagicMock()
    generator.generate.side_effect = lambda section, findings: f"{section} advice"
    return generator


@pytest.fixture
def runner(store, session_manager, analyzer, auditor):
    return AuditRunner(store=store, session_manager=session_manager, analyzer=analyzer, auditor=auditor)


@pytest.fixture
def orchestrator(store, prober, runner, generator):
    return AuditOrchestrator(
        store=store,
        prober=prober,
        runner=runner,
        enrichment=EnrichmentService(generator),
        executor=ImmediateExecutor(),
    )


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from app.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    """
    Create a test client for making HTTP requests.
    """
    with TestClient(test_app) as test_client:
        yield test_client


@pytest.fixture
def audit_client(test_app, client, orchestrator):
    """Client whose routes use the faked orchestrator."""
    from app.features.audit.dependencies.audit import get_orchestrator

    test_app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    yield client

    test_app.dependency_overrides.pop(get_orchestrator, None)
