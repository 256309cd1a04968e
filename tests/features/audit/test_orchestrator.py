import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import fakeredis
import pytest

from app.features.audit.schemas.audit import ScanStatus
from app.features.audit.services.enrichment import EnrichmentService
from app.features.audit.services.orchestrator import AuditOrchestrator
from app.features.audit.services.runner import AuditRunner
from app.features.audit.services.store import RedisScanStore
from app.platform.exceptions import NotFoundError, ValidationError

from conftest import ImmediateExecutor


def fetch_concurrently(orchestrator, scan_id, count):
    results, errors = [], []

    def poll():
        try:
            results.append(orchestrator.fetch(scan_id))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=poll) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


class TestSubmit:
    def test_returns_running_record(self, orchestrator):
        result = orchestrator.submit("https://example.com")

        assert result.scan_id
        assert result.initial.scan_id == result.scan_id
        assert result.initial.status == ScanStatus.running
        assert result.initial.performance is None
        assert result.initial.accessibility is None

    def test_normalizes_scheme(self, orchestrator, prober):
        result = orchestrator.submit("example.com")

        assert result.initial.url == "https://example.com"
        assert result.initial.security.https is True
        prober.probe.assert_called_once_with("https://example.com")

    @pytest.mark.parametrize("url", ["", "   ", None])
    def test_empty_url_rejected(self, orchestrator, prober, url):
        with pytest.raises(ValidationError):
            orchestrator.submit(url)
        prober.probe.assert_not_called()

    def test_scan_ids_are_unique(self, orchestrator):
        ids = {orchestrator.submit("example.com").scan_id for _ in range(5)}
        assert len(ids) == 5

    def test_returns_before_background_job_finishes(self, store, prober, runner, generator):
        release = threading.Event()
        original_run = runner.run

        def slow_run(scan_id, url):
            release.wait(timeout=5)
            original_run(scan_id, url)

        runner.run = slow_run
        executor = ThreadPoolExecutor(max_workers=1)
        orchestrator = AuditOrchestrator(
            store=store, prober=prober, runner=runner, enrichment=EnrichmentService(generator), executor=executor
        )

        result = orchestrator.submit("example.com")
        assert orchestrator.fetch(result.scan_id).status == ScanStatus.running

        release.set()
        orchestrator.shutdown(wait=True)

        assert orchestrator.fetch(result.scan_id).status == ScanStatus.completed

    def test_background_exception_is_logged(self, store, prober, generator, caplog):
        runner = MagicMock()
        runner.run.side_effect = RuntimeError("runner exploded")
        orchestrator = AuditOrchestrator(
            store=store, prober=prober, runner=runner,
            enrichment=EnrichmentService(generator), executor=ImmediateExecutor(),
        )

        with caplog.at_level(logging.ERROR):
            result = orchestrator.submit("example.com")

        assert result.initial.status == ScanStatus.running
        assert "runner exploded" in caplog.text


class TestFetch:
    def test_unknown_scan_raises_not_found(self, orchestrator):
        with pytest.raises(NotFoundError):
            orchestrator.fetch("does-not-exist")

    def test_completed_scan_is_enriched(self, orchestrator):
        scan_id = orchestrator.submit("example.com").scan_id

        record = orchestrator.fetch(scan_id)

        assert record.status == ScanStatus.completed
        assert record.ai_enhanced is True
        assert record.security.ai_suggestion == "Security advice"
        assert record.accessibility_ai_suggestion == "Accessibility advice"

    def test_enrichment_runs_once(self, orchestrator, generator):
        scan_id = orchestrator.submit("example.com").scan_id

        first = orchestrator.fetch(scan_id)
        second = orchestrator.fetch(scan_id)

        assert first.ai_enhanced is True and second.ai_enhanced is True
        assert first.performance.ai_suggestion == second.performance.ai_suggestion
        assert generator.generate.call_count == 4
        sections = sorted(call.args[0] for call in generator.generate.call_args_list)
        assert sections == ["Accessibility", "Performance", "SEO", "Security"]

    def test_concurrent_fetches_enrich_once(self, orchestrator, generator):
        def slow_generate(section, findings):
            time.sleep(0.05)
            return f"{section} advice"

        generator.generate.side_effect = slow_generate
        scan_id = orchestrator.submit("example.com").scan_id

        results, errors = fetch_concurrently(orchestrator, scan_id, 8)

        assert errors == []
        assert len(results) == 8
        assert all(r.status == ScanStatus.completed for r in results)
        assert any(r.ai_enhanced for r in results)
        assert generator.generate.call_count == 4
        assert orchestrator.fetch(scan_id).ai_enhanced is True
        assert generator.generate.call_count == 4

    def test_concurrent_fetches_with_redis_store(self, prober, session_manager, analyzer, auditor, generator):
        # enrichment outlasts the Redis lock lifetime
        def slow_generate(section, findings):
            time.sleep(0.4)
            return f"{section} advice"

        generator.generate.side_effect = slow_generate
        store = RedisScanStore(fakeredis.FakeRedis(decode_responses=True), lock_timeout=1)
        orchestrator = AuditOrchestrator(
            store=store,
            prober=prober,
            runner=AuditRunner(store=store, session_manager=session_manager, analyzer=analyzer, auditor=auditor),
            enrichment=EnrichmentService(generator),
            executor=ImmediateExecutor(),
        )
        scan_id = orchestrator.submit("example.com").scan_id

        results, errors = fetch_concurrently(orchestrator, scan_id, 4)

        assert errors == []
        assert len(results) == 4
        assert generator.generate.call_count == 4
        sections = sorted(call.args[0] for call in generator.generate.call_args_list)
        assert sections == ["Accessibility", "Performance", "SEO", "Security"]

        record = orchestrator.fetch(scan_id)
        assert record.ai_enhanced is True
        assert record.seo.ai_suggestion == "SEO advice"
        assert generator.generate.call_count == 4

    def test_claim_released_when_enrichment_write_fails(self, orchestrator, store, generator):
        scan_id = orchestrator.submit("example.com").scan_id
        original_put = store.put
        store.put = MagicMock(side_effect=RuntimeError("store unavailable"))

        with pytest.raises(RuntimeError):
            orchestrator.fetch(scan_id)

        store.put = original_put
        assert orchestrator.fetch(scan_id).ai_enhanced is True

    def test_running_scan_returned_as_is(self, store, prober, generator):
        orchestrator = AuditOrchestrator(
            store=store, prober=prober, runner=MagicMock(),
            enrichment=EnrichmentService(generator), executor=ImmediateExecutor(),
        )
        scan_id = orchestrator.submit("example.com").scan_id

        record = orchestrator.fetch(scan_id)

        assert record.status == ScanStatus.running
        assert record.ai_enhanced is False
        generator.generate.assert_not_called()

    def test_error_scan_not_enriched(self, orchestrator, store, generator):
        scan_id = orchestrator.submit("example.com").scan_id
        store.put(scan_id, store.get(scan_id).model_copy(update={"status": ScanStatus.error, "ai_enhanced": False}))

        record = orchestrator.fetch(scan_id)

        assert record.status == ScanStatus.error
        assert record.ai_enhanced is False
        generator.generate.assert_not_called()

    def test_status_never_reverts(self, orchestrator):
        scan_id = orchestrator.submit("example.com").scan_id
        statuses = [orchestrator.fetch(scan_id).status for _ in range(3)]
        assert statuses == [ScanStatus.completed] * 3
