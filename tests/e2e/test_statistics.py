from datetime import timedelta

import pytest

from formrelay.app import build_pipeline
from formrelay.models.delivery import DeliveryStatus

pytestmark = pytest.mark.e2e


class TestStatistics:
    """Window statistics computed from stored records."""

    def test_success_rate_and_failures(self, orchestrator, record_factory):
        record_factory.create_many(7, status=DeliveryStatus.SUCCESS)
        record_factory.create_many(3, status=DeliveryStatus.SERVER_ERROR)

        stats = orchestrator.statistics()

        assert stats.count == 10
        assert stats.failures == 3
        assert stats.success_rate == 70.0
        assert stats.failure_rate == 30.0
        assert len(stats.recent_errors) == 3

    def test_empty_window(self, orchestrator):
        stats = orchestrator.statistics()
        assert stats.count == 0
        assert stats.success_rate == 0.0
        assert stats.avg_latency == 0.0

    def test_window_and_source_filters(self, orchestrator, record_factory, clock):
        record_factory.create(source_id=1)
        record_factory.create(source_id=1, created_at=clock() - timedelta(hours=30))
        record_factory.create(source_id=2, status=DeliveryStatus.ERROR)

        assert orchestrator.statistics(1).count == 1
        assert orchestrator.statistics(1, window_hours=48).count == 2
        assert orchestrator.statistics(2).failures == 1

    def test_pending_counts_toward_total(self, orchestrator, record_factory):
        record_factory.create(status=DeliveryStatus.SUCCESS)
        record_factory.create(status=DeliveryStatus.PENDING)

        assert orchestrator.statistics().success_rate == 50.0

    def test_to_dict(self, orchestrator, record_factory):
        record_factory.create(status=DeliveryStatus.CLIENT_ERROR)

        data = orchestrator.statistics().to_dict()

        assert data["count"] == 1
        assert data["recent_errors"][0]["status"] == "client_error"


class TestRetention:
    """Retention purge through the pipeline."""

    def test_purge_expired_uses_configured_days(self, pipeline, record_factory, clock, log_store):
        old = record_factory.create(created_at=clock() - timedelta(days=31))
        kept = record_factory.create(created_at=clock() - timedelta(days=29))

        assert pipeline.purge_expired() == 1
        assert log_store.get(old.id) is None
        assert log_store.get(kept.id) is not None

    def test_shorter_retention(self, pipeline, record_factory, clock, settings):
        settings.LOG_RETENTION_DAYS = 7
        record_factory.create(created_at=clock() - timedelta(days=8))
        record_factory.create(created_at=clock() - timedelta(days=29))

        assert pipeline.purge_expired() == 2


class TestAlertsThroughPipeline:
    """The alert monitor sees what the orchestrator logged."""

    def test_alert_after_failing_sends(self, settings, clock, endpoint):
        settings.ALERTS_ENABLED = True
        received = []
        pipe = build_pipeline(settings, clock=clock, alert_callback=received.append)
        try:
            endpoint.set_response_code(500)
            for _ in range(3):
                pipe.orchestrator.send(1, endpoint.url, "POST", {"name": "A"})

            alert = pipe.alerts.check()
        finally:
            pipe.close()

        assert alert["errors"] == 3
        assert alert["error_rate"] == 100.0
        assert received == [alert]
