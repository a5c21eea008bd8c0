import pytest

from formrelay.models.delivery import DeliveryStatus
from formrelay.observability.alerting import AlertMonitor


@pytest.fixture
def alert_settings(settings):
    settings.ALERTS_ENABLED = True
    settings.ALERT_ERROR_THRESHOLD = 10
    settings.ALERT_RATE_THRESHOLD = 20.0
    return settings


@pytest.fixture
def monitor(log_store, alert_settings):
    return AlertMonitor(log_store, alert_settings)


class TestHourlyStats:
    """Tests for AlertMonitor.hourly_stats()."""

    @pytest.mark.unit
    def test_counts_failures_in_last_hour(self, monitor, record_factory):
        record_factory.create_many(3, status=DeliveryStatus.SUCCESS)
        record_factory.create(status=DeliveryStatus.CLIENT_ERROR)

        stats = monitor.hourly_stats()
        assert stats == {"total_requests": 4, "errors": 1, "error_rate": 25.0}

    @pytest.mark.unit
    def test_empty_hour(self, monitor):
        assert monitor.hourly_stats() == {"total_requests": 0, "errors": 0, "error_rate": 0.0}


class TestAlertCheck:
    """Tests for AlertMonitor.check()."""

    @pytest.mark.unit
    def test_alert_when_rate_exceeds_threshold(self, monitor, record_factory):
        # 2 of 5 failed => 40%, above the 20% rate threshold
        record_factory.create_many(3, status=DeliveryStatus.SUCCESS)
        record_factory.create_many(2, status=DeliveryStatus.SERVER_ERROR)

        alert = monitor.check()
        assert alert is not None
        assert alert["type"] == "delivery_error_rate"
        assert alert["errors"] == 2
        assert alert["total_requests"] == 5
        assert alert["error_rate"] == 40.0

    @pytest.mark.unit
    def test_alert_when_error_count_reaches_threshold(self, monitor, record_factory):
        # 10 errors out of 100 is only 10%, but the count threshold is met
        record_factory.create_many(90, status=DeliveryStatus.SUCCESS)
        record_factory.create_many(10, status=DeliveryStatus.ERROR)

        assert monitor.check() is not None

    @pytest.mark.unit
    def test_no_alert_below_thresholds(self, monitor, record_factory):
        record_factory.create_many(9, status=DeliveryStatus.SUCCESS)
        record_factory.create(status=DeliveryStatus.ERROR)

        assert monitor.check() is None

    @pytest.mark.unit
    def test_no_alert_without_traffic(self, monitor):
        assert monitor.check() is None

    @pytest.mark.unit
    def test_disabled_alerts_never_fire(self, monitor, record_factory, alert_settings):
        alert_settings.ALERTS_ENABLED = False
        record_factory.create_many(5, status=DeliveryStatus.ERROR)

        assert monitor.check() is None

    @pytest.mark.unit
    def test_callback_is_invoked_on_alert(self, log_store, alert_settings, record_factory):
        received = []
        monitor = AlertMonitor(log_store, alert_settings, callback=received.append)
        record_factory.create_many(2, status=DeliveryStatus.ERROR)

        monitor.check()

        assert len(received) == 1
        assert received[0]["type"] == "delivery_error_rate"


class TestCooldown:
    """Tests for alert suppression after an alert fires."""

    @pytest.mark.unit
    def test_second_check_within_cooldown_returns_none(self, monitor, record_factory):
        record_factory.create_many(2, status=DeliveryStatus.ERROR)

        assert monitor.check() is not None
        assert monitor.check() is None
        assert len(monitor.get_alerts()) == 1

    @pytest.mark.unit
    def test_fires_again_after_cooldown(self, monitor, record_factory, clock):
        record_factory.create_many(2, status=DeliveryStatus.ERROR)
        assert monitor.check() is not None

        clock.advance(hours=4, minutes=1)
        record_factory.create_many(2, status=DeliveryStatus.ERROR)

        assert monitor.check() is not None

    @pytest.mark.unit
    def test_reset_allows_refiring(self, monitor, record_factory):
        record_factory.create_many(2, status=DeliveryStatus.ERROR)
        assert monitor.check() is not None

        monitor.reset()

        assert monitor.get_alerts() == []
        assert monitor.check() is not None
