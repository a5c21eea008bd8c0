import json
from datetime import datetime

import pytest

from formrelay.models.delivery import DeliveryStatus
from formrelay.utils.factories import FrozenClock, RecordFactory, SubmissionFactory


class TestSubmissionFactory:
    """Tests for SubmissionFactory."""

    @pytest.mark.unit
    def test_defaults_and_overrides(self):
        payload = SubmissionFactory.create(name="Ada")
        assert payload["name"] == "Ada"
        assert payload["email"].endswith("@example.com")

    @pytest.mark.unit
    def test_unique_emails(self):
        assert SubmissionFactory.create()["email"] != SubmissionFactory.create()["email"]

    @pytest.mark.unit
    def test_with_secrets(self):
        payload = SubmissionFactory.create_with_secrets()
        assert payload["password"] == "hunter2"
        assert payload["api_key"]
        assert payload["billing"]["card_number"]


class TestRecordFactory:
    """Tests for RecordFactory.build()."""

    @pytest.mark.unit
    def test_success_defaults(self):
        record = RecordFactory.build()
        assert record.status == "success"
        assert record.response_code == 200
        assert record.execution_time == 0.25
        assert json.loads(record.request_headers) == {"Content-Type": "application/json"}

    @pytest.mark.unit
    def test_pending_is_incomplete(self):
        record = RecordFactory.build(status=DeliveryStatus.PENDING)
        assert record.response_code is None
        assert record.execution_time is None

    @pytest.mark.unit
    def test_transport_error_has_message(self):
        record = RecordFactory.build(status="error")
        assert record.response_code is None
        assert record.error_message


class TestFrozenClock:
    """Tests for FrozenClock."""

    @pytest.mark.unit
    def test_advance(self):
        clock = FrozenClock(datetime(2024, 1, 1))
        assert clock() == datetime(2024, 1, 1)
        assert clock.advance(hours=2) == datetime(2024, 1, 1, 2)
        assert clock() == datetime(2024, 1, 1, 2)
