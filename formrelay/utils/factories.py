import json
import uuid
from datetime import datetime, timedelta

from sqlalchemy.orm import Session, sessionmaker

from formrelay.models.delivery import DeliveryStatus
from formrelay.models.record import DeliveryRecord
from formrelay.utils.dates import utcnow


class FrozenClock:
    """Manually advanced clock, injectable wherever a ``clock`` callable is taken."""

    def __init__(self, now: datetime | None = None):
        self.now = now or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


class SubmissionFactory:
    """Factory for form submission payloads with sensible defaults."""

    @staticmethod
    def create(**overrides) -> dict:
        suffix = uuid.uuid4().hex[:8]
        defaults = {
            "name": "Jane Doe",
            "email": f"jane.{suffix}@example.com",
            "phone": "+1 555 0100",
            "message": "Please call me back.",
            "source": "contact-form",
        }
        defaults.update(overrides)
        return defaults

    @staticmethod
    def create_with_secrets(**overrides) -> dict:
        payload = SubmissionFactory.create(**overrides)
        payload.setdefault("password", "hunter2")
        payload.setdefault("api_key", "sk_live_123")
        payload.setdefault("billing", {"card_number": "4111111111111111", "zip": "90210"})
        return payload


_RESPONSE_CODES = {
    DeliveryStatus.SUCCESS: 200,
    DeliveryStatus.CLIENT_ERROR: 400,
    DeliveryStatus.SERVER_ERROR: 500,
    DeliveryStatus.UNKNOWN: 302,
}


class RecordFactory:
    """Inserts delivery records directly, bypassing the pipeline (for seeding)."""

    @staticmethod
    def build(**overrides) -> DeliveryRecord:
        status = DeliveryStatus(overrides.pop("status", DeliveryStatus.SUCCESS))
        completed = status is not DeliveryStatus.PENDING
        defaults = {
            "source_id": 1,
            "endpoint": "https://api.example.com/leads",
            "method": "POST",
            "status": status.value,
            "request_payload": json.dumps(SubmissionFactory.create()),
            "request_headers": json.dumps({"Content-Type": "application/json"}),
            "response_code": _RESPONSE_CODES.get(status),
            "response_payload": "{}" if status in _RESPONSE_CODES else None,
            "response_headers": "{}" if status in _RESPONSE_CODES else None,
            "error_message": "Connection failed: refused" if status is DeliveryStatus.ERROR else None,
            "execution_time": 0.25 if completed else None,
            "retry_count": 0,
            "retry_of": None,
            "created_at": utcnow(),
        }
        defaults.update(overrides)
        return DeliveryRecord(**defaults)

    @staticmethod
    def create(session_factory: sessionmaker[Session], **overrides) -> DeliveryRecord:
        record = RecordFactory.build(**overrides)
        with session_factory() as session:
            session.add(record)
            session.commit()
            session.refresh(record)
        return record

    @staticmethod
    def create_many(session_factory: sessionmaker[Session], count: int, **overrides) -> list[DeliveryRecord]:
        return [RecordFactory.create(session_factory, **overrides) for _ in range(count)]
