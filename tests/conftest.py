import pytest

from formrelay.app import build_pipeline
from formrelay.config import Settings
from formrelay.receiver.server import StubEndpointServer
from formrelay.utils.factories import FrozenClock, RecordFactory, SubmissionFactory


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        DEFAULT_TIMEOUT=5,
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def pipeline(settings, clock):
    pipe = build_pipeline(settings, clock=clock)
    yield pipe
    pipe.close()


@pytest.fixture
def redaction(pipeline):
    return pipeline.redaction


@pytest.fixture
def log_store(pipeline):
    return pipeline.log_store


@pytest.fixture
def session_factory(log_store):
    return log_store.session_factory


@pytest.fixture
def deliverer(pipeline):
    return pipeline.deliverer


@pytest.fixture
def orchestrator(pipeline):
    return pipeline.orchestrator


@pytest.fixture
def rate_limiter(pipeline):
    return pipeline.rate_limiter


@pytest.fixture
def retries(pipeline):
    return pipeline.retries


@pytest.fixture
def endpoint():
    server = StubEndpointServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def submission_factory():
    return SubmissionFactory


@pytest.fixture
def record_factory(session_factory, clock):
    """Seed records directly; ``created_at`` defaults to the frozen clock."""

    class _Bound:
        @staticmethod
        def create(**overrides):
            overrides.setdefault("created_at", clock())
            return RecordFactory.create(session_factory, **overrides)

        @staticmethod
        def create_many(count, **overrides):
            overrides.setdefault("created_at", clock())
            return RecordFactory.create_many(session_factory, count, **overrides)

    return _Bound
