import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
import requests

from formrelay.app import build_pipeline
from formrelay.config import Settings
from formrelay.models.delivery import DeliveryOutcome, DeliveryStatus
from formrelay.pipeline.deliverer import Deliverer
from formrelay.pipeline.log_store import LogFilter
from formrelay.replay.rate_limit import RetryRejection

pytestmark = pytest.mark.integration

WORKERS = 16
SENDS_PER_WORKER = 10


@pytest.fixture
def file_pipeline(tmp_path):
    """Pipeline backed by a SQLite file, the default deployment setup."""
    settings = Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'formrelay.db'}",
        DEFAULT_TIMEOUT=5,
    )
    pipe = build_pipeline(settings)
    yield pipe
    pipe.close()


class TestConcurrentSends:
    """Independent sends from many threads share only the log store."""

    def test_every_send_is_logged_and_completed(self, file_pipeline, endpoint):
        def worker(_):
            results = []
            for _ in range(SENDS_PER_WORKER):
                outcome, log_id = file_pipeline.orchestrator.send(1, endpoint.url, "POST", {"name": "A"})
                results.append((outcome.status, log_id))
            return results

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            results = [r for batch in pool.map(worker, range(WORKERS)) for r in batch]

        total = WORKERS * SENDS_PER_WORKER
        log_ids = [log_id for _, log_id in results]
        assert len(results) == total
        assert None not in log_ids
        assert len(set(log_ids)) == total
        assert all(status is DeliveryStatus.SUCCESS for status, _ in results)

        store = file_pipeline.log_store
        assert store.count(LogFilter()) == total
        assert store.count(LogFilter(status="pending")) == 0
        assert endpoint.get_request_count() == total


class TestRacingCompletion:
    """Concurrent completions of one record leave exactly one winner."""

    def test_single_winner(self, file_pipeline):
        store = file_pipeline.log_store
        log_id = store.create(1, "https://crm.test/leads", "POST", {"name": "A"})
        outcomes = [
            DeliveryOutcome(status=DeliveryStatus.SUCCESS, status_code=200 + i, body="{}")
            for i in range(8)
        ]
        barrier = threading.Barrier(len(outcomes))

        def complete(outcome):
            barrier.wait()
            return store.complete(log_id, outcome)

        with ThreadPoolExecutor(max_workers=len(outcomes)) as pool:
            won = list(pool.map(complete, outcomes))

        assert won.count(True) == 1
        winner = outcomes[won.index(True)]
        record = store.get(log_id)
        assert record.status == "success"
        assert record.response_code == winner.status_code


class TestConcurrentRetries:
    """Concurrent admin retries never overspend a budget."""

    def test_record_budget_holds(self, file_pipeline, endpoint):
        file_pipeline.settings.MAX_MANUAL_RETRIES = 1
        endpoint.set_response_code(500)
        _, log_id = file_pipeline.orchestrator.send(1, endpoint.url, "POST", {"name": "A"})
        barrier = threading.Barrier(8)

        def retry(_):
            barrier.wait()
            return file_pipeline.retries.retry(log_id)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(retry, range(8)))

        assert sum(r.accepted for r in results) == 1
        assert all(r.rejection is RetryRejection.NOT_RETRYABLE for r in results if not r.accepted)
        assert file_pipeline.log_store.count_retries_of(log_id) == 1

    def test_hourly_budget_holds(self, file_pipeline, endpoint):
        file_pipeline.settings.MAX_RETRIES_PER_HOUR = 2
        endpoint.set_response_code(500)
        failed = [
            file_pipeline.orchestrator.send(1, endpoint.url, "POST", {"n": i}).log_id
            for i in range(6)
        ]
        barrier = threading.Barrier(len(failed))

        def retry(log_id):
            barrier.wait()
            return file_pipeline.retries.retry(log_id)

        with ThreadPoolExecutor(max_workers=len(failed)) as pool:
            results = list(pool.map(retry, failed))

        assert sum(r.accepted for r in results) == 2
        assert file_pipeline.rate_limiter.retries_this_hour() == 2


class TestDelivererSessions:
    """Each thread delivers through its own requests.Session."""

    def test_one_session_per_thread(self, deliverer):
        seen = {}

        def grab(name):
            seen[name] = (deliverer.session, deliverer.session)

        threads = [threading.Thread(target=grab, args=(n,)) for n in ("a", "b")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert seen["a"][0] is seen["a"][1]
        assert seen["a"][0] is not seen["b"][0]
        assert seen["a"][0].max_redirects == 5

    def test_injected_session_is_used(self):
        session = requests.Session()
        deliverer = Deliverer(session=session)
        assert deliverer.session is session
        deliverer.close()
