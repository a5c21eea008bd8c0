from enum import Enum

from formrelay.config import Settings
from formrelay.pipeline.log_store import LogStore

RETRY_WINDOW_HOURS = 1


class RetryRejection(str, Enum):
    NOT_RETRYABLE = "not_retryable"  # this record can never be retried again
    RATE_LIMITED = "rate_limited"  # try again later


class RetryRateLimiter:
    """Per-record and global hourly retry budgets.

    Both budgets are counted from the log store on every check, so there is
    no counter state to drift out of sync with the stored records.
    """

    def __init__(self, log_store: LogStore, settings: Settings):
        self.log_store = log_store
        self.settings = settings

    @property
    def max_manual_retries(self) -> int:
        return self.settings.MAX_MANUAL_RETRIES

    @property
    def max_retries_per_hour(self) -> int:
        return self.settings.MAX_RETRIES_PER_HOUR

    def retries_this_hour(self) -> int:
        return self.log_store.count_in_window(RETRY_WINDOW_HOURS, retries_only=True)

    def remaining_this_hour(self) -> int:
        return max(self.max_retries_per_hour - self.retries_this_hour(), 0)

    def has_record_budget(self, log_id: int) -> bool:
        return self.log_store.count_retries_of(log_id) < self.max_manual_retries

    def check(self, log_id: int) -> RetryRejection | None:
        """Return the rejection that applies to retrying ``log_id``, or None."""
        if not self.has_record_budget(log_id):
            return RetryRejection.NOT_RETRYABLE
        if self.retries_this_hour() >= self.max_retries_per_hour:
            return RetryRejection.RATE_LIMITED
        return None
