from .rate_limit import RetryRateLimiter, RetryRejection
from .coordinator import BulkRetryReport, RetryCoordinator, RetryResult

__all__ = [
    "RetryRateLimiter", "RetryRejection",
    "RetryCoordinator", "RetryResult", "BulkRetryReport",
]
