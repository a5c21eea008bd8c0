from .dates import date_range, parse_date, utcnow
from .factories import FrozenClock, RecordFactory, SubmissionFactory

__all__ = [
    "date_range", "parse_date", "utcnow",
    "FrozenClock", "RecordFactory", "SubmissionFactory",
]
