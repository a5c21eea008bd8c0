from datetime import datetime, timedelta, timezone

DATE_FORMAT = "%Y-%m-%d"
DATE_FILTERS = ("today", "yesterday", "7days", "30days", "month", "custom")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the delivery log."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_date(value: str) -> datetime | None:
    """Parse a strict YYYY-MM-DD date, returning None for anything else."""
    if not value:
        return None
    try:
        parsed = datetime.strptime(value, DATE_FORMAT)
    except ValueError:
        return None
    if parsed.strftime(DATE_FORMAT) != value:
        return None
    return parsed


def date_range(
    filter_name: str,
    start: str = "",
    end: str = "",
    now: datetime | None = None,
) -> tuple[datetime | None, datetime | None]:
    """Translate a named date filter into a half-open ``[since, until)`` range.

    Unknown filters and invalid custom dates yield ``(None, None)``, i.e. no
    date restriction.
    """
    now = now or utcnow()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if filter_name == "today":
        return midnight, None
    if filter_name == "yesterday":
        return midnight - timedelta(days=1), midnight
    if filter_name == "7days":
        return now - timedelta(days=7), None
    if filter_name == "30days":
        return now - timedelta(days=30), None
    if filter_name == "month":
        return midnight.replace(day=1), None
    if filter_name == "custom":
        since = parse_date(start)
        if since is None:
            return None, None
        if not end:
            return since, None
        until = parse_date(end)
        if until is None:
            return None, None
        # The end date is inclusive
        return since, until + timedelta(days=1)
    return None, None
