"""CSV and JSON export of delivery records.

Stored snapshots are redacted again with the current pattern set, so fields
that became sensitive after a record was written are still masked.
"""
import csv
import io
import json
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from formrelay.models.record import DeliveryRecord
from formrelay.pipeline.redaction import RedactionPolicy

CSV_COLUMNS = [
    ("id", "ID"),
    ("source_id", "Source ID"),
    ("endpoint", "Endpoint"),
    ("method", "Method"),
    ("status", "Status"),
    ("response_code", "Response Code"),
    ("execution_time", "Execution Time (s)"),
    ("retry_count", "Retry Count"),
    ("error_message", "Error Message"),
    ("created_at", "Created At"),
]

UTF8_BOM = "\ufeff"

_SNAPSHOT_FIELDS = ("request_payload", "request_headers", "response_payload", "response_headers")


class LogExporter:
    def __init__(self, redaction: RedactionPolicy):
        self.redaction = redaction

    def sanitize(self, record: DeliveryRecord) -> dict[str, Any]:
        row = record.to_dict()
        for name in _SNAPSHOT_FIELDS:
            if row[name]:
                row[name] = self.redaction.serialize(row[name])
        return row

    def to_csv(self, records: Iterable[DeliveryRecord]) -> str:
        """CSV with a UTF-8 BOM so spreadsheet tools detect the encoding."""
        out = io.StringIO()
        out.write(UTF8_BOM)
        writer = csv.writer(out)
        writer.writerow([label for _, label in CSV_COLUMNS])
        for record in records:
            row = self.sanitize(record)
            writer.writerow([
                "" if row[key] is None else row[key]
                for key, _ in CSV_COLUMNS
            ])
        return out.getvalue()

    def to_json(self, records: Iterable[DeliveryRecord]) -> str:
        return json.dumps(
            [self.sanitize(record) for record in records],
            indent=4,
            ensure_ascii=False,
            default=str,
        )

    @staticmethod
    def filename(fmt: str, now: datetime | None = None) -> str:
        if fmt not in ("csv", "json"):
            raise ValueError(f"Unsupported export format: {fmt}")
        now = now or datetime.now(timezone.utc)
        return f"formrelay-logs_{now.strftime('%Y-%m-%d_%H-%M-%S')}.{fmt}"
