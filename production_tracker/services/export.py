"""
Backup and CSV export.

The backup format is a UTF-8 JSON array of record objects, the same shape
the local cache stores. It round-trips through export and import without
changes. The CSV export is one-way and meant for humans.
"""

import csv
import io
import json
from typing import Any

from pydantic import ValidationError

from production_tracker.models.record import InstallationRecord, sort_records


CSV_HEADER = ["Fecha", "Hora", "Tipo", "Monto", "ID"]


def records_to_json_list(records: list[InstallationRecord]) -> list[dict[str, Any]]:
    return [record.model_dump(mode="json") for record in records]


def serialize_backup(records: list[InstallationRecord]) -> str:
    """Serialize records to the backup text form."""
    return json.dumps(records_to_json_list(records), ensure_ascii=False)


def parse_backup(text: str) -> list[InstallationRecord]:
    """
    Parse the backup text form.

    Raises:
        ValueError: If the text is not a JSON array of valid records.
            Nothing is partially accepted.
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise ValueError(f"Backup is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise ValueError("Backup must be a JSON array of records")

    records = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise ValueError(f"Backup entry {index} is not an object")
        try:
            records.append(InstallationRecord.model_validate(item))
        except ValidationError as e:
            raise ValueError(f"Backup entry {index} is not a valid record: {e}") from e

    ids = [r.id for r in records]
    if len(ids) != len(set(ids)):
        raise ValueError("Backup contains duplicate record IDs")

    return records


def format_amount(amount) -> str:
    """Amount without a trailing '.0' for whole numbers."""
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def generate_csv(records: list[InstallationRecord]) -> str:
    """
    Human-readable CSV of the records.

    Columns: Fecha (d/m/yyyy), Hora (creation time, HH:MM:SS local time),
    Tipo (label), Monto, ID.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)

    for record in sort_records(records):
        day = record.date
        writer.writerow([
            f"{day.day}/{day.month}/{day.year}",
            record.created_at.strftime("%H:%M:%S"),
            record.label,
            format_amount(record.amount),
            record.id,
        ])

    return buffer.getvalue()
