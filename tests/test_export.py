"""Tests for backup serialisation and the CSV export."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from conftest import make_record
from production_tracker.models import InstallType
from production_tracker.services.export import (
    CSV_HEADER,
    format_amount,
    generate_csv,
    parse_backup,
    serialize_backup,
)


class TestBackup:

    def test_serialized_backup_parses_back(self):
        records = [make_record(timestamp=1), make_record(install_type="POLE", amount="8", timestamp=2)]
        assert parse_backup(serialize_backup(records)) == records

    def test_empty_backup(self):
        assert serialize_backup([]) == "[]"
        assert parse_backup("[]") == []

    def test_duplicate_ids_rejected(self):
        record = make_record()
        text = serialize_backup([record, record])
        with pytest.raises(ValueError, match="duplicate"):
            parse_backup(text)

    @pytest.mark.parametrize("text", ["", "null", "{}", '"records"', '[null]'])
    def test_non_record_arrays_rejected(self, text):
        with pytest.raises(ValueError):
            parse_backup(text)


class TestCsv:

    def test_header_only_when_empty(self):
        assert generate_csv([]) == ",".join(CSV_HEADER) + "\n"

    def test_rows_in_creation_order(self):
        first = make_record(day=date(2024, 3, 1), timestamp=1_709_290_000_000)
        second = make_record(
            install_type=InstallType.SERVICE,
            quantity=None,
            amount="22.50",
            day=date(2024, 12, 24),
            timestamp=1_709_300_000_000,
        )

        lines = generate_csv([second, first]).splitlines()

        first_time = datetime.fromtimestamp(first.timestamp / 1000).strftime("%H:%M:%S")
        assert lines[0] == "Fecha,Hora,Tipo,Monto,ID"
        assert lines[1] == f"1/3/2024,{first_time},Residencial,7,{first.id}"
        assert lines[2].startswith("24/12/2024,")
        assert lines[2].endswith(f",Servicio Gral.,22.5,{second.id}")

    @pytest.mark.parametrize("amount, expected", [
        (Decimal("7"), "7"),
        (Decimal("7.00"), "7"),
        (Decimal("12.50"), "12.5"),
        (Decimal("0"), "0"),
    ])
    def test_format_amount(self, amount, expected):
        assert format_amount(amount) == expected
