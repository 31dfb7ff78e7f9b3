"""
CSV student store tests, using temporary files.
"""
from decimal import Decimal

import pandas as pd
import pytest

from school_fee_ledger import bulk_dues
from school_fee_ledger.bulk_dues import OperationContext
from school_fee_ledger.errors import StoreError
from school_fee_ledger.student_store import COLUMNS, CsvStudentStore


@pytest.fixture()
def csv_store(tmp_path):
    path = tmp_path / "students.csv"
    store = CsvStudentStore(path)
    store.write_students([
        {"id": "1", "uid": "school-1", "name": "Asha", "class": "Class 1", "roll_number": "7",
         "january": "1000=d=2024-01-04T00:00:00.000Z", "february": "Dues", "previous_dues": "500"},
        {"id": "2", "uid": "school-1", "name": "Bilal", "class": "Class 1", "roll_number": "8",
         "january": "undefined"},
        {"id": "3", "uid": "school-1", "name": "Chitra", "class": "Class 2"},
    ])
    return store


def test_read_students_round_trip(csv_store):
    students = csv_store.read_students()

    assert [s.name for s in students] == ["Asha", "Bilal", "Chitra"]
    asha = students[0]
    assert asha.ledger.month("january") == "1000=d=2024-01-04T00:00:00.000Z"
    assert asha.ledger.month("february") == "Dues"
    assert asha.ledger.month("march") is None
    assert asha.ledger.previous_dues == Decimal("500")
    assert asha.roll_number == "7"
    assert students[1].ledger.month("january") == "undefined"
    assert students[2].ledger.previous_dues == 0


def test_written_file_has_expected_columns(csv_store):
    df = pd.read_csv(csv_store.csv_path, dtype=str, keep_default_na=False)
    assert list(df.columns) == COLUMNS


def test_set_month_persists_to_disk(csv_store):
    csv_store.set_month("2", "march", "Dues")

    reopened = CsvStudentStore(csv_store.csv_path)
    assert reopened.get_month("2", "march") == "Dues"
    assert reopened.get_month("1", "january") == "1000=d=2024-01-04T00:00:00.000Z"


def test_unknown_student_raises_store_error(csv_store):
    with pytest.raises(StoreError):
        csv_store.get_month("42", "march")
    with pytest.raises(StoreError):
        csv_store.set_month("42", "march", "Dues")


def test_missing_file_reads_as_empty(tmp_path):
    store = CsvStudentStore(tmp_path / "nope.csv")
    assert store.read_students() == []


def test_students_in_class(csv_store):
    assert [s.id for s in csv_store.students_in_class("school-1", "Class 1")] == ["1", "2"]
    assert csv_store.students_in_class("school-2", "Class 1") == []


def test_bulk_marking_against_csv(csv_store):
    result = bulk_dues.mark_class_unpaid_as_due(
        OperationContext("school-1"), csv_store, "Class 1", ["january", "february"])

    assert result.affected_ids == ["2"]
    reopened = CsvStudentStore(csv_store.csv_path)
    assert reopened.get_month("1", "january") == "1000=d=2024-01-04T00:00:00.000Z"
    assert reopened.get_month("2", "january") == "Dues"
    assert reopened.get_month("2", "february") == "Dues"
    assert reopened.get_month("3", "january") is None


@pytest.mark.parametrize("bad_cell", ["NaN", "Infinity", "-100", "lots"])
def test_bad_previous_dues_reads_as_zero(tmp_path, bad_cell):
    store = CsvStudentStore(tmp_path / "students.csv")
    store.write_students([
        {"id": "1", "uid": "school-1", "name": "Asha", "class": "C", "previous_dues": bad_cell},
        {"id": "2", "uid": "school-1", "name": "Bilal", "class": "C", "previous_dues": "250"},
    ])

    students = store.read_students()
    assert [s.ledger.previous_dues for s in students] == [Decimal("0"), Decimal("250")]
    assert store.get_student("1").ledger.previous_dues == 0


def test_bad_arrears_row_does_not_stop_class_run(tmp_path):
    store = CsvStudentStore(tmp_path / "students.csv")
    store.write_students([
        {"id": "1", "uid": "school-1", "name": "Asha", "class": "C", "previous_dues": "NaN"},
        {"id": "2", "uid": "school-1", "name": "Bilal", "class": "C"},
    ])

    result = bulk_dues.mark_class_unpaid_as_due(OperationContext("school-1"), store, "C", ["march"])

    assert result.affected_ids == ["1", "2"]
    assert result.failures == []
    assert store.get_month("2", "march") == "Dues"

    forced = bulk_dues.force_mark_due(OperationContext("school-1"), store, ["1"], ["april"])
    assert forced.affected_ids == ["1"]
    assert store.get_month("1", "april") == "Dues"


def test_discount_column(tmp_path):
    store = CsvStudentStore(tmp_path / "students.csv")
    store.write_students([
        {"id": "1", "name": "Asha", "class": "C", "discount": "20"},
        {"id": "2", "name": "Bilal", "class": "C", "discount": "150"},
        {"id": "3", "name": "Chitra", "class": "C"},
    ])

    assert [s.discount for s in store.read_students()] == [Decimal("20"), Decimal("0"), Decimal("0")]
