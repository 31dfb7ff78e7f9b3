"""
Bill line tests.

The end-to-end case mirrors a typical March bill: three months marked "Dues"
plus arrears carried over from before the ledger existed.
"""
from decimal import Decimal

import pytest

from school_fee_ledger import bills, config
from school_fee_ledger.config import BillLabels
from school_fee_ledger.datatypes import StudentFeeLedger
from school_fee_ledger.dues import student_dues

FEE = Decimal("1000")
LABELS = BillLabels()


def _ledger(*months, previous_dues=0):
    fields = list(months) + [None] * (12 - len(months))
    return StudentFeeLedger(months=tuple(fields), previous_dues=previous_dues)


def test_end_to_end_march_bill():
    ledger = _ledger("Dues", "Dues", "Dues", previous_dues=500)
    bill = bills.bill_lines(ledger, FEE, cutoff_index=2, labels=LABELS)

    assert [(l.label, l.amount) for l in bill.lines] == [
        ("January Fee", Decimal("1000")),
        ("February Fee", Decimal("1000")),
        ("March Fee", Decimal("1000")),
        ("Previous Arrears", Decimal("500")),
    ]
    assert bill.lines[-1].kind == 'arrears'
    assert bill.total == Decimal("3500")


def test_paid_months_are_left_out():
    ledger = _ledger(
        "1000=d=2024-01-03T00:00:00.000Z",
        "300=d=2024-02-03T00:00:00.000Z",
        "2024-03-03T00:00:00.000Z",
        "Dues",
    )
    bill = bills.bill_lines(ledger, FEE, cutoff_index=3, labels=LABELS)

    assert [(l.month_index, l.amount) for l in bill.lines] == [
        (1, Decimal("700")),
        (3, Decimal("1000")),
    ]
    assert bill.total == Decimal("1700")


def test_no_arrears_line_without_previous_dues():
    bill = bills.bill_lines(_ledger("Dues"), FEE, cutoff_index=0, labels=LABELS)
    assert all(l.kind == 'month' for l in bill.lines)


def test_months_after_cutoff_never_billed():
    bill = bills.bill_lines(_ledger(*(["Dues"] * 12)), FEE, cutoff_index=1, labels=LABELS)
    assert [l.month_index for l in bill.lines] == [0, 1]


@pytest.mark.parametrize("cutoff", [0, 4, 11])
def test_total_matches_net_due(cutoff):
    ledger = _ledger("Dues", "250=d=2024-02-01T00:00:00.000Z", None, "bad",
                     "2024-05-01T00:00:00.000Z", previous_dues=Decimal("120.75"))
    bill = bills.bill_lines(ledger, FEE, cutoff_index=cutoff, labels=LABELS)
    assert bill.total == student_dues(ledger, FEE, cutoff).net_due


def test_same_input_gives_identical_bill():
    ledger = _ledger("Dues", "600=d=2024-02-01T00:00:00.000Z", previous_dues=40)
    first = bills.bill_lines(ledger, FEE, cutoff_index=5, labels=LABELS)
    second = bills.bill_lines(ledger, FEE, cutoff_index=5, labels=LABELS)
    assert first == second


def test_custom_labels():
    labels = BillLabels(month_label="Tuition ({month})", arrears_label="Old Balance")
    bill = bills.bill_lines(_ledger("Dues", previous_dues=10), FEE, cutoff_index=0, labels=labels)
    assert [l.label for l in bill.lines] == ["Tuition (January)", "Old Balance"]


def test_default_labels_do_not_read_config(monkeypatch):
    def no_config(*args, **kwargs):
        raise AssertionError("bill_lines should not load the config file")
    monkeypatch.setattr(config, "load_config", no_config)

    bill = bills.bill_lines(_ledger("Dues", previous_dues=5), FEE, cutoff_index=0)
    assert [l.label for l in bill.lines] == ["January Fee", "Previous Arrears"]
