from typing import List, Optional

from .config import BillLabels
from .datatypes import MONTH_NAMES, Bill, BillLine, DuesStatus, Money, StudentFeeLedger
from .dues import student_dues

_BILLABLE = (DuesStatus.DUE, DuesStatus.PARTIAL)


def bill_lines(ledger: StudentFeeLedger, class_fee, cutoff_index: int,
               discount_pct=0, labels: Optional[BillLabels] = None) -> Bill:
    """
    Billable lines for a dues bill: one per unpaid month from January to the
    cutoff, in calendar order, then the arrears line if there are previous dues.

    The total always equals `student_dues(...).net_due`.
    """
    labels = labels or BillLabels()
    dues = student_dues(ledger, class_fee, cutoff_index, discount_pct)

    lines: List[BillLine] = []
    for i, snap in enumerate(dues.monthly[:cutoff_index + 1]):
        if snap.status in _BILLABLE:
            lines.append(BillLine(label=labels.for_month(MONTH_NAMES[i]),
                                  amount=snap.due_amount, kind='month', month_index=i))

    if dues.previous_dues > 0:
        lines.append(BillLine(label=labels.arrears_label, amount=dues.previous_dues, kind='arrears'))

    return Bill(lines=tuple(lines), total=sum((l.amount for l in lines), Money(0)))
