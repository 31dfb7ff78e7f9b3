import logging
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from dateutil import parser as date_parser
from dateutil import tz as date_tz

from . import codec
from .datatypes import FieldState, Money, StudentRecord
from .dues import student_dues

logger = logging.getLogger(__name__)


@dataclass
class ClassDuesSummary:
    class_name: str
    students: List[Tuple[StudentRecord, Money]] = field(default_factory=list)
    total_due: Money = Money(0)


def class_dues_summary(students: Iterable[StudentRecord], class_fees: Mapping[str, Decimal],
                       cutoff_index: int) -> Dict[str, ClassDuesSummary]:
    """
    Outstanding dues grouped by class, counting only students who owe money.

    Each student's own discount is applied. Students whose class has no
    configured fee (or a zero fee) are skipped.
    """
    summaries: Dict[str, ClassDuesSummary] = {}

    for student in students:
        fee = class_fees.get(student.class_name)
        if not fee:
            logger.debug(f"No fee configured for {student.class_name!r}, skipping {student.name}")
            continue

        net_due = student_dues(student.ledger, fee, cutoff_index, student.discount).net_due
        if net_due <= 0:
            continue

        summary = summaries.setdefault(student.class_name, ClassDuesSummary(student.class_name))
        summary.students.append((student, net_due))
        summary.total_due += net_due

    return dict(sorted(summaries.items()))


def collected_on(students: Iterable[StudentRecord], class_fees: Mapping[str, Decimal], day: date,
                 tz: Optional[tzinfo] = None) -> Money:
    """
    Money recorded as paid on `day`, across every month field.

    Payment times are stored in UTC and bucketed by their UTC date unless `tz`
    is given, in which case they are converted to that zone first.
    """
    return _collected(students, class_fees, tz, lambda ts: ts.date() == day)


def collected_in_month(students: Iterable[StudentRecord], class_fees: Mapping[str, Decimal],
                       year: int, month: int, tz: Optional[tzinfo] = None) -> Money:
    """Money recorded as paid during calendar month `month` (1-12) of `year`, in `tz` (default UTC)"""
    return _collected(students, class_fees, tz, lambda ts: ts.year == year and ts.month == month)


def format_dues_report(summaries: Mapping[str, ClassDuesSummary], currency: str = '₹') -> str:
    """
    Format class dues in a plain-text, print-friendly layout.
    """
    report_lines = []
    report_lines.append("=== FEE DUES SUMMARY ===")
    report_lines.append("")

    if not summaries:
        report_lines.append("No pending student fee dues found.")
        return "\n".join(report_lines)

    grand_total = Money(0)
    for class_name, summary in summaries.items():
        report_lines.append(f"{class_name}: {len(summary.students)} student(s), "
                            f"{currency}{summary.total_due:,.2f}")
        for student, due in summary.students:
            roll = f" (R:{student.roll_number})" if student.roll_number else ""
            report_lines.append(f"  {student.name}{roll}: {currency}{due:,.2f}")
        grand_total += summary.total_due

    report_lines.append("")
    report_lines.append(f"Total Outstanding: {currency}{grand_total:,.2f}")
    return "\n".join(report_lines)


# -------------------- helpers --------------------

def _collected(students, class_fees, tz, matches) -> Money:
    total = Money(0)
    for student in students:
        for raw in student.ledger.months:
            for amount, ts in _dated_amounts(raw, class_fees.get(student.class_name)):
                if ts is not None and matches(_in_zone(ts, tz or date_tz.UTC)):
                    total += amount
    return total


def _in_zone(ts: datetime, tz: tzinfo) -> datetime:
    # naive timestamps were written as UTC
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=date_tz.UTC)
    return ts.astimezone(tz)


def _dated_amounts(raw: Optional[str], fee: Optional[Decimal]):
    decoded = codec.decode_field(raw)
    if decoded.state is FieldState.LEGACY_FULL:
        # the whole fee was paid on the marker's date
        if fee:
            yield Money(fee), _as_datetime(raw)
        return
    for payment in decoded.payments:
        yield payment.amount, payment.recorded_at


def _as_datetime(raw: str) -> Optional[datetime]:
    try:
        return date_parser.isoparse(raw)
    except ValueError:
        return None
