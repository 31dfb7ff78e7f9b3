"""
Bulk "Dues" marking.

Two operations write the "Dues" marker into monthly fee fields:

  * mark_unpaid_as_due - only fields that are still unbilled; anything with a
    payment (partial, full or legacy) is left alone. Running it twice changes
    nothing the second time.
  * force_mark_due     - every selected field, whatever it holds, for an
    explicit list of student ids.

Work is done one month at a time. Each student+month write stands alone: a
failed write is recorded and the batch carries on, and earlier writes are not
rolled back. A cancel event is checked before each month.
"""
import logging
from dataclasses import dataclass
from threading import Event
from typing import Callable, Dict, Iterable, List, Optional

from . import codec
from .datatypes import (
    MONTH_KEYS, BulkResult, FieldState, ProgressEvent, StudentRecord, UnitFailure, month_index,
)
from .errors import SessionRequiredError, StoreError
from .events import ProgressChannel
from .student_store import StudentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationContext:
    owner_uid: Optional[str]

    def require_session(self) -> str:
        if not self.owner_uid:
            raise SessionRequiredError("You must be logged in to perform this action.")
        return self.owner_uid


def mark_unpaid_as_due(context: OperationContext, store: StudentStore,
                       students: Iterable[StudentRecord], months: Iterable,
                       channel: Optional[ProgressChannel] = None,
                       cancel: Optional[Event] = None) -> BulkResult:
    """Mark unbilled months as "Dues"; paid or part-paid months are never touched."""
    context.require_session()
    month_keys = _normalize_months(months)
    targets = _dedupe(students)

    logger.info(f"Adding dues for {len(targets)} student(s), months: {', '.join(month_keys)}")
    return _run(store, targets, month_keys, _is_unbilled, channel, cancel)


def mark_class_unpaid_as_due(context: OperationContext, store: StudentStore, class_name: str,
                             months: Iterable, channel: Optional[ProgressChannel] = None,
                             cancel: Optional[Event] = None) -> BulkResult:
    """Class-wide variant: every student the owner has in `class_name`."""
    uid = context.require_session()
    students = store.students_in_class(uid, class_name)
    logger.info(f"Found {len(students)} student(s) in {class_name}")
    return mark_unpaid_as_due(context, store, students, months, channel, cancel)


def force_mark_due(context: OperationContext, store: StudentStore, student_ids: Iterable[str],
                   months: Iterable, channel: Optional[ProgressChannel] = None,
                   cancel: Optional[Event] = None) -> BulkResult:
    """
    Overwrite the selected months with "Dues" for an explicit set of students,
    regardless of what is recorded there. Payments in those months are lost.
    """
    context.require_session()
    month_keys = _normalize_months(months)

    targets: List[StudentRecord] = []
    lookup_failures: List[UnitFailure] = []
    for sid in dict.fromkeys(str(s) for s in student_ids):
        try:
            targets.append(store.get_student(sid))
        except StoreError as e:
            logger.error(f"Could not load student {sid}: {e}")
            lookup_failures.extend(UnitFailure(sid, m, str(e)) for m in month_keys)

    logger.warning(f"Forcing dues for {len(targets)} student(s), months: {', '.join(month_keys)}")
    result = _run(store, targets, month_keys, None, channel, cancel)
    result.failures = lookup_failures + result.failures
    return result


# -------------------- helpers --------------------

def _run(store: StudentStore, students: List[StudentRecord], month_keys: List[str],
         eligible: Optional[Callable[[Optional[str]], bool]],
         channel: Optional[ProgressChannel], cancel: Optional[Event]) -> BulkResult:
    result = BulkResult()
    affected: Dict[str, str] = {}       # id -> name

    for month in month_keys:
        if cancel is not None and cancel.is_set():
            logger.warning(f"Bulk dues cancelled before {month}")
            result.cancelled = True
            break

        for student in students:
            try:
                if eligible is not None and not eligible(store.get_month(student.id, month)):
                    logger.debug(f"Skipping {month} for student {student.id}")
                    continue
                store.set_month(student.id, month, codec.DUES_MARKER)
                affected[student.id] = student.name
            except StoreError as e:
                logger.error(f"Failed to mark {month} due for student {student.id}: {e}")
                result.failures.append(UnitFailure(student.id, month, str(e)))

        result.months_processed.append(month)
        if channel is not None:
            channel.publish(ProgressEvent(step=month, affected_so_far=tuple(sorted(affected.values()))))

    result.affected_ids = sorted(affected, key=_id_sort_key)
    result.count_updated = len(result.affected_ids)
    logger.info(f"Bulk dues complete: {result.count_updated} student(s) updated, "
                f"{len(result.failures)} failure(s)")
    return result


def _is_unbilled(raw: Optional[str]) -> bool:
    return codec.classify(raw) is FieldState.UNBILLED


def _normalize_months(months: Iterable) -> List[str]:
    """Month keys in calendar order, without repeats"""
    indexes = sorted({month_index(m) for m in months})
    if not indexes:
        raise ValueError("At least one month must be selected")
    return [MONTH_KEYS[i] for i in indexes]


def _dedupe(students: Iterable[StudentRecord]) -> List[StudentRecord]:
    seen: Dict[str, StudentRecord] = {}
    for s in students:
        seen.setdefault(s.id, s)
    return list(seen.values())


def _id_sort_key(student_id: str):
    return (0, int(student_id), '') if student_id.isdigit() else (1, 0, student_id)
