import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from . import codec
from .datatypes import (
    LEGACY_FULL, DuesSnapshot, DuesStatus, FieldState, Money, StudentDues, StudentFeeLedger,
)
from .errors import InvalidClassFeeError

logger = logging.getLogger(__name__)

ZERO = Money(0)


def month_status(month_index: int, raw: Optional[str], class_fee, cutoff_index: int,
                 discount_pct=0) -> DuesSnapshot:
    """Dues for one month of one student's ledger."""
    fee = net_fee(class_fee, discount_pct)
    _check_index(cutoff_index, 'cutoff_index')
    _check_index(month_index, 'month_index')
    return _snapshot(month_index, raw, fee, cutoff_index)


def student_dues(ledger: StudentFeeLedger, class_fee, cutoff_index: int,
                 discount_pct=0) -> StudentDues:
    """
    Dues for a whole ledger up to and including `cutoff_index` (0 = January).

    Months after the cutoff are reported as Pending and never counted.
    Previous dues are added to the net figure but not spread over months.
    """
    fee = net_fee(class_fee, discount_pct)
    _check_index(cutoff_index, 'cutoff_index')

    monthly = tuple(_snapshot(i, raw, fee, cutoff_index) for i, raw in enumerate(ledger.months))

    counted = monthly[:cutoff_index + 1]
    paid_ytd = sum((s.paid_amount for s in counted), ZERO)
    due_ytd = sum((s.due_amount for s in counted), ZERO)
    malformed = sum(s.malformed_segments for s in monthly)

    if malformed:
        logger.warning(f"Ledger has {malformed} malformed payment segment(s); counted as zero")

    return StudentDues(
        monthly=monthly,
        paid_ytd=paid_ytd,
        due_ytd=due_ytd,
        previous_dues=ledger.previous_dues,
        net_due=due_ytd + ledger.previous_dues,
        malformed_segments=malformed,
    )


def net_fee(class_fee, discount_pct=0) -> Money:
    """Validated monthly fee after a percentage discount"""
    fee = validate_class_fee(class_fee)
    pct = _to_money(discount_pct)
    if pct is None or pct < 0 or pct > 100:
        raise ValueError(f"Discount must be between 0 and 100 percent, got {discount_pct!r}")
    if pct == 0:
        return fee
    return fee - (fee * pct / Money(100))


def validate_class_fee(class_fee) -> Money:
    if class_fee is None:
        raise InvalidClassFeeError("Class fee is missing")
    fee = _to_money(class_fee)
    if fee is None:
        raise InvalidClassFeeError(f"Class fee is not a number: {class_fee!r}")
    if fee < 0:
        raise InvalidClassFeeError(f"Class fee cannot be negative: {class_fee!r}")
    return fee


# -------------------- helpers --------------------

def _snapshot(month_index: int, raw: Optional[str], fee: Money, cutoff_index: int) -> DuesSnapshot:
    decoded = codec.decode_field(raw)
    paid = fee if decoded.paid is LEGACY_FULL else decoded.paid

    if month_index > cutoff_index:
        return DuesSnapshot(
            fee_amount=fee,
            paid_amount=paid,
            due_amount=ZERO,
            status=DuesStatus.PENDING,
            malformed_segments=decoded.malformed_segments,
        )

    # the literal marker wins over anything else
    if decoded.state is FieldState.DUES:
        return DuesSnapshot(fee_amount=fee, paid_amount=ZERO, due_amount=fee,
                            status=DuesStatus.DUE if fee > 0 else DuesStatus.PAID)

    due = max(ZERO, fee - paid)
    if due == 0:
        status = DuesStatus.PAID
    elif paid > 0:
        status = DuesStatus.PARTIAL
    else:
        status = DuesStatus.DUE

    return DuesSnapshot(
        fee_amount=fee,
        paid_amount=paid,
        due_amount=due,
        status=status,
        overpaid=max(ZERO, paid - fee),
        malformed_segments=decoded.malformed_segments,
    )


def _check_index(value: int, name: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= 11:
        raise ValueError(f"{name} must be a month index between 0 and 11, got {value!r}")


def _to_money(value) -> Optional[Money]:
    if isinstance(value, bool):
        return None
    try:
        money = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return money if money.is_finite() else None
