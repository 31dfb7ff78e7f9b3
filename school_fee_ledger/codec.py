"""
Monthly fee field codec.

Each student row carries one text field per calendar month. The field is one of:

  * empty / missing / "undefined"   - nothing billed yet
  * "Dues"                          - billed, nothing paid
  * "2024-07-15T10:30:00.000Z"      - legacy marker, paid in full on that date
  * "600=d=2024-01-05T00:00:00.000Z;400=d=2024-02-01T09:00:00.000Z"
                                    - payment ledger, one entry per payment

Reading is lenient: a ledger segment that can't be understood counts as zero
and is reported through ``malformed_segments`` instead of raising.
"""
import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from dateutil import parser as date_parser

from .datatypes import LEGACY_FULL, DecodedField, FieldState, Money, Payment

logger = logging.getLogger(__name__)

DUES_MARKER = 'Dues'
ENTRY_SEPARATOR = ';'
AMOUNT_SEPARATOR = '=d='

_UNBILLED_VALUES = {'', 'undefined'}
_LEGACY_TIMESTAMP = re.compile(r'[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}\.[0-9]{3}Z')


def is_legacy_timestamp(raw: Optional[str]) -> bool:
    return raw is not None and _LEGACY_TIMESTAMP.fullmatch(raw) is not None


def classify(raw: Optional[str]) -> FieldState:
    if raw is None or raw in _UNBILLED_VALUES:
        return FieldState.UNBILLED
    if raw == DUES_MARKER:
        return FieldState.DUES
    if is_legacy_timestamp(raw):
        return FieldState.LEGACY_FULL
    return FieldState.LEDGER


def decode_field(raw: Optional[str]) -> DecodedField:
    """Decode a raw monthly field, keeping per-payment detail and diagnostics"""
    state = classify(raw)
    if state in (FieldState.UNBILLED, FieldState.DUES):
        return DecodedField(state=state, paid=Money(0))
    if state is FieldState.LEGACY_FULL:
        return DecodedField(state=state, paid=LEGACY_FULL)

    payments: List[Payment] = []
    malformed = 0
    for segment in raw.split(ENTRY_SEPARATOR):
        parts = segment.split(AMOUNT_SEPARATOR)
        amount = _parse_amount(parts[0]) if len(parts) == 2 else None
        if amount is None:
            malformed += 1
            continue
        payments.append(Payment(amount=amount, recorded_at=_parse_timestamp(parts[1])))

    if malformed:
        logger.warning(f"Skipped {malformed} malformed ledger segment(s) in {raw!r}")

    return DecodedField(
        state=state,
        paid=sum((p.amount for p in payments), Money(0)),
        payments=tuple(payments),
        malformed_segments=malformed,
    )


def decode(raw: Optional[str]):
    """Paid amount recorded in a monthly field, or LEGACY_FULL"""
    return decode_field(raw).paid


def decode_payments(raw: Optional[str]) -> List[Payment]:
    """Payment history in stored order; legacy full payments carry no entries"""
    return list(decode_field(raw).payments)


def encode_append_payment(raw: Optional[str], amount, timestamp: datetime) -> str:
    """
    Record a payment against a monthly field.

    An existing ledger with at least one readable entry is extended; anything
    else (unbilled, "Dues", legacy marker, unreadable text) is replaced by the
    new entry.
    """
    value = _validate_payment_amount(amount)
    entry = f"{format_amount(value)}{AMOUNT_SEPARATOR}{format_timestamp(timestamp)}"

    decoded = decode_field(raw)
    if decoded.state is FieldState.LEDGER and decoded.payments:
        return f"{raw}{ENTRY_SEPARATOR}{entry}"
    if decoded.state is FieldState.LEDGER:
        logger.warning(f"Replacing unreadable fee field {raw!r} with a new payment entry")
    return entry


def format_amount(amount: Money) -> str:
    # 250 rather than 250.00, matching what is already stored
    if amount == amount.to_integral_value():
        return str(int(amount))
    return format(amount.normalize(), 'f')


def format_timestamp(ts: datetime) -> str:
    """UTC ISO-8601 with milliseconds, e.g. 2024-07-15T10:30:00.000Z"""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    ts = ts.astimezone(timezone.utc)
    return ts.strftime('%Y-%m-%dT%H:%M:%S.') + f"{ts.microsecond // 1000:03d}Z"


def _parse_amount(text: str) -> Optional[Money]:
    try:
        value = Decimal(text.strip())
    except InvalidOperation:
        return None
    if not value.is_finite() or value < 0:
        return None
    return value


def _parse_timestamp(text: str) -> Optional[datetime]:
    try:
        return date_parser.isoparse(text.strip())
    except (ValueError, OverflowError):
        logger.debug(f"Unreadable payment timestamp: {text!r}")
        return None


def _validate_payment_amount(amount) -> Money:
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid payment amount: {amount!r}") from None
    if not value.is_finite() or value <= 0:
        raise ValueError(f"Invalid payment amount: {amount!r}")
    return value
