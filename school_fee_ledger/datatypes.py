from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple
from datetime import datetime

from .errors import UnknownMonthError

Money = Decimal       # keep full-precision rupees/paise

MONTH_KEYS = (
    'january', 'february', 'march', 'april', 'may', 'june',
    'july', 'august', 'september', 'october', 'november', 'december',
)
MONTH_NAMES = tuple(m.capitalize() for m in MONTH_KEYS)


class FieldState(Enum):
    """What a raw monthly fee field encodes"""
    UNBILLED = "Unbilled"
    DUES = "Dues"
    LEGACY_FULL = "LegacyFull"
    LEDGER = "Ledger"


class DuesStatus(Enum):
    PENDING = "Pending"
    DUE = "Due"
    PARTIAL = "Partial"
    PAID = "Paid"


class LegacyFull:
    """Tag for the old bare-timestamp "paid in full" marker."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'LEGACY_FULL'


LEGACY_FULL = LegacyFull()


@dataclass(frozen=True)
class Payment:
    amount: Money                        # always >= 0
    recorded_at: Optional[datetime]      # None when the timestamp half is unreadable


@dataclass(frozen=True)
class DecodedField:
    state: FieldState
    paid: object                         # Money, or LEGACY_FULL
    payments: Tuple[Payment, ...] = ()
    malformed_segments: int = 0


@dataclass(frozen=True)
class StudentFeeLedger:
    months: Tuple[Optional[str], ...]    # 12 raw fields, January first
    previous_dues: Money = Money(0)      # arrears not tied to any month

    def __post_init__(self):
        if len(self.months) != 12:
            raise ValueError(f"A ledger needs 12 monthly fields, got {len(self.months)}")
        dues = Money(0) if self.previous_dues is None else Money(str(self.previous_dues))
        if not dues.is_finite() or dues < 0:
            raise ValueError(f"previous_dues must be a non-negative amount, got {self.previous_dues!r}")
        object.__setattr__(self, 'months', tuple(self.months))
        object.__setattr__(self, 'previous_dues', dues)

    @classmethod
    def from_record(cls, record: dict) -> 'StudentFeeLedger':
        """Build a ledger from a student row keyed by month name"""
        return cls(
            months=tuple(record.get(key) for key in MONTH_KEYS),
            previous_dues=record.get('previous_dues') or Money(0),
        )

    def month(self, key: str) -> Optional[str]:
        return self.months[month_index(key)]


@dataclass(frozen=True)
class StudentRecord:
    id: str
    name: str
    class_name: str
    ledger: StudentFeeLedger
    roll_number: Optional[str] = None
    uid: Optional[str] = None            # owning school account
    discount: Money = Money(0)           # percent off the class fee, 0-100


@dataclass(frozen=True)
class DuesSnapshot:
    fee_amount: Money
    paid_amount: Money
    due_amount: Money
    status: DuesStatus
    overpaid: Money = Money(0)           # reported only, never carried forward
    malformed_segments: int = 0


@dataclass(frozen=True)
class StudentDues:
    monthly: Tuple[DuesSnapshot, ...]
    paid_ytd: Money
    due_ytd: Money
    previous_dues: Money
    net_due: Money
    malformed_segments: int = 0


@dataclass(frozen=True)
class BillLine:
    label: str                  # "March Fee" / "Previous Arrears"
    amount: Money
    kind: str                   # "month" | "arrears"
    month_index: Optional[int] = None


@dataclass(frozen=True)
class Bill:
    lines: Tuple[BillLine, ...]
    total: Money


@dataclass(frozen=True)
class ProgressEvent:
    step: str                             # month key being processed
    affected_so_far: Tuple[str, ...]      # sorted student names


@dataclass(frozen=True)
class UnitFailure:
    student_id: str
    month: str
    error: str


@dataclass
class BulkResult:
    affected_ids: List[str] = field(default_factory=list)
    count_updated: int = 0
    failures: List[UnitFailure] = field(default_factory=list)
    months_processed: List[str] = field(default_factory=list)
    cancelled: bool = False


def month_index(key) -> int:
    """Resolve a month key ("march") or 0-based index to an index"""
    if isinstance(key, int) and not isinstance(key, bool):
        if 0 <= key < 12:
            return key
        raise UnknownMonthError(f"Month index out of range: {key}")
    try:
        return MONTH_KEYS.index(str(key).strip().lower())
    except ValueError:
        raise UnknownMonthError(f"Unknown month: {key!r}") from None
