import pandas as pd
from pathlib import Path
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Protocol
import logging

from .datatypes import MONTH_KEYS, StudentFeeLedger, StudentRecord, month_index
from .errors import StoreError

logger = logging.getLogger(__name__)

# Column order matching the students export
COLUMNS = [
    'id',
    'uid',
    'name',
    'class',
    'roll_number',
    *MONTH_KEYS,
    'previous_dues',
    'discount',
]


class StudentStore(Protocol):
    def get_student(self, student_id: str) -> StudentRecord: ...

    def students_in_class(self, uid: str, class_name: str) -> List[StudentRecord]: ...

    def get_month(self, student_id: str, month: str) -> Optional[str]: ...

    def set_month(self, student_id: str, month: str, value: str) -> None: ...


class InMemoryStudentStore:
    """Dict-backed store; rows are the same shape as CSV rows"""

    def __init__(self, rows: Iterable[dict] = ()):
        self._rows: Dict[str, dict] = {}
        for row in rows:
            self._rows[str(row['id'])] = dict(row)

    def get_student(self, student_id: str) -> StudentRecord:
        return _row_to_record(self._row(student_id))

    def students_in_class(self, uid: str, class_name: str) -> List[StudentRecord]:
        return [_row_to_record(r) for r in self._rows.values()
                if r.get('class') == class_name and _owned_by(r.get('uid'), uid)]

    def get_month(self, student_id: str, month: str) -> Optional[str]:
        return _clean_field(self._row(student_id).get(_month_key(month)))

    def set_month(self, student_id: str, month: str, value: str) -> None:
        self._row(student_id)[_month_key(month)] = value

    def rows(self) -> List[dict]:
        return [dict(r) for r in self._rows.values()]

    def _row(self, student_id: str) -> dict:
        try:
            return self._rows[str(student_id)]
        except KeyError:
            raise StoreError(f"Student {student_id} not found") from None


class CsvStudentStore:
    """
    Students kept in a CSV file. Every write goes straight back to disk, one
    field at a time; there is no batch transaction.
    """

    def __init__(self, csv_path: Path):
        self.csv_path = Path(csv_path)

    def read_students(self) -> List[StudentRecord]:
        """Read every student row and convert to StudentRecord objects"""
        df = self._load()
        records = [_row_to_record(_series_to_row(row)) for _, row in df.iterrows()]
        logger.info(f"Converted {len(records)} CSV rows to StudentRecord objects")
        return records

    def get_student(self, student_id: str) -> StudentRecord:
        df = self._load()
        return _row_to_record(_series_to_row(df.loc[self._locate(df, student_id)]))

    def students_in_class(self, uid: str, class_name: str) -> List[StudentRecord]:
        return [s for s in self.read_students()
                if s.class_name == class_name and _owned_by(s.uid, uid)]

    def get_month(self, student_id: str, month: str) -> Optional[str]:
        df = self._load()
        return _clean_field(df.at[self._locate(df, student_id), _month_key(month)])

    def set_month(self, student_id: str, month: str, value: str) -> None:
        df = self._load()
        idx = self._locate(df, student_id)
        df.at[idx, _month_key(month)] = value
        try:
            df.to_csv(self.csv_path, index=False)
        except OSError as e:
            raise StoreError(f"Failed to write {self.csv_path}: {e}") from e
        logger.debug(f"Set {month} = {value!r} for student {student_id}")

    def write_students(self, rows: Iterable[dict]) -> None:
        """Write the complete student table, replacing any existing file"""
        df = pd.DataFrame(list(rows), columns=COLUMNS)
        df.to_csv(self.csv_path, index=False)
        logger.debug(f"Successfully wrote {len(df)} students to {self.csv_path}")

    def _load(self) -> pd.DataFrame:
        if not self.csv_path.exists():
            logger.info(f"Student file {self.csv_path} does not exist, returning empty table")
            return pd.DataFrame(columns=COLUMNS, dtype=str)
        try:
            df = pd.read_csv(self.csv_path, dtype=str, keep_default_na=False)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise StoreError(f"Failed to read {self.csv_path}: {e}") from e
        for col in COLUMNS:
            if col not in df.columns:
                df[col] = ''
        logger.debug(f"Read {len(df)} rows from {self.csv_path}")
        return df

    def _locate(self, df: pd.DataFrame, student_id: str):
        matches = df.index[df['id'] == str(student_id)]
        if len(matches) == 0:
            raise StoreError(f"Student {student_id} not found in {self.csv_path}")
        return matches[0]


# -------------------- helpers --------------------

def _month_key(month) -> str:
    return MONTH_KEYS[month_index(month)]


def _owned_by(row_uid, uid) -> bool:
    # rows without an owner column belong to whoever loaded the file
    return not row_uid or row_uid == uid


def _series_to_row(series: pd.Series) -> dict:
    return {k: series.get(k) for k in COLUMNS}


def _row_to_record(row: dict) -> StudentRecord:
    ledger = StudentFeeLedger(
        months=tuple(_clean_field(row.get(key)) for key in MONTH_KEYS),
        previous_dues=_parse_money(row.get('previous_dues')),
    )
    return StudentRecord(
        id=str(row['id']),
        name=str(row.get('name') or ''),
        class_name=str(row.get('class') or ''),
        ledger=ledger,
        roll_number=_clean_field(row.get('roll_number')),
        uid=_clean_field(row.get('uid')),
        discount=_parse_discount(row.get('discount')),
    )


def _clean_field(value) -> Optional[str]:
    """Blank cells and NaN become None so they read as unbilled"""
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    text = str(value)
    return text if text != '' else None


def _parse_money(value) -> Decimal:
    """Parse a previous-dues cell; blanks mean no arrears"""
    amount = _parse_decimal(value)
    if amount is None or amount < 0:
        logger.warning(f"Could not parse previous dues amount: {value}")
        return Decimal('0')
    return amount


def _parse_discount(value) -> Decimal:
    """Parse a discount percentage cell; anything outside 0-100 means no discount"""
    amount = _parse_decimal(value)
    if amount is None or amount < 0 or amount > 100:
        logger.warning(f"Ignoring invalid discount: {value}")
        return Decimal('0')
    return amount


def _parse_decimal(value) -> Optional[Decimal]:
    text = _clean_field(value)
    if text is None:
        return Decimal('0')
    try:
        amount = Decimal(text.replace('₹', '').replace('%', '').replace(',', '').strip())
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None
