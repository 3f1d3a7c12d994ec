"""Row model: one spreadsheet row -> one typed ProjectRecord."""

import hashlib
import json
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from core.errors import ValidationError


CANONICAL_STATUSES = ('Active', 'OnTrack', 'AtRisk', 'OnHold', 'Completed', 'Cancelled')

# Spreadsheet header -> record attribute. Matched case-sensitively.
COLUMN_MAP = {
    'serial': 'serial',
    'name': 'name',
    'status': 'status',
    'budgetAllocated': 'budget_allocated',
    'budgetSpent': 'budget_spent',
    'progressPercent': 'progress_percent',
    'progress': 'progress_percent',
    'updatedAt': 'updated_at',
}

REQUIRED_COLUMNS = ('serial', 'name')

# Columns written to (and read back from) the backing store.
STORE_FIELDS = (
    'serial',
    'name',
    'status',
    'budget_allocated',
    'budget_spent',
    'progress_percent',
    'updated_at',
)

FLAG_NON_CANONICAL_STATUS = 'non_canonical_status'
FLAG_PROGRESS_MISSING = 'progress_missing'
FLAG_PROGRESS_CLAMPED = 'progress_clamped'

# Google Sheets / Excel day zero for serial date numbers
SPREADSHEET_EPOCH = datetime(1899, 12, 30, tzinfo=timezone.utc)

DATE_FORMATS = (
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%d %H:%M',
    '%Y-%m-%d',
    '%m/%d/%Y %H:%M:%S',
    '%m/%d/%Y %H:%M',
    '%m/%d/%Y',
    '%d.%m.%Y %H:%M',
    '%d.%m.%Y',
)

_CURRENCY_CHARS = re.compile(r'[\s  $€£¥₹%]')


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_number(value: Any) -> float:
    """
    Parse a spreadsheet cell into a float, tolerating locale formatting.

    Handles currency symbols, percent signs, space/NBSP thousands separators,
    both ``1,234.56`` and ``1.234,56`` styles, decimal commas (``12,5``) and
    accounting negatives (``(200)``).

    Raises:
        ValueError: If the value is not a number in any supported format
    """
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise ValueError(f"not a finite number: {value!r}")
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"not a number: {value!r}")

    text = _CURRENCY_CHARS.sub('', value.strip())
    negative = False
    if text.startswith('(') and text.endswith(')'):
        negative = True
        text = text[1:-1]
    if text.startswith('-'):
        negative = not negative
        text = text[1:]
    elif text.startswith('+'):
        text = text[1:]

    if not text:
        raise ValueError(f"not a number: {value!r}")

    if ',' in text and '.' in text:
        # Whichever separator comes last is the decimal mark
        if text.rfind(',') > text.rfind('.'):
            text = text.replace('.', '').replace(',', '.')
        else:
            text = text.replace(',', '')
    elif ',' in text:
        head, _, tail = text.rpartition(',')
        # "1,000" groups thousands; "12,5" and "0,125" use a decimal comma
        if text.count(',') == 1 and (len(tail) != 3 or not head.strip('0')):
            text = f"{head}.{tail}"
        else:
            text = text.replace(',', '')
    elif text.count('.') > 1:
        text = text.replace('.', '')

    if not re.fullmatch(r'\d+(\.\d+)?|\.\d+', text):
        raise ValueError(f"not a number: {value!r}")

    number = float(text)
    return -number if negative else number


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a timestamp cell into an aware UTC datetime.

    Accepts datetime objects, ISO 8601 strings, a handful of common sheet
    formats and spreadsheet serial day numbers.

    Raises:
        ValueError: If the value is not a recognisable timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = SPREADSHEET_EPOCH + timedelta(days=float(value))
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            for fmt in DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
            else:
                raise ValueError(f"unrecognised timestamp: {value!r}")
    else:
        raise ValueError(f"unrecognised timestamp: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_serial(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"not an integer: {value!r}")
    if isinstance(value, int):
        return value
    number = parse_number(value)
    if not number.is_integer():
        raise ValueError(f"not an integer: {value!r}")
    return int(number)


def read_serial(raw_fields: Mapping[str, Any]) -> Optional[int]:
    """Best-effort serial of a raw row, or None if it has no usable serial."""
    value = raw_fields.get('serial')
    if _is_blank(value):
        return None
    try:
        return _parse_serial(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class ProjectRecord:
    """One project as it is synced to the store and shown on the dashboard."""

    serial: int
    name: str
    status: Optional[str] = None
    budget_allocated: Optional[float] = None
    budget_spent: Optional[float] = None
    progress_percent: Optional[float] = None
    updated_at: Optional[datetime] = None
    flags: Tuple[str, ...] = field(default=(), compare=False)

    @property
    def is_canonical_status(self) -> bool:
        return self.status in CANONICAL_STATUSES

    @property
    def is_over_budget(self) -> bool:
        if self.budget_allocated is None or self.budget_spent is None:
            return False
        return self.budget_spent > self.budget_allocated

    @property
    def budget_remaining(self) -> Optional[float]:
        if self.budget_allocated is None:
            return None
        return self.budget_allocated - (self.budget_spent or 0.0)

    @property
    def content_hash(self) -> str:
        """Stable hash of the synced fields, used to detect changed rows."""
        payload = json.dumps(self.to_store_dict(), sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(payload.encode('utf-8')).hexdigest()

    def to_store_dict(self) -> Dict[str, Any]:
        """Serialize the synced fields in the store's column naming."""
        return {
            'serial': self.serial,
            'name': self.name,
            'status': self.status,
            'budget_allocated': self.budget_allocated,
            'budget_spent': self.budget_spent,
            'progress_percent': self.progress_percent,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view including derived fields."""
        data = self.to_store_dict()
        data.update({
            'is_canonical_status': self.is_canonical_status,
            'is_over_budget': self.is_over_budget,
            'budget_remaining': self.budget_remaining,
            'flags': list(self.flags),
        })
        return data

    @classmethod
    def from_store_dict(cls, data: Mapping[str, Any]) -> 'ProjectRecord':
        """
        Rebuild a record from a store row.

        Store rows were validated on the way in, so values are only coerced,
        not re-validated. Flags are recomputed.

        Raises:
            ValueError: If a stored value has the wrong type
        """
        status = data.get('status')
        progress = _optional_float(data.get('progress_percent'))
        updated_at = data.get('updated_at')
        flags = []
        if status is not None and status not in CANONICAL_STATUSES:
            flags.append(FLAG_NON_CANONICAL_STATUS)
        if progress is None:
            flags.append(FLAG_PROGRESS_MISSING)
        return cls(
            serial=_parse_serial(data['serial']),
            name=str(data['name']),
            status=status,
            budget_allocated=_optional_float(data.get('budget_allocated')),
            budget_spent=_optional_float(data.get('budget_spent')),
            progress_percent=progress,
            updated_at=parse_timestamp(updated_at) if updated_at else None,
            flags=tuple(flags),
        )


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def _parse_amount(raw: Mapping[str, Any], column: str, row_index: Optional[int]) -> Optional[float]:
    value = raw.get(column)
    if _is_blank(value):
        return None
    try:
        amount = parse_number(value)
    except ValueError:
        raise ValidationError(column, f"not a number: {value!r}", row_index, value)
    if amount < 0:
        raise ValidationError(column, f"must not be negative: {value!r}", row_index, value)
    return amount


def parse_row(raw_fields: Mapping[str, Any], row_index: Optional[int] = None) -> ProjectRecord:
    """
    Normalize one spreadsheet row into a ProjectRecord.

    Args:
        raw_fields: Mapping of column header to raw cell value
        row_index: Position of the row in the sheet, used in error messages

    Returns:
        The parsed record

    Raises:
        ValidationError: The row is missing a required column or holds a
            malformed value. No other exception escapes.
    """
    if not isinstance(raw_fields, Mapping):
        raise ValidationError('row', f"expected a mapping, got {type(raw_fields).__name__}", row_index)

    for column in REQUIRED_COLUMNS:
        if _is_blank(raw_fields.get(column)):
            raise ValidationError(column, "required field is missing", row_index)

    serial_value = raw_fields['serial']
    try:
        serial = _parse_serial(serial_value)
    except ValueError:
        raise ValidationError('serial', f"not an integer: {serial_value!r}", row_index, serial_value)

    name = str(raw_fields['name']).strip()
    flags = []

    status = raw_fields.get('status')
    if _is_blank(status):
        status = None
    else:
        status = str(status).strip()
        if status not in CANONICAL_STATUSES:
            flags.append(FLAG_NON_CANONICAL_STATUS)

    budget_allocated = _parse_amount(raw_fields, 'budgetAllocated', row_index)
    budget_spent = _parse_amount(raw_fields, 'budgetSpent', row_index)

    progress_column = 'progressPercent' if 'progressPercent' in raw_fields else 'progress'
    progress_value = raw_fields.get(progress_column)
    if _is_blank(progress_value):
        progress = None
        flags.append(FLAG_PROGRESS_MISSING)
    else:
        try:
            progress = parse_number(progress_value)
        except ValueError:
            raise ValidationError(progress_column, f"not a number: {progress_value!r}", row_index, progress_value)
        if progress < 0.0 or progress > 100.0:
            progress = min(max(progress, 0.0), 100.0)
            flags.append(FLAG_PROGRESS_CLAMPED)

    updated_value = raw_fields.get('updatedAt')
    updated_at = None
    if not _is_blank(updated_value):
        try:
            updated_at = parse_timestamp(updated_value)
        except (ValueError, OverflowError):
            raise ValidationError('updatedAt', f"unrecognised timestamp: {updated_value!r}", row_index, updated_value)

    return ProjectRecord(
        serial=serial,
        name=name,
        status=status,
        budget_allocated=budget_allocated,
        budget_spent=budget_spent,
        progress_percent=progress,
        updated_at=updated_at,
        flags=tuple(flags),
    )
