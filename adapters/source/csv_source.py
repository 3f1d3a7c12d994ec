"""CSV export source, for local runs without Sheets credentials."""

import csv
import os
from typing import Any, Dict, List

from adapters.source.base import BaseSourceAdapter, rows_from_values
from core.errors import SourceError


class CsvSource(BaseSourceAdapter):
    """Reads a sheet exported as CSV (first line is the header row)."""

    def __init__(self, path: str, encoding: str = 'utf-8-sig'):
        self.path = path
        self.encoding = encoding

    @property
    def name(self) -> str:
        return "csv"

    def read_rows(self) -> List[Dict[str, Any]]:
        try:
            with open(self.path, 'r', newline='', encoding=self.encoding) as csvfile:
                values = list(csv.reader(csvfile))
        except (OSError, csv.Error, UnicodeDecodeError) as e:
            raise SourceError(f"Could not read {self.path}: {e}")
        return rows_from_values(values)

    def is_available(self) -> bool:
        return bool(self.path) and os.path.exists(self.path)
