"""Base spreadsheet source interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence


class BaseSourceAdapter(ABC):
    """
    Abstract base class for spreadsheet sources.

    A source yields the sheet as an ordered list of rows, each row a mapping
    from header name to raw cell value (string, number or blank).
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of the source provider."""
        pass

    @abstractmethod
    def read_rows(self) -> List[Dict[str, Any]]:
        """
        Read the whole sheet.

        Returns:
            Rows in sheet order

        Raises:
            SourceError: If the sheet cannot be read
        """
        pass

    def is_available(self) -> bool:
        """
        Check if the source is properly configured.

        Returns:
            True if the source can be read, False otherwise
        """
        return True


def rows_from_values(values: Sequence[Sequence[Any]]) -> List[Dict[str, Any]]:
    """
    Turn a header row plus value rows into header-keyed dicts.

    Short rows are padded with None (the Sheets API drops trailing blanks)
    and rows with no non-blank cell are skipped.
    """
    if not values:
        return []

    headers = [str(header).strip() if header is not None else '' for header in values[0]]
    rows = []
    for raw in values[1:]:
        cells = list(raw) + [None] * (len(headers) - len(raw))
        if all(cell is None or (isinstance(cell, str) and not cell.strip()) for cell in cells):
            continue
        rows.append({
            header: cell
            for header, cell in zip(headers, cells)
            if header
        })
    return rows
