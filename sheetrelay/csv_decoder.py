"""
Convert CSV text into records.

The decoder is permissive: the first non-blank row is the header, blank
lines are skipped, short rows are padded with "" and fields past the end of
the header are dropped. Quoted fields may hold the delimiter, doubled
quotes and line breaks.
"""

import csv
import io
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

import structlog

from .errors import DecodeError

logger = structlog.get_logger(__name__)

Record = Dict[str, str]


@dataclass
class Table:
    header: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"header": self.header, "rows": self.rows}


def _is_blank(raw: str, delimiter: str) -> bool:
    """A line of only whitespace and unquoted delimiters, e.g. sheet padding like ",,"."""
    return not raw.strip(" \t\r\n" + delimiter)


def _header_names(row: List[str]) -> List[str]:
    return [
        name.strip() or f"column_{position}"
        for position, name in enumerate(row, start=1)
    ]


def _iter_rows(text: str, delimiter: str) -> Iterator[Tuple[int, List[str]]]:
    """Yield (line_no, fields) for every non-blank row."""
    if text.startswith('\ufeff'):
        text = text[1:]

    consumed = []

    def physical_lines():
        for line in io.StringIO(text, newline=''):
            consumed.append(line)
            yield line

    reader = csv.reader(physical_lines(), delimiter=delimiter)
    try:
        for row in reader:
            raw = "".join(consumed)
            consumed.clear()
            if _is_blank(raw, delimiter):
                continue
            yield reader.line_num, row
    except csv.Error as e:
        logger.error("csv_decode_failed", line_no=reader.line_num, error=str(e))
        raise DecodeError() from e


def _split(text: Optional[str], delimiter: str) -> Tuple[List[str], Iterator[Tuple[int, List[str]]]]:
    if not text or not text.strip():
        return [], iter(())

    rows = _iter_rows(text, delimiter)
    first = next(rows, None)
    if first is None:
        return [], iter(())
    return _header_names(first[1]), rows


def decode(text: Optional[str], delimiter: str = ",") -> List[Record]:
    """Decode CSV text into a list of header-keyed records.

    Empty or whitespace-only input yields an empty list.
    """
    header, rows = _split(text, delimiter)
    width = len(header)

    records = []
    for line_no, row in rows:
        if len(row) > width:
            logger.debug("csv_row_truncated", line_no=line_no, expected=width, got=len(row))
        elif len(row) < width:
            logger.debug("csv_row_padded", line_no=line_no, expected=width, got=len(row))
            row = row + [""] * (width - len(row))
        records.append(dict(zip(header, row)))

    logger.debug("csv_decoded", fields=width, records=len(records))
    return records


def decode_table(text: Optional[str], delimiter: str = ",") -> Table:
    """Decode CSV text into a header/rows pair, keeping rows as parsed."""
    header, rows = _split(text, delimiter)
    return Table(header=header, rows=[row for _, row in rows])
