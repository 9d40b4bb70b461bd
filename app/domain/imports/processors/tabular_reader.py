"""
Streaming readers for spreadsheet and CSV lead files.

Both formats expose the same contract: a lazy, single-pass iterator of
:class:`SourceRow` objects per sheet, with the first row of every sheet
consumed as headers. Workbooks are opened with openpyxl in read-only mode
and CSV files are read through pandas in fixed-size chunks, so memory stays
bounded regardless of file size.
"""
from __future__ import annotations

import csv
from dataclasses import dataclass
import datetime as _dt
from decimal import Decimal
import logging
import os
import zipfile
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import pandas as pd
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

logger = logging.getLogger(__name__)

SPREADSHEET_EXTENSIONS = {".xlsx", ".xlsm"}
CSV_EXTENSIONS = {".csv"}
CSV_SHEET_NAME = "CSV"
CSV_CHUNK_ROWS = 5000

_SCALAR_TYPES = (str, int, float, bool, Decimal, _dt.datetime, _dt.date, _dt.time)


class UnsupportedFileTypeError(ValueError):
    """Raised when a file extension is not one of the supported lead formats."""


class SourceReadError(RuntimeError):
    """The source as a whole cannot be read; fatal for the import job."""


class NoMatchingSheetsError(SourceReadError):
    """None of the selected sheets exist in the workbook."""


@dataclass
class SourceRow:
    sheet: str
    row_number: int
    values: Dict[str, Any]


def normalize_extension(file_name: str) -> str:
    return os.path.splitext(file_name or "")[1].lower()


def detect_file_type(extension: str) -> str:
    """
    Map an extension to ``"csv"`` or ``"excel"``.

    Raises:
        UnsupportedFileTypeError: for legacy ``.xls`` and anything else unknown.
    """
    ext = (extension or "").lower()
    if ext in CSV_EXTENSIONS:
        return "csv"
    if ext in SPREADSHEET_EXTENSIONS:
        return "excel"
    if ext == ".xls":
        raise UnsupportedFileTypeError(
            "Legacy .xls files are not supported. Please convert the file to .xlsx and try again."
        )
    raise UnsupportedFileTypeError("Unsupported file format. Please upload .xlsx or .csv files.")


def flatten_cell_value(value: Any) -> Any:
    """Reduce rich cell objects (rich text, hyperlinks, formula results) to their display value."""
    if value is None or isinstance(value, _SCALAR_TYPES):
        return value
    for attribute in ("text", "value", "target"):
        inner = getattr(value, attribute, None)
        if inner is not None and not callable(inner):
            return flatten_cell_value(inner)
    # openpyxl's CellRichText renders as its concatenated text
    return str(value)


def build_headers(raw_headers: Sequence[Any]) -> List[str]:
    """Trim header cells, name blank ones ``Column<N>`` and de-duplicate repeats."""
    headers: List[str] = []
    seen: Dict[str, int] = {}
    for index, cell in enumerate(raw_headers):
        value = flatten_cell_value(cell)
        header = "" if value is None else str(value).strip()
        if not header:
            header = f"Column{index + 1}"
        if header in seen:
            seen[header] += 1
            header = f"{header} ({seen[header]})"
        else:
            seen[header] = 1
        headers.append(header)
    return headers


def _row_mapping(headers: List[str], cells: Sequence[Any]) -> Dict[str, Any]:
    row: Dict[str, Any] = {}
    for index, cell in enumerate(cells):
        value = flatten_cell_value(cell)
        if index < len(headers):
            row[headers[index]] = value
        elif value not in (None, ""):
            row[f"Column{index + 1}"] = value
    for header in headers[len(cells):]:
        row[header] = None
    return row


def _preview_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


class TabularSource:
    """Common interface of workbook and CSV sources."""

    def __enter__(self) -> "TabularSource":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        pass

    def sheet_names(self) -> List[str]:
        raise NotImplementedError

    def iter_rows(self, sheet: str) -> Iterator[SourceRow]:
        raise NotImplementedError

    def resolve_sheets(self, selected: Optional[Sequence[str]]) -> List[str]:
        """
        Return the selected sheets that exist, in selection order.

        Missing sheets are skipped; an empty selection means every sheet.

        Raises:
            NoMatchingSheetsError: when none of the selected sheets exist.
        """
        available = self.sheet_names()
        if not selected:
            return list(available)
        present = [name for name in selected if name in available]
        missing = [name for name in selected if name not in available]
        if missing:
            logger.warning("Skipping sheets not present in file: %s", ", ".join(missing))
        if not present:
            raise NoMatchingSheetsError("Selected worksheets were not found in the uploaded file")
        return present

    def preview(self, row_limit: int) -> Dict[str, List[Dict[str, str]]]:
        """First ``row_limit`` non-blank rows of every sheet as trimmed strings."""
        previews: Dict[str, List[Dict[str, str]]] = {}
        for sheet in self.sheet_names():
            rows: List[Dict[str, str]] = []
            for source_row in self.iter_rows(sheet):
                if len(rows) >= row_limit:
                    break
                preview = {key: _preview_value(value) for key, value in source_row.values.items()}
                if any(preview.values()):
                    rows.append(preview)
            previews[sheet] = rows
        return previews


class WorkbookSource(TabularSource):
    """Read-only openpyxl workbook; sheets are only parsed when iterated."""

    def __init__(self, path: str):
        self.path = path
        try:
            self._workbook = load_workbook(path, read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
            raise SourceReadError(f"Unable to read workbook: {exc}") from exc

    def close(self) -> None:
        self._workbook.close()

    def sheet_names(self) -> List[str]:
        return list(self._workbook.sheetnames)

    def iter_rows(self, sheet: str) -> Iterator[SourceRow]:
        worksheet = self._workbook[sheet]
        headers: Optional[List[str]] = None
        for row_number, cells in enumerate(worksheet.iter_rows(values_only=True), start=1):
            if headers is None:
                headers = build_headers(cells)
                continue
            yield SourceRow(sheet=sheet, row_number=row_number, values=_row_mapping(headers, cells))


def _trim_trailing_blanks(cells: List[Any]) -> List[Any]:
    end = len(cells)
    while end and (cells[end - 1] is None or pd.isna(cells[end - 1]) or str(cells[end - 1]).strip() == ""):
        end -= 1
    return cells[:end]


class CsvSource(TabularSource):
    """CSV file read lazily in ``chunk_rows`` blocks via pandas."""

    def __init__(self, path: str, chunk_rows: int = CSV_CHUNK_ROWS):
        if not os.path.isfile(path):
            raise SourceReadError(f"Uploaded file not found: {os.path.basename(path)}")
        self.path = path
        self.chunk_rows = chunk_rows

    def sheet_names(self) -> List[str]:
        return [CSV_SHEET_NAME]

    def resolve_sheets(self, selected: Optional[Sequence[str]]) -> List[str]:
        # A CSV file is always its single implicit sheet.
        return [CSV_SHEET_NAME]

    def _widest_row(self) -> int:
        """Cell count of the longest line; rows may run past the header row."""
        width = 0
        try:
            with open(self.path, newline="", encoding="utf-8-sig") as handle:
                for cells in csv.reader(handle):
                    width = max(width, len(cells))
        except (csv.Error, UnicodeDecodeError, OSError) as exc:
            raise SourceReadError(f"Unable to read CSV file: {exc}") from exc
        return width

    def _open_chunks(self) -> Tuple[List[str], Iterator[pd.DataFrame]]:
        width = self._widest_row()
        if not width:
            return [], iter(())
        try:
            reader = pd.read_csv(
                self.path,
                header=None,
                names=list(range(width)),
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                encoding="utf-8-sig",
                chunksize=self.chunk_rows,
            )
        except pd.errors.EmptyDataError:
            return [], iter(())
        except (pd.errors.ParserError, UnicodeDecodeError, OSError) as exc:
            raise SourceReadError(f"Unable to read CSV file: {exc}") from exc

        try:
            first = next(reader)
        except StopIteration:
            reader.close()
            return [], iter(())
        except (pd.errors.ParserError, UnicodeDecodeError) as exc:
            reader.close()
            raise SourceReadError(f"Unable to read CSV file: {exc}") from exc

        headers = build_headers(_trim_trailing_blanks(first.iloc[0].tolist())) if len(first) else []

        def chunks() -> Iterator[pd.DataFrame]:
            try:
                yield first.iloc[1:]
                yield from reader
            finally:
                reader.close()

        return headers, chunks()

    def iter_rows(self, sheet: str = CSV_SHEET_NAME) -> Iterator[SourceRow]:
        headers, chunks = self._open_chunks()
        row_number = 1
        for chunk in chunks:
            for cells in chunk.itertuples(index=False, name=None):
                row_number += 1
                values = [None if pd.isna(cell) or cell == "" else cell for cell in cells]
                yield SourceRow(sheet=CSV_SHEET_NAME, row_number=row_number, values=_row_mapping(headers, values))


def open_tabular_source(path: str, extension: str) -> TabularSource:
    """
    Open ``path`` with the reader matching ``extension``.

    Raises:
        UnsupportedFileTypeError: for unknown extensions.
        SourceReadError: when the file is missing or structurally invalid.
    """
    file_type = detect_file_type(extension)
    if not os.path.isfile(path):
        raise SourceReadError(f"Uploaded file not found: {os.path.basename(path)}")
    if file_type == "csv":
        return CsvSource(path)
    return WorkbookSource(path)
