import pytest
from openpyxl import Workbook

from app.domain.imports.processors.tabular_reader import (
    CSV_SHEET_NAME,
    CsvSource,
    NoMatchingSheetsError,
    SourceReadError,
    UnsupportedFileTypeError,
    WorkbookSource,
    build_headers,
    detect_file_type,
    open_tabular_source,
)


def _workbook(path, sheets):
    workbook = Workbook()
    workbook.remove(workbook.active)
    for name, rows in sheets.items():
        worksheet = workbook.create_sheet(name)
        for row in rows:
            worksheet.append(row)
    workbook.save(path)
    return str(path)


def test_detect_file_type():
    assert detect_file_type(".csv") == "csv"
    assert detect_file_type(".XLSX") == "excel"
    assert detect_file_type(".xlsm") == "excel"
    with pytest.raises(UnsupportedFileTypeError, match="xls"):
        detect_file_type(".xls")
    with pytest.raises(UnsupportedFileTypeError):
        detect_file_type(".pdf")


def test_build_headers_names_blank_and_duplicate_columns():
    assert build_headers(["Name", None, " Phone ", "Name", ""]) == [
        "Name",
        "Column2",
        "Phone",
        "Name (2)",
        "Column5",
    ]


class TestWorkbookSource:
    def test_rows_are_keyed_by_header_with_sheet_row_numbers(self, tmp_path):
        path = _workbook(tmp_path / "leads.xlsx", {
            "Batch A": [
                ["Name", "Phone"],
                ["Ravi", 9876543210],
                ["Sita", None],
            ],
        })

        with WorkbookSource(path) as source:
            rows = list(source.iter_rows("Batch A"))

        assert [row.row_number for row in rows] == [2, 3]
        assert rows[0].sheet == "Batch A"
        assert rows[0].values == {"Name": "Ravi", "Phone": 9876543210}
        assert rows[1].values == {"Name": "Sita", "Phone": None}

    def test_headers_only_sheet_yields_nothing(self, tmp_path):
        path = _workbook(tmp_path / "empty.xlsx", {"Sheet1": [["Name", "Phone"]]})
        with WorkbookSource(path) as source:
            assert list(source.iter_rows("Sheet1")) == []

    def test_resolve_sheets_skips_missing_names(self, tmp_path):
        path = _workbook(tmp_path / "multi.xlsx", {"One": [["Name"]], "Two": [["Name"]], "Three": [["Name"]]})
        with WorkbookSource(path) as source:
            assert source.resolve_sheets(["Three", "Missing", "One"]) == ["Three", "One"]
            assert source.resolve_sheets([]) == ["One", "Two", "Three"]
            with pytest.raises(NoMatchingSheetsError):
                source.resolve_sheets(["Missing"])

    def test_preview_drops_blank_rows_and_stringifies(self, tmp_path):
        path = _workbook(tmp_path / "preview.xlsx", {
            "Sheet1": [
                ["Name", None, "Rank"],
                ["Ravi", "x", 12.0],
                [None, None, None],
                ["Sita", None, 3],
            ],
        })
        with WorkbookSource(path) as source:
            previews = source.preview(row_limit=10)

        assert previews == {
            "Sheet1": [
                {"Name": "Ravi", "Column2": "x", "Rank": "12"},
                {"Name": "Sita", "Column2": "", "Rank": "3"},
            ]
        }

    def test_preview_respects_row_limit(self, tmp_path):
        rows = [["Name"]] + [[f"Student {index}"] for index in range(20)]
        path = _workbook(tmp_path / "many.xlsx", {"Sheet1": rows})
        with WorkbookSource(path) as source:
            assert len(source.preview(row_limit=5)["Sheet1"]) == 5

    def test_corrupt_workbook_is_a_source_error(self, tmp_path):
        path = tmp_path / "broken.xlsx"
        path.write_bytes(b"this is not a zip archive")
        with pytest.raises(SourceReadError):
            WorkbookSource(str(path))


class TestCsvSource:
    def test_reads_rows_lazily_in_chunks(self, tmp_path):
        path = tmp_path / "leads.csv"
        lines = ["Name,Phone,District"] + [f"Student {i},98765{i:05d},Kakinada" for i in range(7)]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

        source = CsvSource(str(path), chunk_rows=3)
        rows = list(source.iter_rows())

        assert len(rows) == 7
        assert rows[0].row_number == 2
        assert rows[-1].row_number == 8
        assert rows[0].sheet == CSV_SHEET_NAME
        assert rows[0].values == {"Name": "Student 0", "Phone": "9876500000", "District": "Kakinada"}

    def test_blank_cells_become_none_and_leading_zeros_survive(self, tmp_path):
        path = tmp_path / "leads.csv"
        path.write_text("Name,Phone,Hall Ticket\nRavi,,0012345\n", encoding="utf-8")

        rows = list(CsvSource(str(path)).iter_rows())

        assert rows[0].values == {"Name": "Ravi", "Phone": None, "Hall Ticket": "0012345"}

    def test_utf8_bom_is_stripped_from_first_header(self, tmp_path):
        path = tmp_path / "bom.csv"
        path.write_bytes("\ufeffName,Phone\nRavi,1\n".encode("utf-8"))

        rows = list(CsvSource(str(path)).iter_rows())

        assert list(rows[0].values) == ["Name", "Phone"]

    def test_row_longer_than_header_keeps_extra_cells(self, tmp_path):
        path = tmp_path / "ragged.csv"
        path.write_text("Name,Phone\nA,9000000001\nB,9000000002,extra\nC,9000000003\n", encoding="utf-8")

        rows = list(CsvSource(str(path), chunk_rows=2).iter_rows())

        assert [row.row_number for row in rows] == [2, 3, 4]
        assert rows[0].values == {"Name": "A", "Phone": "9000000001"}
        assert rows[1].values == {"Name": "B", "Phone": "9000000002", "Column3": "extra"}
        assert rows[2].values == {"Name": "C", "Phone": "9000000003"}

    def test_trailing_comma_on_a_data_row(self, tmp_path):
        path = tmp_path / "trailing.csv"
        path.write_text("Name,Phone\nA,9000000001,\n", encoding="utf-8")

        rows = list(CsvSource(str(path)).iter_rows())

        assert rows[0].values == {"Name": "A", "Phone": "9000000001"}

    def test_empty_file_yields_nothing(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("", encoding="utf-8")
        assert list(CsvSource(str(path)).iter_rows()) == []

    def test_selection_is_ignored_for_csv(self, tmp_path):
        path = tmp_path / "leads.csv"
        path.write_text("Name\nRavi\n", encoding="utf-8")
        assert CsvSource(str(path)).resolve_sheets(["Sheet1"]) == [CSV_SHEET_NAME]


def test_open_tabular_source_picks_reader(tmp_path):
    csv_path = tmp_path / "leads.csv"
    csv_path.write_text("Name\nRavi\n", encoding="utf-8")
    xlsx_path = _workbook(tmp_path / "leads.xlsx", {"Sheet1": [["Name"], ["Ravi"]]})

    assert isinstance(open_tabular_source(str(csv_path), ".csv"), CsvSource)
    with open_tabular_source(xlsx_path, ".xlsx") as source:
        assert isinstance(source, WorkbookSource)


def test_open_tabular_source_missing_file(tmp_path):
    with pytest.raises(SourceReadError):
        open_tabular_source(str(tmp_path / "gone.xlsx"), ".xlsx")
