"""Tests for the CSV export: escaping, row layouts and the encoded write."""
import csv
import io
from datetime import datetime

import pytest
from rich.console import Console

from reffinder.analyzer.collector import DeclarationRecord, MemberKind
from reffinder.analyzer.reference_resolver import ReferenceRecord
from reffinder.analyzer.symbols import Accessibility
from reffinder.report.csv_report import (
    ReportLayout,
    RowBuffer,
    csv_escape,
    join_row,
    result_file_name,
    write_report,
)
from reffinder.utils.logger import LogBuffer
from reffinder.workspace.fakes import make_field, make_type


FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5)


def _record(text="Public Const Max As Integer = 10"):
    owner = make_type("Limits", "Core")
    return DeclarationRecord(
        member_kind=MemberKind.CONST_FIELD,
        accessibility=Accessibility.PUBLIC,
        declaring_namespace="Core",
        declaring_type="Limits",
        declaration_text=text,
        symbol=make_field(owner, "Max", "Integer", 10),
    )


def _reference(line=3, source_line="total = Limits.Max"):
    return ReferenceRecord(
        reference_namespace="App",
        reference_type="Worker",
        reference_member="Run",
        line_number=line,
        source_line=source_line,
        file_path="/src/Worker.vb",
    )


def _captured_log(width=200):
    buffer = io.StringIO()
    return LogBuffer(Console(file=buffer, width=width)), buffer


class TestEscape:
    """Field escaping rules."""

    def test_plain_fields_are_unchanged(self):
        assert csv_escape("Limits") == "Limits"
        assert csv_escape("") == ""
        assert csv_escape(None) == ""

    def test_special_characters_force_quoting(self):
        assert csv_escape("a,b") == '"a,b"'
        assert csv_escape('say "hi"') == '"say ""hi"""'
        assert csv_escape("two\nlines") == '"two\nlines"'
        assert csv_escape("cr\r") == '"cr\r"'

    @pytest.mark.parametrize("fields", [
        ["plain", "with,comma", 'with "quotes"', "multi\nline", ""],
        ['Public Const Sep As String = ","', "x = Format(a, b)", "   "],
    ])
    def test_standard_reader_recovers_fields(self, fields):
        parsed = next(csv.reader(io.StringIO(join_row(fields), newline="")))
        assert parsed == fields


class TestRowBuffer:
    """Row accumulation per layout."""

    def test_header_is_first_row(self):
        rows = RowBuffer(ReportLayout.PUBLIC_SURFACE)
        assert rows.rows == [",".join(ReportLayout.PUBLIC_SURFACE.columns)]
        assert rows.rows[0].startswith("MemberKind,Accessibility,DeclaringNamespace")

    def test_const_layout_header(self):
        rows = RowBuffer(ReportLayout.CONST_FIELDS)
        assert rows.rows[0] == ("FieldDeclaration,FieldDeclaringType,ReferenceType,"
                                "ReferenceMember,LineNumber,FilePath,CodeLine")

    def test_reference_row_public_surface(self):
        rows = RowBuffer(ReportLayout.PUBLIC_SURFACE)
        rows.add_reference(_record(), _reference())
        assert rows.rows[1] == ("ConstField,Public,Core,Limits,Public Const Max As Integer = 10,"
                                "App,Worker,Run,3,total = Limits.Max,/src/Worker.vb")

    def test_reference_row_const_fields(self):
        rows = RowBuffer(ReportLayout.CONST_FIELDS)
        rows.add_reference(_record(), _reference())
        assert rows.rows[1] == ("Public Const Max As Integer = 10,Limits,Worker,Run,3,"
                                "/src/Worker.vb,total = Limits.Max")

    @pytest.mark.parametrize("layout", list(ReportLayout))
    def test_placeholder_row_has_every_column(self, layout):
        rows = RowBuffer(layout)
        rows.add_placeholder(_record())
        parsed = next(csv.reader(io.StringIO(rows.rows[1])))
        assert len(parsed) == len(layout.columns)
        assert parsed.count("") == len(layout.columns) - (5 if layout == ReportLayout.PUBLIC_SURFACE else 2)

    def test_row_count_law(self):
        """1 + sum over declarations of max(1, usages)."""
        usages = [0, 3, 1, 0]
        rows = RowBuffer()
        for count in usages:
            record = _record()
            if count == 0:
                rows.add_placeholder(record)
            for line in range(count):
                rows.add_reference(record, _reference(line=line + 1))
        assert len(rows) == 1 + sum(max(1, count) for count in usages)


class TestWriteReport:
    """Writing the result file."""

    def test_file_name(self):
        assert result_file_name("ReferenceFinder", FIXED_NOW) == "ReferenceFinderResult_20240102030405.csv"

    def test_writes_crlf_without_bom(self, tmp_path):
        rows = RowBuffer(ReportLayout.CONST_FIELDS)
        rows.add_reference(_record(), _reference())
        log, buffer = _captured_log()

        path = write_report(rows, tmp_path, "utf-8", "ReferenceFinder", log, FIXED_NOW)

        assert path == tmp_path / "ReferenceFinderResult_20240102030405.csv"
        data = path.read_bytes()
        assert not data.startswith(b"\xef\xbb\xbf")
        assert data.count(b"\r\n") == 2
        assert data.endswith(b"\r\n")
        assert f"Result file: {path}" in buffer.getvalue()

    def test_cp932_encoding(self, tmp_path):
        rows = RowBuffer(ReportLayout.CONST_FIELDS)
        rows.add_reference(_record('Public Const Title As String = "定数"'), _reference())

        path = write_report(rows, tmp_path, "cp932", "ReferenceFinder", now=FIXED_NOW)

        assert "定数".encode("cp932") in path.read_bytes()

    def test_unencodable_characters_do_not_fail_the_write(self, tmp_path):
        rows = RowBuffer()
        rows.add_reference(_record(), _reference(source_line="emoji = \"\U0001F600\""))

        path = write_report(rows, tmp_path, "cp932", "ReferenceFinder", now=FIXED_NOW)

        assert path is not None
        assert b"emoji" in path.read_bytes()

    def test_write_failure_is_reported_not_raised(self, tmp_path):
        log, buffer = _captured_log()

        path = write_report(RowBuffer(), tmp_path / "missing" / "dir", "utf-8", "ReferenceFinder",
                            log, FIXED_NOW)

        assert path is None
        assert "Error while writing the result file:" in buffer.getvalue()

    def test_status_lines_are_not_wrapped(self, tmp_path):
        log, buffer = _captured_log(width=20)

        path = write_report(RowBuffer(), tmp_path, "utf-8", "ReferenceFinder", log, FIXED_NOW)
        write_report(RowBuffer(), tmp_path / "missing", "utf-8", "ReferenceFinder", log, FIXED_NOW)

        lines = buffer.getvalue().splitlines()
        assert lines[0] == f"Result file: {path}"
        assert lines[1].startswith("Error while writing the result file: ")
        assert len(lines) == 2
