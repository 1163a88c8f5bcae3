"""End-to-end audit runs over the in-memory program model."""
import pytest

from reffinder.analyzer.collector import AuditScope
from reffinder.analyzer.dialects import VISUAL_BASIC
from reffinder.analyzer.pipeline import layout_for, run_audit
from reffinder.report.csv_report import ReportLayout, RowBuffer
from reffinder.utils.logger import LogBuffer
from reffinder.workspace.fakes import (
    FakeProgramModel,
    field_node,
    make_field,
    make_method,
    make_type,
    method_node,
)


FOO = "Public Const Foo As Integer = 1"


@pytest.fixture
def program():
    """``A.Foo`` declared in a.src and used once, in ``B.Bar`` at line 10 of b.src."""
    model = FakeProgramModel()
    project = model.add_project("App")

    a_type = make_type("A", "App")
    foo = make_field(a_type, "Foo", "Integer", 1)
    a_doc = project.add_document("a.src", f"Public Class A\n    {FOO}\nEnd Class\n")
    a_doc.declare(field_node(FOO, "Const", ["Public"], [("Foo", "Integer", "1")]), foo)

    b_type = make_type("B", "App")
    bar = make_method(b_type, "Bar")
    b_doc = project.add_document("b.src", "\n" * 9 + "        x = A.Foo + 1\n")
    b_doc.declare(method_node("Public Sub Bar()", "Bar", ["Public"], keyword="Sub"), bar)
    b_doc.enclose(bar, "x = A.Foo + 1")
    model.add_reference(foo, b_doc, "Foo")
    return model


def test_layout_for_scope():
    assert layout_for(AuditScope.CONST_FIELDS) == ReportLayout.CONST_FIELDS
    assert layout_for(AuditScope.PUBLIC_SURFACE) == ReportLayout.PUBLIC_SURFACE


@pytest.mark.asyncio
async def test_single_usage_yields_one_row(program):
    log = LogBuffer()
    rows = RowBuffer(ReportLayout.PUBLIC_SURFACE)

    records = await run_audit(program, VISUAL_BASIC, AuditScope.PUBLIC_SURFACE, log, rows)

    assert len(records) == 2
    assert rows.rows[1] == "ConstField,Public,App,A,Public Const Foo As Integer = 1,App,B,Bar,10,x = A.Foo + 1,b.src"
    # Bar is never used: one placeholder row
    assert rows.rows[2] == "Method,Public,App,B,Public Sub Bar(),,,,,,"
    assert len(rows) == 3
    assert f"A: {FOO}" in log.lines
    assert "   Reference: B.Bar line:10 file:b.src" in log.lines
    assert "      >>    10: x = A.Foo + 1" in log.lines


@pytest.mark.asyncio
async def test_const_only_run(program):
    log = LogBuffer()
    rows = RowBuffer(layout_for(AuditScope.CONST_FIELDS))

    records = await run_audit(program, VISUAL_BASIC, AuditScope.CONST_FIELDS, log, rows)

    assert [r.declaration_text for r in records] == [FOO]
    assert rows.rows[1:] == [f"{FOO},A,B,Bar,10,b.src,x = A.Foo + 1"]
    assert "Public const fields: 1" in log.lines


@pytest.mark.asyncio
async def test_zero_usages_yield_placeholder():
    model = FakeProgramModel()
    owner = make_type("Limits", "Core")
    unused = make_field(owner, "Unused", "String", "x")
    model.add_project("Core").add_document("limits.vb", "").declare(
        field_node('Public Const Unused As String = "x"', "Const", ["Public"],
                   [("Unused", "String", '"x"')]), unused)
    log = LogBuffer()
    rows = RowBuffer(ReportLayout.CONST_FIELDS)

    await run_audit(model, VISUAL_BASIC, AuditScope.CONST_FIELDS, log, rows)

    assert rows.rows[1:] == ['"Public Const Unused As String = ""x""",Limits,,,,,']
    assert log.lines[-1] == "   Reference: (none)"


@pytest.mark.asyncio
async def test_empty_program_gives_header_only():
    rows = RowBuffer()
    records = await run_audit(FakeProgramModel(), VISUAL_BASIC, AuditScope.PUBLIC_SURFACE, LogBuffer(), rows)
    assert records == []
    assert len(rows) == 1
