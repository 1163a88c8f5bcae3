"""Tests for usage-site resolution and enclosing-member labels."""
import pytest

from reffinder.analyzer.reference_resolver import (
    EnclosingContextKind,
    ReferenceResolver,
    classify_context,
    member_label,
    single_line,
)
from reffinder.analyzer.symbols import FileLineSpan, LinePosition, MethodKind, SymbolKind
from reffinder.utils.logger import LogBuffer
from reffinder.workspace.fakes import (
    FakeProgramModel,
    FakeSourceText,
    make_field,
    make_member,
    make_method,
    make_type,
)


class TestMemberLabels:
    """Labels of the member a usage sits in."""

    def test_constructors_are_named_after_their_type(self):
        owner = make_type("Loader", "App")
        ctor = make_method(owner, ".ctor", method_kind=MethodKind.CONSTRUCTOR)
        cctor = make_method(owner, ".cctor", method_kind=MethodKind.STATIC_CONSTRUCTOR)
        assert member_label(ctor) == "Loader.ctor"
        assert member_label(cctor) == "Loader.cctor"

    def test_static_constructor_is_not_an_ordinary_method(self):
        owner = make_type("Loader", "App")
        cctor = make_method(owner, ".cctor", method_kind=MethodKind.STATIC_CONSTRUCTOR)
        assert classify_context(cctor) == EnclosingContextKind.STATIC_CONSTRUCTOR

    def test_local_function(self):
        owner = make_type("Loader", "App")
        run = make_method(owner, "Run")
        helper = make_method(owner, "Helper", method_kind=MethodKind.LOCAL_FUNCTION,
                             containing_symbol=run)
        assert member_label(helper) == "Helper (local function)"

    def test_methods_properties_fields_and_events(self):
        owner = make_type("Loader", "App")
        assert member_label(make_method(owner, "Run")) == "Run"
        assert member_label(make_member(owner, "Size", SymbolKind.PROPERTY, "Integer")) == "Size"
        assert member_label(make_member(owner, "total", SymbolKind.FIELD, "Integer")) == "total (field init)"
        assert member_label(make_member(owner, "Changed", SymbolKind.EVENT)) == "Changed (event)"

    def test_other_symbols(self):
        assert member_label(make_type("Loader", "App")) == "Loader"
        assert member_label(None) == "(unnamed)"
        assert classify_context(None) == EnclosingContextKind.OTHER


def test_single_line_returns_only_the_first_line():
    text = FakeSourceText("first\n  second(\n    third)\n")
    span = FileLineSpan("a.vb", LinePosition(1, 2), LinePosition(2, 10))
    assert single_line(text, span) == "  second("


def test_single_line_out_of_range_is_empty():
    text = FakeSourceText("only")
    assert single_line(text, FileLineSpan("a.vb", LinePosition(5), LinePosition(5))) == ""


class TestResolve:
    """Resolution of the gateway's locations into reference records."""

    @pytest.fixture
    def setup(self):
        model = FakeProgramModel()
        project = model.add_project("App")
        owner = make_type("Limits", "Core")
        field = make_field(owner, "Max", "Integer", 10)
        user = make_type("Worker", "App")
        run = make_method(user, "Run")
        text = (
            "Public Class Worker\n"
            "    Public Sub Run()\n"
            "        total = Limits.Max\n"
            "        other = Limits.Max * 2\n"
            "    End Sub\n"
            "End Class\n"
            "' Limits.Max\n"
        )
        document = project.add_document("/src/Worker.vb", text)
        document.enclose(user, "Public Class Worker", "End Class")
        document.enclose(run, "Public Sub Run()", "End Sub")
        return model, document, field

    @pytest.mark.asyncio
    async def test_every_location_becomes_a_record(self, setup):
        model, document, field = setup
        model.add_reference(field, document, "Max", 1)
        model.add_reference(field, document, "Max", 2)
        log = LogBuffer()

        records = [r async for r in ReferenceResolver(model, log).resolve(field)]

        assert [r.line_number for r in records] == [3, 4]
        assert records[0].reference_namespace == "App"
        assert records[0].reference_type == "Worker"
        assert records[0].reference_member == "Run"
        assert records[0].source_line == "total = Limits.Max"
        assert records[0].file_path == "/src/Worker.vb"
        assert log.lines[0] == "   Reference: Worker.Run line:3 file:/src/Worker.vb"
        assert log.lines[1] == "      >>     3: total = Limits.Max"

    @pytest.mark.asyncio
    async def test_usage_outside_any_declaration(self, setup):
        model, document, field = setup
        model.add_reference(field, document, "Max", 3)

        records = [r async for r in ReferenceResolver(model, LogBuffer()).resolve(field)]

        assert len(records) == 1
        assert records[0].reference_namespace == "(unknown namespace)"
        assert records[0].reference_type == "(unknown type)"
        assert records[0].reference_member == "(unnamed)"

    @pytest.mark.asyncio
    async def test_unresolvable_locations_are_skipped(self, setup):
        model, document, field = setup
        model.add_reference(field, document, "Max", 1)
        broken = model.add_reference(field, document, "Max", 2)
        document.broken_positions.add(broken.source_span.start)

        records = [r async for r in ReferenceResolver(model, LogBuffer()).resolve(field)]

        assert [r.line_number for r in records] == [3]

    @pytest.mark.asyncio
    async def test_no_usages_logs_none(self, setup):
        model, document, field = setup
        model.add_reference(field, document, "Max", 1)
        model.hidden_documents.add(document.id)
        log = LogBuffer()

        records = [r async for r in ReferenceResolver(model, log).resolve(field)]

        assert records == []
        assert log.lines == ["   Reference: (none)"]

    @pytest.mark.asyncio
    async def test_document_without_semantic_model_is_skipped(self, setup):
        model, document, field = setup
        model.add_reference(field, document, "Max", 1)
        document.has_semantic_model = False

        records = [r async for r in ReferenceResolver(model, LogBuffer()).resolve(field)]

        assert records == []
