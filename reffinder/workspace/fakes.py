"""In-memory fake program model for testing.

Dict-backed implementations of the gateway protocols. No parsing, no I/O:
tests declare symbols, scopes and usage sites by hand, in any dialect.
"""
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..analyzer.symbols import (
    Accessibility,
    DeclarationKind,
    DeclarationNode,
    Declarator,
    FileLineSpan,
    LinePosition,
    MethodKind,
    Parameter,
    ReferencedSymbol,
    ReferenceLocation,
    Symbol,
    SymbolKind,
    TextSpan,
)


# ----------------------------------------------------------------------
# Symbol factories
# ----------------------------------------------------------------------

def make_type(name: str, namespace: Optional[str] = None,
              containing_type: Optional[Symbol] = None) -> Symbol:
    qualified = ".".join(part for part in (namespace, _type_path(containing_type), name) if part)
    return Symbol(
        kind=SymbolKind.TYPE,
        name=name,
        key=f"T:{qualified}",
        containing_type=containing_type,
        namespace=namespace if containing_type is None else containing_type.namespace,
        accessibility=Accessibility.PUBLIC,
    )


def make_field(owner: Symbol, name: str, type_name: str = "Integer",
               value: Any = None, has_value: bool = True,
               accessibility: Accessibility = Accessibility.PUBLIC) -> Symbol:
    return Symbol(
        kind=SymbolKind.FIELD,
        name=name,
        key=f"F:{_member_path(owner, name)}",
        containing_type=owner,
        namespace=owner.namespace,
        accessibility=accessibility,
        type_name=type_name,
        has_constant_value=has_value,
        constant_value=value,
        is_static=True,
    )


def make_method(owner: Symbol, name: str, parameters: Sequence[Tuple[str, str]] = (),
                return_type: Optional[str] = None,
                method_kind: MethodKind = MethodKind.ORDINARY,
                accessibility: Accessibility = Accessibility.PUBLIC,
                containing_symbol: Optional[Symbol] = None) -> Symbol:
    params = tuple(Parameter(p_name, p_type) for p_name, p_type in parameters)
    signature = ",".join(p.type_name for p in params)
    path = _member_path(owner, name)
    if containing_symbol is not None:
        path = f"{containing_symbol.key[2:]}.{name}"
    return Symbol(
        kind=SymbolKind.METHOD,
        name=name,
        key=f"M:{path}({signature})",
        containing_type=owner,
        namespace=owner.namespace,
        accessibility=accessibility,
        type_name=return_type,
        parameters=params,
        method_kind=method_kind,
        containing_symbol=containing_symbol,
    )


def make_member(owner: Symbol, name: str, kind: SymbolKind,
                type_name: Optional[str] = None) -> Symbol:
    """Property, event or plain field symbol used as an enclosing context."""
    prefix = {SymbolKind.PROPERTY: "P", SymbolKind.EVENT: "E"}.get(kind, "F")
    return Symbol(
        kind=kind,
        name=name,
        key=f"{prefix}:{_member_path(owner, name)}",
        containing_type=owner,
        namespace=owner.namespace,
        type_name=type_name,
    )


def _type_path(type_symbol: Optional[Symbol]) -> str:
    if type_symbol is None:
        return ""
    return type_symbol.key[2:]


def _member_path(owner: Symbol, name: str) -> str:
    return f"{_type_path(owner)}.{name}"


# ----------------------------------------------------------------------
# Syntax factories
# ----------------------------------------------------------------------

def field_node(text: str, keyword: str, modifiers: Sequence[str],
               declarators: Sequence[Tuple[str, Optional[str], Optional[str]]],
               type_annotation: Optional[str] = None) -> DeclarationNode:
    """Build a field statement from ``(name, type annotation, initializer)`` triples."""
    return DeclarationNode(
        kind=DeclarationKind.FIELD,
        name=declarators[0][0] if declarators else "",
        text=text,
        span=TextSpan(0, len(text)),
        keyword=keyword,
        modifiers=tuple(modifiers),
        type_annotation=type_annotation,
        declarators=[Declarator(name, type_text, init) for name, type_text, init in declarators],
    )


def method_node(text: str, name: str, modifiers: Sequence[str], keyword: str = "",
                kind: DeclarationKind = DeclarationKind.METHOD) -> DeclarationNode:
    return DeclarationNode(
        kind=kind,
        name=name,
        text=text,
        span=TextSpan(0, len(text)),
        keyword=keyword,
        modifiers=tuple(modifiers),
    )


# ----------------------------------------------------------------------
# Gateway fakes
# ----------------------------------------------------------------------

class FakeSourceText:
    """Line-indexed view of a document's text."""

    def __init__(self, text: str):
        self._lines = [line.rstrip("\r") for line in text.split("\n")]

    @property
    def line_count(self) -> int:
        return len(self._lines)

    def line(self, index: int) -> str:
        return self._lines[index]


class FakeSyntaxRoot:
    def __init__(self, document: "FakeDocument"):
        self.document = document

    def find_node(self, span: TextSpan) -> Optional[TextSpan]:
        if span.start in self.document.broken_positions:
            return None
        if 0 <= span.start <= len(self.document.text):
            return span
        return None


class FakeSemanticModel:
    """Maps declaration syntax to symbols and positions to enclosing symbols."""

    def __init__(self):
        self._declared: Dict[int, Symbol] = {}
        self._scopes: List[Tuple[int, int, Symbol]] = []

    def bind(self, node: Any, symbol: Symbol) -> None:
        self._declared[id(node)] = symbol

    def add_scope(self, start: int, end: int, symbol: Symbol) -> None:
        self._scopes.append((start, end, symbol))

    def declared_symbol(self, node: Any) -> Optional[Symbol]:
        return self._declared.get(id(node))

    def enclosing_symbol(self, position: int) -> Optional[Symbol]:
        # innermost scope wins
        best = None
        for start, end, symbol in self._scopes:
            if start <= position < end:
                if best is None or (end - start) < (best[1] - best[0]):
                    best = (start, end, symbol)
        return best[2] if best else None


class FakeDocument:
    """A source document that doubles as its own syntax tree."""

    def __init__(self, document_id: str, file_path: str, text: str, language: str):
        self._id = document_id
        self._file_path = file_path
        self._language = language
        self.text = text
        self.model = FakeSemanticModel()
        self.nodes: List[DeclarationNode] = []
        self.broken_positions: set = set()
        self.has_semantic_model = True

    @property
    def id(self) -> str:
        return self._id

    @property
    def file_path(self) -> str:
        return self._file_path

    @property
    def language(self) -> str:
        return self._language

    def declarations(self) -> Iterable[DeclarationNode]:
        return list(self.nodes)

    def declare(self, node: DeclarationNode, *symbols: Symbol) -> DeclarationNode:
        """Add a declaration statement and bind it to its symbol(s).

        Field statements bind one symbol per declarator, in order; every other
        statement binds the node itself to the first symbol.
        """
        self.nodes.append(node)
        if node.kind == DeclarationKind.FIELD:
            for declarator, symbol in zip(node.declarators, symbols):
                self.model.bind(declarator, symbol)
                symbol.declaring_syntax.append(declarator)
        elif symbols:
            self.model.bind(node, symbols[0])
            symbols[0].declaring_syntax.append(node)
        return node

    def offset_of(self, needle: str, occurrence: int = 1) -> int:
        """Character offset of the n-th occurrence of ``needle``."""
        position = -1
        for _ in range(occurrence):
            position = self.text.find(needle, position + 1)
            if position < 0:
                raise ValueError(f"{needle!r} not found in {self._file_path}")
        return position

    def enclose(self, symbol: Symbol, start_text: str, end_text: Optional[str] = None) -> None:
        """Make ``symbol`` the enclosing symbol from ``start_text`` to ``end_text``."""
        start = self.offset_of(start_text)
        if end_text is None:
            end = start + len(start_text)
        else:
            end = self.text.find(end_text, start) + len(end_text)
        self.model.add_scope(start, end, symbol)

    def line_span(self, start: int, length: int) -> FileLineSpan:
        return FileLineSpan(self._file_path, _position(self.text, start),
                            _position(self.text, start + length))

    async def syntax_root(self) -> Optional[FakeSyntaxRoot]:
        return FakeSyntaxRoot(self)

    async def semantic_model(self) -> Optional[FakeSemanticModel]:
        return self.model if self.has_semantic_model else None

    async def source_text(self) -> FakeSourceText:
        return FakeSourceText(self.text)


def _position(text: str, offset: int) -> LinePosition:
    line = text.count("\n", 0, offset)
    line_start = text.rfind("\n", 0, offset) + 1
    return LinePosition(line, offset - line_start)


class FakeCompilation:
    def __init__(self, documents: List[FakeDocument]):
        self._documents = documents

    def syntax_trees(self) -> List[FakeDocument]:
        return list(self._documents)

    async def semantic_model(self, tree: FakeDocument) -> Optional[FakeSemanticModel]:
        return await tree.semantic_model()


class FakeProject:
    def __init__(self, model: "FakeProgramModel", name: str, language: str):
        self._model = model
        self._name = name
        self._language = language
        self.documents: List[FakeDocument] = []
        self.has_compilation = True

    @property
    def name(self) -> str:
        return self._name

    @property
    def language(self) -> str:
        return self._language

    def add_document(self, file_path: str, text: str, language: Optional[str] = None) -> FakeDocument:
        document = FakeDocument(f"{self._name}/{len(self.documents)}", file_path, text,
                                language or self._language)
        self.documents.append(document)
        self._model.documents[document.id] = document
        return document

    async def compilation(self) -> Optional[FakeCompilation]:
        if not self.has_compilation:
            return None
        return FakeCompilation(self.documents)


class FakeProgramModel:
    """Dict-backed ProgramModel; references are registered explicitly."""

    def __init__(self):
        self._projects: List[FakeProject] = []
        self.documents: Dict[str, FakeDocument] = {}
        self.hidden_documents: set = set()
        self._references: Dict[Symbol, List[ReferenceLocation]] = {}

    def add_project(self, name: str, language: str = "vb") -> FakeProject:
        project = FakeProject(self, name, language)
        self._projects.append(project)
        return project

    def projects(self, language: Optional[str] = None) -> List[FakeProject]:
        return [p for p in self._projects if language is None or p.language == language]

    def get_document(self, document_id: str) -> Optional[FakeDocument]:
        if document_id in self.hidden_documents:
            return None
        return self.documents.get(document_id)

    def add_reference(self, symbol: Symbol, document: FakeDocument, needle: str,
                      occurrence: int = 1) -> ReferenceLocation:
        """Register a usage of ``symbol`` at the n-th occurrence of ``needle``."""
        start = document.offset_of(needle, occurrence)
        location = ReferenceLocation(
            document_id=document.id,
            source_span=TextSpan(start, len(needle)),
            line_span=document.line_span(start, len(needle)),
        )
        self._references.setdefault(symbol, []).append(location)
        return location

    async def find_references(self, symbol: Symbol) -> List[ReferencedSymbol]:
        return [ReferencedSymbol(symbol, list(self._references.get(symbol, [])))]
