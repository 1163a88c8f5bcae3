"""Protocol-based interfaces of the program model gateway.

The tree-sitter workspace and the in-memory fakes satisfy these protocols
structurally (no inheritance). Every operation is a coroutine: the core awaits
each call in turn and never runs two of them concurrently.
"""
from typing import Any, Iterable, List, Optional, Protocol

from ..analyzer.symbols import DeclarationNode, ReferencedSymbol, Symbol, TextSpan


class ProgramModelError(Exception):
    """Raised when a solution or project descriptor cannot be loaded at all."""


class SourceText(Protocol):
    @property
    def line_count(self) -> int: ...
    def line(self, index: int) -> str: ...


class SyntaxRoot(Protocol):
    def find_node(self, span: TextSpan) -> Optional[Any]: ...


class SemanticModel(Protocol):
    def declared_symbol(self, node: Any) -> Optional[Symbol]: ...
    def enclosing_symbol(self, position: int) -> Optional[Symbol]: ...


class SyntaxTree(Protocol):
    @property
    def language(self) -> str: ...
    @property
    def file_path(self) -> str: ...
    def declarations(self) -> Iterable[DeclarationNode]: ...


class Compilation(Protocol):
    def syntax_trees(self) -> List[SyntaxTree]: ...
    async def semantic_model(self, tree: SyntaxTree) -> Optional[SemanticModel]: ...


class Project(Protocol):
    @property
    def name(self) -> str: ...
    @property
    def language(self) -> str: ...
    async def compilation(self) -> Optional[Compilation]: ...


class Document(Protocol):
    @property
    def id(self) -> str: ...
    @property
    def file_path(self) -> str: ...
    async def syntax_root(self) -> Optional[SyntaxRoot]: ...
    async def semantic_model(self) -> Optional[SemanticModel]: ...
    async def source_text(self) -> SourceText: ...


class ProgramModel(Protocol):
    def projects(self, language: Optional[str] = None) -> List[Project]: ...
    def get_document(self, document_id: str) -> Optional[Document]: ...
    async def find_references(self, symbol: Symbol) -> List[ReferencedSymbol]: ...
