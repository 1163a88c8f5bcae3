"""Canonical, single-statement text for a selected declaration."""
from typing import Optional

from .dialects import Dialect
from .symbols import Accessibility, DeclarationNode, Declarator, Symbol, SymbolKind


class DeclarationTextReconstructor:
    """Render one declaration as source-like text suitable for a report cell.

    The result depends only on the symbol and its source text, never on the
    order in which declarations are visited.
    """

    def __init__(self, dialect: Dialect):
        self.dialect = dialect

    def reconstruct(self, symbol: Symbol) -> str:
        if symbol.kind == SymbolKind.METHOD:
            return self._method_text(symbol)
        return self._field_text(symbol)

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------

    def _field_text(self, symbol: Symbol) -> str:
        text = ""
        declarator = self._first_syntax(symbol, Declarator)
        if declarator is not None and declarator.statement is not None:
            statement = declarator.statement
            if len(statement.declarators) == 1:
                text = statement.text.strip()
            else:
                text = self._single_declarator_text(symbol, declarator, statement)

        if not text.strip():
            text = self._synthesized_field(symbol)
        return text

    def _single_declarator_text(self, symbol: Symbol, declarator: Declarator,
                                statement: DeclarationNode) -> str:
        """Rebuild a standalone statement for one name of a combined declaration.

        ``Const A As Integer = 1, B As Long = 2`` becomes
        ``Const A As Integer = 1`` for ``A``; nothing of ``B`` survives.
        """
        type_text = (declarator.type_annotation or statement.type_annotation
                     or symbol.type_name)
        if declarator.initializer:
            initializer = declarator.initializer.strip()
        else:
            initializer = self.dialect.format_constant(
                symbol.constant_value, symbol.type_name, symbol.has_constant_value)
        return self.dialect.render_field(
            statement.modifiers,
            statement.keyword,
            declarator.name,
            type_text.strip() if type_text else None,
            initializer,
        )

    def _synthesized_field(self, symbol: Symbol) -> str:
        initializer = self.dialect.format_constant(
            symbol.constant_value, symbol.type_name, symbol.has_constant_value)
        return self.dialect.render_field(
            [self.dialect.public_keyword],
            self.dialect.const_keyword,
            symbol.name,
            symbol.type_name,
            initializer,
        )

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    def _method_text(self, symbol: Symbol) -> str:
        node = self._first_syntax(symbol, DeclarationNode)
        if node is not None and node.text.strip():
            return node.text.strip()

        accessibility = symbol.accessibility
        if accessibility not in (Accessibility.PUBLIC, Accessibility.PROTECTED):
            accessibility = Accessibility.PUBLIC
        return self.dialect.render_method(
            accessibility, symbol.name, symbol.parameters, symbol.type_name)

    @staticmethod
    def _first_syntax(symbol: Symbol, syntax_type) -> Optional[object]:
        for syntax in symbol.declaring_syntax:
            if isinstance(syntax, syntax_type):
                return syntax
        return None
