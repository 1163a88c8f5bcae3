"""Program-wide C# symbol table.

Every parsed tree of the program is bound into one table, so a member
declared in one project is the same symbol when another project uses it.
Symbols are keyed by qualified signature: partial types and linked files
unify on the key.
"""
from decimal import Decimal, InvalidOperation
from string import hexdigits
from typing import Any, Dict, List, Optional, Set, Tuple

from tree_sitter import Node

from ..analyzer.symbols import (
    Accessibility,
    DeclarationKind,
    DeclarationNode,
    MethodKind,
    Parameter,
    Symbol,
    SymbolKind,
)
from .csharp_syntax import (
    CSharpSyntaxTree,
    DeclarationContext,
    compact,
    field_child,
    first_child_of_type,
    initializer_of,
    node_key,
    node_text,
    qualify,
)


ACCESSIBILITY_MODIFIERS = (
    ('protected', Accessibility.PROTECTED),
    ('public', Accessibility.PUBLIC),
    ('internal', Accessibility.INTERNAL),
    ('private', Accessibility.PRIVATE),
)

OTHER_METHOD_KINDS = {
    'destructor_declaration': MethodKind.DESTRUCTOR,
    'operator_declaration': MethodKind.OPERATOR,
    'conversion_operator_declaration': MethodKind.OPERATOR,
}

ESCAPES = {
    '\\': '\\', "'": "'", '"': '"', '0': '\0', 'a': '\a', 'b': '\b',
    'f': '\f', 'n': '\n', 'r': '\r', 't': '\t', 'v': '\v',
}


# ----------------------------------------------------------------------
# Literal evaluation
# ----------------------------------------------------------------------

def unescape(body: str) -> str:
    """Resolve C# escape sequences (``\\n``, ``\\u0041``, ``\\x41``...)."""
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != '\\' or i + 1 >= len(body):
            out.append(ch)
            i += 1
            continue
        code = body[i + 1]
        if code in 'uUx':
            width = 8 if code == 'U' else 4
            j = i + 2
            while j < len(body) and j - (i + 2) < width and body[j] in hexdigits:
                j += 1
            if j > i + 2:
                out.append(chr(int(body[i + 2:j], 16)))
                i = j
                continue
        out.append(ESCAPES.get(code, code))
        i += 2
    return ''.join(out)


def parse_integer(text: str) -> int:
    digits = text.replace('_', '').rstrip('uUlL')
    lowered = digits.lower()
    if lowered.startswith('0x'):
        return int(lowered[2:], 16)
    if lowered.startswith('0b'):
        return int(lowered[2:], 2)
    return int(digits)


def parse_real(text: str) -> Any:
    digits = text.replace('_', '')
    suffix = digits[-1].lower()
    if suffix in ('f', 'd', 'm'):
        digits = digits[:-1]
    if suffix == 'm':
        return Decimal(digits)
    return float(digits)


def evaluate_constant(node: Optional[Node], source: bytes) -> Tuple[bool, Any]:
    """Evaluate a literal initializer.

    Args:
        node: Initializer expression node
        source: Source bytes of the tree

    Returns:
        ``(True, value)`` for literals (``null`` gives ``(True, None)``),
        ``(False, None)`` for anything that needs real constant folding
    """
    if node is None:
        return False, None

    kind = node.type
    text = node_text(node, source).strip()
    try:
        if kind == 'parenthesized_expression' and node.named_children:
            return evaluate_constant(node.named_children[0], source)
        if kind in ('prefix_unary_expression', 'unary_expression') and node.named_children:
            operator = text[:1]
            known, value = evaluate_constant(node.named_children[-1], source)
            if known and operator in '+-' and isinstance(value, (int, float, Decimal)) \
                    and not isinstance(value, bool):
                return True, -value if operator == '-' else value
            return False, None
        if kind == 'integer_literal':
            return True, parse_integer(text)
        if kind == 'real_literal':
            return True, parse_real(text)
        if kind == 'boolean_literal':
            return True, text == 'true'
        if kind == 'null_literal':
            return True, None
        if kind == 'character_literal':
            return True, unescape(text[1:-1])
        if kind == 'verbatim_string_literal':
            return True, text[2:-1].replace('""', '"')
        if kind == 'string_literal':
            return True, unescape(text[1:-1])
    except (ValueError, InvalidOperation):
        return False, None
    return False, None


# ----------------------------------------------------------------------
# Signature helpers
# ----------------------------------------------------------------------

def simple_type_name(text: Optional[str]) -> Optional[str]:
    """``System.Collections.Generic.List<int>?`` -> ``List``; arrays give None."""
    if not text:
        return None
    name = compact(text)
    if name.startswith('global::'):
        name = name[len('global::'):]
    name = name.rstrip('?')
    if name.endswith(']'):
        return None
    name = name.split('<', 1)[0]
    return name.rsplit('.', 1)[-1] or None


def parameter_nodes(node: Node) -> List[Node]:
    parameters = field_child(node, 'parameters')
    if parameters is None:
        parameters = first_child_of_type(node, 'parameter_list', 'bracketed_parameter_list')
    if parameters is None:
        return []
    return [child for child in parameters.named_children
            if child.type in ('parameter', 'parameter_array')]


def is_params_array(parameter: Node, source: bytes) -> bool:
    if parameter.type == 'parameter_array':
        return True
    return any(node_text(child, source) == 'params' for child in parameter.children)


def has_default(parameter: Node) -> bool:
    return any(child.type in ('equals_value_clause', '=') for child in parameter.children)


class CSharpBinder:
    """Symbols of every bound tree, plus the scope ranges of each file."""

    def __init__(self):
        """Initialize an empty symbol table."""
        self.symbols: Dict[str, Symbol] = {}
        self.trees: Dict[str, CSharpSyntaxTree] = {}
        # symbol key -> files declaring it
        self.declaring_files: Dict[str, Set[str]] = {}
        # (file_path, node key) -> symbol declared by that node
        self._declared: Dict[Tuple[str, Tuple], Symbol] = {}
        # simple name -> symbols with that name
        self._types_by_name: Dict[str, List[Symbol]] = {}
        self._members_by_name: Dict[str, List[Symbol]] = {}
        # file_path -> [(start, end, symbol)]
        self._scopes: Dict[str, List[Tuple[int, int, Symbol]]] = {}
        # method key -> (required argument count, maximum or None for params arrays)
        self._arity: Dict[str, Tuple[int, Optional[int]]] = {}

    def add_tree(self, tree: CSharpSyntaxTree):
        """Bind every declaration of a tree. A file is bound only once."""
        if tree.file_path in self.trees:
            return
        self.trees[tree.file_path] = tree
        for declaration in tree.declarations():
            self._bind(tree, declaration, tree.context_of(declaration))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def declared(self, file_path: str, node: Optional[Node]) -> Optional[Symbol]:
        if node is None:
            return None
        return self._declared.get((file_path, node_key(node)))

    def enclosing_symbol(self, file_path: str, position: int) -> Optional[Symbol]:
        """Innermost symbol whose declaration contains ``position``."""
        best = None
        for start, end, symbol in self._scopes.get(file_path, []):
            if start <= position < end:
                if best is None or (end - start) <= (best[1] - best[0]):
                    best = (start, end, symbol)
        return best[2] if best else None

    def types_named(self, name: Optional[str]) -> List[Symbol]:
        if not name:
            return []
        return list(self._types_by_name.get(name, []))

    def resolve_type(self, text: Optional[str]) -> List[Symbol]:
        return self.types_named(simple_type_name(text))

    def hierarchy(self, type_symbol: Symbol) -> List[Symbol]:
        """The type followed by its base types, nearest first (matched by name)."""
        ordered = []
        seen = set()
        pending = [type_symbol]
        while pending:
            current = pending.pop(0)
            if current.key in seen:
                continue
            seen.add(current.key)
            ordered.append(current)
            for base in current.base_types:
                pending.extend(self.types_named(base))
        return ordered

    def lookup(self, type_symbol: Symbol, name: str,
               argument_count: Optional[int] = None) -> List[Symbol]:
        """Member lookup: the nearest type in the hierarchy declaring ``name`` wins.

        Args:
            type_symbol: Type to look in
            name: Simple member name
            argument_count: Number of arguments when the member is invoked

        Returns:
            Matching members of a single type, empty if none
        """
        candidates = self._members_by_name.get(name, [])
        if not candidates:
            return []
        for current in self.hierarchy(type_symbol):
            found = [member for member in candidates
                     if member.containing_type == current and self.accepts(member, argument_count)]
            if found:
                return found
        return []

    def accepts(self, member: Symbol, argument_count: Optional[int]) -> bool:
        if argument_count is None or member.kind != SymbolKind.METHOD:
            return True
        required, maximum = self._arity.get(member.key, (0, None))
        return required <= argument_count and (maximum is None or argument_count <= maximum)

    # ------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------

    def _bind(self, tree: CSharpSyntaxTree, declaration: DeclarationNode,
              context: DeclarationContext):
        containing = None
        if context.types:
            containing = self.declared(tree.file_path, context.types[-1])

        if declaration.kind == DeclarationKind.TYPE:
            self._bind_type(tree, declaration, context, containing)
        elif declaration.kind in (DeclarationKind.FIELD, DeclarationKind.EVENT) and declaration.declarators:
            self._bind_fields(tree, declaration, context, containing)
        else:
            self._bind_member(tree, declaration, context, containing)

    def _bind_type(self, tree, declaration, context, containing):
        node = declaration.syntax
        type_parameters = compact(tree.text_of(
            field_child(node, 'type_parameters') or first_child_of_type(node, 'type_parameter_list')))
        base_list = first_child_of_type(node, 'base_list')
        base_types = []
        if base_list is not None:
            for child in base_list.named_children:
                name = simple_type_name(tree.text_of(child))
                if name:
                    base_types.append(name)

        prefix = containing.key[2:] if containing is not None else context.namespace
        key = 'T:' + qualify(prefix, declaration.name + type_parameters)
        symbol = self.symbols.get(key)
        if symbol is None:
            default = Accessibility.PRIVATE if containing is not None else Accessibility.INTERNAL
            symbol = Symbol(
                kind=SymbolKind.TYPE,
                name=declaration.name,
                key=key,
                containing_type=containing,
                namespace=context.namespace,
                accessibility=self._accessibility(declaration.modifiers, default),
                is_static='static' in declaration.modifiers,
                type_parameters=type_parameters,
                base_types=tuple(base_types),
            )
            self.symbols[key] = symbol
            self._types_by_name.setdefault(symbol.name, []).append(symbol)
        else:
            # partial type: merge the base lists
            merged = list(symbol.base_types)
            merged.extend(base for base in base_types if base not in merged)
            symbol.base_types = tuple(merged)

        self._register(tree, declaration, node, symbol, node)

    def _bind_fields(self, tree, declaration, context, containing):
        is_event = declaration.kind == DeclarationKind.EVENT
        is_const = declaration.keyword == 'const'
        for declarator in declaration.declarators:
            has_value, value = False, None
            if is_const:
                has_value, value = evaluate_constant(initializer_of(declarator.syntax), tree.source)
            key = ('E:' if is_event else 'F:') + qualify(self._type_path(containing), declarator.name)
            symbol = self._intern(Symbol(
                kind=SymbolKind.EVENT if is_event else SymbolKind.FIELD,
                name=declarator.name,
                key=key,
                containing_type=containing,
                namespace=containing.namespace if containing is not None else context.namespace,
                accessibility=self._member_accessibility(declaration.modifiers, containing),
                type_name=declaration.type_annotation,
                is_static=is_const or 'static' in declaration.modifiers,
                has_constant_value=has_value,
                constant_value=value,
            ))
            self._register(tree, declarator, declarator.syntax, symbol, declarator.syntax)

    def _bind_member(self, tree, declaration, context, containing):
        node = declaration.syntax
        kind = declaration.kind
        owner = None
        if context.owner is not None:
            owner = self.declared(tree.file_path, context.owner.syntax)

        parameters = tuple(
            Parameter(tree.text_of(p.child_by_field_name('name')),
                      compact(tree.text_of(p.child_by_field_name('type'))))
            for p in parameter_nodes(node)
        )
        signature = '(' + ','.join(p.type_name for p in parameters) + ')'
        type_path = self._type_path(containing)
        accessibility = self._member_accessibility(declaration.modifiers, containing)
        namespace = containing.namespace if containing is not None else context.namespace
        common = dict(containing_type=containing, namespace=namespace,
                      accessibility=accessibility, parameters=parameters,
                      is_static='static' in declaration.modifiers)

        if kind == DeclarationKind.PROPERTY:
            symbol = Symbol(kind=SymbolKind.PROPERTY, name=declaration.name,
                            key='P:' + qualify(type_path, declaration.name) + (signature if parameters else ''),
                            type_name=compact(tree.text_of(node.child_by_field_name('type'))) or None,
                            **common)
        elif kind == DeclarationKind.EVENT:
            symbol = Symbol(kind=SymbolKind.EVENT, name=declaration.name,
                            key='E:' + qualify(type_path, declaration.name),
                            type_name=compact(tree.text_of(node.child_by_field_name('type'))) or None,
                            **common)
        elif kind == DeclarationKind.ACCESSOR:
            if owner is None:
                return
            method_kind = MethodKind.EVENT_ACCESSOR if owner.kind == SymbolKind.EVENT \
                else MethodKind.PROPERTY_ACCESSOR
            name = f'{declaration.name}_{owner.name}'
            symbol = Symbol(kind=SymbolKind.METHOD, name=name,
                            key='M:' + qualify(type_path, name) + '()',
                            method_kind=method_kind, containing_symbol=owner,
                            **dict(common, parameters=owner.parameters))
            # usages inside an accessor belong to the property or event
            self._register(tree, declaration, node, self._intern(symbol, member=False), None)
            return
        elif kind == DeclarationKind.LOCAL_FUNCTION:
            if owner is None:
                return
            symbol = Symbol(kind=SymbolKind.METHOD, name=declaration.name,
                            key=f'M:{owner.key[2:]}.{declaration.name}{signature}',
                            type_name=self._return_type(tree, node),
                            method_kind=MethodKind.LOCAL_FUNCTION, containing_symbol=owner,
                            **dict(common, accessibility=Accessibility.PRIVATE))
            self._arity[symbol.key] = self._arity_of(tree, node)
            self._register(tree, declaration, node, self._intern(symbol, member=False), node)
            return
        else:
            if kind == DeclarationKind.CONSTRUCTOR:
                static = 'static' in declaration.modifiers
                method_kind = MethodKind.STATIC_CONSTRUCTOR if static else MethodKind.CONSTRUCTOR
                name = '.cctor' if static else '.ctor'
            elif kind == DeclarationKind.METHOD:
                method_kind, name = MethodKind.ORDINARY, declaration.name
            else:
                method_kind = OTHER_METHOD_KINDS.get(node.type, MethodKind.ORDINARY)
                name = declaration.name
            symbol = Symbol(kind=SymbolKind.METHOD, name=name,
                            key='M:' + qualify(type_path, name) + signature,
                            type_name=self._return_type(tree, node),
                            method_kind=method_kind, **common)
            self._arity[symbol.key] = self._arity_of(tree, node)

        self._register(tree, declaration, node, self._intern(symbol), node)

    def _intern(self, symbol: Symbol, member: bool = True) -> Symbol:
        existing = self.symbols.get(symbol.key)
        if existing is not None:
            return existing
        self.symbols[symbol.key] = symbol
        if member:
            self._members_by_name.setdefault(symbol.name, []).append(symbol)
        return symbol

    def _register(self, tree, syntax, node: Node, symbol: Symbol,
                  scope_node: Optional[Node]):
        """Record which node declares ``symbol`` and the range it encloses."""
        self._declared[(tree.file_path, node_key(node))] = symbol
        symbol.declaring_syntax.append(syntax)
        self.declaring_files.setdefault(symbol.key, set()).add(tree.file_path)
        if scope_node is not None:
            self._scopes.setdefault(tree.file_path, []).append(
                (scope_node.start_byte, scope_node.end_byte, symbol))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _type_path(containing: Optional[Symbol]) -> str:
        return containing.key[2:] if containing is not None else ''

    @staticmethod
    def _accessibility(modifiers, default: Accessibility) -> Accessibility:
        for keyword, accessibility in ACCESSIBILITY_MODIFIERS:
            if keyword in modifiers:
                return accessibility
        return default

    def _member_accessibility(self, modifiers, containing: Optional[Symbol]) -> Accessibility:
        default = Accessibility.PRIVATE
        if containing is not None and containing.declaring_syntax:
            declaration = containing.declaring_syntax[0]
            if getattr(declaration.syntax, 'type', None) == 'interface_declaration':
                default = Accessibility.PUBLIC
        return self._accessibility(modifiers, default)

    @staticmethod
    def _return_type(tree: CSharpSyntaxTree, node: Node) -> Optional[str]:
        returns = field_child(node, 'returns', 'type')
        text = compact(tree.text_of(returns))
        if not text or text == 'void':
            return None
        return text

    @staticmethod
    def _arity_of(tree: CSharpSyntaxTree, node: Node) -> Tuple[int, Optional[int]]:
        parameters = parameter_nodes(node)
        required = 0
        maximum: Optional[int] = len(parameters)
        for parameter in parameters:
            if is_params_array(parameter, tree.source):
                maximum = None
            elif not has_default(parameter):
                required += 1
        return required, maximum


class CSharpSemanticModel:
    """Semantic view of one tree, backed by the program-wide binder."""

    def __init__(self, binder: CSharpBinder, tree: CSharpSyntaxTree):
        self.binder = binder
        self.tree = tree

    def declared_symbol(self, node: Any) -> Optional[Symbol]:
        syntax = getattr(node, 'syntax', node)
        return self.binder.declared(self.tree.file_path, syntax)

    def enclosing_symbol(self, position: int) -> Optional[Symbol]:
        return self.binder.enclosing_symbol(self.tree.file_path, position)
