"""C# syntax trees: tree-sitter nodes turned into dialect-neutral declarations."""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from tree_sitter import Node, Tree

from ..analyzer.symbols import DeclarationKind, DeclarationNode, Declarator, TextSpan


TYPE_DECLARATIONS = frozenset({
    'class_declaration',
    'struct_declaration',
    'interface_declaration',
    'record_declaration',
    'record_struct_declaration',
    'enum_declaration',
})

METHOD_DECLARATIONS = {
    'method_declaration': DeclarationKind.METHOD,
    'constructor_declaration': DeclarationKind.CONSTRUCTOR,
    'destructor_declaration': DeclarationKind.OTHER,
    'operator_declaration': DeclarationKind.OTHER,
    'conversion_operator_declaration': DeclarationKind.OTHER,
}

PROPERTY_DECLARATIONS = {
    'property_declaration': DeclarationKind.PROPERTY,
    'indexer_declaration': DeclarationKind.PROPERTY,
    'event_declaration': DeclarationKind.EVENT,
}

ACCESSOR_KEYWORDS = ('get', 'set', 'init', 'add', 'remove')


def node_key(node: Node) -> Tuple[int, int, str]:
    """Stable identity of a node within one tree."""
    return (node.start_byte, node.end_byte, node.type)


def node_text(node: Optional[Node], source: bytes) -> str:
    if node is None:
        return ''
    return source[node.start_byte:node.end_byte].decode('utf-8', errors='replace')


def field_child(node: Node, *names: str) -> Optional[Node]:
    """First child found under any of the given field names."""
    for name in names:
        child = node.child_by_field_name(name)
        if child is not None:
            return child
    return None


def name_node_of(node: Node) -> Optional[Node]:
    name = node.child_by_field_name('name')
    if name is not None:
        return name
    for child in node.named_children:
        if child.type == 'identifier':
            return child
    return None


def modifiers_of(node: Node, source: bytes) -> List[str]:
    return [node_text(child, source) for child in node.children if child.type == 'modifier']


def first_child_of_type(node: Node, *types: str) -> Optional[Node]:
    for child in node.children:
        if child.type in types:
            return child
    return None


def initializer_of(declarator: Node) -> Optional[Node]:
    """Expression after ``=`` in a variable declarator, if any.

    Older grammars wrap it in an ``equals_value_clause``; newer ones put the
    ``=`` token and the expression directly under the declarator.
    """
    seen_equals = False
    for child in declarator.children:
        if child.type == 'equals_value_clause':
            named = child.named_children
            return named[0] if named else None
        if child.type == '=':
            seen_equals = True
            continue
        if seen_equals and child.is_named:
            return child
    return None


def same_node(a: Optional[Node], b: Optional[Node]) -> bool:
    if a is None or b is None:
        return False
    return node_key(a) == node_key(b)


def qualify(*parts: Optional[str]) -> str:
    return '.'.join(part for part in parts if part)


def compact(text: str) -> str:
    """Drop all whitespace (type names spread over lines, ``Dictionary<K, V>``)."""
    return ''.join(text.split())


@dataclass(frozen=True)
class DeclarationContext:
    """Where a declaration sits: namespace, enclosing types, enclosing member."""
    namespace: Optional[str]
    types: Tuple[Node, ...]
    owner: Optional[DeclarationNode]


class CSharpSourceText:
    """Line-indexed text of a parsed document."""

    def __init__(self, source: bytes):
        text = source.decode('utf-8', errors='replace')
        self._lines = [line.rstrip('\r') for line in text.split('\n')]

    @property
    def line_count(self) -> int:
        return len(self._lines)

    def line(self, index: int) -> str:
        return self._lines[index]


class CSharpSyntaxTree:
    """One parsed C# document.

    Satisfies both the SyntaxTree and the SyntaxRoot protocols. Positions are
    UTF-8 byte offsets, as produced by tree-sitter.
    """

    language = 'csharp'

    def __init__(self, file_path: str, source: bytes, tree: Tree):
        """Initialize syntax tree.

        Args:
            file_path: Absolute path of the document
            source: UTF-8 source bytes the tree was parsed from
            tree: Parsed tree-sitter Tree
        """
        self._file_path = file_path
        self.source = source
        self.tree = tree
        self._declarations: Optional[List[DeclarationNode]] = None
        self._contexts: Dict[int, DeclarationContext] = {}
        self._text: Optional[CSharpSourceText] = None

    @property
    def file_path(self) -> str:
        return self._file_path

    @property
    def root_node(self) -> Node:
        return self.tree.root_node

    def text_of(self, node: Optional[Node]) -> str:
        return node_text(node, self.source)

    def source_text(self) -> CSharpSourceText:
        if self._text is None:
            self._text = CSharpSourceText(self.source)
        return self._text

    def find_node(self, span: TextSpan) -> Optional[Node]:
        if span.start < 0 or span.end > len(self.source):
            return None
        return self.root_node.descendant_for_byte_range(span.start, span.end)

    def declarations(self) -> List[DeclarationNode]:
        """All declarations of the document in source order."""
        if self._declarations is None:
            self._declarations = []
            self._walk(self.root_node, None, (), None)
        return list(self._declarations)

    def context_of(self, declaration: DeclarationNode) -> DeclarationContext:
        self.declarations()
        return self._contexts[id(declaration)]

    # ------------------------------------------------------------------
    # Walk
    # ------------------------------------------------------------------

    def _walk(self, node: Node, namespace: Optional[str], types: Tuple[Node, ...],
              owner: Optional[DeclarationNode]):
        """Recursively collect declarations with their namespace/type context.

        Args:
            node: Current node whose children are visited
            namespace: Dotted namespace in effect, None for the global one
            types: Enclosing type declaration nodes, outermost first
            owner: Enclosing member while inside a body (local functions)
        """
        for child in node.named_children:
            kind = child.type

            if kind == 'namespace_declaration':
                body = child.child_by_field_name('body')
                if body is not None:
                    self._walk(body, qualify(namespace, self._name(child)), types, None)

            elif kind == 'file_scoped_namespace_declaration':
                # applies to every following sibling
                namespace = qualify(namespace, self._name(child))
                self._walk(child, namespace, types, None)

            elif kind in TYPE_DECLARATIONS:
                self._add(DeclarationKind.TYPE, child, self._name(child),
                          node_text(child, self.source), namespace, types, owner)
                body = child.child_by_field_name('body')
                if body is not None and kind != 'enum_declaration':
                    self._walk(body, namespace, types + (child,), None)

            elif kind in ('field_declaration', 'event_field_declaration'):
                self._add_field(child, namespace, types)

            elif kind in METHOD_DECLARATIONS:
                declaration = self._add(METHOD_DECLARATIONS[kind], child, self._member_name(child),
                                        node_text(child, self.source).strip(), namespace, types, owner)
                self._walk_body(child, namespace, types, declaration)

            elif kind in PROPERTY_DECLARATIONS:
                declaration = self._add(PROPERTY_DECLARATIONS[kind], child, self._member_name(child),
                                        self._header_text(child), namespace, types, owner)
                accessors = field_child(child, 'accessors') or first_child_of_type(child, 'accessor_list')
                if accessors is not None:
                    for accessor in accessors.named_children:
                        if accessor.type != 'accessor_declaration':
                            continue
                        accessor_declaration = self._add(
                            DeclarationKind.ACCESSOR, accessor, self._accessor_name(accessor),
                            self._header_text(accessor), namespace, types, declaration)
                        self._walk_body(accessor, namespace, types, accessor_declaration)

            elif kind == 'local_function_statement':
                declaration = self._add(DeclarationKind.LOCAL_FUNCTION, child, self._name(child),
                                        node_text(child, self.source).strip(), namespace, types, owner)
                self._walk_body(child, namespace, types, declaration)

            elif owner is not None or kind == 'declaration_list':
                self._walk(child, namespace, types, owner)

    def _walk_body(self, node: Node, namespace, types, declaration: DeclarationNode):
        body = node.child_by_field_name('body')
        if body is not None:
            self._walk(body, namespace, types, declaration)

    def _add(self, kind: DeclarationKind, node: Node, name: str, text: str,
             namespace, types, owner, **extra) -> DeclarationNode:
        modifiers = modifiers_of(node, self.source)
        declaration = DeclarationNode(
            kind=kind,
            name=name,
            text=text,
            span=TextSpan(node.start_byte, node.end_byte - node.start_byte),
            keyword=extra.pop('keyword', ''),
            modifiers=tuple(extra.pop('modifiers', modifiers)),
            syntax=node,
            **extra,
        )
        self._declarations.append(declaration)
        self._contexts[id(declaration)] = DeclarationContext(namespace, types, owner)
        return declaration

    def _add_field(self, node: Node, namespace, types):
        variable_declaration = first_child_of_type(node, 'variable_declaration')
        if variable_declaration is None:
            return
        type_node = variable_declaration.child_by_field_name('type')

        declarators = []
        for child in variable_declaration.named_children:
            if child.type != 'variable_declarator':
                continue
            name = name_node_of(child)
            if name is None:
                continue
            initializer = initializer_of(child)
            declarators.append(Declarator(
                name=node_text(name, self.source),
                initializer=node_text(initializer, self.source) if initializer is not None else None,
                span=TextSpan(child.start_byte, child.end_byte - child.start_byte),
                syntax=child,
            ))
        if not declarators:
            return

        modifiers = modifiers_of(node, self.source)
        if node.type == 'event_field_declaration':
            kind, keyword = DeclarationKind.EVENT, 'event'
        else:
            kind, keyword = DeclarationKind.FIELD, 'const' if 'const' in modifiers else ''

        self._add(kind, node, declarators[0].name, node_text(node, self.source),
                  namespace, types, None,
                  keyword=keyword,
                  modifiers=[m for m in modifiers if m != 'const'],
                  type_annotation=node_text(type_node, self.source).strip() or None,
                  declarators=declarators)

    # ------------------------------------------------------------------
    # Names and texts
    # ------------------------------------------------------------------

    def _name(self, node: Node) -> str:
        return compact(node_text(name_node_of(node), self.source))

    def _member_name(self, node: Node) -> str:
        if node.type == 'indexer_declaration':
            return 'this'
        if node.type == 'destructor_declaration':
            return '~' + self._name(node)
        if node.type == 'operator_declaration':
            operator = node.child_by_field_name('operator')
            return 'operator ' + node_text(operator, self.source).strip()
        if node.type == 'conversion_operator_declaration':
            return 'operator ' + compact(node_text(node.child_by_field_name('type'), self.source))
        return self._name(node)

    def _accessor_name(self, node: Node) -> str:
        name = node.child_by_field_name('name')
        if name is not None:
            return node_text(name, self.source)
        for child in node.children:
            if child.type in ACCESSOR_KEYWORDS:
                return child.type
        return ''

    def _header_text(self, node: Node) -> str:
        """Declaration text without attributes and without the accessors.

        ``public int Size { get; set; }`` gives ``public int Size``.
        """
        start = node.start_byte
        for child in node.children:
            if child.type != 'attribute_list':
                start = child.start_byte
                break
        body = field_child(node, 'body', 'accessors', 'value')
        if body is None:
            body = first_child_of_type(node, 'accessor_list', 'arrow_expression_clause', 'block')
        end = body.start_byte if body is not None else node.end_byte
        return self.source[start:end].decode('utf-8', errors='replace').strip()
