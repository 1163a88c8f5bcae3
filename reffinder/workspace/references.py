"""Cross-reference search over bound C# trees.

Candidate sites are identifiers spelled like the symbol's name. Each one is
confirmed by resolving what the identifier binds to: member access through
its receiver's type, simple names through the enclosing types.
"""
from typing import Iterable, List, Optional, Tuple

from tree_sitter import Node

from ..analyzer.symbols import Symbol
from .binder import CSharpBinder, simple_type_name
from .csharp_syntax import (
    TYPE_DECLARATIONS,
    CSharpSyntaxTree,
    field_child,
    first_child_of_type,
    initializer_of,
    name_node_of,
    same_node,
)


# Declarations whose `name` child introduces a name rather than using one
DECLARING_PARENTS = frozenset(TYPE_DECLARATIONS | {
    'namespace_declaration', 'file_scoped_namespace_declaration',
    'method_declaration', 'constructor_declaration', 'destructor_declaration',
    'property_declaration', 'event_declaration', 'indexer_declaration',
    'local_function_statement', 'variable_declarator', 'parameter',
    'enum_member_declaration', 'type_parameter', 'catch_declaration',
    'delegate_declaration', 'using_directive',
    'name_colon', 'name_equals',
})

# Nodes whose parameters are visible in their body
PARAMETER_SCOPES = frozenset({
    'method_declaration', 'constructor_declaration', 'destructor_declaration',
    'operator_declaration', 'conversion_operator_declaration',
    'local_function_statement', 'indexer_declaration',
    'lambda_expression', 'anonymous_method_expression',
})

# Nested functions: their own locals are not visible outside
FUNCTION_BOUNDARIES = frozenset({
    'local_function_statement', 'lambda_expression', 'anonymous_method_expression',
})

SELF_RECEIVERS = frozenset({'this_expression', 'this', 'base_expression', 'base'})


class LocalBinding:
    """A parameter or local variable visible at some position."""

    def __init__(self, type_text: Optional[str], initializer: Optional[Node] = None):
        self.type_text = type_text
        self.initializer = initializer


class ReferenceFinder:
    """Find the usage sites of a symbol in a set of trees."""

    def __init__(self, binder: CSharpBinder):
        """Initialize finder.

        Args:
            binder: Program-wide symbol table the trees were bound into
        """
        self.binder = binder
        self._static_imports = {}

    def find(self, symbol: Symbol, trees: Iterable[CSharpSyntaxTree]) -> List[Tuple[CSharpSyntaxTree, Node]]:
        """All identifiers in ``trees`` that bind to ``symbol``, in source order."""
        name = symbol.name.encode('utf-8')
        sites = []
        for tree in trees:
            if name not in tree.source:
                continue
            for identifier in self._identifiers(tree, name):
                if symbol in self.resolve(tree, identifier):
                    sites.append((tree, identifier))
        return sites

    def resolve(self, tree: CSharpSyntaxTree, identifier: Node) -> List[Symbol]:
        """Members an identifier may bind to (several only for ambiguous overloads)."""
        holder = identifier
        if holder.parent is not None and holder.parent.type == 'generic_name':
            holder = holder.parent
        parent = holder.parent
        if parent is None:
            return []
        if parent.type in DECLARING_PARENTS and same_node(name_node_of(parent), identifier):
            return []
        if parent.type == 'foreach_statement' and same_node(parent.child_by_field_name('left'), identifier):
            return []

        name = tree.text_of(identifier)
        argument_count = self._argument_count(holder)

        if parent.type == 'member_access_expression' and same_node(parent.child_by_field_name('name'), holder):
            receiver = parent.child_by_field_name('expression')
            argument_count = self._argument_count(parent)
            return self._lookup_in(self.type_of(tree, receiver), name, argument_count)

        if parent.type == 'member_binding_expression':
            conditional = parent.parent
            while conditional is not None and conditional.type != 'conditional_access_expression':
                conditional = conditional.parent
            if conditional is None:
                return []
            receiver = field_child(conditional, 'condition', 'expression') or conditional.named_children[0]
            argument_count = self._argument_count(parent)
            return self._lookup_in(self.type_of(tree, receiver), name, argument_count)

        if parent.type == 'qualified_name':
            if not same_node(parent.child_by_field_name('name'), holder):
                return []
            qualifier = parent.child_by_field_name('qualifier')
            return self._lookup_in(self.binder.resolve_type(tree.text_of(qualifier)), name, None)

        if self.local_binding(tree, identifier, name) is not None:
            return []
        return self._lookup_simple(tree, identifier, name, argument_count)

    # ------------------------------------------------------------------
    # Expression typing
    # ------------------------------------------------------------------

    def type_of(self, tree: CSharpSyntaxTree, expression: Optional[Node], depth: int = 0) -> List[Symbol]:
        """Types an expression may evaluate to (or name, for static access).

        Args:
            tree: Tree holding the expression
            expression: Receiver expression node
            depth: Recursion guard for chained receivers

        Returns:
            Candidate type symbols, empty when unknown
        """
        if expression is None or depth > 16:
            return []
        kind = expression.type

        if kind in SELF_RECEIVERS:
            enclosing = self._enclosing_types(tree, expression)
            if not enclosing:
                return []
            if kind.startswith('base'):
                return [t for base in enclosing[0].base_types for t in self.binder.types_named(base)]
            return [enclosing[0]]

        if kind == 'parenthesized_expression' and expression.named_children:
            return self.type_of(tree, expression.named_children[0], depth + 1)

        if kind in ('object_creation_expression', 'cast_expression'):
            return self.binder.resolve_type(tree.text_of(expression.child_by_field_name('type')))

        if kind == 'generic_name':
            return self.binder.resolve_type(tree.text_of(expression))

        if kind == 'identifier':
            name = tree.text_of(expression)
            binding = self.local_binding(tree, expression, name)
            if binding is not None:
                return self._binding_type(tree, binding, depth)
            members = self._lookup_simple(tree, expression, name, None)
            if members:
                return self._member_types(members)
            return self.binder.types_named(name)

        if kind == 'member_access_expression':
            receiver = expression.child_by_field_name('expression')
            name = tree.text_of(expression.child_by_field_name('name'))
            receiver_types = self.type_of(tree, receiver, depth + 1)
            members = self._lookup_in(receiver_types, simple_type_name(name) or name, None)
            if members:
                return self._member_types(members)
            # namespace-qualified type name
            return self.binder.resolve_type(tree.text_of(expression))

        if kind == 'qualified_name':
            return self.binder.resolve_type(tree.text_of(expression))

        if kind == 'invocation_expression':
            function = expression.child_by_field_name('function')
            if function is None:
                return []
            count = self._count_arguments(expression)
            if function.type == 'member_access_expression':
                receiver_types = self.type_of(tree, function.child_by_field_name('expression'), depth + 1)
                name = tree.text_of(function.child_by_field_name('name'))
                members = self._lookup_in(receiver_types, simple_type_name(name) or name, count)
            elif function.type in ('identifier', 'generic_name'):
                name = simple_type_name(tree.text_of(function)) or ''
                members = self._lookup_simple(tree, function, name, count)
            else:
                members = []
            return self._member_types(members)

        return []

    def _binding_type(self, tree: CSharpSyntaxTree, binding: LocalBinding, depth: int) -> List[Symbol]:
        if binding.type_text and binding.type_text != 'var':
            return self.binder.resolve_type(binding.type_text)
        if binding.initializer is not None:
            return self.type_of(tree, binding.initializer, depth + 1)
        return []

    def _member_types(self, members: List[Symbol]) -> List[Symbol]:
        types = []
        for member in members:
            for type_symbol in self.binder.resolve_type(member.type_name):
                if type_symbol not in types:
                    types.append(type_symbol)
        return types

    # ------------------------------------------------------------------
    # Member lookup
    # ------------------------------------------------------------------

    def _lookup_in(self, types: List[Symbol], name: str, argument_count: Optional[int]) -> List[Symbol]:
        found = []
        for type_symbol in types:
            for member in self.binder.lookup(type_symbol, name, argument_count):
                if member not in found:
                    found.append(member)
        return found

    def _lookup_simple(self, tree: CSharpSyntaxTree, node: Node, name: str,
                       argument_count: Optional[int]) -> List[Symbol]:
        """Resolve a simple name through the enclosing types, then ``using static`` imports."""
        for type_symbol in self._enclosing_types(tree, node):
            members = self.binder.lookup(type_symbol, name, argument_count)
            if members:
                return members
        return self._lookup_in(self._imported_types(tree), name, argument_count)

    def _enclosing_types(self, tree: CSharpSyntaxTree, node: Node) -> List[Symbol]:
        """Type symbols around ``node``, innermost first."""
        types = []
        current = node.parent
        while current is not None:
            if current.type in TYPE_DECLARATIONS:
                symbol = self.binder.declared(tree.file_path, current)
                if symbol is not None:
                    types.append(symbol)
            current = current.parent
        return types

    def _imported_types(self, tree: CSharpSyntaxTree) -> List[Symbol]:
        cached = self._static_imports.get(tree.file_path)
        if cached is not None:
            return cached

        types = []
        pending = [tree.root_node]
        while pending:
            node = pending.pop()
            for child in node.named_children:
                if child.type == 'using_directive':
                    if any(tree.text_of(token) == 'static' for token in child.children):
                        target = child.named_children[-1] if child.named_children else None
                        types.extend(self.binder.resolve_type(tree.text_of(target)))
                elif child.type in ('namespace_declaration', 'file_scoped_namespace_declaration',
                                    'declaration_list'):
                    pending.append(child)
        self._static_imports[tree.file_path] = types
        return types

    # ------------------------------------------------------------------
    # Locals and parameters
    # ------------------------------------------------------------------

    def local_binding(self, tree: CSharpSyntaxTree, node: Node, name: str) -> Optional[LocalBinding]:
        """Find a parameter or local named ``name`` visible at ``node``.

        Scopes are walked outwards until the enclosing type declaration. Only
        locals declared before ``node`` count.
        """
        position = node.start_byte
        child = node
        scope = node.parent
        while scope is not None and scope.type not in TYPE_DECLARATIONS:
            binding = self._declared_in(tree, scope, child, name, position)
            if binding is not None:
                return binding
            child = scope
            scope = scope.parent
        return None

    def _declared_in(self, tree: CSharpSyntaxTree, scope: Node, child: Node,
                     name: str, position: int) -> Optional[LocalBinding]:
        kind = scope.type

        if kind in PARAMETER_SCOPES:
            parameters = field_child(scope, 'parameters')
            if parameters is None:
                parameters = first_child_of_type(scope, 'parameter_list', 'bracketed_parameter_list')
            if parameters is not None:
                if parameters.type == 'identifier':
                    if tree.text_of(parameters) == name:
                        return LocalBinding(None)
                else:
                    for parameter in parameters.named_children:
                        if tree.text_of(name_node_of(parameter)) == name:
                            return LocalBinding(tree.text_of(parameter.child_by_field_name('type')) or None)
            if kind == 'lambda_expression':
                for parameter in scope.named_children:
                    if parameter.type == 'identifier' and not same_node(parameter, child) \
                            and tree.text_of(parameter) == name:
                        return LocalBinding(None)

        if kind == 'accessor_declaration' and name == 'value':
            owner = scope.parent.parent if scope.parent is not None else None
            if owner is not None:
                return LocalBinding(tree.text_of(owner.child_by_field_name('type')) or None)

        if kind == 'foreach_statement':
            left = field_child(scope, 'left')
            if left is not None and tree.text_of(left) == name and not same_node(left, child):
                return LocalBinding(tree.text_of(scope.child_by_field_name('type')) or None)

        if kind == 'catch_clause':
            declaration = first_child_of_type(scope, 'catch_declaration')
            if declaration is not None and tree.text_of(name_node_of(declaration)) == name:
                return LocalBinding(tree.text_of(declaration.child_by_field_name('type')) or None)

        if kind in ('block', 'switch_section', 'for_statement', 'using_statement',
                    'fixed_statement', 'global_statement', 'compilation_unit'):
            return self._scan_locals(tree, scope, name, position)

        return None

    def _scan_locals(self, tree: CSharpSyntaxTree, scope: Node, name: str,
                     position: int) -> Optional[LocalBinding]:
        """Locals declared in ``scope`` before ``position``, nested functions excluded."""
        pending = list(reversed(scope.named_children))
        while pending:
            node = pending.pop()
            if node.start_byte >= position:
                continue
            if node.type in FUNCTION_BOUNDARIES or node.type in TYPE_DECLARATIONS \
                    or node.type in ('block', 'switch_section'):
                # own scopes, visited when walking outwards from the usage
                continue
            if node.type == 'variable_declaration':
                type_text = tree.text_of(node.child_by_field_name('type')) or None
                for declarator in node.named_children:
                    if declarator.type == 'variable_declarator' \
                            and tree.text_of(name_node_of(declarator)) == name:
                        return LocalBinding(type_text, initializer_of(declarator))
            elif node.type == 'declaration_expression':
                if tree.text_of(node.child_by_field_name('name')) == name:
                    return LocalBinding(tree.text_of(node.child_by_field_name('type')) or None)
            elif node.type == 'declaration_pattern':
                designation = field_child(node, 'name', 'designation')
                if designation is not None and tree.text_of(designation) == name:
                    return LocalBinding(tree.text_of(node.child_by_field_name('type')) or None)
            pending.extend(reversed(node.named_children))
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _identifiers(tree: CSharpSyntaxTree, name: bytes) -> List[Node]:
        found = []
        pending = [tree.root_node]
        while pending:
            node = pending.pop()
            if node.type == 'identifier':
                if tree.source[node.start_byte:node.end_byte] == name:
                    found.append(node)
                continue
            pending.extend(reversed(node.children))
        return found

    def _argument_count(self, expression: Node) -> Optional[int]:
        """Argument count when ``expression`` is the callee of an invocation."""
        parent = expression.parent
        if parent is not None and parent.type == 'invocation_expression' \
                and same_node(parent.child_by_field_name('function'), expression):
            return self._count_arguments(parent)
        return None

    @staticmethod
    def _count_arguments(invocation: Node) -> int:
        arguments = field_child(invocation, 'arguments') or first_child_of_type(invocation, 'argument_list')
        if arguments is None:
            return 0
        return sum(1 for child in arguments.named_children if child.type == 'argument')
