"""Declaration collection: select public-surface declarations from every syntax tree."""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .declaration_text import DeclarationTextReconstructor
from .dialects import Dialect
from .symbols import Accessibility, DeclarationKind, DeclarationNode, Symbol
from ..utils.logger import LogBuffer


GLOBAL_NAMESPACE = "(global)"
UNKNOWN_NAMESPACE = "(unknown namespace)"
UNKNOWN_TYPE = "(unknown type)"


class MemberKind(str, Enum):
    CONST_FIELD = "ConstField"
    METHOD = "Method"


class AuditScope(str, Enum):
    """Which member kinds an audit run selects."""
    CONST_FIELDS = "const_fields"
    PUBLIC_SURFACE = "public_surface"

    @property
    def member_kinds(self) -> frozenset:
        if self == AuditScope.CONST_FIELDS:
            return frozenset({MemberKind.CONST_FIELD})
        return frozenset({MemberKind.CONST_FIELD, MemberKind.METHOD})


@dataclass(frozen=True)
class DeclarationRecord:
    """One qualifying declaration and its canonical text."""
    member_kind: MemberKind
    accessibility: Accessibility
    declaring_namespace: str
    declaring_type: str
    declaration_text: str
    symbol: Symbol


def namespace_label(type_symbol: Optional[Symbol]) -> str:
    if type_symbol is None:
        return UNKNOWN_NAMESPACE
    return type_symbol.namespace or GLOBAL_NAMESPACE


def type_label(type_symbol: Optional[Symbol]) -> str:
    if type_symbol is None:
        return UNKNOWN_TYPE
    return type_symbol.display_name


class DeclarationCollector:
    """Walk every syntax tree and build the deduplicated declaration records."""

    def __init__(self, dialect: Dialect, scope: AuditScope, log: LogBuffer,
                 reconstructor: Optional[DeclarationTextReconstructor] = None):
        """Initialize collector.

        Args:
            dialect: Source dialect whose projects and keywords are audited
            scope: Member kinds to select
            log: Run log receiving one line per discovered declaration
            reconstructor: Text reconstructor (defaults to one for ``dialect``)
        """
        self.dialect = dialect
        self.scope = scope
        self.log = log
        self.reconstructor = reconstructor or DeclarationTextReconstructor(dialect)

    def select(self, node: DeclarationNode) -> Optional[MemberKind]:
        """Apply the textual kind/visibility predicate to one declaration.

        Only the literal modifier keywords count; a member that is public by
        some other rule but lacks the keyword is not selected.

        Returns:
            The member kind the node qualifies as, or None
        """
        kinds = self.scope.member_kinds
        if node.kind == DeclarationKind.FIELD and MemberKind.CONST_FIELD in kinds:
            if (self.dialect.is_const_keyword(node.keyword)
                    and self.dialect.has_keyword(node.modifiers, self.dialect.public_keyword)):
                return MemberKind.CONST_FIELD
        elif node.kind == DeclarationKind.METHOD and MemberKind.METHOD in kinds:
            if self.accessibility_of(node) is not None:
                return MemberKind.METHOD
        return None

    def accessibility_of(self, node: DeclarationNode) -> Optional[Accessibility]:
        if self.dialect.has_keyword(node.modifiers, self.dialect.protected_keyword):
            return Accessibility.PROTECTED
        if self.dialect.has_keyword(node.modifiers, self.dialect.public_keyword):
            return Accessibility.PUBLIC
        return None

    async def collect(self, model) -> List[DeclarationRecord]:
        """Collect records for every qualifying declaration of the program.

        Projects without a compilation and trees of another dialect are
        skipped. A symbol reached through several trees (partial types,
        linked files) yields a single record.

        Args:
            model: Program model gateway

        Returns:
            Records in discovery order
        """
        found: Dict[Symbol, DeclarationRecord] = {}

        for project in model.projects(self.dialect.language):
            compilation = await project.compilation()
            if compilation is None:
                continue

            for tree in compilation.syntax_trees():
                if tree.language != self.dialect.language:
                    continue
                semantic_model = await compilation.semantic_model(tree)
                if semantic_model is None:
                    continue

                for node in tree.declarations():
                    member_kind = self.select(node)
                    if member_kind is None:
                        continue
                    accessibility = self.accessibility_of(node)
                    targets = node.declarators if member_kind == MemberKind.CONST_FIELD else [node]
                    for target in targets:
                        symbol = semantic_model.declared_symbol(target)
                        if symbol is None or symbol in found:
                            continue
                        found[symbol] = self._make_record(member_kind, accessibility, symbol)

        records = list(found.values())
        if self.scope == AuditScope.CONST_FIELDS:
            self.log.log(f"Public const fields: {len(records)}")
        else:
            self.log.log(f"Public surface declarations: {len(records)}")
        return records

    def _make_record(self, member_kind: MemberKind, accessibility: Accessibility,
                     symbol: Symbol) -> DeclarationRecord:
        declaring_type = symbol.containing_type
        record = DeclarationRecord(
            member_kind=member_kind,
            accessibility=accessibility,
            declaring_namespace=namespace_label(declaring_type),
            declaring_type=type_label(declaring_type),
            declaration_text=self.reconstructor.reconstruct(symbol),
            symbol=symbol,
        )
        self.log.log(f"[{accessibility.value}] {record.declaration_text}")
        return record
