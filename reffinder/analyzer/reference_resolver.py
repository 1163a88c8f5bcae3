"""Usage-site resolution: where a declaration is used and in which context."""
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional

from .collector import namespace_label, type_label
from .symbols import FileLineSpan, MethodKind, ReferenceLocation, Symbol, SymbolKind
from ..utils.logger import LogBuffer


UNNAMED = "(unnamed)"


class EnclosingContextKind(str, Enum):
    """Closed set of contexts a usage can sit in, in classification priority order."""
    CONSTRUCTOR = "constructor"
    STATIC_CONSTRUCTOR = "static_constructor"
    LOCAL_FUNCTION = "local_function"
    METHOD = "method"
    PROPERTY = "property"
    FIELD = "field"
    EVENT = "event"
    OTHER = "other"


def classify_context(symbol: Optional[Symbol]) -> EnclosingContextKind:
    """Classify the symbol enclosing a usage.

    Constructor kinds are checked before the generic method case: a static
    constructor is structurally a method too.
    """
    if symbol is None:
        return EnclosingContextKind.OTHER
    if symbol.kind == SymbolKind.METHOD:
        if symbol.method_kind == MethodKind.CONSTRUCTOR:
            return EnclosingContextKind.CONSTRUCTOR
        if symbol.method_kind == MethodKind.STATIC_CONSTRUCTOR:
            return EnclosingContextKind.STATIC_CONSTRUCTOR
        if symbol.method_kind == MethodKind.LOCAL_FUNCTION:
            return EnclosingContextKind.LOCAL_FUNCTION
        return EnclosingContextKind.METHOD
    if symbol.kind == SymbolKind.PROPERTY:
        return EnclosingContextKind.PROPERTY
    if symbol.kind == SymbolKind.FIELD:
        return EnclosingContextKind.FIELD
    if symbol.kind == SymbolKind.EVENT:
        return EnclosingContextKind.EVENT
    return EnclosingContextKind.OTHER


def member_label(symbol: Optional[Symbol]) -> str:
    """Human label of the member a usage sits in (``Foo.ctor``, ``Bar (field init)``...)."""
    kind = classify_context(symbol)
    if kind == EnclosingContextKind.CONSTRUCTOR:
        return _owner_name(symbol) + ".ctor"
    if kind == EnclosingContextKind.STATIC_CONSTRUCTOR:
        return _owner_name(symbol) + ".cctor"
    if kind == EnclosingContextKind.LOCAL_FUNCTION:
        return f"{symbol.name} (local function)"
    if kind in (EnclosingContextKind.METHOD, EnclosingContextKind.PROPERTY):
        return symbol.name
    if kind == EnclosingContextKind.FIELD:
        return f"{symbol.name} (field init)"
    if kind == EnclosingContextKind.EVENT:
        return f"{symbol.name} (event)"
    if symbol is not None and symbol.name:
        return symbol.name
    return UNNAMED


def _owner_name(symbol: Symbol) -> str:
    owner = symbol.containing_type
    return owner.name if owner is not None else symbol.name


def single_line(text, line_span: FileLineSpan) -> str:
    """Return the one physical line holding the start of ``line_span``.

    A construct spanning several lines still yields only its first line.
    """
    index = line_span.start.line
    if index < 0 or index >= text.line_count:
        return ""
    return text.line(index)


@dataclass(frozen=True)
class ReferenceRecord:
    reference_namespace: str
    reference_type: str
    reference_member: str
    line_number: int
    source_line: str
    file_path: str


class ReferenceResolver:
    """Turn the gateway's usage locations of a symbol into reference records."""

    def __init__(self, model, log: LogBuffer):
        """Initialize resolver.

        Args:
            model: Program model gateway answering reference queries
            log: Run log receiving one entry per usage
        """
        self.model = model
        self.log = log

    async def resolve(self, symbol: Symbol) -> AsyncIterator[ReferenceRecord]:
        """Yield one record per usage location, in the gateway's order.

        Locations whose document, node or semantic model cannot be resolved
        are skipped; the remaining usages are still reported.
        """
        count = 0
        for referenced in await self.model.find_references(symbol):
            for location in referenced.locations:
                record = await self.resolve_location(location)
                if record is None:
                    continue
                count += 1
                self.log.log(
                    f"   Reference: {record.reference_type}.{record.reference_member} "
                    f"line:{record.line_number} file:{record.file_path}"
                )
                self.log.log(f"      >> {record.line_number:>5}: {record.source_line}")
                yield record

        if count == 0:
            self.log.log("   Reference: (none)")

    async def resolve_location(self, location: ReferenceLocation) -> Optional[ReferenceRecord]:
        document = self.model.get_document(location.document_id)
        if document is None:
            return None

        root = await document.syntax_root()
        if root is None or root.find_node(location.source_span) is None:
            return None

        semantic_model = await document.semantic_model()
        if semantic_model is None:
            return None

        enclosing = semantic_model.enclosing_symbol(location.source_span.start)
        type_symbol = enclosing.declaring_type if enclosing is not None else None

        text = await document.source_text()
        return ReferenceRecord(
            reference_namespace=namespace_label(type_symbol),
            reference_type=type_label(type_symbol),
            reference_member=member_label(enclosing),
            line_number=location.line_span.start.line + 1,
            source_line=single_line(text, location.line_span).strip(),
            file_path=location.line_span.path,
        )
