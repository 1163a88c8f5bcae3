"""Symbols, spans and dialect-neutral declaration syntax shared by every gateway."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple


class SymbolKind(str, Enum):
    """Kinds of symbols a program model can hand out."""
    NAMESPACE = "namespace"
    TYPE = "type"
    METHOD = "method"
    PROPERTY = "property"
    FIELD = "field"
    EVENT = "event"


class MethodKind(str, Enum):
    """Flavours of method symbols, mirroring how compilers classify them."""
    ORDINARY = "ordinary"
    CONSTRUCTOR = "constructor"
    STATIC_CONSTRUCTOR = "static_constructor"
    LOCAL_FUNCTION = "local_function"
    PROPERTY_ACCESSOR = "property_accessor"
    EVENT_ACCESSOR = "event_accessor"
    OPERATOR = "operator"
    DESTRUCTOR = "destructor"


class Accessibility(str, Enum):
    """Declared accessibility. Only PUBLIC and PROTECTED are ever reported."""
    PUBLIC = "Public"
    PROTECTED = "Protected"
    INTERNAL = "Internal"
    PRIVATE = "Private"
    NOT_APPLICABLE = "NotApplicable"


class DeclarationKind(str, Enum):
    """Kinds of declaration statements exposed by a syntax tree."""
    FIELD = "field"
    METHOD = "method"
    CONSTRUCTOR = "constructor"
    ACCESSOR = "accessor"
    PROPERTY = "property"
    EVENT = "event"
    LOCAL_FUNCTION = "local_function"
    TYPE = "type"
    OTHER = "other"


@dataclass(frozen=True)
class TextSpan:
    """Half-open character range ``[start, start + length)`` inside a document."""
    start: int
    length: int = 0

    @property
    def end(self) -> int:
        return self.start + self.length


@dataclass(frozen=True)
class LinePosition:
    """Zero-based line/character position."""
    line: int
    character: int = 0


@dataclass(frozen=True)
class FileLineSpan:
    """Line-based span of a location together with the file it lives in."""
    path: str
    start: LinePosition
    end: LinePosition


@dataclass(frozen=True)
class Parameter:
    name: str
    type_name: str


@dataclass(eq=False)
class Declarator:
    """One name introduced by a declaration statement.

    ``type_annotation`` and ``initializer`` hold the explicit per-name source
    text (``A As Integer = 1`` in VB), or None when the statement does not
    spell them out for this name.
    """
    name: str
    type_annotation: Optional[str] = None
    initializer: Optional[str] = None
    span: TextSpan = TextSpan(0)
    statement: Optional["DeclarationNode"] = field(default=None, repr=False)
    syntax: Any = field(default=None, repr=False)


@dataclass(eq=False)
class DeclarationNode:
    """A declaration statement, independent of the parser that produced it.

    ``keyword`` is the kind keyword as written in the source (``Const``,
    ``const``, ``Sub``, ``Function``), kept apart from ``modifiers`` so that
    a single declarator can be rebuilt from the original pieces.
    ``type_annotation`` is the statement-level type (C# style), used when a
    declarator has no annotation of its own.
    """
    kind: DeclarationKind
    name: str
    text: str
    span: TextSpan
    keyword: str = ""
    modifiers: Tuple[str, ...] = ()
    type_annotation: Optional[str] = None
    declarators: List[Declarator] = field(default_factory=list)
    syntax: Any = field(default=None, repr=False)

    def __post_init__(self):
        for declarator in self.declarators:
            declarator.statement = self


@dataclass(eq=False)
class Symbol:
    """A resolved symbol.

    Identity is the ``key`` string: two symbols with the same key are the same
    logical declaration no matter which syntax tree produced them. Fields use
    ``F:<namespace>.<type>.<name>``, methods add their parameter types so
    that overloads stay distinct.
    """
    kind: SymbolKind
    name: str
    key: str
    containing_type: Optional["Symbol"] = field(default=None, repr=False)
    namespace: Optional[str] = None
    accessibility: Accessibility = Accessibility.NOT_APPLICABLE
    type_name: Optional[str] = None  # field/property type, method return type (None == void)
    parameters: Tuple[Parameter, ...] = ()
    method_kind: Optional[MethodKind] = None
    is_static: bool = False
    has_constant_value: bool = False
    constant_value: Any = None
    type_parameters: str = ""
    base_types: Tuple[str, ...] = ()
    containing_symbol: Optional["Symbol"] = field(default=None, repr=False)
    declaring_syntax: List[Any] = field(default_factory=list, repr=False)

    def __eq__(self, other):
        if not isinstance(other, Symbol):
            return NotImplemented
        return self.key == other.key

    def __hash__(self):
        return hash(self.key)

    @property
    def is_type(self) -> bool:
        return self.kind == SymbolKind.TYPE

    @property
    def display_name(self) -> str:
        """Minimally qualified display: containing types plus the symbol name."""
        name = self.name + self.type_parameters
        if self.containing_type is not None:
            return f"{self.containing_type.display_name}.{name}"
        return name

    @property
    def declaring_type(self) -> Optional["Symbol"]:
        """The type this symbol belongs to, or the symbol itself for types."""
        if self.containing_type is not None:
            return self.containing_type
        if self.is_type:
            return self
        return None


@dataclass(frozen=True)
class ReferenceLocation:
    """One usage site reported by the gateway's cross-reference query."""
    document_id: str
    source_span: TextSpan
    line_span: FileLineSpan


@dataclass
class ReferencedSymbol:
    """A definition together with the locations that use it."""
    definition: Symbol
    locations: List[ReferenceLocation] = field(default_factory=list)
