"""Source dialects: keyword matching, literal formatting and declaration layout.

A dialect is a fixed property of a build. It decides which projects are
audited, how reconstructed declarations are spelled and which text encoding
the CSV export uses.
"""
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Sequence

from .symbols import Accessibility, Parameter


@dataclass(frozen=True)
class Dialect:
    """Spelling rules of one source language."""
    name: str
    language: str
    case_sensitive: bool
    encoding: str
    public_keyword: str
    protected_keyword: str
    const_keyword: str
    true_keyword: str
    false_keyword: str
    null_keyword: str
    single_suffix: str
    decimal_suffix: str
    single_types: frozenset
    decimal_types: frozenset

    # ------------------------------------------------------------------
    # Keyword matching
    # ------------------------------------------------------------------

    def same_keyword(self, text: str, keyword: str) -> bool:
        if self.case_sensitive:
            return text == keyword
        return text.lower() == keyword.lower()

    def has_keyword(self, modifiers: Iterable[str], keyword: str) -> bool:
        return any(self.same_keyword(modifier, keyword) for modifier in modifiers)

    def is_const_keyword(self, keyword: str) -> bool:
        return bool(keyword) and self.same_keyword(keyword, self.const_keyword)

    def accessibility_keyword(self, accessibility: Accessibility) -> str:
        if accessibility == Accessibility.PROTECTED:
            return self.protected_keyword
        return self.public_keyword

    # ------------------------------------------------------------------
    # Literals
    # ------------------------------------------------------------------

    def quote_string(self, value: str) -> str:
        if self.language == "vb":
            return '"' + value.replace('"', '""') + '"'
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        escaped = escaped.replace("\r", "\\r").replace("\n", "\\n").replace("\t", "\\t")
        return '"' + escaped + '"'

    def quote_char(self, value: str) -> str:
        if self.language == "vb":
            return '"' + value.replace('"', '""') + '"c'
        if value in ("'", "\\"):
            value = "\\" + value
        return "'" + value + "'"

    def format_float(self, value: float, type_name: Optional[str]) -> str:
        """Render a float without any locale influence (``repr`` is round-trip)."""
        if math.isnan(value) or math.isinf(value):
            single = self._is_single(type_name)
            if self.language == "vb":
                owner = "Single" if single else "Double"
            else:
                owner = "float" if single else "double"
            if math.isnan(value):
                return f"{owner}.NaN"
            return f"{owner}.{'PositiveInfinity' if value > 0 else 'NegativeInfinity'}"
        text = repr(value)
        if self._is_single(type_name):
            text += self.single_suffix
        return text

    def format_constant(self, value: Any, type_name: Optional[str] = None,
                        has_value: bool = True) -> str:
        """Format a resolved constant value as a source literal.

        Args:
            value: The constant value from symbol resolution
            type_name: Declared type name, used to choose numeric suffixes
            has_value: False when the symbol carries no constant at all

        Returns:
            Literal text in this dialect
        """
        if not has_value or value is None:
            return self.null_keyword
        if isinstance(value, bool):
            return self.true_keyword if value else self.false_keyword
        if isinstance(value, str):
            if len(value) == 1 and self._is_char(type_name):
                return self.quote_char(value)
            return self.quote_string(value)
        if isinstance(value, float):
            return self.format_float(value, type_name)
        if isinstance(value, Decimal) or (isinstance(value, int) and self._is_decimal(type_name)):
            return str(value) + self.decimal_suffix
        return str(value)

    def _is_decimal(self, type_name: Optional[str]) -> bool:
        return self._normalized(type_name) in self.decimal_types

    def _is_single(self, type_name: Optional[str]) -> bool:
        return self._normalized(type_name) in self.single_types

    def _is_char(self, type_name: Optional[str]) -> bool:
        return self._normalized(type_name) in ("char", "system.char")

    def _normalized(self, type_name: Optional[str]) -> str:
        return (type_name or "").strip().lower()

    # ------------------------------------------------------------------
    # Declaration layout
    # ------------------------------------------------------------------

    def render_field(self, modifiers: Sequence[str], keyword: str, name: str,
                     type_text: Optional[str], initializer: Optional[str]) -> str:
        """Assemble a standalone single-name field declaration."""
        prefix = " ".join(modifiers)
        if prefix:
            prefix += " "
        keyword = keyword or self.const_keyword
        if self.language == "vb":
            text = f"{prefix}{keyword} {name}"
            if type_text:
                text += f" As {type_text}"
            if initializer:
                text += f" = {initializer}"
            return text
        text = f"{prefix}{keyword} {type_text or 'var'} {name}"
        if initializer:
            text += f" = {initializer}"
        return text + ";"

    def render_method(self, accessibility: Accessibility, name: str,
                      parameters: Sequence[Parameter], return_type: Optional[str]) -> str:
        """Synthesise a method header from symbol metadata alone."""
        visibility = self.accessibility_keyword(accessibility)
        if self.language == "vb":
            params = ", ".join(f"{p.name} As {p.type_name}" for p in parameters)
            if return_type:
                return f"{visibility} Function {name}({params}) As {return_type}"
            return f"{visibility} Sub {name}({params})"
        params = ", ".join(f"{p.type_name} {p.name}" for p in parameters)
        return f"{visibility} {return_type or 'void'} {name}({params})"


CSHARP = Dialect(
    name="C#",
    language="csharp",
    case_sensitive=True,
    encoding="utf-8",
    public_keyword="public",
    protected_keyword="protected",
    const_keyword="const",
    true_keyword="true",
    false_keyword="false",
    null_keyword="null",
    single_suffix="f",
    decimal_suffix="m",
    single_types=frozenset({"float", "single", "system.single"}),
    decimal_types=frozenset({"decimal", "system.decimal"}),
)

VISUAL_BASIC = Dialect(
    name="Visual Basic",
    language="vb",
    case_sensitive=False,
    encoding="cp932",
    public_keyword="Public",
    protected_keyword="Protected",
    const_keyword="Const",
    true_keyword="True",
    false_keyword="False",
    null_keyword="Nothing",
    single_suffix="F",
    decimal_suffix="D",
    single_types=frozenset({"single", "system.single"}),
    decimal_types=frozenset({"decimal", "system.decimal"}),
)

DIALECTS: Dict[str, Dialect] = {
    "csharp": CSHARP,
    "c#": CSHARP,
    "cs": CSHARP,
    "vb": VISUAL_BASIC,
    "visualbasic": VISUAL_BASIC,
}


def get_dialect(name: str) -> Dialect:
    """Look up a dialect by name.

    Raises:
        ValueError: If the dialect is unknown
    """
    dialect = DIALECTS.get((name or "").strip().lower())
    if dialect is None:
        raise ValueError(f"Unsupported dialect: {name}")
    return dialect
