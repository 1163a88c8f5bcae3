"""Tree-sitter parser for the audited source dialects."""
from pathlib import Path
from typing import Optional
from tree_sitter import Language, Parser, Tree
import tree_sitter_c_sharp as tscsharp


UTF8_BOM = b'\xef\xbb\xbf'

# Legacy .NET sources are frequently saved in the Japanese ANSI code page
FALLBACK_SOURCE_ENCODINGS = ('cp932', 'latin-1')


def load_source(file_path: str | Path) -> Optional[bytes]:
    """Read a source file and normalise it to BOM-less UTF-8 bytes.

    Args:
        file_path: Path to the source file

    Returns:
        UTF-8 encoded source, or None if the file cannot be read
    """
    try:
        raw = Path(file_path).read_bytes()
    except (IOError, OSError):
        return None

    if raw.startswith(UTF8_BOM):
        raw = raw[len(UTF8_BOM):]

    try:
        raw.decode('utf-8')
        return raw
    except UnicodeDecodeError:
        pass

    for encoding in FALLBACK_SOURCE_ENCODINGS:
        try:
            return raw.decode(encoding).encode('utf-8')
        except UnicodeDecodeError:
            continue
    return None


class LanguageParser:
    """Dialect parser using tree-sitter v0.22+ API."""

    SUPPORTED_LANGUAGES = {
        '.cs': 'csharp',
    }

    def __init__(self, language: str):
        """Initialize parser for given language.

        Args:
            language: Currently only 'csharp'

        Raises:
            ValueError: If language is not supported
        """
        self.language = language
        self.parser = self._create_parser()

    def _create_parser(self) -> Parser:
        """Factory method using tree-sitter v0.22+ API.

        Returns:
            Configured Parser instance

        Raises:
            ValueError: If language is not supported
        """
        if self.language == 'csharp':
            lang = Language(tscsharp.language())
        else:
            raise ValueError(f"Unsupported language: {self.language}")

        return Parser(lang)

    def parse_source(self, source_code: bytes) -> Tree:
        """Parse UTF-8 source bytes."""
        return self.parser.parse(source_code)

    @classmethod
    def supports(cls, language: str) -> bool:
        return language in cls.SUPPORTED_LANGUAGES.values()
