"""Configuration management for ReferenceFinder.

Loads environment variables and provides centralized config access.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

from .analyzer.dialects import Dialect, get_dialect


class Config:
    """Configuration loader with environment variable support."""

    def __init__(self):
        """Initialize config by loading .env from the working directory."""
        load_dotenv(Path.cwd() / ".env")

    @property
    def dialect_name(self) -> str:
        """Get the build dialect name (``csharp`` or ``vb``).

        Returns:
            Dialect name, lower-cased
        """
        return os.getenv("REFFINDER_DIALECT", "csharp").strip().lower()

    @property
    def dialect(self) -> Dialect:
        """Get the build dialect.

        Raises:
            ValueError: If REFFINDER_DIALECT names an unknown dialect
        """
        return get_dialect(self.dialect_name)

    @property
    def output_dir(self) -> Path:
        """Get the directory the result file is written to.

        Returns:
            REFFINDER_OUTPUT_DIR, or the current directory
        """
        return Path(os.getenv("REFFINDER_OUTPUT_DIR") or Path.cwd())

    @property
    def tool_name(self) -> str:
        """Get the result file name prefix."""
        return os.getenv("REFFINDER_TOOL_NAME", "ReferenceFinder")


# Singleton instance
_config = None


def get_config() -> Config:
    """Get or create singleton Config instance.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config()
    return _config
