"""CSV export: row accumulation, field escaping and the final encoded write."""
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

from ..analyzer.collector import DeclarationRecord
from ..analyzer.reference_resolver import ReferenceRecord
from ..utils.logger import LogBuffer


FIELD_SEPARATOR = ","
LINE_TERMINATOR = "\r\n"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


class ReportLayout(Enum):
    """Column layouts of the export.

    PUBLIC_SURFACE is the full report; CONST_FIELDS is the narrower layout of
    the constant-only audit (no kind, accessibility or referencing namespace).
    """
    PUBLIC_SURFACE = (
        "MemberKind",
        "Accessibility",
        "DeclaringNamespace",
        "DeclaringType",
        "Declaration",
        "ReferenceNamespace",
        "ReferenceType",
        "ReferenceMember",
        "LineNumber",
        "CodeLine",
        "FilePath",
    )
    CONST_FIELDS = (
        "FieldDeclaration",
        "FieldDeclaringType",
        "ReferenceType",
        "ReferenceMember",
        "LineNumber",
        "FilePath",
        "CodeLine",
    )

    @property
    def columns(self) -> Sequence[str]:
        return self.value


def csv_escape(value: Optional[str]) -> str:
    """Escape one field.

    The field is wrapped in double quotes, with embedded quotes doubled, only
    when it contains a quote, a comma, CR or LF. None and "" stay empty.
    """
    if not value:
        return ""
    if '"' in value or "," in value or "\r" in value or "\n" in value:
        return '"' + value.replace('"', '""') + '"'
    return value


def join_row(fields: Sequence[Optional[str]]) -> str:
    return FIELD_SEPARATOR.join(csv_escape(field) for field in fields)


class RowBuffer:
    """Ordered table rows for one run, starting with the header row."""

    def __init__(self, layout: ReportLayout = ReportLayout.PUBLIC_SURFACE):
        self.layout = layout
        self.rows: List[str] = [FIELD_SEPARATOR.join(layout.columns)]

    def add_reference(self, record: DeclarationRecord, reference: ReferenceRecord) -> None:
        """Append the row joining a declaration with one of its usages."""
        line = str(reference.line_number)
        if self.layout == ReportLayout.CONST_FIELDS:
            fields = [
                record.declaration_text,
                record.declaring_type,
                reference.reference_type,
                reference.reference_member,
                line,
                reference.file_path,
                reference.source_line,
            ]
        else:
            fields = [
                record.member_kind.value,
                record.accessibility.value,
                record.declaring_namespace,
                record.declaring_type,
                record.declaration_text,
                reference.reference_namespace,
                reference.reference_type,
                reference.reference_member,
                line,
                reference.source_line,
                reference.file_path,
            ]
        self.rows.append(join_row(fields))

    def add_placeholder(self, record: DeclarationRecord) -> None:
        """Append the single row of a declaration without usages."""
        if self.layout == ReportLayout.CONST_FIELDS:
            fields = [record.declaration_text, record.declaring_type]
        else:
            fields = [
                record.member_kind.value,
                record.accessibility.value,
                record.declaring_namespace,
                record.declaring_type,
                record.declaration_text,
            ]
        fields += [""] * (len(self.layout.columns) - len(fields))
        self.rows.append(join_row(fields))

    def __len__(self) -> int:
        return len(self.rows)


def result_file_name(tool_name: str, now: Optional[datetime] = None) -> str:
    """Return ``<ToolName>Result_<YYYYMMDDHHmmss>.csv``."""
    now = now or datetime.now()
    return f"{tool_name}Result_{now.strftime(TIMESTAMP_FORMAT)}.csv"


def write_report(rows: RowBuffer, directory: str | Path, encoding: str,
                 tool_name: str, log: Optional[LogBuffer] = None,
                 now: Optional[datetime] = None) -> Optional[Path]:
    """Write all rows to the timestamped result file.

    Write failures are reported on the console and never raised: a run that
    produced rows still ends normally.

    Args:
        rows: Accumulated table rows (header included)
        directory: Output directory
        encoding: Text encoding of the build's dialect
        tool_name: Prefix of the result file name
        log: Run log whose console receives the status line
        now: Timestamp to embed (defaults to the current local time)

    Returns:
        Path of the written file, or None if writing failed
    """
    out_path = Path(directory) / result_file_name(tool_name, now)
    console = log.console if log is not None else None
    try:
        content = "".join(row + LINE_TERMINATOR for row in rows.rows)
        with open(out_path, "w", encoding=encoding, errors="replace", newline="") as f:
            f.write(content)
    except (OSError, UnicodeError, LookupError) as e:
        if console is not None:
            console.print(f"Error while writing the result file: {e}", markup=False, highlight=False,
                          soft_wrap=True)
        return None

    if console is not None:
        console.print(f"Result file: {out_path}", markup=False, highlight=False, soft_wrap=True)
    return out_path
