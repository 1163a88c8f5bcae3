"""ReferenceFinder CLI - public-surface declaration audit of a .NET solution."""
import asyncio
from pathlib import Path
from typing import Optional

import typer
import click

from reffinder.analyzer.collector import AuditScope
from reffinder.analyzer.dialects import Dialect, get_dialect
from reffinder.analyzer.pipeline import layout_for, run_audit
from reffinder.config import get_config
from reffinder.report.csv_report import RowBuffer, write_report
from reffinder.utils.logger import LogBuffer
from reffinder.utils.safe_console import SafeConsole
from reffinder.workspace.solution import open_program_model

app = typer.Typer(
    name="reffinder",
    help="List public const fields and public/protected methods of a solution with every place they are used",
    add_completion=False
)
# Use SafeConsole for Windows Unicode compatibility
console = SafeConsole()


async def audit_solution(solution: Path, dialect: Dialect, scope: AuditScope,
                         log: LogBuffer, rows: RowBuffer) -> None:
    """Open the solution and run the audit into ``rows``.

    Any failure while opening the solution is reported on the log; the rows
    then hold the header only.
    """
    try:
        model = await open_program_model(solution, dialect)
    except Exception as e:
        log.log(f"Error while opening the solution: {e}")
        return

    await run_audit(model, dialect, scope, log, rows)


@app.command()
def main(
    solution: Optional[str] = typer.Argument(None, help="Solution (.sln) or project file to audit"),
    const_only: bool = typer.Option(False, "--const-only", help="Audit public const fields only (7-column report)"),
    dialect_name: Optional[str] = typer.Option(
        None, "--dialect",
        click_type=click.Choice(["csharp", "vb"], case_sensitive=False),
        help="Build dialect (overrides REFFINDER_DIALECT)",
    ),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Directory for the result CSV"),
):
    """Audit the public surface of a solution and write the result CSV.

    The result file is written on every run, holding at least the header
    row, and the exit code stays 0 even when the solution cannot be opened.
    """
    config = get_config()
    try:
        dialect = get_dialect(dialect_name) if dialect_name else config.dialect
    except ValueError as e:
        console.print(f"Error: {e}", markup=False)
        raise typer.Exit(1)

    scope = AuditScope.CONST_FIELDS if const_only else AuditScope.PUBLIC_SURFACE
    log = LogBuffer(console)
    rows = RowBuffer(layout_for(scope))

    try:
        if not solution:
            log.log("Usage: reffinder <solution.sln>")
        elif not Path(solution).exists():
            log.log(f"Solution file does not exist: {solution}")
        else:
            solution_path = Path(solution).resolve()
            log.log(f"Target solution: {solution_path}")
            asyncio.run(audit_solution(solution_path, dialect, scope, log, rows))
    finally:
        # rows gathered so far are written even when the audit fails
        write_report(rows, output_dir or config.output_dir, dialect.encoding, config.tool_name, log)


if __name__ == "__main__":
    app()
