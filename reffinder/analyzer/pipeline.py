"""Audit pipeline: collect declarations, resolve their usages, fill the report."""
from typing import List

from .collector import AuditScope, DeclarationCollector, DeclarationRecord
from .dialects import Dialect
from .reference_resolver import ReferenceResolver
from ..report.csv_report import ReportLayout, RowBuffer
from ..utils.logger import LogBuffer


def layout_for(scope: AuditScope) -> ReportLayout:
    if scope == AuditScope.CONST_FIELDS:
        return ReportLayout.CONST_FIELDS
    return ReportLayout.PUBLIC_SURFACE


async def run_audit(model, dialect: Dialect, scope: AuditScope,
                    log: LogBuffer, rows: RowBuffer) -> List[DeclarationRecord]:
    """Audit every qualifying declaration of ``model`` into ``rows``.

    Declarations are handled one after the other in discovery order, and the
    usages of each declaration in the order the gateway reports them, so the
    row order is the report's order.

    Args:
        model: Program model gateway
        dialect: Source dialect of the build
        scope: Member kinds to audit
        log: Human log of the run
        rows: Row accumulator receiving one row per (declaration, usage)

    Returns:
        The collected declaration records
    """
    collector = DeclarationCollector(dialect, scope, log)
    records = await collector.collect(model)

    resolver = ReferenceResolver(model, log)
    for record in records:
        log.log(f"{record.declaring_type}: {record.declaration_text}")
        usages = 0
        async for reference in resolver.resolve(record.symbol):
            rows.add_reference(record, reference)
            usages += 1
        if usages == 0:
            rows.add_placeholder(record)

    return records
