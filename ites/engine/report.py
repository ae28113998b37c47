"""Build the report renderer's input from an evaluation record."""

from typing import Any

from ites.models import EvaluationRecord
from ites.schemas.report import ReportCell, ReportData, ReportRow


def _supplier_label(index: int) -> str:
    return f"Supplier {chr(65 + index)}"


def build_report_data(record: EvaluationRecord) -> ReportData:
    """
    Flatten ``comparison_data`` ({"suppliers": [...], "comparison": [...]}) into
    rows. Accepted cells are keyed ``"<row>-<supplier>"``.
    """
    metadata: dict[str, Any] = record.metadata_json or {}
    comparison: dict[str, Any] = record.comparison_data or {}
    accepted: dict[str, Any] = record.accepted_cells or {}

    suppliers = [_supplier_label(i) for i, _ in enumerate(comparison.get("suppliers") or [])]
    rows = []
    for row_idx, row in enumerate(comparison.get("comparison") or []):
        cells = [
            ReportCell(
                value=str((cell or {}).get("value") or "N/A"),
                accepted=bool(accepted.get(f"{row_idx}-{cell_idx}")),
            )
            for cell_idx, cell in enumerate(row.get("suppliers") or [])
        ]
        rows.append(
            ReportRow(
                feature=str(row.get("feature", "")),
                its_spec=str(row.get("itsSpec", row.get("its_spec", "")) or ""),
                suppliers=cells,
            )
        )

    return ReportData(
        ite_number=record.ite_number,
        status=record.status,
        its_no=metadata.get("itsNo") or metadata.get("its_no") or "N/A",
        eprf=metadata.get("eprf") or "N/A",
        for_user=metadata.get("forUser") or metadata.get("for_user") or "N/A",
        created_at=record.created_at,
        approved_at=record.approved_at,
        suppliers=suppliers,
        rows=rows,
        recommendations=record.recommendations or [],
        comments=record.comments or "",
    )
