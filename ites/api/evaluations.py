"""Evaluation record endpoints - CRUD, workflow, audit history, report data."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ites.api.responses import unwrap
from ites.auth.middleware import OptionalUserDep, UserDep
from ites.auth.roles import AccessKind, available_actions
from ites.config import settings
from ites.database import get_db
from ites.engine.access import check_access
from ites.engine.audit import list_audit_log, summarize_audit_log
from ites.engine.records import create_evaluation, delete_evaluation, edit_evaluation
from ites.engine.report import build_report_data
from ites.engine.stats import dashboard_stats
from ites.engine.workflow import perform_transition
from ites.schemas.audit import AuditEntryOut, AuditLogPage, AuditSummaryResponse, Pagination
from ites.schemas.evaluation import (
    EvaluationCreate,
    EvaluationOut,
    EvaluationUpdate,
    TransitionInfo,
    TransitionRequest,
    TransitionResponse,
)
from ites.schemas.report import ReportData
from ites.storage.repositories import list_visible_records

router = APIRouter()

DbDep = Annotated[AsyncSession, Depends(get_db)]


async def _allowed(db: AsyncSession, user, ite_id: str, kind: AccessKind):
    decision = await check_access(db, user, ite_id, kind)
    if not decision.allowed:
        raise decision.error
    return decision


@router.post("/ites", response_model=EvaluationOut)
async def create_ite(body: EvaluationCreate, user: OptionalUserDep, db: DbDep):
    """Create a DRAFT evaluation owned by the caller."""
    record = unwrap(await create_evaluation(db, user, body.to_fields()))
    return EvaluationOut.from_record(record, available_actions(user, record))


@router.get("/ites", response_model=list[EvaluationOut])
async def list_ites(user: UserDep, db: DbDep):
    """Evaluations the caller can view, newest first."""
    records = await list_visible_records(db, user)
    return [EvaluationOut.from_record(r, available_actions(user, r)) for r in records]


@router.get("/ites/stats")
async def get_stats(user: UserDep, db: DbDep):
    """Dashboard statistics for the caller's role."""
    stats = await dashboard_stats(db, user)
    return {"stats": stats, "user": {"id": user.id, "role": user.role}}


@router.get("/ites/{ite_id}", response_model=EvaluationOut)
async def get_ite(ite_id: str, user: OptionalUserDep, db: DbDep):
    decision = await _allowed(db, user, ite_id, AccessKind.VIEW)
    return EvaluationOut.from_record(
        decision.record, available_actions(decision.user, decision.record)
    )


@router.put("/ites/{ite_id}", response_model=EvaluationOut)
async def update_ite(
    ite_id: str,
    body: EvaluationUpdate,
    user: OptionalUserDep,
    db: DbDep,
    override: bool = False,
):
    """Edit payload fields. Admins pass ``override=true`` to edit an approved ITE."""
    outcome = unwrap(await edit_evaluation(db, user, ite_id, body.to_fields(), override=override))
    return EvaluationOut.from_record(outcome.record, available_actions(user, outcome.record))


@router.delete("/ites/{ite_id}")
async def delete_ite(ite_id: str, user: OptionalUserDep, db: DbDep):
    record = unwrap(await delete_evaluation(db, user, ite_id))
    return {"success": True, "id": record.id, "ite_number": record.ite_number}


@router.post("/ites/{ite_id}/workflow", response_model=TransitionResponse)
async def workflow_action(
    ite_id: str,
    body: TransitionRequest,
    user: OptionalUserDep,
    db: DbDep,
):
    """
    Apply a workflow action: submit, recall, mark_reviewed, approve or reject.
    ``comment`` is required for reject.
    """
    outcome = unwrap(
        await perform_transition(
            db,
            user,
            ite_id,
            body.action,
            comment=body.comment,
            reviewer_id=body.reviewer_id,
            approver_id=body.approver_id,
        )
    )
    return TransitionResponse(
        old_status=outcome.old_status.value,
        new_status=outcome.new_status.value,
        action=outcome.action.value,
        record=EvaluationOut.from_record(outcome.record, available_actions(user, outcome.record)),
        transition=TransitionInfo(
            from_status=outcome.old_status.value,
            to_status=outcome.new_status.value,
            action=outcome.action.value,
        ),
    )


@router.get("/ites/{ite_id}/audit-logs", response_model=AuditLogPage | AuditSummaryResponse)
async def get_audit_logs(
    ite_id: str,
    user: OptionalUserDep,
    db: DbDep,
    limit: Annotated[int | None, Query()] = None,
    offset: Annotated[int | None, Query()] = None,
    summary: bool = False,
):
    """Audit history of an ITE, newest first, or its summary with ``summary=true``."""
    decision = await _allowed(db, user, ite_id, AccessKind.VIEW)
    if summary:
        return AuditSummaryResponse(summary=unwrap(await summarize_audit_log(db, decision.record.id)))

    entries = unwrap(await list_audit_log(db, decision.record.id, limit=limit, offset=offset))
    logs = [AuditEntryOut.model_validate(e) for e in entries]
    return AuditLogPage(
        logs=logs,
        pagination=Pagination(
            limit=min(limit or settings.audit_log_default_limit, settings.audit_log_max_limit),
            offset=offset or 0,
            count=len(logs),
        ),
    )


@router.get("/ites/{ite_id}/report", response_model=ReportData)
async def get_report_data(ite_id: str, user: OptionalUserDep, db: DbDep):
    """Input for the report renderer."""
    decision = await _allowed(db, user, ite_id, AccessKind.VIEW)
    return build_report_data(decision.record)
