"""Evaluation record request/response schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ites.auth.roles import STATUS_LABELS, WorkflowStatus


class EvaluationCreate(BaseModel):
    """POST /v1/ites request. Payload fields are opaque to the workflow."""

    metadata: dict[str, Any] = Field(default_factory=dict)
    its_fields: list[Any] = Field(default_factory=list)
    comparison_data: dict[str, Any] = Field(default_factory=dict)
    recommendations: list[Any] = Field(default_factory=list)
    accepted_cells: dict[str, Any] = Field(default_factory=dict)
    comments: str = ""

    def to_fields(self) -> dict[str, Any]:
        data = {k: v for k, v in self.model_dump(exclude_unset=True).items() if v is not None}
        if "metadata" in data:
            data["metadata_json"] = data.pop("metadata")
        return data


class EvaluationUpdate(EvaluationCreate):
    """PUT /v1/ites/{id} request - only fields sent are changed."""

    metadata: dict[str, Any] | None = None
    its_fields: list[Any] | None = None
    comparison_data: dict[str, Any] | None = None
    recommendations: list[Any] | None = None
    accepted_cells: dict[str, Any] | None = None
    comments: str | None = None


class EvaluationOut(BaseModel):
    """Evaluation record as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    ite_number: str
    status: str
    status_label: str = ""
    creator_id: str
    reviewer_id: str | None = None
    approver_id: str | None = None
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_json")
    its_fields: list[Any] = Field(default_factory=list)
    comparison_data: dict[str, Any] = Field(default_factory=dict)
    recommendations: list[Any] = Field(default_factory=list)
    accepted_cells: dict[str, Any] = Field(default_factory=dict)
    comments: str = ""
    created_at: datetime
    updated_at: datetime
    available_actions: list[str] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: Any, actions: list | None = None) -> "EvaluationOut":
        out = cls.model_validate(record)
        out.status_label = STATUS_LABELS[WorkflowStatus(record.status)]
        out.available_actions = [getattr(a, "value", a) for a in actions or []]
        return out


class TransitionRequest(BaseModel):
    """POST /v1/ites/{id}/workflow request."""

    action: str | None = None
    comment: str | None = None
    reviewer_id: str | None = None
    approver_id: str | None = None


class TransitionInfo(BaseModel):
    from_status: str
    to_status: str
    action: str


class TransitionResponse(BaseModel):
    """POST /v1/ites/{id}/workflow response."""

    old_status: str
    new_status: str
    action: str
    record: EvaluationOut
    transition: TransitionInfo
