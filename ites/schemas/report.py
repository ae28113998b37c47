"""Data handed to the report renderer."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ReportCell(BaseModel):
    value: str = "N/A"
    accepted: bool = False


class ReportRow(BaseModel):
    feature: str
    its_spec: str = ""
    suppliers: list[ReportCell] = Field(default_factory=list)


class ReportData(BaseModel):
    """Finalized comparison of one evaluation, ready for a paginated document."""

    ite_number: str
    status: str
    its_no: str = "N/A"
    eprf: str = "N/A"
    for_user: str = "N/A"
    created_at: datetime
    approved_at: datetime | None = None
    suppliers: list[str] = Field(default_factory=list)
    rows: list[ReportRow] = Field(default_factory=list)
    recommendations: list[Any] = Field(default_factory=list)
    comments: str = ""
