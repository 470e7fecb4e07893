from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


class WorkflowStepRow(SQLModel, table=True):
    """One process step of a workflow instance for an object version."""

    __tablename__ = "workflow_steps"
    __table_args__ = (
        UniqueConstraint("external_identifier", "workflow", "version", "process"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    external_identifier: str = Field(index=True)
    workflow: str = Field(index=True)
    process: str
    version: int
    status: str = Field(default="waiting")
    active_version: bool = Field(default=True)
    position: int = 0
    context: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    error_msg: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
