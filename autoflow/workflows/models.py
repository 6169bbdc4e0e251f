import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON
from sqlmodel import Field, SQLModel

from autoflow.credentials.models import utcnow


class Workflow(SQLModel, table=True):
    """Workflow database model"""
    __tablename__ = "workflows"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str = Field(index=True, nullable=False)
    name: str = Field(max_length=255)
    description: Optional[str] = Field(default=None, max_length=500)
    configuration: Dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    status: bool = False
    # Id assigned by the workflow engine once the document is pushed
    remote_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    def detail(self) -> Dict[str, Any]:
        return {**self.summary(), "configuration": self.configuration}


class ExecutionLog(SQLModel, table=True):
    """Workflow execution history"""
    __tablename__ = "execution_logs"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    workflow_id: str = Field(foreign_key="workflows.id", index=True, nullable=False, ondelete="CASCADE")
    status: str = Field(default="queued")  # queued, running, success, error
    data: Dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    created_at: datetime = Field(default_factory=utcnow)

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "data": self.data,
            "createdAt": self.created_at.isoformat(),
        }
