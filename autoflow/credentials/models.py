"""
Credential database models for encrypted credential storage.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Credential(SQLModel, table=True):
    """One encrypted secret per (user, service)."""
    __tablename__ = "credentials"
    __table_args__ = (UniqueConstraint("user_id", "service_id", name="uq_credentials_user_service"),)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=36)
    user_id: str = Field(index=True, max_length=255)
    service_id: str = Field(max_length=100)
    encrypted_payload: str = Field(sa_type=Text)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def summary(self) -> dict:
        """Sanitized view: never includes the payload."""
        return {
            "id": self.id,
            "service": self.service_id,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
