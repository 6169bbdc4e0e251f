"""
Keyed storage for credential records.

The vault only depends on the CredentialStore interface. Two implementations
ship: an in-memory store for tests and single-process use, and a SQL store
backed by SQLModel.
"""
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from autoflow.credentials.models import Credential


class DuplicateCredentialError(Exception):
    """Insert collided with an existing (user_id, service_id) record."""


class CredentialStore(ABC):
    @abstractmethod
    def find(self, user_id: str, service_id: str) -> Optional[Credential]:
        ...

    @abstractmethod
    def get(self, credential_id: str) -> Optional[Credential]:
        ...

    @abstractmethod
    def list_for_user(self, user_id: str) -> List[Credential]:
        ...

    @abstractmethod
    def insert(self, record: Credential) -> Credential:
        """Persist a new record. Raises DuplicateCredentialError on key collision."""

    @abstractmethod
    def update(self, record: Credential) -> Credential:
        ...

    @abstractmethod
    def delete(self, credential_id: str) -> None:
        ...


class InMemoryCredentialStore(CredentialStore):
    def __init__(self):
        self._records: Dict[str, Credential] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _copy(record: Credential) -> Credential:
        return Credential.model_validate(record.model_dump())

    def find(self, user_id: str, service_id: str) -> Optional[Credential]:
        with self._lock:
            for record in self._records.values():
                if record.user_id == user_id and record.service_id == service_id:
                    return self._copy(record)
        return None

    def get(self, credential_id: str) -> Optional[Credential]:
        with self._lock:
            record = self._records.get(credential_id)
            return self._copy(record) if record else None

    def list_for_user(self, user_id: str) -> List[Credential]:
        with self._lock:
            return [self._copy(r) for r in self._records.values() if r.user_id == user_id]

    def insert(self, record: Credential) -> Credential:
        with self._lock:
            for existing in self._records.values():
                if existing.user_id == record.user_id and existing.service_id == record.service_id:
                    raise DuplicateCredentialError(f"{record.user_id}/{record.service_id}")
            self._records[record.id] = self._copy(record)
        return record

    def update(self, record: Credential) -> Credential:
        with self._lock:
            self._records[record.id] = self._copy(record)
        return record

    def delete(self, credential_id: str) -> None:
        with self._lock:
            self._records.pop(credential_id, None)


class SQLCredentialStore(CredentialStore):
    def __init__(self, engine: Engine):
        self.engine = engine

    def find(self, user_id: str, service_id: str) -> Optional[Credential]:
        with Session(self.engine) as session:
            statement = select(Credential).where(
                Credential.user_id == user_id,
                Credential.service_id == service_id,
            )
            return session.exec(statement).first()

    def get(self, credential_id: str) -> Optional[Credential]:
        with Session(self.engine) as session:
            return session.get(Credential, credential_id)

    def list_for_user(self, user_id: str) -> List[Credential]:
        with Session(self.engine) as session:
            statement = select(Credential).where(Credential.user_id == user_id)
            return list(session.exec(statement).all())

    def insert(self, record: Credential) -> Credential:
        with Session(self.engine, expire_on_commit=False) as session:
            session.add(record)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicateCredentialError(f"{record.user_id}/{record.service_id}") from e
            session.refresh(record)
            return record

    def update(self, record: Credential) -> Credential:
        with Session(self.engine, expire_on_commit=False) as session:
            db_obj = session.get(Credential, record.id)
            if db_obj is None:
                db_obj = record
            else:
                db_obj.encrypted_payload = record.encrypted_payload
                db_obj.updated_at = record.updated_at
            session.add(db_obj)
            session.commit()
            session.refresh(db_obj)
            return db_obj

    def delete(self, credential_id: str) -> None:
        with Session(self.engine) as session:
            db_obj = session.get(Credential, credential_id)
            if db_obj is not None:
                session.delete(db_obj)
                session.commit()
