import os
import tempfile

# Settings are read at import time
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")
os.environ.setdefault("ENVIRONMENT", "local")
os.environ.setdefault("SQLITE_DB_PATH", os.path.join(tempfile.mkdtemp(prefix="autoflow_test_"), "test.db"))

import pytest  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from autoflow import models  # noqa: E402,F401
from autoflow.credentials import CredentialVault, InMemoryCredentialStore, SQLCredentialStore  # noqa: E402
from tests.utils import SECRET  # noqa: E402


@pytest.fixture
def sql_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(sql_engine):
    with Session(sql_engine) as session:
        yield session


@pytest.fixture
def memory_vault():
    return CredentialVault(InMemoryCredentialStore(), SECRET)


@pytest.fixture
def sql_vault(sql_engine):
    return CredentialVault(SQLCredentialStore(sql_engine), SECRET)
