from sqlmodel import Session, SQLModel, create_engine

from autoflow.config import settings


def _connect_args(uri: str) -> dict:
    # SQLite connections are shared across FastAPI's threadpool
    return {"check_same_thread": False} if uri.startswith("sqlite") else {}


engine = create_engine(
    settings.SQLALCHEMY_DATABASE_URI,
    connect_args=_connect_args(settings.SQLALCHEMY_DATABASE_URI),
)


def init_db(session: Session) -> None:
    # make sure all SQLModel models are imported before creating tables
    from autoflow import models  # noqa: F401

    SQLModel.metadata.create_all(session.get_bind())
