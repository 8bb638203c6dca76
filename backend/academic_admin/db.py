import logging
from contextlib import contextmanager
from typing import Generator, Iterator

from sqlmodel import SQLModel, create_engine, Session

from .config import settings


logger = logging.getLogger(__name__)


def _build_engine(url: str):
    # SQLite comparte la conexión entre los hilos del TestClient y del servidor
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=settings.debug, connect_args=connect_args)


engine = _build_engine(settings.database_url)


def init_db():
    """Create every table registered in ``models``; existing tables are left alone."""
    from . import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    logger.info("Database ready at %s", engine.url.render_as_string(hide_password=True))


def get_session() -> Generator[Session, None, None]:
    session = Session(engine)
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for code running outside a request (seeding, scripts)."""
    with Session(engine) as session:
        try:
            yield session
        except Exception:
            session.rollback()
            raise
