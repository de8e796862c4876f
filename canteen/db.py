from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from canteen.config import settings
from canteen.models import Base


def build_engine(url: str, *, memory: bool = False):
    connect_args: dict = {}
    if url.startswith('sqlite'):
        connect_args = {'check_same_thread': False}
    if memory:
        # One shared connection, otherwise every checkout sees an empty database.
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


engine = build_engine(settings.database_url_normalized, memory=settings.database_is_memory)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(bind=None) -> None:
    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
