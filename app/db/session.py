# app/db/session.py
from __future__ import annotations

from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.db.models import Base  # models must be imported before create_all


def _ensure_sqlite_dir(db_url: str) -> None:
    # sqlite:///./data/data.db  → ./data
    prefix = "sqlite:///"
    if db_url.startswith(prefix):
        fs_path = db_url[len(prefix):]
        if fs_path == ":memory:" or not fs_path:
            return
        Path(fs_path).resolve().parent.mkdir(parents=True, exist_ok=True)


def make_engine(db_url: str) -> Engine:
    _ensure_sqlite_dir(db_url)
    kwargs = {}
    if db_url.startswith("sqlite"):
        # writer thread + FastAPI threadpool share the file
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(db_url, future=True, **kwargs)


engine: Optional[Engine] = None

# bound in init_db(), after YAML is loaded
SessionLocal = sessionmaker(autocommit=False, autoflush=False, future=True)


def init_db(db_url: Optional[str] = None) -> Engine:
    """Bind SessionLocal to the configured database and create missing tables."""
    global engine
    engine = make_engine(db_url or settings.db_url)
    SessionLocal.configure(bind=engine)
    Base.metadata.create_all(bind=engine)
    return engine


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
