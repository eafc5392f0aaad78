from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from .settings import settings

class Base(DeclarativeBase):
    pass

def make_engine(url: str):
    return create_engine(
        url,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
        pool_pre_ping=True,
    )

_engine = make_engine(settings.DB_URL)
SessionLocal = sessionmaker(bind=_engine, autocommit=False, autoflush=False)

def get_engine():
    return _engine

def use_engine(engine):
    """Point the module engine and SessionLocal at another database."""
    global _engine
    _engine = engine
    SessionLocal.configure(bind=engine)
    return engine

def init_db(engine=None):
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=engine or _engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
