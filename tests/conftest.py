# tests/conftest.py
from __future__ import annotations

import json
from collections.abc import Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from gs_retail.db import get_db, init_db
from gs_retail.main import app as fastapi_app

TEST_DB_URL = "sqlite://"


def make_payload(direction: str = "in", count=1, utc_time: str = "2025-01-15T10:30:00Z", **extra) -> bytes:
    data = {"Direction": direction}
    if count is not None:
        data["Count"] = count
    body = {"UtcTime": utc_time, "Source": {"VideoSourceToken": "VideoSource-1"}, "Data": data}
    body.update(extra)
    return json.dumps(body).encode("utf-8")


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Callable[[], Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(session_factory) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory) -> Iterator[TestClient]:
    def _override_get_db() -> Iterator[Session]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    # no context manager: the lifespan (and its MQTT thread) stays off
    try:
        yield TestClient(fastapi_app)
    finally:
        fastapi_app.dependency_overrides.clear()
