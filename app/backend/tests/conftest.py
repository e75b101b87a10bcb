from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ebtracker.db.base import Base
from ebtracker.db.dependencies import get_db_session
import ebtracker.models.entities  # noqa: F401
from ebtracker.integrations.email import get_notification_sender
from ebtracker.integrations.storage import LocalObjectStorage, get_object_storage
from ebtracker.main import create_app
from helpers import RecordingSender


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture()
def storage(tmp_path: Path) -> LocalObjectStorage:
    return LocalObjectStorage(
        tmp_path / "storage",
        public_url="http://testserver/api/v1/files",
        signing_secret="test-signing-secret",
        default_ttl_seconds=600,
    )


@pytest.fixture()
def client(db_session: Session, sender: RecordingSender, storage: LocalObjectStorage) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    app.dependency_overrides[get_notification_sender] = lambda: sender
    app.dependency_overrides[get_object_storage] = lambda: storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
