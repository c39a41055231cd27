from __future__ import annotations

import datetime as dt
import os
import tempfile
from pathlib import Path
from typing import Generator, Iterable, Optional

os.environ["TT_TIMEZONE"] = "UTC"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from tasktrack import models, services
from tasktrack.database import get_db
from tasktrack.main import app

UTC = dt.timezone.utc
DEFAULT_CREATED = dt.datetime(2024, 1, 15, 10, 0, tzinfo=UTC)


class Seeder:
    """Creates users, projects and work items inside the test transaction."""

    def __init__(self, session: Session):
        self.session = session

    def user(self, username: str, department: Optional[str] = None, display_name: Optional[str] = None) -> models.User:
        user = models.User(username=username, display_name=display_name, department=department, roles=["user"])
        self.session.add(user)
        self.session.flush()
        return user

    def project(self, name: str, owner: models.User) -> models.Project:
        project = models.Project(name=name, owner_id=owner.id)
        self.session.add(project)
        self.session.flush()
        return project

    def task(
        self,
        project: models.Project,
        owner: models.User,
        title: str = "Task",
        time_taken: Optional[str] = None,
        assignees: Iterable[models.User] = (),
        status: str = "To Do",
        created_at: dt.datetime = DEFAULT_CREATED,
        **extra,
    ) -> models.Task:
        return services.create_task(
            self.session,
            title=title,
            owner_id=owner.id,
            project_id=project.id,
            time_taken=time_taken,
            assignee_ids=[user.id for user in assignees],
            status=status,
            created_at=created_at,
            **extra,
        )

    def subtask(
        self,
        parent: models.Task,
        owner: models.User,
        title: str = "Subtask",
        time_taken: Optional[str] = None,
        assignees: Iterable[models.User] = (),
        status: str = "To Do",
        created_at: dt.datetime = DEFAULT_CREATED,
        archived: bool = False,
    ) -> models.Subtask:
        subtask = services.create_subtask(
            self.session,
            parent_task_id=parent.id,
            title=title,
            owner_id=owner.id,
            time_taken=time_taken,
            assignee_ids=[user.id for user in assignees],
            status=status,
            created_at=created_at,
        )
        if archived:
            services.set_archived(self.session, subtask, True)
        return subtask


@pytest.fixture(scope="session")
def temp_db_path() -> Generator[Path, None, None]:
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "test.db"
        yield path


@pytest.fixture(scope="session")
def engine(temp_db_path: Path):
    url = f"sqlite:///{temp_db_path}"
    engine = create_engine(url, connect_args={"check_same_thread": False}, future=True)
    models.Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture(scope="function")
def session(engine) -> Generator[Session, None, None]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionTesting = sessionmaker(
        bind=connection, autoflush=False, autocommit=False, expire_on_commit=False, future=True
    )
    session = SessionTesting()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(scope="function")
def client(session: Session) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def seed(session: Session) -> Seeder:
    return Seeder(session)
