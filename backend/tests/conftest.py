"""Shared fixtures: an in-memory database seeded with one program under review."""
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from reviewhub.auth import CurrentUser
from reviewhub.database import Base, get_db
from reviewhub.main import app
from reviewhub.models import Application, Criterion, Profile, Program

OWNER_ID = 1
REVIEWER_IDS = (2, 3, 4)
OUTSIDER_ID = 5
ADMIN_ID = 6

SUBMITTED = datetime(2026, 3, 1, 9, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded(db):
    """
    Owner, three reviewers, an outsider and a super admin; program 1 with
    three submitted applications and three criteria; program 2 with one
    application.
    """
    db.add_all([
        Profile(id=OWNER_ID, full_name="Olivia Owner", email="owner@example.org", roles=["organizer"]),
        Profile(id=2, full_name="Ravi Reviewer", email="r2@example.org", roles=["reviewer"]),
        Profile(id=3, full_name="Rosa Reviewer", email="r3@example.org", roles=["reviewer"]),
        Profile(id=4, full_name="Remy Reviewer", email="r4@example.org", roles=["reviewer"]),
        Profile(id=OUTSIDER_ID, full_name="Oscar Outsider", email="out@example.org", roles=[]),
        Profile(id=ADMIN_ID, full_name="Ada Admin", email="admin@example.org", roles=["super_admin"]),
        Profile(id=7, full_name="Alex Applicant", email="alex@example.org", roles=[]),
    ])
    db.flush()
    db.add_all([
        Program(id=1, title="Summer Research Fellowship", created_by=OWNER_ID),
        Program(id=2, title="Winter Workshop", created_by=OWNER_ID),
    ])
    db.flush()
    db.add_all([
        Application(id=10, program_id=1, applicant_id=7, submitted_at=SUBMITTED),
        Application(id=11, program_id=1, submitted_at=SUBMITTED + timedelta(hours=1)),
        Application(id=12, program_id=1, submitted_at=SUBMITTED + timedelta(hours=2)),
        Application(id=20, program_id=2, submitted_at=SUBMITTED),
    ])
    db.add_all([
        Criterion(id=100, program_id=1, name="Technical Merit", sort_order=1, scoring_type="numerical",
                  weight=0.5, min_score=0, max_score=10, rubric_definition={}, is_required=True),
        Criterion(id=101, program_id=1, name="Impact", sort_order=2, scoring_type="numerical",
                  weight=0.3, min_score=0, max_score=5, rubric_definition={}, is_required=True),
        Criterion(id=102, program_id=1, name="Presentation", sort_order=3, scoring_type="rubric",
                  weight=0.2, min_score=1, max_score=4,
                  rubric_definition={"poor": 1, "fair": 2, "good": 3, "excellent": 4}, is_required=False),
    ])
    db.commit()
    return db


@pytest.fixture
def owner():
    return CurrentUser(id=OWNER_ID, roles=frozenset({"organizer"}))


@pytest.fixture
def reviewer():
    return CurrentUser(id=2, roles=frozenset({"reviewer"}))


@pytest.fixture
def other_reviewer():
    return CurrentUser(id=3, roles=frozenset({"reviewer"}))


@pytest.fixture
def outsider():
    return CurrentUser(id=OUTSIDER_ID, roles=frozenset())


@pytest.fixture
def admin():
    return CurrentUser(id=ADMIN_ID, roles=frozenset({"super_admin"}))


@pytest.fixture
def client(seeded):
    def override_get_db():
        yield seeded

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def as_user(user_id):
    return {"X-User-Id": str(user_id)}
