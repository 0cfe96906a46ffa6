"""Pytest fixtures for testing"""

import pytest
from typing import Dict, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from household_budget.api.main import create_app
from household_budget.api.dependencies import get_household_client
from household_budget.domain.exceptions import NotFoundError
from household_budget.domain.models import HouseholdRoster
from household_budget.infrastructure.database.models import Base
from household_budget.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeHouseholdClient:
    """In-memory stand-in for the household directory service"""

    def __init__(self, rosters: Dict[str, HouseholdRoster]):
        self.rosters = rosters
        self.calls = []

    async def get_roster(self, household_id: str) -> HouseholdRoster:
        self.calls.append(household_id)
        if household_id not in self.rosters:
            raise NotFoundError(f"Household {household_id} not found")
        return self.rosters[household_id]


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def second_session(db: Session) -> Generator[Session, None, None]:
    """Independent session on the same database, for interleaving two callers"""
    other = TestingSessionLocal()
    try:
        yield other
    finally:
        other.close()


@pytest.fixture
def roster() -> HouseholdRoster:
    """Household whose creator is not listed among its members"""
    return HouseholdRoster(
        household_id="hh-rivera",
        created_by="user-ana",
        creator_name="Ana Rivera",
        members={"user-luis": "Luis Rivera", "user-sofia": "Sofia Rivera"},
    )


@pytest.fixture
def household_client(roster: HouseholdRoster) -> FakeHouseholdClient:
    return FakeHouseholdClient({roster.household_id: roster})


@pytest.fixture
def client(db: Session, household_client: FakeHouseholdClient) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_household_client] = lambda: household_client
    return TestClient(app)


@pytest.fixture
def headers() -> Dict[str, str]:
    return {"X-User-ID": "user-ana"}
