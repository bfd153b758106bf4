from __future__ import annotations

import os
import tempfile
from datetime import datetime, timezone

# Settings and the engine are resolved at import time
os.environ["ENV"] = "test"
os.environ.setdefault("AUDIT_LOG_FILE", os.path.join(tempfile.gettempdir(), "seat_billing_test_audit.log"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.config import settings  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.db import session as db_session  # noqa: E402
from app.db.base_class import Base  # noqa: E402
from app.db.session import SessionLocal  # noqa: E402
from app.models.billing_models import BillingInterval, SeatPlan, SeatPlanStatus  # noqa: E402
from app.models.profile_models import Profile, ProfileRole, ProfileStatus  # noqa: E402
from app.services.seat_billing import SeatUsageSnapshot  # noqa: E402

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")

test_engine = create_engine(
    TEST_DATABASE_URL,
    future=True,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Ensure application code uses the test engine
settings.ENV = "test"  # type: ignore[attr-defined]
db_session.engine = test_engine  # type: ignore[assignment]
SessionLocal.configure(bind=test_engine)

ORG_ID = "org-1"
ANCHOR = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_database_state():
    """Ensure each test sees a fresh database schema."""
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield


@pytest.fixture
def db_session():
    """Provide a database session for tests."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    finally:
        session.close()


@pytest.fixture
def client():
    """Provide a FastAPI TestClient bound to the application."""
    from app.api.main import app

    return TestClient(app)


class AuditRecorder:
    """Audit sink that keeps events in memory."""

    def __init__(self):
        self.events: list[dict] = []

    def __call__(self, action, organization_id=None, actor_id=None, level="info", message="", **metadata):
        self.events.append(
            {
                "action": action,
                "organization_id": organization_id,
                "actor_id": actor_id,
                "level": level,
                "message": message,
                **metadata,
            }
        )

    def actions(self) -> list[str]:
        return [event["action"] for event in self.events]


class FakeUsageProvider:
    """Usage provider with a settable broker count; the limit is read from the plan."""

    def __init__(self, db, used: int = 0):
        self.db = db
        self.used = used

    def get_usage(self, organization_id: str) -> SeatUsageSnapshot:
        plan = self.db.get(SeatPlan, organization_id)
        return SeatUsageSnapshot.from_counts(self.used, plan.seat_limit if plan else 0)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def audit():
    return AuditRecorder()


@pytest.fixture
def make_plan(db_session):
    def _make(
        organization_id: str = ORG_ID,
        seat_limit: int = 5,
        anchor: datetime = ANCHOR,
        interval: BillingInterval = BillingInterval.MONTHLY,
        status: SeatPlanStatus = SeatPlanStatus.ACTIVE,
    ) -> SeatPlan:
        plan = SeatPlan(
            organization_id=organization_id,
            seat_limit=seat_limit,
            billing_cycle_anchor=anchor,
            billing_cycle_interval=interval,
            status=status,
        )
        db_session.add(plan)
        db_session.commit()
        return plan

    return _make


@pytest.fixture
def make_profile(db_session):
    def _make(
        role: ProfileRole = ProfileRole.BROKER,
        organization_id: str = ORG_ID,
        status: ProfileStatus = ProfileStatus.ACTIVE,
        name: str | None = None,
    ) -> Profile:
        profile = Profile(organization_id=organization_id, role=role, status=status, name=name)
        db_session.add(profile)
        db_session.commit()
        return profile

    return _make


@pytest.fixture
def owner(make_profile) -> Profile:
    return make_profile(ProfileRole.OWNER, name="Owner")


def auth_headers(profile_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(profile_id)}"}


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def usage(db_session) -> FakeUsageProvider:
    return FakeUsageProvider(db_session)


@pytest.fixture
def make_service(db_session, usage, audit):
    from app.services.seat_billing import SeatBillingService

    def _make(now: datetime, **kwargs) -> SeatBillingService:
        kwargs.setdefault("usage_provider", usage)
        kwargs.setdefault("audit", audit)
        return SeatBillingService(db_session, clock=FixedClock(now), **kwargs)

    return _make


@pytest.fixture
def make_reconciler(db_session, usage, audit):
    from app.services.seat_billing import CycleRolloverReconciler

    def _make(now: datetime, **kwargs) -> CycleRolloverReconciler:
        kwargs.setdefault("usage_provider", usage)
        kwargs.setdefault("audit", audit)
        return CycleRolloverReconciler(db_session, clock=FixedClock(now), **kwargs)

    return _make
