'''
Pytest configuration for the FastAPI application.

This file sets up fixtures for:
1. Forcing the application into TEST_MODE before any code is imported.
2. A fresh sqlite database file per test, built from the ORM metadata.
3. An httpx AsyncClient bound to the app, with the session, the session
   factory and the charge authority overridden.
4. Instances of all service classes, pre-injected with a test db session.
5. Seeded accounts, posts and applications.
'''
import os

# --- Must run before the application is imported ---
os.environ["TEST_MODE"] = "True"
os.environ["SECRET_KEY"] = "test-secret-key-for-tutorate"
os.environ.setdefault("DATABASE_URL_PROD", "sqlite+aiosqlite:///./unused-prod.db")
os.environ.setdefault("DATABASE_URL_TEST", "sqlite+aiosqlite:///./unused-test.db")
os.environ["STRIPE_SECRET_KEY"] = "sk_test_tutorate"

import pytest
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import httpx
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine

# --- Constant Imports ----
from tests.constants import (
    TEST_STUDENT_ID, TEST_STUDENT_EMAIL,
    TEST_OTHER_STUDENT_ID, TEST_OTHER_STUDENT_EMAIL,
    TEST_BLOCKED_STUDENT_ID, TEST_BLOCKED_STUDENT_EMAIL,
    TEST_TUTOR_ID, TEST_TUTOR_EMAIL,
    TEST_OTHER_TUTOR_ID, TEST_OTHER_TUTOR_EMAIL,
    TEST_PENDING_TUTOR_ID, TEST_PENDING_TUTOR_EMAIL,
    TEST_ADMIN_ID, TEST_ADMIN_EMAIL,
    TEST_ACTIVE_POST_ID, TEST_PENDING_POST_ID,
    TEST_TRANSACTION_ID,
)
from tests.helpers import make_application, make_post

# --- Application Imports ---
from src.tutorate_backend.main import app
from src.tutorate_backend.common.config import settings
from src.tutorate_backend.database.engine import get_db_session, get_session_factory
from src.tutorate_backend.database import models as db_models
from src.tutorate_backend.database.db_enums import AccountStatus, TuitionStatus
from src.tutorate_backend.models.payment import ChargeIntent
from src.tutorate_backend.services.application_service import ApplicationService
from src.tutorate_backend.services.payment_service import ChargeAuthority, PaymentService
from src.tutorate_backend.services.report_service import ReportService
from src.tutorate_backend.services.tuition_service import TuitionService
from src.tutorate_backend.services.user_service import AdminService, UserService


@pytest.fixture(scope="session")
def anyio_backend():
    """
    Override the default 'anyio_backend' fixture.
    Forces the backend to 'asyncio' and promotes the scope to 'session'.
    """
    return "asyncio"


# --- 1. Database Fixtures ---

@pytest.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """A brand new sqlite database for every test."""
    assert settings.TEST_MODE is True, "TEST_MODE was not set to True!"
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tutorate-test.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(db_models.Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """
    The session used by seed fixtures and service tests.
    Seed fixtures commit so that other sessions (API requests, report
    fan-outs) can see the data.
    """
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


# --- 2. External Collaborators ---

@pytest.fixture(scope="function")
def mock_charge_authority() -> ChargeAuthority:
    """Provides a mock ChargeAuthority instance."""
    mock_service = MagicMock(spec=ChargeAuthority)
    mock_service.create_intent = AsyncMock(return_value=ChargeIntent(
        id=TEST_TRANSACTION_ID,
        status="requires_payment_method",
        amount=100000,
        currency="bdt",
        client_secret=f"{TEST_TRANSACTION_ID}_secret_abc",
    ))
    mock_service.retrieve_intent = AsyncMock()
    return mock_service


# --- 3. API Client ---

@pytest.fixture(scope="function")
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    mock_charge_authority: ChargeAuthority
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    An AsyncClient talking to the app in-process, on the test event loop.
    Each request gets its own session that commits on success and rolls
    back on error, like the real dependency.
    """
    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        session = session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[ChargeAuthority] = lambda: mock_charge_authority

    # unhandled errors come back as 500 envelopes instead of being re-raised
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


# --- 4. Service Fixtures ---

@pytest.fixture(scope="function")
def user_service(db_session: AsyncSession) -> UserService:
    return UserService(db=db_session)

@pytest.fixture(scope="function")
def admin_service(db_session: AsyncSession) -> AdminService:
    return AdminService(db=db_session)

@pytest.fixture(scope="function")
def tuition_service(db_session: AsyncSession) -> TuitionService:
    return TuitionService(db=db_session)

@pytest.fixture(scope="function")
def application_service(db_session: AsyncSession) -> ApplicationService:
    return ApplicationService(db=db_session)

@pytest.fixture(scope="function")
def payment_service(db_session: AsyncSession, mock_charge_authority: ChargeAuthority) -> PaymentService:
    return PaymentService(db=db_session, charge_authority=mock_charge_authority)

@pytest.fixture(scope="function")
def report_service(session_factory: async_sessionmaker[AsyncSession]) -> ReportService:
    return ReportService(session_factory=session_factory)


# --- 5. Data Fixtures ---

async def _add(session: AsyncSession, obj):
    session.add(obj)
    await session.commit()
    await session.refresh(obj)
    return obj


@pytest.fixture(scope="function")
async def test_student_orm(db_session: AsyncSession) -> db_models.Students:
    return await _add(db_session, db_models.Students(
        id=TEST_STUDENT_ID,
        external_id="ext-student-one",
        email=TEST_STUDENT_EMAIL,
        name="Student One",
        status=AccountStatus.ACTIVE.value,
        preferred_subjects=["Mathematics"],
        class_level="HSC",
    ))

@pytest.fixture(scope="function")
async def test_other_student_orm(db_session: AsyncSession) -> db_models.Students:
    return await _add(db_session, db_models.Students(
        id=TEST_OTHER_STUDENT_ID,
        external_id="ext-student-two",
        email=TEST_OTHER_STUDENT_EMAIL,
        name="Student Two",
        status=AccountStatus.ACTIVE.value,
    ))

@pytest.fixture(scope="function")
async def test_blocked_student_orm(db_session: AsyncSession) -> db_models.Students:
    return await _add(db_session, db_models.Students(
        id=TEST_BLOCKED_STUDENT_ID,
        external_id="ext-student-blocked",
        email=TEST_BLOCKED_STUDENT_EMAIL,
        name="Blocked Student",
        status=AccountStatus.BLOCKED.value,
    ))

@pytest.fixture(scope="function")
async def test_tutor_orm(db_session: AsyncSession) -> db_models.Tutors:
    return await _add(db_session, db_models.Tutors(
        id=TEST_TUTOR_ID,
        external_id="ext-tutor-one",
        email=TEST_TUTOR_EMAIL,
        name="Tutor One",
        status=AccountStatus.ACTIVE.value,
        qualifications="MSc Mathematics",
        subjects=["Mathematics", "Physics"],
        experience="5 years",
        hourly_rate=Decimal("1000"),
        rating=Decimal("4.80"),
        total_reviews=25,
        is_verified=True,
    ))

@pytest.fixture(scope="function")
async def test_other_tutor_orm(db_session: AsyncSession) -> db_models.Tutors:
    return await _add(db_session, db_models.Tutors(
        id=TEST_OTHER_TUTOR_ID,
        external_id="ext-tutor-two",
        email=TEST_OTHER_TUTOR_EMAIL,
        name="Tutor Two",
        status=AccountStatus.ACTIVE.value,
        qualifications="BSc Physics",
        subjects=["Physics"],
        experience="2 years",
        hourly_rate=Decimal("700"),
        rating=Decimal("4.10"),
        total_reviews=4,
        is_verified=False,
    ))

@pytest.fixture(scope="function")
async def test_pending_tutor_orm(db_session: AsyncSession) -> db_models.Tutors:
    return await _add(db_session, db_models.Tutors(
        id=TEST_PENDING_TUTOR_ID,
        external_id="ext-tutor-pending",
        email=TEST_PENDING_TUTOR_EMAIL,
        name="Pending Tutor",
        status=AccountStatus.PENDING.value,
        rating=Decimal("0"),
        total_reviews=0,
        is_verified=False,
    ))

@pytest.fixture(scope="function")
async def test_admin_orm(db_session: AsyncSession) -> db_models.Admins:
    return await _add(db_session, db_models.Admins(
        id=TEST_ADMIN_ID,
        external_id="ext-admin",
        email=TEST_ADMIN_EMAIL,
        name="Admin",
        status=AccountStatus.ACTIVE.value,
    ))

@pytest.fixture(scope="function")
async def test_active_post_orm(db_session: AsyncSession, test_student_orm: db_models.Students) -> db_models.TuitionPosts:
    return await make_post(db_session, test_student_orm, id=TEST_ACTIVE_POST_ID)

@pytest.fixture(scope="function")
async def test_pending_post_orm(db_session: AsyncSession, test_student_orm: db_models.Students) -> db_models.TuitionPosts:
    return await make_post(
        db_session,
        test_student_orm,
        status=TuitionStatus.PENDING.value,
        id=TEST_PENDING_POST_ID,
        title="Physics Teacher for College Level",
        subject="Physics",
    )

@pytest.fixture(scope="function")
async def test_application_orm(
    db_session: AsyncSession,
    test_active_post_orm: db_models.TuitionPosts,
    test_tutor_orm: db_models.Tutors
) -> db_models.Applications:
    """A pending application from the main tutor on the active post."""
    return await make_application(db_session, test_active_post_orm, test_tutor_orm)
