'''
Builders shared by the fixtures and the test modules.
'''
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.tutorate_backend.database import models as db_models
from src.tutorate_backend.database.db_enums import ApplicationStatus, TuitionStatus
from src.tutorate_backend.models.payment import ChargeIntent
from src.tutorate_backend.models.token import Principal
from src.tutorate_backend.services.security import JWTHandler


def auth_headers_for(account: db_models.Accounts) -> dict[str, str]:
    """Helper to create auth headers for a given account."""
    token = JWTHandler.create_access_token(subject=account.external_id, email=account.email)
    return {"Authorization": f"Bearer {token}"}


def principal_for(account: db_models.Accounts) -> Principal:
    return Principal(
        external_id=account.external_id,
        email=account.email,
        role=account.role,
        account_id=account.id,
        status=account.status,
    )


def succeeded_intent(application: db_models.Applications, intent_id: str, amount: int | None = None) -> ChargeIntent:
    """A provider intent that vouches for `application`'s charge."""
    return ChargeIntent(
        id=intent_id,
        status="succeeded",
        amount=amount if amount is not None else int(Decimal(application.expected_salary) * 100),
        currency="bdt",
        metadata={"application_id": str(application.id)},
    )


def post_fields(student: db_models.Students, **overrides) -> dict:
    fields = dict(
        student_id=student.id,
        student_name=student.name,
        student_email=student.email,
        title="Mathematics Tutor for HSC Level",
        subject="Calculus & Algebra",
        class_level="HSC (Class 11-12)",
        description="Looking for an experienced mathematics tutor.",
        location="Dhaka",
        area="Dhanmondi, Dhaka",
        mode="Hybrid",
        budget_min=Decimal("800"),
        budget_max=Decimal("1200"),
        budget_currency="BDT",
        schedule={"days": "Saturday to Wednesday", "hours": "4:00 PM - 7:00 PM", "flexible": True},
        requirements=["2 years of teaching experience"],
        slots=1,
    )
    fields.update(overrides)
    return fields


async def make_post(
    session: AsyncSession,
    student: db_models.Students,
    status: str = TuitionStatus.ACTIVE.value,
    **overrides
) -> db_models.TuitionPosts:
    post = db_models.TuitionPosts(status=status, **post_fields(student, **overrides))
    session.add(post)
    await session.commit()
    await session.refresh(post)
    return post


async def make_application(
    session: AsyncSession,
    post: db_models.TuitionPosts,
    tutor: db_models.Tutors,
    expected_salary: Decimal = Decimal("1000"),
    status: str = ApplicationStatus.PENDING.value,
) -> db_models.Applications:
    """Inserts an application and keeps the post's counter consistent with it."""
    application = db_models.Applications(
        tuition_post_id=post.id,
        tutor_id=tutor.id,
        tutor_name=tutor.name,
        tutor_email=tutor.email,
        qualifications=tutor.qualifications or "Graduate",
        experience=tutor.experience or "1 year",
        expected_salary=expected_salary,
        status=status,
    )
    session.add(application)
    if status in ApplicationStatus.counted():
        post.applicants += 1
    await session.commit()
    await session.refresh(application)
    await session.refresh(post)
    return application
