'''
Application lifecycle: tutors apply, edit and withdraw; the owning student
reviews and decides.

The post's `applicants` counter always equals the number of its applications
in {pending, approved}. It only moves through atomic
`SET applicants = applicants +/- n` updates issued in the same transaction
as the application change that justifies them.
'''
from typing import Annotated
from uuid import UUID

from fastapi import Depends
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..common.exceptions import ConflictError, ForbiddenError, NotFoundError
from ..common.logger import log
from ..database import models as db_models
from ..database.db_enums import AccountStatus, ApplicationDecision, ApplicationStatus, TuitionStatus
from ..database.engine import get_db_session
from ..database.models import utcnow
from ..database.utils import as_utc
from ..models import application as application_models
from ..models.token import Principal


class ApplicationService:
    """
    Service for all business logic related to tutor applications.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    # --- Internal Helpers ---

    async def _get_application(self, application_id: UUID) -> db_models.Applications:
        stmt = select(db_models.Applications).filter(
            db_models.Applications.id == application_id
        ).execution_options(populate_existing=True)
        application = (await self.db.execute(stmt)).scalars().first()
        if application is None:
            log.warning(f"Tried to fetch non-existing application: {application_id}")
            raise NotFoundError("Application", application_id, code="APPLICATION_NOT_FOUND")
        return application

    async def _get_own_application(self, principal: Principal, application_id: UUID) -> db_models.Applications:
        application = await self._get_application(application_id)
        if application.tutor_id != principal.account_id:
            log.warning(f"SECURITY: Tutor {principal.account_id} tried to modify application {application_id} owned by {application.tutor_id}.")
            raise ForbiddenError("You can only manage your own applications.", code="NOT_OWNER")
        return application

    async def _get_post(self, post_id: UUID) -> db_models.TuitionPosts:
        stmt = select(db_models.TuitionPosts).filter(
            db_models.TuitionPosts.id == post_id,
            db_models.TuitionPosts.status != TuitionStatus.DELETED.value,
        ).execution_options(populate_existing=True)
        post = (await self.db.execute(stmt)).scalars().first()
        if post is None:
            raise NotFoundError("Tuition post", post_id, code="TUITION_NOT_FOUND")
        return post

    async def _adjust_applicants(self, post_id: UUID, delta: int):
        stmt = update(db_models.TuitionPosts).where(
            db_models.TuitionPosts.id == post_id
        ).values(
            applicants=db_models.TuitionPosts.applicants + delta
        ).execution_options(synchronize_session=False)
        await self.db.execute(stmt)

    # --- Tutor Methods ---

    async def apply(self, principal: Principal, data: application_models.ApplicationCreate) -> db_models.Applications:
        """
        Creates a pending application on an active post whose deadline has not
        passed. One application per (post, tutor).
        """
        log.info(f"Tutor {principal.account_id} applying to tuition post {data.tuition_post_id}.")
        tutor = await self.db.get(db_models.Tutors, principal.account_id)
        if tutor is None:
            raise NotFoundError("Tutor", principal.account_id, code="USER_NOT_FOUND")
        if tutor.status != AccountStatus.ACTIVE.value:
            log.warning(f"SECURITY: Tutor {tutor.id} with status '{tutor.status}' tried to apply.")
            raise ForbiddenError("Your tutor account must be activated by an admin before applying.", code="ACCOUNT_NOT_ACTIVE")

        post = await self._get_post(data.tuition_post_id)
        if post.status != TuitionStatus.ACTIVE.value:
            raise ConflictError("This tuition post is not accepting applications.", code="TUITION_NOT_ACTIVE")
        deadline = as_utc(post.application_deadline)
        if deadline is not None and deadline < utcnow():
            raise ConflictError("The application deadline has passed.", code="APPLICATION_DEADLINE_PASSED")

        existing = (await self.db.execute(
            select(db_models.Applications.id).filter(
                db_models.Applications.tuition_post_id == post.id,
                db_models.Applications.tutor_id == tutor.id,
            )
        )).scalar_one_or_none()
        if existing is not None:
            raise ConflictError("You have already applied to this tuition.", code="ALREADY_APPLIED")

        # conditional increment: fails if the post left `active` in the meantime
        stmt = update(db_models.TuitionPosts).where(
            db_models.TuitionPosts.id == post.id,
            db_models.TuitionPosts.status == TuitionStatus.ACTIVE.value,
        ).values(
            applicants=db_models.TuitionPosts.applicants + 1
        ).execution_options(synchronize_session=False)
        if (await self.db.execute(stmt)).rowcount == 0:
            raise ConflictError("This tuition post is not accepting applications.", code="TUITION_NOT_ACTIVE")

        application = db_models.Applications(
            tuition_post_id=post.id,
            tutor_id=tutor.id,
            tutor_name=tutor.name,
            tutor_email=tutor.email,
            tutor_photo=tutor.photo_url,
            status=ApplicationStatus.PENDING.value,
            **data.model_dump(exclude={"tuition_post_id"}),
        )
        self.db.add(application)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("You have already applied to this tuition.", code="ALREADY_APPLIED")
        await self.db.refresh(application)
        log.info(f"Successfully created application {application.id}.")
        return application

    async def list_mine(self, principal: Principal) -> list[db_models.Applications]:
        stmt = select(db_models.Applications).options(
            selectinload(db_models.Applications.tuition_post)
        ).filter(
            db_models.Applications.tutor_id == principal.account_id
        ).order_by(db_models.Applications.applied_at.desc())
        return list((await self.db.execute(stmt)).scalars().all())

    async def update(
        self,
        principal: Principal,
        application_id: UUID,
        data: application_models.ApplicationUpdate
    ) -> db_models.Applications:
        log.info(f"Tutor {principal.account_id} updating application {application_id}.")
        await self._get_own_application(principal, application_id)
        changes = data.model_dump(exclude_unset=True)
        stmt = update(db_models.Applications).where(
            db_models.Applications.id == application_id,
            db_models.Applications.status == ApplicationStatus.PENDING.value,
        ).values(updated_at=utcnow(), **changes).execution_options(synchronize_session=False)
        if (await self.db.execute(stmt)).rowcount == 0:
            raise ConflictError("Only a pending application can be edited.", code="APPLICATION_NOT_PENDING")
        return await self._get_application(application_id)

    async def withdraw(self, principal: Principal, application_id: UUID) -> UUID:
        """Deletes a pending application and gives its slot back on the counter."""
        log.info(f"Tutor {principal.account_id} withdrawing application {application_id}.")
        application = await self._get_own_application(principal, application_id)
        post_id = application.tuition_post_id

        stmt = delete(db_models.Applications).where(
            db_models.Applications.id == application_id,
            db_models.Applications.status == ApplicationStatus.PENDING.value,
        ).execution_options(synchronize_session=False)
        if (await self.db.execute(stmt)).rowcount == 0:
            raise ConflictError("Only a pending application can be withdrawn.", code="APPLICATION_NOT_PENDING")
        await self._adjust_applicants(post_id, -1)
        self.db.expunge(application)
        return application_id

    # --- Student Methods ---

    async def list_for_post(self, principal: Principal, post_id: UUID) -> list[db_models.Applications]:
        post = await self._get_post(post_id)
        if post.student_id != principal.account_id:
            log.warning(f"SECURITY: Account {principal.account_id} tried to read applications of post {post_id}.")
            raise ForbiddenError("You can only view applications for your own tuition posts.", code="NOT_OWNER")
        stmt = select(db_models.Applications).filter(
            db_models.Applications.tuition_post_id == post_id
        ).order_by(db_models.Applications.applied_at.desc())
        return list((await self.db.execute(stmt)).scalars().all())

    async def decide(
        self,
        principal: Principal,
        application_id: UUID,
        action: ApplicationDecision
    ) -> application_models.ApplicationDecisionResult:
        """
        `reject` is final and frees a counter slot. `approve` only validates
        and asks for payment; the application stays pending until the payment
        is confirmed.
        """
        log.info(f"Student {principal.account_id} deciding '{action.value}' on application {application_id}.")
        application = await self._get_application(application_id)
        post = await self._get_post(application.tuition_post_id)
        if post.student_id != principal.account_id:
            log.warning(f"SECURITY: Account {principal.account_id} tried to decide application {application_id} on post {post.id}.")
            raise ForbiddenError("You can only decide applications for your own tuition posts.", code="NOT_OWNER")
        if application.status != ApplicationStatus.PENDING.value:
            raise ConflictError(f"Application is already {application.status}.", code="APPLICATION_NOT_PENDING")

        if action == ApplicationDecision.REJECT:
            stmt = update(db_models.Applications).where(
                db_models.Applications.id == application_id,
                db_models.Applications.status == ApplicationStatus.PENDING.value,
            ).values(
                status=ApplicationStatus.REJECTED.value, decided_at=utcnow(), updated_at=utcnow()
            ).execution_options(synchronize_session=False)
            if (await self.db.execute(stmt)).rowcount == 0:
                raise ConflictError("Application is no longer pending.", code="APPLICATION_NOT_PENDING")
            await self._adjust_applicants(post.id, -1)
            application = await self._get_application(application_id)
            return application_models.ApplicationDecisionResult(
                application=application_models.ApplicationRead.model_validate(application),
                payment_required=False,
                application_id=application.id,
            )

        if post.status != TuitionStatus.ACTIVE.value:
            raise ConflictError("This tuition post is not open for assignment.", code="TUITION_NOT_ACTIVE")
        return application_models.ApplicationDecisionResult(
            application=application_models.ApplicationRead.model_validate(application),
            payment_required=True,
            application_id=application.id,
            amount=application.expected_salary,
            currency=post.budget_currency,
        )
