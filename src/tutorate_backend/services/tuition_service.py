'''
Tuition post lifecycle: public listings, owner CRUD, completion and admin moderation.

Status changes go through compare-and-set UPDATEs (`WHERE status = ...`) and
are checked via rowcount, so two racing requests cannot both win.
'''
from typing import Any, Optional, Annotated
from uuid import UUID

from fastapi import Depends
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.config import settings
from ..common.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..common.logger import log
from ..database import models as db_models
from ..database.db_enums import TuitionSortOption, TuitionStatus
from ..database.engine import get_db_session
from ..database.models import utcnow
from ..models import tuition as tuition_models
from ..models.envelope import Page
from ..models.token import Principal

SORT_ORDERS = {
    TuitionSortOption.BUDGET_LOW: (db_models.TuitionPosts.budget_min.asc(), db_models.TuitionPosts.created_at.desc()),
    TuitionSortOption.BUDGET_HIGH: (db_models.TuitionPosts.budget_max.desc(), db_models.TuitionPosts.created_at.desc()),
    TuitionSortOption.NEWEST: (db_models.TuitionPosts.created_at.desc(),),
    TuitionSortOption.OLDEST: (db_models.TuitionPosts.created_at.asc(),),
    TuitionSortOption.TOP_RATED: (
        db_models.TuitionPosts.views.desc(),
        db_models.TuitionPosts.saved_count.desc(),
        db_models.TuitionPosts.created_at.desc(),
    ),
}


class TuitionService:
    """
    Service for all business logic related to tuition posts.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    # --- Internal Fetchers ---

    async def _get_post(self, post_id: UUID, for_update: bool = False) -> db_models.TuitionPosts:
        """
        Fetches a post, re-reading it from the store even if it is already in
        the session. Deleted posts are reported as missing.
        """
        stmt = select(db_models.TuitionPosts).filter(
            db_models.TuitionPosts.id == post_id,
            db_models.TuitionPosts.status != TuitionStatus.DELETED.value,
        ).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        post = (await self.db.execute(stmt)).scalars().first()
        if post is None:
            log.warning(f"Tried to fetch non-existing tuition post: {post_id}")
            raise NotFoundError("Tuition post", post_id, code="TUITION_NOT_FOUND")
        return post

    async def _get_owned_post(self, principal: Principal, post_id: UUID) -> db_models.TuitionPosts:
        post = await self._get_post(post_id)
        if post.student_id != principal.account_id:
            log.warning(f"SECURITY: Account {principal.account_id} tried to modify tuition post {post_id} owned by {post.student_id}.")
            raise ForbiddenError("You can only manage your own tuition posts.", code="NOT_OWNER")
        return post

    async def _transition(self, post_id: UUID, from_status: str, values: dict[str, Any]) -> bool:
        """Compare-and-set on status. Returns False if the post was not in `from_status`."""
        stmt = update(db_models.TuitionPosts).where(
            db_models.TuitionPosts.id == post_id,
            db_models.TuitionPosts.status == from_status,
        ).values(updated_at=utcnow(), **values).execution_options(synchronize_session=False)
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    # --- Public Read Methods ---

    async def list_public(
        self,
        search: Optional[str] = None,
        location: Optional[str] = None,
        subject: Optional[str] = None,
        class_level: Optional[str] = None,
        sort_by: TuitionSortOption = TuitionSortOption.NEWEST,
        page: int = 1,
        limit: int = 10,
    ) -> Page:
        """Active posts only, filtered, sorted and paginated."""
        log.info(f"Listing public tuitions (search={search}, location={location}, subject={subject}, class={class_level}, sort={sort_by.value}, page={page}).")
        posts = db_models.TuitionPosts
        filters = [posts.status == TuitionStatus.ACTIVE.value]
        if search:
            pattern = f"%{search.lower()}%"
            filters.append(or_(
                func.lower(posts.title).like(pattern),
                func.lower(posts.subject).like(pattern),
                func.lower(posts.description).like(pattern),
                func.lower(posts.location).like(pattern),
            ))
        if location:
            pattern = f"%{location.lower()}%"
            filters.append(or_(func.lower(posts.location).like(pattern), func.lower(posts.area).like(pattern)))
        if subject:
            filters.append(func.lower(posts.subject).like(f"%{subject.lower()}%"))
        if class_level:
            filters.append(func.lower(posts.class_level).like(f"%{class_level.lower()}%"))

        try:
            total = (await self.db.execute(
                select(func.count()).select_from(posts).filter(*filters)
            )).scalar_one()
            stmt = select(posts).filter(*filters).order_by(*SORT_ORDERS[sort_by]).offset((page - 1) * limit).limit(limit)
            rows = (await self.db.execute(stmt)).scalars().all()
        except Exception as e:
            log.error(f"Database error listing public tuitions: {e}", exc_info=True)
            raise

        items = [tuition_models.TuitionPublicRead.model_validate(post) for post in rows]
        return Page.build(items, total, page, limit)

    async def get_public(self, post_id: UUID) -> db_models.TuitionPosts:
        """An active post. Each read bumps its view counter atomically."""
        log.info(f"Public read of tuition post {post_id}")
        stmt = update(db_models.TuitionPosts).where(
            db_models.TuitionPosts.id == post_id,
            db_models.TuitionPosts.status == TuitionStatus.ACTIVE.value,
        ).values(views=db_models.TuitionPosts.views + 1).execution_options(synchronize_session=False)
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError("Tuition post", post_id, code="TUITION_NOT_FOUND")
        return await self._get_post(post_id)

    # --- Student Methods ---

    async def create(self, principal: Principal, data: tuition_models.TuitionCreate) -> db_models.TuitionPosts:
        """Creates a post in `pending`; an admin must approve it before it is listed."""
        log.info(f"Student {principal.account_id} creating tuition post '{data.title}'.")
        student = await self.db.get(db_models.Students, principal.account_id)
        if student is None:
            raise NotFoundError("Student", principal.account_id, code="USER_NOT_FOUND")

        fields = data.model_dump(exclude={"budget"})
        fields["budget_currency"] = (fields.get("budget_currency") or settings.DEFAULT_CURRENCY).upper()
        post = db_models.TuitionPosts(
            student_id=student.id,
            student_name=student.name,
            student_email=student.email,
            status=TuitionStatus.PENDING.value,
            applicants=0,
            **fields,
        )
        self.db.add(post)
        await self.db.flush()
        await self.db.refresh(post)
        log.info(f"Successfully created tuition post {post.id}.")
        return post

    async def list_mine(self, principal: Principal) -> list[db_models.TuitionPosts]:
        stmt = select(db_models.TuitionPosts).filter(
            db_models.TuitionPosts.student_id == principal.account_id,
            db_models.TuitionPosts.status != TuitionStatus.DELETED.value,
        ).order_by(db_models.TuitionPosts.created_at.desc())
        return list((await self.db.execute(stmt)).scalars().all())

    async def update(self, principal: Principal, post_id: UUID, data: tuition_models.TuitionUpdate) -> db_models.TuitionPosts:
        log.info(f"Student {principal.account_id} updating tuition post {post_id}.")
        post = await self._get_owned_post(principal, post_id)
        if post.status in TuitionStatus.committed():
            raise ConflictError(f"Cannot edit a tuition post that is {post.status}.", code="TUITION_LOCKED")

        changes = data.model_dump(exclude_unset=True, exclude={"budget"})
        budget_min = changes.get("budget_min", post.budget_min)
        budget_max = changes.get("budget_max", post.budget_max)
        if budget_min > budget_max:
            raise ValidationError("budget_min cannot be greater than budget_max.")
        if changes.get("budget_currency"):
            changes["budget_currency"] = changes["budget_currency"].upper()

        # matches nothing once a payment has moved the post to ongoing
        stmt = update(db_models.TuitionPosts).where(
            db_models.TuitionPosts.id == post_id,
            db_models.TuitionPosts.status.notin_(TuitionStatus.committed() + [TuitionStatus.DELETED.value]),
        ).values(updated_at=utcnow(), **changes).execution_options(synchronize_session=False)
        if (await self.db.execute(stmt)).rowcount == 0:
            raise ConflictError("The tuition post can no longer be edited.", code="TUITION_LOCKED")
        return await self._get_post(post_id)

    async def delete(self, principal: Principal, post_id: UUID) -> tuition_models.TuitionDeleteResult:
        """
        Soft-deletes a post that has applications, hard-deletes one that has none.
        Posts with an assigned tutor cannot be deleted.
        """
        log.info(f"Student {principal.account_id} deleting tuition post {post_id}.")
        post = await self._get_owned_post(principal, post_id)
        if post.status in TuitionStatus.committed():
            raise ConflictError(f"Cannot delete a tuition post that is {post.status}.", code="TUITION_LOCKED")

        deletable = db_models.TuitionPosts.status.notin_(TuitionStatus.committed() + [TuitionStatus.DELETED.value])
        application_count = (await self.db.execute(
            select(func.count()).select_from(db_models.Applications).filter(
                db_models.Applications.tuition_post_id == post_id
            )
        )).scalar_one()

        if application_count:
            stmt = update(db_models.TuitionPosts).where(
                db_models.TuitionPosts.id == post_id, deletable
            ).values(
                status=TuitionStatus.DELETED.value, deleted_at=utcnow(), updated_at=utcnow()
            ).execution_options(synchronize_session=False)
        else:
            stmt = delete(db_models.TuitionPosts).where(
                db_models.TuitionPosts.id == post_id, deletable
            ).execution_options(synchronize_session=False)

        if (await self.db.execute(stmt)).rowcount == 0:
            raise ConflictError("The tuition post can no longer be deleted.", code="TUITION_LOCKED")
        self.db.expunge(post)
        log.info(f"Tuition post {post_id} {'soft' if application_count else 'hard'}-deleted.")
        return tuition_models.TuitionDeleteResult(id=post_id, soft_deleted=bool(application_count))

    async def complete(self, principal: Principal, post_id: UUID) -> db_models.TuitionPosts:
        log.info(f"Student {principal.account_id} completing tuition post {post_id}.")
        await self._get_owned_post(principal, post_id)
        if not await self._transition(post_id, TuitionStatus.ONGOING.value, {
            "status": TuitionStatus.COMPLETED.value, "completed_at": utcnow(),
        }):
            raise ConflictError("Only an ongoing tuition can be completed.", code="INVALID_STATUS_TRANSITION")
        return await self._get_post(post_id)

    # --- Tutor Methods ---

    async def list_assigned(self, principal: Principal) -> list[db_models.TuitionPosts]:
        stmt = select(db_models.TuitionPosts).filter(
            db_models.TuitionPosts.tutor_id == principal.account_id,
            db_models.TuitionPosts.status.in_(TuitionStatus.committed()),
        ).order_by(db_models.TuitionPosts.assigned_at.desc())
        return list((await self.db.execute(stmt)).scalars().all())

    # --- Admin Methods ---

    async def list_all(
        self,
        status: Optional[TuitionStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        log.info(f"Admin listing tuitions (status={status}, page={page}).")
        filters = []
        if status is not None:
            filters.append(db_models.TuitionPosts.status == status.value)
        total = (await self.db.execute(
            select(func.count()).select_from(db_models.TuitionPosts).filter(*filters)
        )).scalar_one()
        stmt = select(db_models.TuitionPosts).filter(*filters).order_by(
            db_models.TuitionPosts.created_at.desc()
        ).offset((page - 1) * limit).limit(limit)
        rows = (await self.db.execute(stmt)).scalars().all()
        items = [tuition_models.TuitionRead.model_validate(post) for post in rows]
        return Page.build(items, total, page, limit)

    async def approve(self, admin: Principal, post_id: UUID) -> db_models.TuitionPosts:
        log.info(f"Admin {admin.account_id} approving tuition post {post_id}.")
        await self._get_post(post_id)
        if not await self._transition(post_id, TuitionStatus.PENDING.value, {
            "status": TuitionStatus.ACTIVE.value, "approved_at": utcnow(), "rejection_reason": None,
        }):
            raise ConflictError("Only a pending tuition post can be approved.", code="INVALID_STATUS_TRANSITION")
        return await self._get_post(post_id)

    async def reject(self, admin: Principal, post_id: UUID, reason: Optional[str] = None) -> db_models.TuitionPosts:
        log.info(f"Admin {admin.account_id} rejecting tuition post {post_id}.")
        await self._get_post(post_id)
        if not await self._transition(post_id, TuitionStatus.PENDING.value, {
            "status": TuitionStatus.REJECTED.value, "rejection_reason": reason,
        }):
            raise ConflictError("Only a pending tuition post can be rejected.", code="INVALID_STATUS_TRANSITION")
        return await self._get_post(post_id)
