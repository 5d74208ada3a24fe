'''
Account directory: lookups, registration, self-service profiles,
public tutor listings and admin moderation of accounts.
'''
from typing import Any, Optional, Annotated
from uuid import UUID

from fastapi import Depends
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.config import settings
from ..common.exceptions import ConflictError, ForbiddenError, NotFoundError, TutorateError, ValidationError
from ..common.logger import log
from ..database import models as db_models
from ..database.db_enums import AccountStatus, UserRole
from ..database.engine import get_db_session
from ..database.models import utcnow
from ..models import user as user_models
from ..models.envelope import Page
from ..models.token import Principal, VerifiedIdentity

ROLE_CLASSES: dict[str, type[db_models.Accounts]] = {
    UserRole.STUDENT.value: db_models.Students,
    UserRole.TUTOR.value: db_models.Tutors,
    UserRole.ADMIN.value: db_models.Admins,
}


def _validation_message(error: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'body'}: {err['msg']}"
        for err in error.errors()
    )


class UserService:
    """
    Base service for account-related database operations.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def get_account_by_email(self, email: str) -> db_models.Accounts | None:
        """
        Fetches the polymorphic account (Students, Tutors or Admins) owning
        this email. Soft-deleted accounts are invisible.
        """
        log.info(f"Fetching account for email: {email}")
        try:
            stmt = select(db_models.Accounts).filter(
                db_models.Accounts.email == email.strip().lower(),
                db_models.Accounts.status != AccountStatus.DELETED.value,
            )
            result = await self.db.execute(stmt)
            return result.scalars().first()
        except Exception as e:
            log.error(f"Database error fetching account by email {email}: {e}", exc_info=True)
            raise

    async def get_account_by_id(self, account_id: UUID, include_deleted: bool = False) -> db_models.Accounts | None:
        log.info(f"Fetching account for ID: {account_id}")
        try:
            stmt = select(db_models.Accounts).filter(db_models.Accounts.id == account_id)
            if not include_deleted:
                stmt = stmt.filter(db_models.Accounts.status != AccountStatus.DELETED.value)
            result = await self.db.execute(stmt)
            return result.scalars().first()
        except Exception as e:
            log.error(f"Database error fetching account by ID {account_id}: {e}", exc_info=True)
            raise

    async def get_principal_account(self, principal: Principal) -> db_models.Accounts:
        account = await self.get_account_by_id(principal.account_id)
        if account is None:
            raise NotFoundError("User", principal.account_id, code="USER_NOT_FOUND")
        return account

    # --- Registration ---

    async def register(self, identity: VerifiedIdentity, data: user_models.AccountCreate) -> db_models.Accounts:
        """
        Creates the caller's own account. Students start active, tutors start
        pending until an admin activates them.
        """
        log.info(f"Registering {data.role} account for {data.email}")
        if data.email != identity.email:
            log.warning(f"SECURITY: Token for '{identity.email}' tried to register '{data.email}'.")
            raise ForbiddenError("You can only register your own email.", code="UNAUTHORIZED_ACCESS")

        if await self.get_account_by_email(data.email) is not None:
            raise ConflictError("An account with this email already exists.", code="EMAIL_ALREADY_REGISTERED")

        fields = data.model_dump(exclude_none=True)
        role = fields.pop("role")
        account = ROLE_CLASSES[role](
            external_id=identity.external_id,
            status=AccountStatus.PENDING.value if role == UserRole.TUTOR.value else AccountStatus.ACTIVE.value,
            last_login_at=utcnow(),
            **fields,
        )
        if role == UserRole.TUTOR.value:
            self._init_tutor_fields(account)
        return await self._persist_new_account(account)

    async def google_login(
        self,
        identity: VerifiedIdentity,
        data: user_models.GoogleLogin
    ) -> tuple[db_models.Accounts, bool]:
        """
        Federated sign-in: returns the existing account (stamping the login)
        or creates one on first login. Returns (account, created).
        """
        log.info(f"Federated login for {data.email}")
        if data.email != identity.email:
            log.warning(f"SECURITY: Token for '{identity.email}' tried to sign in as '{data.email}'.")
            raise ForbiddenError("You can only sign in with your own email.", code="UNAUTHORIZED_ACCESS")

        account = await self.get_account_by_email(data.email)
        if account is not None:
            if account.status == AccountStatus.BLOCKED.value:
                log.warning(f"SECURITY: Blocked account {account.id} tried to sign in.")
                raise ForbiddenError("Your account has been blocked.", code="ACCOUNT_BLOCKED")
            account.last_login_at = utcnow()
            if not account.external_id:
                account.external_id = identity.external_id
            if not account.photo_url and data.photo_url:
                account.photo_url = data.photo_url
            await self.db.flush()
            await self.db.refresh(account)
            return account, False

        account = ROLE_CLASSES[data.role](
            external_id=identity.external_id,
            email=data.email,
            name=data.name or data.email.split("@")[0],
            photo_url=data.photo_url,
            status=AccountStatus.PENDING.value if data.role == UserRole.TUTOR.value else AccountStatus.ACTIVE.value,
            last_login_at=utcnow(),
        )
        if data.role == UserRole.TUTOR.value:
            self._init_tutor_fields(account)
        return await self._persist_new_account(account), True

    @staticmethod
    def _init_tutor_fields(account: db_models.Tutors):
        account.rating = 0
        account.total_reviews = 0
        account.is_verified = False

    async def _persist_new_account(self, account: db_models.Accounts) -> db_models.Accounts:
        self.db.add(account)
        try:
            await self.db.flush()
        except IntegrityError:
            # lost a race against a concurrent registration for the same email
            await self.db.rollback()
            raise ConflictError("An account with this email already exists.", code="EMAIL_ALREADY_REGISTERED")
        await self.db.refresh(account)
        log.info(f"Successfully created {account.role} account {account.id}.")
        return account

    # --- Self-service profile ---

    async def get_profile(self, principal: Principal) -> db_models.Accounts:
        return await self.get_principal_account(principal)

    async def update_profile(self, principal: Principal, update_data: dict[str, Any]) -> db_models.Accounts:
        """
        Validates the raw body against the caller's role-specific update
        model, so a student cannot write tutor fields and vice versa.
        """
        log.info(f"Account {principal.account_id} updating own profile.")
        model = user_models.PROFILE_UPDATE_MODELS[principal.role.value]
        try:
            validated = model.model_validate(update_data)
        except PydanticValidationError as e:
            raise ValidationError(_validation_message(e))

        account = await self.get_principal_account(principal)
        for key, value in validated.model_dump(exclude_unset=True).items():
            setattr(account, key, value)
        await self.db.flush()
        await self.db.refresh(account)
        return account

    async def delete_profile(self, principal: Principal) -> db_models.Accounts:
        log.info(f"Account {principal.account_id} deleting own profile.")
        account = await self.get_principal_account(principal)
        return await self._soft_delete(account)

    async def _soft_delete(self, account: db_models.Accounts) -> db_models.Accounts:
        account.status = AccountStatus.DELETED.value
        account.deleted_at = utcnow()
        await self.db.flush()
        await self.db.refresh(account)
        log.info(f"Account {account.id} soft-deleted.")
        return account

    # --- Public tutor listings ---

    def _public_tutors_stmt(self):
        return select(db_models.Tutors).filter(
            db_models.Tutors.status == AccountStatus.ACTIVE.value
        ).order_by(
            db_models.Tutors.rating.desc().nulls_last(),
            db_models.Tutors.total_reviews.desc().nulls_last(),
        )

    async def list_public_tutors(self) -> list[db_models.Tutors]:
        log.info("Fetching public tutor list.")
        result = await self.db.execute(self._public_tutors_stmt())
        return list(result.scalars().all())

    async def list_featured_tutors(self) -> list[db_models.Tutors]:
        log.info("Fetching featured tutors.")
        stmt = self._public_tutors_stmt().filter(
            db_models.Tutors.rating >= settings.FEATURED_TUTOR_MIN_RATING
        ).limit(settings.FEATURED_TUTOR_LIMIT)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_public_tutor(self, tutor_id: UUID) -> db_models.Tutors:
        stmt = select(db_models.Tutors).filter(
            db_models.Tutors.id == tutor_id,
            db_models.Tutors.status != AccountStatus.DELETED.value,
        )
        tutor = (await self.db.execute(stmt)).scalars().first()
        if tutor is None:
            raise NotFoundError("Tutor", tutor_id, code="TUTOR_NOT_FOUND")
        return tutor


class AdminService(UserService):
    """Admin moderation of accounts. Callers are already admin-guarded."""

    async def list_users(
        self,
        role: Optional[UserRole] = None,
        status: Optional[AccountStatus] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        log.info(f"Admin listing users (role={role}, status={status}, search={search}, page={page}).")
        filters = []
        if role is not None:
            filters.append(db_models.Accounts.role == role.value)
        if status is not None:
            filters.append(db_models.Accounts.status == status.value)
        if search:
            pattern = f"%{search.lower()}%"
            filters.append(or_(
                func.lower(db_models.Accounts.name).like(pattern),
                db_models.Accounts.email.like(pattern),
            ))

        count_stmt = select(func.count()).select_from(db_models.Accounts).filter(*filters)
        total = (await self.db.execute(count_stmt)).scalar_one()

        stmt = select(db_models.Accounts).filter(*filters).order_by(
            db_models.Accounts.created_at.desc()
        ).offset((page - 1) * limit).limit(limit)
        accounts = (await self.db.execute(stmt)).scalars().all()

        items = [user_models.to_account_read(account) for account in accounts]
        return Page.build(items, total, page, limit)

    async def _get_target(self, admin: Principal, user_id: UUID) -> db_models.Accounts:
        if user_id == admin.account_id:
            log.warning(f"SECURITY: Admin {admin.account_id} tried to modify their own account.")
            raise ForbiddenError("Admins cannot modify their own account.", code="SELF_MODIFICATION")
        account = await self.get_account_by_id(user_id)
        if account is None:
            raise NotFoundError("User", user_id, code="USER_NOT_FOUND")
        return account

    async def update_role(self, admin: Principal, user_id: UUID, role: UserRole) -> db_models.Accounts:
        """
        Changes the discriminator. The loaded instance is of the old subclass,
        so the row is updated in SQL and re-read as the new subclass.
        """
        log.info(f"Admin {admin.account_id} changing role of {user_id} to {role.value}.")
        account = await self._get_target(admin, user_id)
        if account.role == role.value:
            return account

        values: dict[str, Any] = {"role": role.value, "updated_at": utcnow()}
        if role == UserRole.TUTOR:
            values.update(rating=0, total_reviews=0, is_verified=False)
        stmt = update(db_models.Accounts).where(
            db_models.Accounts.id == user_id
        ).values(**values).execution_options(synchronize_session=False)
        await self.db.execute(stmt)
        self.db.expunge(account)

        updated = await self.get_account_by_id(user_id)
        if updated is None:
            raise NotFoundError("User", user_id, code="USER_NOT_FOUND")
        return updated

    async def update_status(self, admin: Principal, user_id: UUID, status: str) -> db_models.Accounts:
        log.info(f"Admin {admin.account_id} changing status of {user_id} to {status}.")
        account = await self._get_target(admin, user_id)
        account.status = status
        await self.db.flush()
        await self.db.refresh(account)
        return account

    async def delete_user(self, admin: Principal, user_id: UUID) -> db_models.Accounts:
        log.info(f"Admin {admin.account_id} deleting account {user_id}.")
        try:
            account = await self._get_target(admin, user_id)
            return await self._soft_delete(account)
        except TutorateError:
            raise
        except Exception as e:
            log.error(f"Database error deleting account {user_id}: {e}", exc_info=True)
            raise
