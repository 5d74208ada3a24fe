'''
Payments: charge intents with the external charge authority, the
payment-triggered assignment transaction and the payment history.
'''
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated
from uuid import UUID

import httpx
from fastapi import Depends
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.config import settings
from ..common.exceptions import (
    ConflictError, ForbiddenError, NotFoundError, PaymentAssignmentError,
    ServiceUnavailableError, TutorateError, ValidationError
)
from ..common.logger import log
from ..database import models as db_models
from ..database.db_enums import ApplicationStatus, PaymentStatus, TuitionStatus, UserRole
from ..database.engine import get_db_session
from ..database.models import utcnow
from ..models import payment as payment_models
from ..models.token import Principal


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class ChargeAuthority:
    """
    Thin client for a Stripe-compatible payment-intents API.
    Every call is bounded by CHARGE_TIMEOUT_SECONDS.
    """
    SUCCEEDED = "succeeded"

    def __init__(self):
        self.api_base = settings.STRIPE_API_BASE.rstrip("/")
        self.secret_key = settings.STRIPE_SECRET_KEY
        self.timeout = settings.CHARGE_TIMEOUT_SECONDS

    async def _request(self, method: str, path: str, data: dict | None = None) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method,
                    f"{self.api_base}{path}",
                    data=data,
                    auth=(self.secret_key, ""),
                )
                response.raise_for_status()
                return response.json()

        except httpx.TimeoutException as e:
            log.error(f"Charge authority timed out on {method} {path}: {e}")
            raise ServiceUnavailableError("Payment provider did not respond. Please try again.", code="PAYMENT_PROVIDER_TIMEOUT")
        except httpx.HTTPStatusError as e:
            log.error(f"Charge authority returned an error on {method} {path}: {e.response.status_code} - {e.response.text}")
            if e.response.status_code < 500:
                raise ValidationError("The payment could not be verified.", code="PAYMENT_NOT_CONFIRMED")
            raise ServiceUnavailableError("Payment provider is currently unavailable. Please try again.", code="PAYMENT_PROVIDER_UNAVAILABLE")
        except httpx.RequestError as e:
            log.error(f"HTTP request to the charge authority failed on {method} {path}: {e}", exc_info=True)
            raise ServiceUnavailableError("Payment provider is currently unavailable. Please try again.", code="PAYMENT_PROVIDER_UNAVAILABLE")

    async def create_intent(self, amount: int, currency: str, metadata: dict[str, str]) -> payment_models.ChargeIntent:
        log.info(f"Creating payment intent for {amount} {currency} (application {metadata.get('application_id')}).")
        data = {
            "amount": str(amount),
            "currency": currency.lower(),
            "automatic_payment_methods[enabled]": "true",
        }
        for key, value in metadata.items():
            data[f"metadata[{key}]"] = value
        body = await self._request("POST", "/payment_intents", data=data)
        return payment_models.ChargeIntent.model_validate(body)

    async def retrieve_intent(self, intent_id: str) -> payment_models.ChargeIntent:
        log.info(f"Retrieving payment intent {intent_id}.")
        body = await self._request("GET", f"/payment_intents/{intent_id}")
        return payment_models.ChargeIntent.model_validate(body)


class PaymentService:
    """
    Service for charge intents, payment confirmation and payment history.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        charge_authority: Annotated[ChargeAuthority, Depends(ChargeAuthority)]
    ):
        self.db = db
        self.charge_authority = charge_authority

    # --- Internal Helpers ---

    async def _get_application(self, application_id: UUID, for_update: bool = False) -> db_models.Applications:
        stmt = select(db_models.Applications).filter(
            db_models.Applications.id == application_id
        ).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        application = (await self.db.execute(stmt)).scalars().first()
        if application is None:
            raise NotFoundError("Application", application_id, code="APPLICATION_NOT_FOUND")
        return application

    async def _get_post(self, post_id: UUID, for_update: bool = False) -> db_models.TuitionPosts:
        stmt = select(db_models.TuitionPosts).filter(
            db_models.TuitionPosts.id == post_id
        ).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        post = (await self.db.execute(stmt)).scalars().first()
        if post is None or post.status == TuitionStatus.DELETED.value:
            raise NotFoundError("Tuition post", post_id, code="TUITION_NOT_FOUND")
        return post

    async def _get_record_for_application(self, application_id: UUID) -> db_models.PaymentRecords | None:
        stmt = select(db_models.PaymentRecords).filter(
            db_models.PaymentRecords.application_id == application_id
        )
        return (await self.db.execute(stmt)).scalars().first()

    def _check_payable(self, principal: Principal, application: db_models.Applications, post: db_models.TuitionPosts):
        if post.student_id != principal.account_id:
            log.warning(f"SECURITY: Account {principal.account_id} tried to pay for application {application.id} on post {post.id}.")
            raise ForbiddenError("You can only pay for applications on your own tuition posts.", code="NOT_OWNER")
        if application.status != ApplicationStatus.PENDING.value:
            raise ConflictError(f"Application is already {application.status}.", code="APPLICATION_NOT_PENDING")
        if post.status != TuitionStatus.ACTIVE.value:
            raise ConflictError("This tuition post is not open for assignment.", code="TUITION_NOT_ACTIVE")

    def _duplicate_or_conflict(
        self,
        principal: Principal,
        record: db_models.PaymentRecords,
        transaction_id: str
    ) -> payment_models.PaymentConfirmResult:
        if record.student_id != principal.account_id:
            log.warning(f"SECURITY: Account {principal.account_id} tried to confirm payment for application {record.application_id} paid by {record.student_id}.")
            raise ForbiddenError("You can only pay for applications on your own tuition posts.", code="NOT_OWNER")
        if record.transaction_ref != transaction_id:
            log.warning(f"Application {record.application_id} already paid with {record.transaction_ref}; rejected second reference {transaction_id}.")
            raise ConflictError("This application has already been paid.", code="ALREADY_PAID")
        log.info(f"Duplicate confirmation for application {record.application_id} ({transaction_id}).")
        return payment_models.PaymentConfirmResult(
            payment=payment_models.PaymentRecordRead.model_validate(record),
            duplicate=True,
        )

    # --- Public Methods ---

    async def create_intent(self, principal: Principal, data: payment_models.PaymentIntentCreate) -> payment_models.PaymentIntentRead:
        """Starts a charge for the application's expected salary, in the post's currency."""
        log.info(f"Student {principal.account_id} creating payment intent for application {data.application_id}.")
        application = await self._get_application(data.application_id)
        post = await self._get_post(application.tuition_post_id)
        self._check_payable(principal, application, post)

        amount = to_minor_units(application.expected_salary)
        currency = (post.budget_currency or settings.DEFAULT_CURRENCY).lower()
        intent = await self.charge_authority.create_intent(amount, currency, {
            "application_id": str(application.id),
            "tuition_post_id": str(post.id),
            "student_id": str(post.student_id),
            "tutor_id": str(application.tutor_id),
        })
        return payment_models.PaymentIntentRead(
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            application_id=application.id,
            amount=amount,
            currency=currency,
        )

    async def confirm(self, principal: Principal, data: payment_models.PaymentConfirm) -> payment_models.PaymentConfirmResult:
        """
        Confirms a charge and assigns the tutor in one transaction:
        application -> approved, post -> ongoing, competing pending
        applications -> rejected, and exactly one payment record.
        Idempotent on (application id, transaction reference).
        """
        log.info(f"Student {principal.account_id} confirming payment {data.transaction_id} for application {data.application_id}.")

        # 1. Fast path for retries; nothing is charged or locked
        record = await self._get_record_for_application(data.application_id)
        if record is not None:
            return self._duplicate_or_conflict(principal, record, data.transaction_id)

        application = await self._get_application(data.application_id)
        post = await self._get_post(application.tuition_post_id)
        self._check_payable(principal, application, post)

        # 2. The charge authority must vouch for this exact charge
        intent = await self.charge_authority.retrieve_intent(data.transaction_id)
        expected_amount = to_minor_units(application.expected_salary)
        if (
            intent.status != ChargeAuthority.SUCCEEDED
            or intent.metadata.get("application_id") != str(application.id)
            or intent.amount != expected_amount
        ):
            log.warning(
                f"Payment {data.transaction_id} not confirmed for application {application.id}: "
                f"status={intent.status}, amount={intent.amount} (expected {expected_amount})."
            )
            raise ValidationError("The payment has not been completed.", code="PAYMENT_NOT_CONFIRMED")

        # 3. Lock, re-validate, assign
        try:
            post = await self._get_post(application.tuition_post_id, for_update=True)
            application = await self._get_application(data.application_id, for_update=True)

            record = await self._get_record_for_application(application.id)
            if record is not None:
                return self._duplicate_or_conflict(principal, record, data.transaction_id)
            self._check_payable(principal, application, post)

            record = await self._assign(application, post, intent.currency, data.transaction_id)
        except TutorateError:
            raise
        except SQLAlchemyError as e:
            log.critical(
                f"Payment assignment failed after a confirmed charge. application={data.application_id} "
                f"post={application.tuition_post_id} transaction_ref={data.transaction_id}: {e}",
                exc_info=True,
            )
            raise PaymentAssignmentError(
                context={
                    "application_id": str(data.application_id),
                    "tuition_post_id": str(application.tuition_post_id),
                    "transaction_ref": data.transaction_id,
                }
            )

        log.info(f"Payment {data.transaction_id} recorded; tutor {application.tutor_id} assigned to post {post.id}.")
        return payment_models.PaymentConfirmResult(
            payment=payment_models.PaymentRecordRead.model_validate(record),
            duplicate=False,
        )

    async def _assign(
        self,
        application: db_models.Applications,
        post: db_models.TuitionPosts,
        currency: str,
        transaction_id: str
    ) -> db_models.PaymentRecords:
        now = utcnow()
        apps = db_models.Applications
        posts = db_models.TuitionPosts

        approved = await self.db.execute(
            update(apps).where(
                apps.id == application.id,
                apps.status == ApplicationStatus.PENDING.value,
            ).values(
                status=ApplicationStatus.APPROVED.value, decided_at=now, updated_at=now
            ).execution_options(synchronize_session=False)
        )
        if approved.rowcount != 1:
            raise ConflictError("Application is no longer pending.", code="APPLICATION_NOT_PENDING")

        assigned = await self.db.execute(
            update(posts).where(
                posts.id == post.id,
                posts.status == TuitionStatus.ACTIVE.value,
            ).values(
                status=TuitionStatus.ONGOING.value,
                tutor_id=application.tutor_id,
                assigned_at=now,
                updated_at=now,
            ).execution_options(synchronize_session=False)
        )
        if assigned.rowcount != 1:
            raise ConflictError("This tuition post is not open for assignment.", code="TUITION_NOT_ACTIVE")

        rejected = await self.db.execute(
            update(apps).where(
                apps.tuition_post_id == post.id,
                apps.id != application.id,
                apps.status == ApplicationStatus.PENDING.value,
            ).values(
                status=ApplicationStatus.REJECTED.value, decided_at=now, updated_at=now
            ).execution_options(synchronize_session=False)
        )
        if rejected.rowcount:
            await self.db.execute(
                update(posts).where(posts.id == post.id).values(
                    applicants=posts.applicants - rejected.rowcount
                ).execution_options(synchronize_session=False)
            )

        record = db_models.PaymentRecords(
            application_id=application.id,
            tuition_post_id=post.id,
            student_id=post.student_id,
            tutor_id=application.tutor_id,
            amount=application.expected_salary,
            currency=currency.upper(),
            status=PaymentStatus.COMPLETED.value,
            transaction_ref=transaction_id,
            created_at=now,
        )
        self.db.add(record)
        await self.db.flush()
        await self.db.refresh(record)
        return record

    async def history(self, principal: Principal) -> list[db_models.PaymentRecords]:
        """Payments made by a student, or received by a tutor."""
        column = (
            db_models.PaymentRecords.student_id
            if principal.role == UserRole.STUDENT
            else db_models.PaymentRecords.tutor_id
        )
        stmt = select(db_models.PaymentRecords).filter(
            column == principal.account_id
        ).order_by(db_models.PaymentRecords.created_at.desc())
        return list((await self.db.execute(stmt)).scalars().all())
