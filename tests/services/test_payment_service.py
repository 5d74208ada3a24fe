import pytest
import httpx
from decimal import Decimal
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.tutorate_backend.common.exceptions import (
    ConflictError, ForbiddenError, ServiceUnavailableError, ValidationError
)
from src.tutorate_backend.database import models as db_models
from src.tutorate_backend.database.db_enums import ApplicationStatus, TuitionStatus
from src.tutorate_backend.models import payment as payment_models
from src.tutorate_backend.services.payment_service import ChargeAuthority, PaymentService, to_minor_units
from tests.constants import TEST_TRANSACTION_ID
from tests.helpers import make_application, principal_for, succeeded_intent


async def _payment_count(session: AsyncSession) -> int:
    return (await session.execute(select(func.count()).select_from(db_models.PaymentRecords))).scalar_one()


class TestMinorUnits:

    @pytest.mark.parametrize("amount, expected", [
        (Decimal("1000"), 100000),
        (Decimal("12.34"), 1234),
        (Decimal("0.005"), 1),
    ])
    def test_to_minor_units(self, amount, expected):
        assert to_minor_units(amount) == expected


@pytest.mark.anyio
class TestChargeAuthority:

    @pytest.fixture
    def provider(self, monkeypatch):
        """Routes the authority's HTTP calls to a handler set by the test."""
        state = {}
        real_client = httpx.AsyncClient

        def client_factory(*args, **kwargs):
            return real_client(*args, transport=httpx.MockTransport(state["handler"]), **kwargs)

        monkeypatch.setattr(httpx, "AsyncClient", client_factory)
        return state

    async def test_create_intent_sends_form(self, provider):
        seen = {}

        def handler(request: httpx.Request):
            seen["body"] = request.content.decode()
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={
                "id": "pi_1", "status": "requires_payment_method", "amount": 1234,
                "currency": "bdt", "client_secret": "pi_1_secret", "object": "payment_intent",
            })

        provider["handler"] = handler
        intent = await ChargeAuthority().create_intent(1234, "BDT", {"application_id": "abc"})

        assert intent.id == "pi_1"
        assert intent.client_secret == "pi_1_secret"
        assert "currency=bdt" in seen["body"]
        assert "metadata%5Bapplication_id%5D=abc" in seen["body"]
        assert seen["auth"].startswith("Basic ")

    async def test_client_error_is_not_confirmed(self, provider):
        provider["handler"] = lambda request: httpx.Response(404, json={"error": {"message": "No such payment_intent"}})
        with pytest.raises(ValidationError) as e:
            await ChargeAuthority().retrieve_intent("pi_missing")
        assert e.value.code == "PAYMENT_NOT_CONFIRMED"

    async def test_server_error_is_unavailable(self, provider):
        provider["handler"] = lambda request: httpx.Response(502)
        with pytest.raises(ServiceUnavailableError) as e:
            await ChargeAuthority().retrieve_intent("pi_1")
        assert e.value.code == "PAYMENT_PROVIDER_UNAVAILABLE"

    async def test_timeout_is_unavailable(self, provider):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        provider["handler"] = handler
        with pytest.raises(ServiceUnavailableError) as e:
            await ChargeAuthority().retrieve_intent("pi_1")
        assert e.value.code == "PAYMENT_PROVIDER_TIMEOUT"


@pytest.mark.anyio
class TestCreateIntent:

    async def test_amount_and_metadata(
        self,
        payment_service: PaymentService,
        mock_charge_authority: ChargeAuthority,
        test_student_orm: db_models.Students,
        test_application_orm: db_models.Applications
    ):
        intent = await payment_service.create_intent(
            principal_for(test_student_orm),
            payment_models.PaymentIntentCreate(application_id=test_application_orm.id),
        )

        assert intent.amount == 100000
        assert intent.currency == "bdt"
        assert intent.payment_intent_id == TEST_TRANSACTION_ID
        mock_charge_authority.create_intent.assert_awaited_once()
        amount, currency, metadata = mock_charge_authority.create_intent.call_args.args
        assert (amount, currency) == (100000, "bdt")
        assert metadata["application_id"] == str(test_application_orm.id)
        assert metadata["tutor_id"] == str(test_application_orm.tutor_id)

    async def test_not_owner(
        self,
        payment_service: PaymentService,
        mock_charge_authority: ChargeAuthority,
        test_other_student_orm: db_models.Students,
        test_application_orm: db_models.Applications
    ):
        with pytest.raises(ForbiddenError) as e:
            await payment_service.create_intent(
                principal_for(test_other_student_orm),
                payment_models.PaymentIntentCreate(application_id=test_application_orm.id),
            )
        assert e.value.code == "NOT_OWNER"
        mock_charge_authority.create_intent.assert_not_awaited()


@pytest.mark.anyio
class TestConfirmPayment:

    async def test_confirm_assigns_tutor_and_rejects_competitors(
        self,
        db_session: AsyncSession,
        payment_service: PaymentService,
        mock_charge_authority: ChargeAuthority,
        test_student_orm: db_models.Students,
        test_other_tutor_orm: db_models.Tutors,
        test_active_post_orm: db_models.TuitionPosts,
        test_application_orm: db_models.Applications
    ):
        competitor = await make_application(db_session, test_active_post_orm, test_other_tutor_orm, Decimal("900"))
        mock_charge_authority.retrieve_intent.return_value = succeeded_intent(test_application_orm, TEST_TRANSACTION_ID)

        result = await payment_service.confirm(
            principal_for(test_student_orm),
            payment_models.PaymentConfirm(application_id=test_application_orm.id, transaction_id=TEST_TRANSACTION_ID),
        )

        assert result.duplicate is False
        assert result.payment.amount == Decimal("1000")
        assert result.payment.currency == "BDT"
        assert result.payment.transaction_ref == TEST_TRANSACTION_ID
        assert result.payment.student_id == test_student_orm.id

        approved = await payment_service._get_application(test_application_orm.id)
        rejected = await payment_service._get_application(competitor.id)
        post = await payment_service._get_post(test_active_post_orm.id)
        assert approved.status == ApplicationStatus.APPROVED.value
        assert rejected.status == ApplicationStatus.REJECTED.value
        assert post.status == TuitionStatus.ONGOING.value
        assert post.tutor_id == test_application_orm.tutor_id
        assert post.assigned_at is not None
        assert post.applicants == 1
        assert await _payment_count(db_session) == 1

    async def test_same_transaction_twice_is_idempotent(
        self,
        db_session: AsyncSession,
        payment_service: PaymentService,
        mock_charge_authority: ChargeAuthority,
        test_student_orm: db_models.Students,
        test_application_orm: db_models.Applications
    ):
        mock_charge_authority.retrieve_intent.return_value = succeeded_intent(test_application_orm, TEST_TRANSACTION_ID)
        data = payment_models.PaymentConfirm(application_id=test_application_orm.id, transaction_id=TEST_TRANSACTION_ID)
        principal = principal_for(test_student_orm)

        first = await payment_service.confirm(principal, data)
        await db_session.commit()
        second = await payment_service.confirm(principal, data)

        assert second.duplicate is True
        assert second.payment.id == first.payment.id
        assert mock_charge_authority.retrieve_intent.await_count == 1
        assert await _payment_count(db_session) == 1

    async def test_second_transaction_is_already_paid(
        self,
        db_session: AsyncSession,
        payment_service: PaymentService,
        mock_charge_authority: ChargeAuthority,
        test_student_orm: db_models.Students,
        test_application_orm: db_models.Applications
    ):
        mock_charge_authority.retrieve_intent.return_value = succeeded_intent(test_application_orm, TEST_TRANSACTION_ID)
        principal = principal_for(test_student_orm)
        await payment_service.confirm(
            principal,
            payment_models.PaymentConfirm(application_id=test_application_orm.id, transaction_id=TEST_TRANSACTION_ID),
        )
        await db_session.commit()

        with pytest.raises(ConflictError) as e:
            await payment_service.confirm(
                principal,
                payment_models.PaymentConfirm(application_id=test_application_orm.id, transaction_id="pi_3OsecondCharge"),
            )
        assert e.value.code == "ALREADY_PAID"
        assert await _payment_count(db_session) == 1

    async def test_replay_by_another_student_is_forbidden(
        self,
        db_session: AsyncSession,
        payment_service: PaymentService,
        mock_charge_authority: ChargeAuthority,
        test_student_orm: db_models.Students,
        test_other_student_orm: db_models.Students,
        test_application_orm: db_models.Applications
    ):
        mock_charge_authority.retrieve_intent.return_value = succeeded_intent(test_application_orm, TEST_TRANSACTION_ID)
        data = payment_models.PaymentConfirm(application_id=test_application_orm.id, transaction_id=TEST_TRANSACTION_ID)
        await payment_service.confirm(principal_for(test_student_orm), data)
        await db_session.commit()

        for transaction_id in (TEST_TRANSACTION_ID, "pi_3OsecondCharge"):
            with pytest.raises(ForbiddenError) as e:
                await payment_service.confirm(
                    principal_for(test_other_student_orm),
                    data.model_copy(update={"transaction_id": transaction_id}),
                )
            assert e.value.code == "NOT_OWNER"
        assert mock_charge_authority.retrieve_intent.await_count == 1

    @pytest.mark.parametrize("intent_changes", [
        {"status": "processing"},
        {"amount": 99900},
        {"metadata": {"application_id": "someone-else"}},
    ])
    async def test_unconfirmed_charge_changes_nothing(
        self,
        intent_changes,
        db_session: AsyncSession,
        payment_service: PaymentService,
        mock_charge_authority: ChargeAuthority,
        test_student_orm: db_models.Students,
        test_application_orm: db_models.Applications
    ):
        intent = succeeded_intent(test_application_orm, TEST_TRANSACTION_ID).model_copy(update=intent_changes)
        mock_charge_authority.retrieve_intent.return_value = intent

        with pytest.raises(ValidationError) as e:
            await payment_service.confirm(
                principal_for(test_student_orm),
                payment_models.PaymentConfirm(application_id=test_application_orm.id, transaction_id=TEST_TRANSACTION_ID),
            )
        assert e.value.code == "PAYMENT_NOT_CONFIRMED"
        assert e.value.status_code == 400

        application = await payment_service._get_application(test_application_orm.id)
        assert application.status == ApplicationStatus.PENDING.value
        assert await _payment_count(db_session) == 0

    async def test_provider_unavailable(
        self,
        payment_service: PaymentService,
        mock_charge_authority: ChargeAuthority,
        test_student_orm: db_models.Students,
        test_application_orm: db_models.Applications
    ):
        mock_charge_authority.retrieve_intent.side_effect = ServiceUnavailableError(code="PAYMENT_PROVIDER_UNAVAILABLE")

        with pytest.raises(ServiceUnavailableError) as e:
            await payment_service.confirm(
                principal_for(test_student_orm),
                payment_models.PaymentConfirm(application_id=test_application_orm.id, transaction_id=TEST_TRANSACTION_ID),
            )
        assert e.value.status_code == 503

    async def test_rejected_application_cannot_be_paid(
        self,
        db_session: AsyncSession,
        payment_service: PaymentService,
        mock_charge_authority: ChargeAuthority,
        test_student_orm: db_models.Students,
        test_tutor_orm: db_models.Tutors,
        test_active_post_orm: db_models.TuitionPosts
    ):
        application = await make_application(
            db_session, test_active_post_orm, test_tutor_orm, status=ApplicationStatus.REJECTED.value
        )
        with pytest.raises(ConflictError) as e:
            await payment_service.confirm(
                principal_for(test_student_orm),
                payment_models.PaymentConfirm(application_id=application.id, transaction_id=TEST_TRANSACTION_ID),
            )
        assert e.value.code == "APPLICATION_NOT_PENDING"
        mock_charge_authority.retrieve_intent.assert_not_awaited()

    async def test_history_for_both_sides(
        self,
        payment_service: PaymentService,
        mock_charge_authority: ChargeAuthority,
        test_student_orm: db_models.Students,
        test_tutor_orm: db_models.Tutors,
        test_other_student_orm: db_models.Students,
        test_application_orm: db_models.Applications
    ):
        mock_charge_authority.retrieve_intent.return_value = succeeded_intent(test_application_orm, TEST_TRANSACTION_ID)
        result = await payment_service.confirm(
            principal_for(test_student_orm),
            payment_models.PaymentConfirm(application_id=test_application_orm.id, transaction_id=TEST_TRANSACTION_ID),
        )

        assert [r.id for r in await payment_service.history(principal_for(test_student_orm))] == [result.payment.id]
        assert [r.id for r in await payment_service.history(principal_for(test_tutor_orm))] == [result.payment.id]
        assert await payment_service.history(principal_for(test_other_student_orm)) == []
