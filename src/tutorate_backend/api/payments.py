'''
API endpoints for charging a student and recording the payment.
'''
from typing import Annotated
from fastapi import APIRouter, Depends, status

from ..models import payment as payment_models
from ..models.envelope import Envelope, ok, to_pydantic_list
from ..models.token import Principal
from ..services.payment_service import PaymentService
from ..services.security import require_student, require_student_or_tutor


class PaymentsAPI:
    def __init__(self):
        self.router = APIRouter(tags=["Payments"])
        self._register_routes()

    def _register_routes(self):
        self.router.add_api_route(
                "/create-payment-intent",
                self.create_payment_intent,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=Envelope[payment_models.PaymentIntentRead])
        self.router.add_api_route(
                "/payment/success",
                self.payment_success,
                methods=["POST"],
                response_model=Envelope[payment_models.PaymentConfirmResult])
        self.router.add_api_route(
                "/payments/history",
                self.payment_history,
                methods=["GET"],
                response_model=Envelope[list[payment_models.PaymentRecordRead]])

    async def create_payment_intent(
        self,
        intent_data: payment_models.PaymentIntentCreate,
        principal: Annotated[Principal, Depends(require_student)],
        payment_service: Annotated[PaymentService, Depends(PaymentService)]
    ):
        intent = await payment_service.create_intent(principal, intent_data)
        return ok(intent)

    async def payment_success(
        self,
        confirm_data: payment_models.PaymentConfirm,
        principal: Annotated[Principal, Depends(require_student)],
        payment_service: Annotated[PaymentService, Depends(PaymentService)]
    ):
        """
        Confirms the charge and assigns the tutor. Repeating the call with the
        same transaction id is harmless and returns the original record.
        """
        result = await payment_service.confirm(principal, confirm_data)
        message = "Payment already recorded" if result.duplicate else "Payment successful, tutor assigned"
        return ok(result, message=message)

    async def payment_history(
        self,
        principal: Annotated[Principal, Depends(require_student_or_tutor)],
        payment_service: Annotated[PaymentService, Depends(PaymentService)]
    ):
        records = to_pydantic_list(await payment_service.history(principal), payment_models.PaymentRecordRead)
        return ok(records, count=len(records))


payments_api = PaymentsAPI()
router = payments_api.router
