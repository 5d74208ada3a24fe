'''
API endpoints for tutor applications and the student's decisions on them.
'''
from typing import Annotated
from uuid import UUID
from fastapi import APIRouter, Depends, status

from ..database.db_enums import ApplicationDecision
from ..models import application as application_models
from ..models.envelope import Envelope, ok, to_pydantic_list
from ..models.token import Principal
from ..services.application_service import ApplicationService
from ..services.security import require_student, require_tutor


class ApplicationsAPI:
    def __init__(self):
        self.router = APIRouter(
            prefix="/applications",
            tags=["Applications"]
        )
        self._register_routes()

    def _register_routes(self):
        self.router.add_api_route(
                "",
                self.apply,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=Envelope[application_models.ApplicationRead])
        self.router.add_api_route(
                "/my",
                self.list_my_applications,
                methods=["GET"],
                response_model=Envelope[list[application_models.ApplicationWithTuitionRead]])
        self.router.add_api_route(
                "/tuition/{tuition_id}",
                self.list_for_tuition,
                methods=["GET"],
                response_model=Envelope[list[application_models.ApplicationRead]])
        self.router.add_api_route(
                "/{application_id}",
                self.update_application,
                methods=["PUT"],
                response_model=Envelope[application_models.ApplicationRead])
        self.router.add_api_route(
                "/{application_id}",
                self.withdraw_application,
                methods=["DELETE"],
                response_model=Envelope[dict])
        self.router.add_api_route(
                "/{application_id}/{action}",
                self.decide,
                methods=["PATCH"],
                response_model=Envelope[application_models.ApplicationDecisionResult])

    async def apply(
        self,
        application_data: application_models.ApplicationCreate,
        principal: Annotated[Principal, Depends(require_tutor)],
        application_service: Annotated[ApplicationService, Depends(ApplicationService)]
    ):
        application = await application_service.apply(principal, application_data)
        return ok(application_models.ApplicationRead.model_validate(application), message="Application submitted successfully")

    async def list_my_applications(
        self,
        principal: Annotated[Principal, Depends(require_tutor)],
        application_service: Annotated[ApplicationService, Depends(ApplicationService)]
    ):
        applications = to_pydantic_list(
            await application_service.list_mine(principal),
            application_models.ApplicationWithTuitionRead
        )
        return ok(applications, count=len(applications))

    async def list_for_tuition(
        self,
        tuition_id: UUID,
        principal: Annotated[Principal, Depends(require_student)],
        application_service: Annotated[ApplicationService, Depends(ApplicationService)]
    ):
        """All applications received by one of the caller's posts."""
        applications = to_pydantic_list(
            await application_service.list_for_post(principal, tuition_id),
            application_models.ApplicationRead
        )
        return ok(applications, count=len(applications))

    async def update_application(
        self,
        application_id: UUID,
        update_data: application_models.ApplicationUpdate,
        principal: Annotated[Principal, Depends(require_tutor)],
        application_service: Annotated[ApplicationService, Depends(ApplicationService)]
    ):
        application = await application_service.update(principal, application_id, update_data)
        return ok(application_models.ApplicationRead.model_validate(application), message="Application updated successfully")

    async def withdraw_application(
        self,
        application_id: UUID,
        principal: Annotated[Principal, Depends(require_tutor)],
        application_service: Annotated[ApplicationService, Depends(ApplicationService)]
    ):
        withdrawn_id = await application_service.withdraw(principal, application_id)
        return ok({"id": str(withdrawn_id)}, message="Application withdrawn successfully")

    async def decide(
        self,
        application_id: UUID,
        action: ApplicationDecision,
        principal: Annotated[Principal, Depends(require_student)],
        application_service: Annotated[ApplicationService, Depends(ApplicationService)]
    ):
        """
        `reject` is applied immediately. `approve` answers with the amount to
        collect; the application is approved once that payment is confirmed.
        """
        result = await application_service.decide(principal, application_id, action)
        message = "Payment required to approve this application" if result.payment_required else "Application rejected"
        return ok(result, message=message)


applications_api = ApplicationsAPI()
router = applications_api.router
