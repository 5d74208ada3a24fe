'''
API endpoints for registration and the caller's own account.
'''
from typing import Annotated, Any, Union
from fastapi import APIRouter, Body, Depends, Response, status

from ..models import report as report_models
from ..models import user as user_models
from ..models.envelope import Envelope, ok
from ..models.token import Principal, VerifiedIdentity
from ..services.report_service import ReportService
from ..services.security import get_verified_identity, require_student_or_tutor, verify_identity_param
from ..services.user_service import UserService


class UsersAPI:
    """Registration and self-service profile endpoints."""
    def __init__(self):
        self.router = APIRouter(
            prefix="/users",
            tags=["Users"]
        )
        self._register_routes()

    def _register_routes(self):
        self.router.add_api_route(
                "",
                self.register,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=Envelope[user_models.AccountReadRoleBased])
        self.router.add_api_route(
                "/google",
                self.google_login,
                methods=["POST"],
                response_model=Envelope[user_models.AccountCreateResult])
        self.router.add_api_route(
                "/profile",
                self.get_profile,
                methods=["GET"],
                response_model=Envelope[user_models.AccountReadRoleBased])
        self.router.add_api_route(
                "/profile",
                self.update_profile,
                methods=["PUT"],
                response_model=Envelope[user_models.AccountReadRoleBased])
        self.router.add_api_route(
                "/profile",
                self.delete_profile,
                methods=["DELETE"],
                response_model=Envelope[user_models.AccountReadRoleBased])
        self.router.add_api_route(
                "/stats",
                self.get_stats,
                methods=["GET"],
                response_model=Envelope[Union[report_models.StudentStats, report_models.TutorStats]])

    async def register(
        self,
        account_data: user_models.AccountCreate,
        identity: Annotated[VerifiedIdentity, Depends(get_verified_identity)],
        user_service: Annotated[UserService, Depends(UserService)]
    ):
        """
        Creates the caller's account. The bearer token must belong to the
        email being registered.
        """
        account = await user_service.register(identity, account_data)
        return ok(user_models.to_account_read(account), message="Account created successfully")

    async def google_login(
        self,
        login_data: user_models.GoogleLogin,
        response: Response,
        identity: Annotated[VerifiedIdentity, Depends(get_verified_identity)],
        user_service: Annotated[UserService, Depends(UserService)]
    ):
        """Returns 201 when the account was created by this login, 200 otherwise."""
        account, created = await user_service.google_login(identity, login_data)
        if created:
            response.status_code = status.HTTP_201_CREATED
        result = user_models.AccountCreateResult(account=user_models.to_account_read(account), created=created)
        return ok(result, message="Account created successfully" if created else "Login successful")

    async def get_profile(
        self,
        principal: Annotated[Principal, Depends(verify_identity_param)],
        user_service: Annotated[UserService, Depends(UserService)]
    ):
        account = await user_service.get_profile(principal)
        return ok(user_models.to_account_read(account))

    async def update_profile(
        self,
        update_data: Annotated[dict[str, Any], Body()],
        principal: Annotated[Principal, Depends(verify_identity_param)],
        user_service: Annotated[UserService, Depends(UserService)]
    ):
        """
        Accepts only the fields editable for the caller's role; the body is
        validated by the service against that role's update model.
        """
        account = await user_service.update_profile(principal, update_data)
        return ok(user_models.to_account_read(account), message="Profile updated successfully")

    async def delete_profile(
        self,
        principal: Annotated[Principal, Depends(verify_identity_param)],
        user_service: Annotated[UserService, Depends(UserService)]
    ):
        account = await user_service.delete_profile(principal)
        return ok(user_models.to_account_read(account), message="Account deleted successfully")

    async def get_stats(
        self,
        principal: Annotated[Principal, Depends(require_student_or_tutor)],
        report_service: Annotated[ReportService, Depends(ReportService)]
    ):
        return ok(await report_service.user_stats(principal))


users_api = UsersAPI()
router = users_api.router
