'''
Admin moderation endpoints: accounts, tuition post review and reports.
Every route here is restricted to admins.
'''
from typing import Annotated, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query

from ..database.db_enums import AccountStatus, ReportRange, TuitionStatus, UserRole
from ..models import report as report_models
from ..models import tuition as tuition_models
from ..models import user as user_models
from ..models.envelope import Envelope, Page, ok
from ..models.token import Principal
from ..services.report_service import ReportService
from ..services.security import require_admin
from ..services.tuition_service import TuitionService
from ..services.user_service import AdminService


class AdminAPI:
    def __init__(self):
        self.router = APIRouter(
            prefix="/admin",
            tags=["Admin"]
        )
        self._register_routes()

    def _register_routes(self):
        self.router.add_api_route(
                "/users",
                self.list_users,
                methods=["GET"],
                response_model=Envelope[Page[user_models.AccountReadRoleBased]])
        self.router.add_api_route(
                "/users/{user_id}/role",
                self.update_role,
                methods=["PATCH"],
                response_model=Envelope[user_models.AccountReadRoleBased])
        self.router.add_api_route(
                "/users/{user_id}/status",
                self.update_status,
                methods=["PATCH"],
                response_model=Envelope[user_models.AccountReadRoleBased])
        self.router.add_api_route(
                "/users/{user_id}",
                self.delete_user,
                methods=["DELETE"],
                response_model=Envelope[user_models.AccountReadRoleBased])
        self.router.add_api_route(
                "/tuitions",
                self.list_tuitions,
                methods=["GET"],
                response_model=Envelope[Page[tuition_models.TuitionRead]])
        self.router.add_api_route(
                "/tuitions/{tuition_id}/approve",
                self.approve_tuition,
                methods=["PATCH"],
                response_model=Envelope[tuition_models.TuitionRead])
        self.router.add_api_route(
                "/tuitions/{tuition_id}/reject",
                self.reject_tuition,
                methods=["PATCH"],
                response_model=Envelope[tuition_models.TuitionRead])
        self.router.add_api_route(
                "/reports",
                self.get_report,
                methods=["GET"],
                response_model=Envelope[report_models.AdminReport])

    # --- Accounts ---

    async def list_users(
        self,
        principal: Annotated[Principal, Depends(require_admin)],
        admin_service: Annotated[AdminService, Depends(AdminService)],
        role: Optional[UserRole] = None,
        account_status: Annotated[Optional[AccountStatus], Query(alias="status")] = None,
        search: Optional[str] = None,
        page: Annotated[int, Query(ge=1)] = 1,
        limit: Annotated[int, Query(ge=1, le=100)] = 20,
    ):
        result = await admin_service.list_users(role, account_status, search, page, limit)
        return ok(result, count=result.total)

    async def update_role(
        self,
        user_id: UUID,
        role_data: user_models.RoleUpdate,
        principal: Annotated[Principal, Depends(require_admin)],
        admin_service: Annotated[AdminService, Depends(AdminService)]
    ):
        account = await admin_service.update_role(principal, user_id, role_data.role)
        return ok(user_models.to_account_read(account), message="User role updated successfully")

    async def update_status(
        self,
        user_id: UUID,
        status_data: user_models.StatusUpdate,
        principal: Annotated[Principal, Depends(require_admin)],
        admin_service: Annotated[AdminService, Depends(AdminService)]
    ):
        account = await admin_service.update_status(principal, user_id, status_data.status)
        return ok(user_models.to_account_read(account), message="User status updated successfully")

    async def delete_user(
        self,
        user_id: UUID,
        principal: Annotated[Principal, Depends(require_admin)],
        admin_service: Annotated[AdminService, Depends(AdminService)]
    ):
        """Soft delete: the account is marked deleted and its email freed."""
        account = await admin_service.delete_user(principal, user_id)
        return ok(user_models.to_account_read(account), message="User deleted successfully")

    # --- Tuition posts ---

    async def list_tuitions(
        self,
        principal: Annotated[Principal, Depends(require_admin)],
        tuition_service: Annotated[TuitionService, Depends(TuitionService)],
        tuition_status: Annotated[Optional[TuitionStatus], Query(alias="status")] = None,
        page: Annotated[int, Query(ge=1)] = 1,
        limit: Annotated[int, Query(ge=1, le=100)] = 20,
    ):
        result = await tuition_service.list_all(tuition_status, page, limit)
        return ok(result, count=result.total)

    async def approve_tuition(
        self,
        tuition_id: UUID,
        principal: Annotated[Principal, Depends(require_admin)],
        tuition_service: Annotated[TuitionService, Depends(TuitionService)]
    ):
        post = await tuition_service.approve(principal, tuition_id)
        return ok(tuition_models.TuitionRead.model_validate(post), message="Tuition post approved")

    async def reject_tuition(
        self,
        tuition_id: UUID,
        principal: Annotated[Principal, Depends(require_admin)],
        tuition_service: Annotated[TuitionService, Depends(TuitionService)],
        reject_data: Optional[tuition_models.TuitionReject] = None
    ):
        reason = reject_data.reason if reject_data else None
        post = await tuition_service.reject(principal, tuition_id, reason)
        return ok(tuition_models.TuitionRead.model_validate(post), message="Tuition post rejected")

    # --- Reports ---

    async def get_report(
        self,
        principal: Annotated[Principal, Depends(require_admin)],
        report_service: Annotated[ReportService, Depends(ReportService)],
        report_range: Annotated[ReportRange, Query(alias="range")] = ReportRange.MONTH,
        include_deleted: bool = False,
    ):
        report = await report_service.admin_report(report_range, include_deleted)
        return ok(report)


admin_api = AdminAPI()
router = admin_api.router
