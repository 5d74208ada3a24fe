'''
API endpoints for tuition posts: public listings, the student's own posts
and the tutor's assigned tuitions.
'''
from typing import Annotated, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status

from ..database.db_enums import TuitionSortOption
from ..models import tuition as tuition_models
from ..models.envelope import Envelope, Page, ok, to_pydantic_list
from ..models.token import Principal
from ..services.security import require_student, require_tutor
from ..services.tuition_service import TuitionService


class TuitionsAPI:
    """
    A class to encapsulate the tuition post endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/tuitions",
            tags=["Tuitions"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        # Fixed paths first, so they are not captured by /{tuition_id}
        self.router.add_api_route(
                "",
                self.list_tuitions,
                methods=["GET"],
                response_model=Envelope[Page[tuition_models.TuitionPublicRead]])
        self.router.add_api_route(
                "",
                self.create_tuition,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=Envelope[tuition_models.TuitionRead])
        self.router.add_api_route(
                "/my",
                self.list_my_tuitions,
                methods=["GET"],
                response_model=Envelope[list[tuition_models.TuitionRead]])
        self.router.add_api_route(
                "/assigned",
                self.list_assigned_tuitions,
                methods=["GET"],
                response_model=Envelope[list[tuition_models.TuitionRead]])
        self.router.add_api_route(
                "/{tuition_id}",
                self.get_tuition,
                methods=["GET"],
                response_model=Envelope[tuition_models.TuitionPublicRead])
        self.router.add_api_route(
                "/{tuition_id}",
                self.update_tuition,
                methods=["PUT"],
                response_model=Envelope[tuition_models.TuitionRead])
        self.router.add_api_route(
                "/{tuition_id}",
                self.delete_tuition,
                methods=["DELETE"],
                response_model=Envelope[tuition_models.TuitionDeleteResult])
        self.router.add_api_route(
                "/{tuition_id}/complete",
                self.complete_tuition,
                methods=["PATCH"],
                response_model=Envelope[tuition_models.TuitionRead])

    async def list_tuitions(
        self,
        tuition_service: Annotated[TuitionService, Depends(TuitionService)],
        search: Optional[str] = None,
        location: Optional[str] = None,
        subject: Optional[str] = None,
        class_level: Annotated[Optional[str], Query(alias="class")] = None,
        sort_by: Annotated[TuitionSortOption, Query(alias="sortBy")] = TuitionSortOption.NEWEST,
        page: Annotated[int, Query(ge=1)] = 1,
        limit: Annotated[int, Query(ge=1, le=100)] = 10,
    ):
        """Public listing of active tuition posts."""
        result = await tuition_service.list_public(search, location, subject, class_level, sort_by, page, limit)
        return ok(result, count=result.total)

    async def get_tuition(
        self,
        tuition_id: UUID,
        tuition_service: Annotated[TuitionService, Depends(TuitionService)]
    ):
        """Public detail of an active post. Counts as a view."""
        post = await tuition_service.get_public(tuition_id)
        return ok(tuition_models.TuitionPublicRead.model_validate(post))

    async def create_tuition(
        self,
        tuition_data: tuition_models.TuitionCreate,
        principal: Annotated[Principal, Depends(require_student)],
        tuition_service: Annotated[TuitionService, Depends(TuitionService)]
    ):
        post = await tuition_service.create(principal, tuition_data)
        return ok(tuition_models.TuitionRead.model_validate(post), message="Tuition post submitted for review")

    async def list_my_tuitions(
        self,
        principal: Annotated[Principal, Depends(require_student)],
        tuition_service: Annotated[TuitionService, Depends(TuitionService)]
    ):
        posts = to_pydantic_list(await tuition_service.list_mine(principal), tuition_models.TuitionRead)
        return ok(posts, count=len(posts))

    async def list_assigned_tuitions(
        self,
        principal: Annotated[Principal, Depends(require_tutor)],
        tuition_service: Annotated[TuitionService, Depends(TuitionService)]
    ):
        posts = to_pydantic_list(await tuition_service.list_assigned(principal), tuition_models.TuitionRead)
        return ok(posts, count=len(posts))

    async def update_tuition(
        self,
        tuition_id: UUID,
        update_data: tuition_models.TuitionUpdate,
        principal: Annotated[Principal, Depends(require_student)],
        tuition_service: Annotated[TuitionService, Depends(TuitionService)]
    ):
        """
        Edits the caller's own post. Refused once a tutor has been assigned.
        """
        post = await tuition_service.update(principal, tuition_id, update_data)
        return ok(tuition_models.TuitionRead.model_validate(post), message="Tuition post updated successfully")

    async def delete_tuition(
        self,
        tuition_id: UUID,
        principal: Annotated[Principal, Depends(require_student)],
        tuition_service: Annotated[TuitionService, Depends(TuitionService)]
    ):
        result = await tuition_service.delete(principal, tuition_id)
        return ok(result, message="Tuition post deleted successfully")

    async def complete_tuition(
        self,
        tuition_id: UUID,
        principal: Annotated[Principal, Depends(require_student)],
        tuition_service: Annotated[TuitionService, Depends(TuitionService)]
    ):
        post = await tuition_service.complete(principal, tuition_id)
        return ok(tuition_models.TuitionRead.model_validate(post), message="Tuition marked as completed")


tuitions_api = TuitionsAPI()
router = tuitions_api.router
