'''
Public tutor directory.
'''
from typing import Annotated
from uuid import UUID
from fastapi import APIRouter, Depends

from ..models import user as user_models
from ..models.envelope import Envelope, ok, to_pydantic_list
from ..services.user_service import UserService


class TutorsAPI:
    """Read-only tutor listings. No authentication."""
    def __init__(self):
        self.router = APIRouter(
            prefix="/tutors",
            tags=["Tutors"]
        )
        self._register_routes()

    def _register_routes(self):
        self.router.add_api_route(
                "",
                self.list_tutors,
                methods=["GET"],
                response_model=Envelope[list[user_models.TutorPublicRead]])
        self.router.add_api_route(
                "/featured",
                self.list_featured,
                methods=["GET"],
                response_model=Envelope[list[user_models.TutorPublicRead]])
        self.router.add_api_route(
                "/{tutor_id}",
                self.get_tutor,
                methods=["GET"],
                response_model=Envelope[user_models.TutorPublicRead])

    async def list_tutors(self, user_service: Annotated[UserService, Depends(UserService)]):
        """Active tutors, best rated first."""
        tutors = to_pydantic_list(await user_service.list_public_tutors(), user_models.TutorPublicRead)
        return ok(tutors, count=len(tutors))

    async def list_featured(self, user_service: Annotated[UserService, Depends(UserService)]):
        tutors = to_pydantic_list(await user_service.list_featured_tutors(), user_models.TutorPublicRead)
        return ok(tutors, count=len(tutors))

    async def get_tutor(self, tutor_id: UUID, user_service: Annotated[UserService, Depends(UserService)]):
        tutor = await user_service.get_public_tutor(tutor_id)
        return ok(user_models.TutorPublicRead.model_validate(tutor))


tutors_api = TutorsAPI()
router = tutors_api.router
