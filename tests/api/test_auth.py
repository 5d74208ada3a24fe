import pytest
import httpx
from datetime import timedelta
from sqlalchemy.exc import OperationalError

from src.tutorate_backend.main import app
from src.tutorate_backend.database import models as db_models
from src.tutorate_backend.services.security import JWTHandler
from src.tutorate_backend.services.user_service import UserService
from tests.helpers import auth_headers_for


@pytest.mark.anyio
class TestAuthAPI:
    """
    The guard chain every protected route goes through:
    token -> account -> blocked? -> role -> identity parameter.
    """

    async def test_health_check(self, client: httpx.AsyncClient):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["success"] is True

    async def test_no_token(self, client: httpx.AsyncClient, test_student_orm: db_models.Students):
        response = await client.get("/users/profile", params={"email": test_student_orm.email})

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "No token provided.", "code": "NO_TOKEN"}

    async def test_invalid_token(self, client: httpx.AsyncClient, test_student_orm: db_models.Students):
        response = await client.get(
            "/users/profile",
            params={"email": test_student_orm.email},
            headers={"Authorization": "Bearer not.a.token"}
        )
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_TOKEN"

    async def test_expired_token(self, client: httpx.AsyncClient, test_student_orm: db_models.Students):
        token = JWTHandler.create_access_token(
            subject=test_student_orm.external_id, email=test_student_orm.email, expires_delta=timedelta(seconds=-1)
        )
        response = await client.get(
            "/users/profile",
            params={"email": test_student_orm.email},
            headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401
        assert response.json()["code"] == "TOKEN_EXPIRED"

    async def test_unknown_account(self, client: httpx.AsyncClient):
        token = JWTHandler.create_access_token(subject="ext-ghost", email="ghost@tutorate.com")
        response = await client.get(
            "/users/profile",
            params={"email": "ghost@tutorate.com"},
            headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401
        assert response.json()["code"] == "USER_NOT_FOUND"

    async def test_blocked_account(self, client: httpx.AsyncClient, test_blocked_student_orm: db_models.Students):
        response = await client.get(
            "/users/profile",
            params={"email": test_blocked_student_orm.email},
            headers=auth_headers_for(test_blocked_student_orm)
        )
        assert response.status_code == 403
        assert response.json()["code"] == "ACCOUNT_BLOCKED"

    async def test_identity_param_mismatch(
        self,
        client: httpx.AsyncClient,
        test_student_orm: db_models.Students,
        test_other_student_orm: db_models.Students
    ):
        response = await client.get(
            "/users/profile",
            params={"email": test_other_student_orm.email},
            headers=auth_headers_for(test_student_orm)
        )
        assert response.status_code == 403
        assert response.json()["code"] == "UNAUTHORIZED_ACCESS"

    async def test_missing_identity_param(self, client: httpx.AsyncClient, test_student_orm: db_models.Students):
        response = await client.get("/users/profile", headers=auth_headers_for(test_student_orm))

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_wrong_role(self, client: httpx.AsyncClient, test_student_orm: db_models.Students):
        response = await client.get(
            "/admin/users",
            params={"email": test_student_orm.email},
            headers=auth_headers_for(test_student_orm)
        )
        assert response.status_code == 403
        assert response.json()["code"] == "INSUFFICIENT_PERMISSIONS"

    async def test_unknown_route(self, client: httpx.AsyncClient):
        response = await client.get("/nowhere")

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "NOT_FOUND"

    async def test_malformed_id(self, client: httpx.AsyncClient):
        response = await client.get("/tuitions/not-a-uuid")

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_unexpected_error_is_hidden(self, client: httpx.AsyncClient):
        def broken_service():
            raise RuntimeError("secret stack detail")

        app.dependency_overrides[UserService] = broken_service
        response = await client.get("/tutors")

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "INTERNAL_ERROR"
        assert "secret" not in body["error"]

    async def test_store_down_is_retriable(self, client: httpx.AsyncClient):
        def dead_store():
            raise OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))

        app.dependency_overrides[UserService] = dead_store
        response = await client.get("/tutors")

        assert response.status_code == 503
        assert response.json()["code"] == "STORE_UNAVAILABLE"
