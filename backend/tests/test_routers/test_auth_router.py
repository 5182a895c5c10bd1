import unittest
import uuid
from types import SimpleNamespace as Obj
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from app.core.dependencies import get_db
from app.core.exceptions import ValidationError
from app.core.security import decode_access_token, hash_password
from app.main import app

ORG_ID = uuid.uuid4()


def user_row(**kwargs):
    values = dict(
        id=uuid.uuid4(),
        organization_id=ORG_ID,
        email="alice@one.com",
        hashed_password=hash_password("s3cret-pass"),
        role="employee",
        is_active=True,
    )
    values.update(kwargs)
    return Obj(**values)


class AuthRouterTests(unittest.TestCase):
    def setUp(self):
        class FakeDB:
            def __init__(self):
                self.found = None
                self.execute = AsyncMock(side_effect=self._execute)

            async def _execute(self, stmt):
                result = MagicMock()
                result.scalar_one_or_none.return_value = self.found
                return result

        self.db = FakeDB()

        async def _fake_db():
            yield self.db

        app.dependency_overrides[get_db] = _fake_db
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.pop(get_db, None)

    # ---------- login ----------

    def test_login_returns_token_with_tenant_claims(self):
        user = user_row(role="manager")
        self.db.found = user
        resp = self.client.post(
            "/api/v1/auth/login", json={"email": "Alice@One.com", "password": "s3cret-pass"}
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        claims = decode_access_token(resp.json()["access_token"])
        self.assertEqual(claims["sub"], str(user.id))
        self.assertEqual(claims["org_id"], str(ORG_ID))
        self.assertEqual(claims["role"], "manager")

    def test_wrong_password_is_401(self):
        self.db.found = user_row()
        resp = self.client.post(
            "/api/v1/auth/login", json={"email": "alice@one.com", "password": "nope"}
        )
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.headers["www-authenticate"], "Bearer")

    def test_unknown_email_is_401(self):
        resp = self.client.post(
            "/api/v1/auth/login", json={"email": "ghost@one.com", "password": "s3cret-pass"}
        )
        self.assertEqual(resp.status_code, 401)

    def test_deactivated_account_is_403(self):
        self.db.found = user_row(is_active=False)
        resp = self.client.post(
            "/api/v1/auth/login", json={"email": "alice@one.com", "password": "s3cret-pass"}
        )
        self.assertEqual(resp.status_code, 403)

    # ---------- register / join ----------

    @patch("app.api.v1.auth.register_organization", new_callable=AsyncMock)
    def test_register_org(self, mock_register):
        admin = user_row(role="admin")
        mock_register.return_value = (Obj(id=ORG_ID), admin)
        payload = {
            "org_name": "Acme",
            "admin_email": "boss@acme.com",
            "admin_name": "Boss",
            "password": "s3cret-pass",
        }
        resp = self.client.post("/api/v1/auth/register-org", json=payload)
        self.assertEqual(resp.status_code, 201, resp.text)
        self.assertEqual(decode_access_token(resp.json()["access_token"])["role"], "admin")
        kwargs = mock_register.call_args.kwargs
        self.assertEqual(kwargs["country_code"], "PL")
        self.assertIsNone(kwargs["slug"])

    def test_register_org_validates_email(self):
        payload = {
            "org_name": "Acme",
            "admin_email": "not-an-email",
            "admin_name": "Boss",
            "password": "s3cret-pass",
        }
        resp = self.client.post("/api/v1/auth/register-org", json=payload)
        self.assertEqual(resp.status_code, 400)

    @patch("app.api.v1.auth.accept_invitation", new_callable=AsyncMock)
    def test_join_with_invitation(self, mock_accept):
        mock_accept.return_value = user_row(email="new@one.com")
        resp = self.client.post(
            "/api/v1/auth/join",
            json={"token": "abc", "full_name": "New Person", "password": "s3cret-pass"},
        )
        self.assertEqual(resp.status_code, 201, resp.text)
        self.assertEqual(mock_accept.call_args.args[1:], ("abc", "s3cret-pass", "New Person"))

    @patch("app.api.v1.auth.accept_invitation", new_callable=AsyncMock)
    def test_join_with_expired_invitation(self, mock_accept):
        mock_accept.side_effect = ValidationError("Invitation has expired")
        resp = self.client.post(
            "/api/v1/auth/join",
            json={"token": "abc", "full_name": "Late", "password": "s3cret-pass"},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], "Invitation has expired")

    # ---------- me ----------

    def test_me_requires_token(self):
        self.assertEqual(self.client.get("/api/v1/auth/me").status_code, 401)

    def test_me_rejects_garbage_token(self):
        resp = self.client.get(
            "/api/v1/auth/me", headers={"Authorization": "Bearer not.a.jwt"}
        )
        self.assertEqual(resp.status_code, 401)


if __name__ == "__main__":
    unittest.main()
