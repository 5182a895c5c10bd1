import unittest
import uuid
from datetime import timedelta

from app.core.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)


class TokenTests(unittest.TestCase):
    def test_claims_carry_identity_tenant_and_role(self):
        user_id, org_id = uuid.uuid4(), uuid.uuid4()
        claims = decode_access_token(create_access_token(user_id, org_id, "manager"))
        self.assertEqual(claims["sub"], str(user_id))
        self.assertEqual(claims["org_id"], str(org_id))
        self.assertEqual(claims["role"], "manager")
        self.assertGreater(claims["exp"], claims["iat"])

    def test_user_without_organization(self):
        claims = decode_access_token(create_access_token(uuid.uuid4(), None, "employee"))
        self.assertIsNone(claims["org_id"])

    def test_expired_token_is_rejected(self):
        token = create_access_token(uuid.uuid4(), uuid.uuid4(), "admin", timedelta(seconds=-5))
        with self.assertRaises(ValueError):
            decode_access_token(token)

    def test_tampered_token_is_rejected(self):
        token = create_access_token(uuid.uuid4(), uuid.uuid4(), "employee")
        header, payload, signature = token.split(".")
        with self.assertRaises(ValueError):
            decode_access_token(f"{header}.{payload}.{signature[::-1]}")


class PasswordTests(unittest.TestCase):
    def test_hash_and_verify(self):
        hashed = hash_password("s3cret-pass")
        self.assertNotEqual(hashed, "s3cret-pass")
        self.assertTrue(verify_password("s3cret-pass", hashed))
        self.assertFalse(verify_password("wrong", hashed))


if __name__ == "__main__":
    unittest.main()
