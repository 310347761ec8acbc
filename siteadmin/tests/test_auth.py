import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import jwt

from siteadmin import auth
from siteadmin.auth import AdminIdentity, issue_token
from siteadmin.errors import InvalidCredentials, InvalidToken, MissingToken, ValidationError
from siteadmin.tests.helpers import ADMIN_PASSWORD, AppTestCase, add_admin, make_settings, make_store


class PasswordTests(unittest.TestCase):
    def test_hash_and_check(self):
        hashed = auth.hash_password("hunter2")
        self.assertNotEqual(hashed, "hunter2")
        self.assertTrue(auth.check_password("hunter2", hashed))
        self.assertFalse(auth.check_password("hunter3", hashed))

    def test_check_against_non_bcrypt_value(self):
        self.assertFalse(auth.check_password("plain", "plain"))


class LoginTests(unittest.TestCase):
    def setUp(self):
        self.settings = make_settings()
        self.store = make_store()
        self.admin = add_admin(self.store)

    def tearDown(self):
        self.store.dispose()

    def test_login_returns_token_and_public_user(self):
        result = auth.login(self.store, self.settings, "admin", ADMIN_PASSWORD)
        self.assertNotIn("password", result.user)
        self.assertEqual(result.user["username"], "admin")

        claims = jwt.decode(result.token, "test-secret", algorithms=["HS256"])
        self.assertEqual(claims["id"], self.admin.id)
        self.assertEqual(claims["username"], "admin")
        self.assertEqual(claims["email"], "admin@example.test")
        self.assertAlmostEqual(claims["exp"] - claims["iat"], 24 * 3600, delta=5)

    def test_wrong_password_and_unknown_user_look_the_same(self):
        with self.assertRaises(InvalidCredentials) as wrong:
            auth.login(self.store, self.settings, "admin", "nope")
        with self.assertRaises(InvalidCredentials) as unknown:
            auth.login(self.store, self.settings, "ghost", ADMIN_PASSWORD)
        self.assertEqual(wrong.exception.message, unknown.exception.message)

    def test_unknown_user_still_checks_a_hash(self):
        with patch("siteadmin.auth.check_password", return_value=False) as check:
            with self.assertRaises(InvalidCredentials):
                auth.login(self.store, self.settings, "ghost", ADMIN_PASSWORD)
        check.assert_called_once()
        password, stored = check.call_args.args
        self.assertEqual(password, ADMIN_PASSWORD)
        self.assertTrue(stored.startswith("$2"))

    def test_unknown_user_rejected_even_if_hash_matches(self):
        with patch("siteadmin.auth.check_password", return_value=True):
            with self.assertRaises(InvalidCredentials):
                auth.login(self.store, self.settings, "ghost", "anything")

    def test_missing_fields(self):
        with self.assertRaises(ValidationError):
            auth.login(self.store, self.settings, "", ADMIN_PASSWORD)


class VerifyTests(unittest.TestCase):
    def setUp(self):
        self.settings = make_settings()
        self.identity = AdminIdentity(id=7, username="admin", email="a@b.c")

    def test_round_trip(self):
        token = issue_token(self.settings, self.identity)
        self.assertEqual(auth.verify(self.settings, f"Bearer {token}"), self.identity)

    def test_missing_header(self):
        with self.assertRaises(MissingToken):
            auth.verify(self.settings, None)

    def test_wrong_scheme_counts_as_missing(self):
        token = issue_token(self.settings, self.identity)
        with self.assertRaises(MissingToken):
            auth.verify(self.settings, f"Basic {token}")
        with self.assertRaises(MissingToken):
            auth.verify(self.settings, "Bearer ")

    def test_bad_signature(self):
        token = issue_token(make_settings(jwt_secret="other"), self.identity)
        with self.assertRaises(InvalidToken):
            auth.verify(self.settings, f"Bearer {token}")

    def test_expired(self):
        issued = datetime.now(timezone.utc) - timedelta(hours=25)
        token = issue_token(self.settings, self.identity, now=issued)
        with self.assertRaises(InvalidToken) as ctx:
            auth.verify(self.settings, f"Bearer {token}")
        self.assertEqual(ctx.exception.error, "token expired")

    def test_token_without_identity(self):
        token = jwt.encode(
            {"exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            "test-secret",
            algorithm="HS256",
        )
        with self.assertRaises(InvalidToken):
            auth.verify(self.settings, f"Bearer {token}")


class AuthApiTests(AppTestCase):
    def test_login_endpoint(self):
        response = self.client.post(
            "/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD}
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "success")
        self.assertIn("token", payload["data"])
        self.assertEqual(payload["data"]["user"]["username"], "admin")

    def test_login_rejected(self):
        response = self.client.post(
            "/api/auth/login", json={"username": "admin", "password": "wrong"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["status"], "error")
        self.assertEqual(response.json()["message"], "Invalid username or password")

    def test_login_missing_fields(self):
        response = self.client.post("/api/auth/login", json={"username": "admin"})
        self.assertEqual(response.status_code, 400)

    def test_me(self):
        response = self.client.get("/api/auth/me", headers=self.auth_headers())
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["id"], self.admin.id)
        self.assertIn("created_at", data)

    def test_me_requires_token(self):
        response = self.client.get("/api/auth/me")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["status"], "error")

    def test_invalid_token_is_also_401(self):
        response = self.client.get(
            "/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertNotIn("error", response.json())


if __name__ == "__main__":
    unittest.main()
