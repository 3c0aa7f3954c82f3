import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from safetravel.app import create_app
from safetravel.db import InMemoryDbClient
from safetravel.dependencies import (
    get_db_client,
    get_identity_client,
    get_reset_notifier,
)
from safetravel.identity import InMemoryIdentityClient
from safetravel.notifications import InMemoryResetCodeNotifier

SIGNUP = {
    "email": "amina@example.com",
    "password": "s3cret-pass",
    "name": "Amina",
    "surname": "Diallo",
    "phone": "+33600000000",
    "originCountry": "Senegal",
    "residenceCountry": "France",
    "birthdate": "1994-05-02",
}


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.app = create_app()
        self.db = InMemoryDbClient()
        self.identity = InMemoryIdentityClient()
        self.notifier = InMemoryResetCodeNotifier()
        self.app.dependency_overrides[get_db_client] = lambda: self.db
        self.app.dependency_overrides[get_identity_client] = lambda: self.identity
        self.app.dependency_overrides[get_reset_notifier] = lambda: self.notifier
        self.client = TestClient(self.app)

    def signup(self, **overrides):
        return self.client.post("/api/signup", json={**SIGNUP, **overrides})

    def login(self, email=SIGNUP["email"], password=SIGNUP["password"]):
        return self.client.post(
            "/api/login", json={"email": email, "password": password}
        )

    def auth_headers(self, **signup_overrides):
        self.signup(**signup_overrides)
        email = signup_overrides.get("email", SIGNUP["email"])
        password = signup_overrides.get("password", SIGNUP["password"])
        token = self.login(email, password).json()["token"]
        return {"Authorization": f"Bearer {token}"}


class SignupTests(ApiTestCase):
    def test_signup_creates_account_and_profile(self):
        response = self.signup()
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertTrue(payload["token"])
        uid = payload["uid"]

        profile = self.db.users[uid]
        self.assertEqual(profile["uid"], uid)
        self.assertEqual(profile["email"], "amina@example.com")
        self.assertEqual(profile["surname"], "Diallo")
        self.assertEqual(profile["originCountry"], "Senegal")
        self.assertIsInstance(profile["createdAt"], datetime)
        self.assertEqual(self.identity.accounts[uid].display_name, "Amina Diallo")

    def test_signup_minimal_form(self):
        response = self.client.post(
            "/api/signup",
            json={"email": "min@example.com", "password": "abcdef", "name": "Min"},
        )
        self.assertEqual(response.status_code, 201)
        profile = self.db.users[response.json()["uid"]]
        self.assertIsNone(profile["surname"])
        self.assertEqual(self.identity.accounts[profile["uid"]].display_name, "Min")

    def test_signup_missing_email_or_password(self):
        for missing in ("email", "password"):
            body = {k: v for k, v in SIGNUP.items() if k != missing}
            response = self.client.post("/api/signup", json=body)
            self.assertEqual(response.status_code, 400, missing)
            self.assertIn("message", response.json())

        response = self.signup(email="   ")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.identity.accounts, {})
        self.assertEqual(self.db.users, {})

    def test_signup_missing_name(self):
        response = self.signup(name="")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.identity.accounts, {})

    def test_signup_duplicate_email(self):
        self.assertEqual(self.signup().status_code, 201)
        response = self.signup(name="Other")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(len(self.identity.accounts), 1)
        self.assertEqual(len(self.db.users), 1)

    def test_signup_weak_password(self):
        response = self.signup(password="123")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.db.users, {})

    def test_signup_profile_write_failure_keeps_account(self):
        db = MagicMock()
        db.save_user_profile.side_effect = RuntimeError("firestore unavailable")
        self.app.dependency_overrides[get_db_client] = lambda: db

        response = self.signup()
        self.assertEqual(response.status_code, 500)
        self.assertNotIn("firestore", response.json()["message"])
        # No rollback: the account exists without a profile.
        self.assertEqual(len(self.identity.accounts), 1)

    def test_wrong_types_are_bad_requests(self):
        response = self.client.post("/api/signup", json={"email": ["x"]})
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/api/signup",
            content="not json",
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 400)


class LoginAndUserTests(ApiTestCase):
    def test_login_token_resolves_same_uid(self):
        uid = self.signup().json()["uid"]
        response = self.login()
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["uid"], uid)
        self.assertEqual(payload["email"], "amina@example.com")

        me = self.client.get(
            "/api/user", headers={"Authorization": f"Bearer {payload['token']}"}
        )
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["uid"], uid)
        self.assertEqual(me.json()["name"], "Amina")
        self.assertEqual(me.json()["residenceCountry"], "France")

    def test_login_wrong_password(self):
        self.signup()
        response = self.login(password="wrong-password")
        self.assertEqual(response.status_code, 401)
        self.assertNotIn("token", response.json())
        self.assertNotIn("INVALID_PASSWORD", response.json()["message"])

    def test_login_unknown_email_looks_like_wrong_password(self):
        self.signup()
        unknown = self.login(email="nobody@example.com")
        wrong = self.login(password="wrong-password")
        self.assertEqual(unknown.status_code, 401)
        self.assertEqual(unknown.json(), wrong.json())

    def test_login_missing_fields(self):
        response = self.client.post("/api/login", json={"email": "a@example.com"})
        self.assertEqual(response.status_code, 400)

    def test_login_provider_outage(self):
        identity = MagicMock()
        identity.sign_in_with_password.side_effect = ConnectionError("dns failure")
        self.app.dependency_overrides[get_identity_client] = lambda: identity
        response = self.login()
        self.assertEqual(response.status_code, 500)
        self.assertNotIn("dns", response.json()["message"])

    def test_get_user_requires_token(self):
        response = self.client.get("/api/user")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.headers.get("www-authenticate"), "Bearer")
        missing_message = response.json()["message"]

        response = self.client.get(
            "/api/user", headers={"Authorization": "Bearer not-a-token"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["message"], missing_message)

        response = self.client.get("/api/user", headers={"Authorization": "Basic abc"})
        self.assertEqual(response.status_code, 401)

    def test_get_user_without_profile(self):
        headers = self.auth_headers()
        self.db.reset()
        response = self.client.get("/api/user", headers=headers)
        self.assertEqual(response.status_code, 404)

    def test_get_user_with_non_string_profile_fields(self):
        headers = self.auth_headers()
        uid = next(iter(self.db.users))
        self.db.users[uid]["phone"] = 612345678
        self.db.users[uid]["birthdate"] = None
        self.db.users[uid]["interests"] = ["randonnée"]

        response = self.client.get("/api/user", headers=headers)
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["uid"], uid)
        self.assertEqual(payload["phone"], 612345678)
        self.assertIsNone(payload["birthdate"])
        self.assertEqual(payload["interests"], ["randonnée"])


class TestimonyTests(ApiTestCase):
    def test_create_testimony_applies_defaults(self):
        headers = self.auth_headers()
        response = self.client.post(
            "/api/testimonies",
            json={"countryVisited": "France", "temoignage": "Accueil chaleureux"},
            headers=headers,
        )
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        stored = self.db.testimonies[payload["id"]]
        self.assertEqual(stored["anonyme"], "Non")
        self.assertEqual(stored["observedDiscrimination"], "Non")
        self.assertEqual(stored["profil"], [])
        self.assertEqual(stored["frequence"], [])
        self.assertIsInstance(stored["createdAt"], datetime)
        self.assertEqual(payload["data"]["anonyme"], "Non")
        self.assertEqual(payload["data"]["countryVisited"], "France")

    def test_create_testimony_keeps_supplied_fields(self):
        headers = self.auth_headers()
        body = {
            "countryVisited": "Japon",
            "villes": "Tokyo, Kyoto",
            "temoignage": "RAS",
            "securityRating": 5,
            "observedDiscrimination": "Oui",
            "contextDiscrimination": "Restaurant",
            "ethnie": "Afro-descendant",
            "recommande": "Oui",
            "anonyme": "Oui",
            "profil": ["Femme", "Solo"],
            "frequence": ["Rarement"],
            "dateVoyage": "2024-03",
        }
        response = self.client.post("/api/testimonies", json=body, headers=headers)
        self.assertEqual(response.status_code, 201)
        stored = self.db.testimonies[response.json()["id"]]
        for key, value in body.items():
            self.assertEqual(stored[key], value, key)

    def test_author_comes_from_token(self):
        headers = self.auth_headers()
        uid = next(iter(self.identity.accounts))
        response = self.client.post(
            "/api/testimonies",
            json={"countryVisited": "Maroc", "temoignage": "ok", "uid": "someone-else"},
            headers=headers,
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(self.db.testimonies[response.json()["id"]]["uid"], uid)

    def test_create_testimony_requires_text_and_country(self):
        headers = self.auth_headers()
        for body in (
            {"countryVisited": "France", "temoignage": ""},
            {"countryVisited": "France", "temoignage": "   "},
            {"countryVisited": "", "temoignage": "texte"},
            {"temoignage": "texte"},
        ):
            response = self.client.post("/api/testimonies", json=body, headers=headers)
            self.assertEqual(response.status_code, 400, body)
        self.assertEqual(self.db.testimonies, {})

    def test_create_testimony_requires_auth(self):
        response = self.client.post(
            "/api/testimonies", json={"countryVisited": "France", "temoignage": "x"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(self.db.testimonies, {})

    def test_store_failure_is_generic_500(self):
        headers = self.auth_headers()
        db = MagicMock()
        db.add_testimony.side_effect = RuntimeError("quota exceeded for project x")
        self.app.dependency_overrides[get_db_client] = lambda: db
        response = self.client.post(
            "/api/testimonies",
            json={"countryVisited": "France", "temoignage": "x"},
            headers=headers,
        )
        self.assertEqual(response.status_code, 500)
        self.assertNotIn("quota", response.json()["message"])

    def test_list_filters_by_normalized_country(self):
        self.db.add_testimony(
            {"countryVisited": " france ", "temoignage": "a", "createdAt": "2024-01-01T00:00:00Z"}
        )
        self.db.add_testimony(
            {"countryVisited": "Espagne", "temoignage": "b", "createdAt": "2024-01-02T00:00:00Z"}
        )
        response = self.client.get("/api/testimonies", params={"country": "France"})
        self.assertEqual(response.status_code, 200)
        items = response.json()
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0]["temoignage"], "a")
        self.assertIn("id", items[0])

        # Exact match only, no substrings.
        response = self.client.get("/api/testimonies", params={"country": "fra"})
        self.assertEqual(response.json(), [])

    def test_list_without_country_returns_all_newest_first(self):
        now = datetime.now(timezone.utc)
        self.db.add_testimony({"countryVisited": "A", "temoignage": "oldest", "createdAt": "2020-05-01T10:00:00.000Z"})
        self.db.add_testimony({"countryVisited": "B", "temoignage": "newest", "createdAt": now})
        self.db.add_testimony({"countryVisited": "C", "temoignage": "middle", "createdAt": now - timedelta(days=30)})
        self.db.add_testimony({"countryVisited": "D", "temoignage": "undated"})

        response = self.client.get("/api/testimonies")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            [t["temoignage"] for t in response.json()],
            ["newest", "middle", "oldest", "undated"],
        )

    def test_list_tolerates_malformed_serialized_timestamps(self):
        self.db.add_testimony({"countryVisited": "A", "temoignage": "huge", "createdAt": {"_seconds": 10**20}})
        self.db.add_testimony({"countryVisited": "A", "temoignage": "text nanos", "createdAt": {"_seconds": 1, "_nanoseconds": "7"}})
        self.db.add_testimony({"countryVisited": "A", "temoignage": "dated", "createdAt": "2024-01-01T00:00:00Z"})

        response = self.client.get("/api/testimonies")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()[0]["temoignage"], "dated")
        self.assertEqual(len(response.json()), 3)

    def test_list_failure_is_generic_500(self):
        db = MagicMock()
        db.list_testimonies.return_value = [("x", {"countryVisited": "A"})]
        self.app.dependency_overrides[get_db_client] = lambda: db
        with patch(
            "safetravel.routes.select_testimonies", side_effect=RuntimeError("boom")
        ):
            response = self.client.get("/api/testimonies")
        self.assertEqual(response.status_code, 500)
        self.assertIn("message", response.json())

    def test_list_is_public_and_includes_new_testimonies(self):
        headers = self.auth_headers()
        self.client.post(
            "/api/testimonies",
            json={"countryVisited": "Brésil", "temoignage": "premier"},
            headers=headers,
        )
        self.client.post(
            "/api/testimonies",
            json={"countryVisited": "Brésil", "temoignage": "second"},
            headers=headers,
        )
        response = self.client.get("/api/testimonies", params={"country": "brésil"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual([t["temoignage"] for t in response.json()], ["second", "premier"])


class PasswordResetTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.uid = self.signup().json()["uid"]

    def forgot(self, email=SIGNUP["email"]):
        return self.client.post("/api/forgot-password", json={"email": email})

    def reset(self, code, new_password="brand-new-pass", email=SIGNUP["email"]):
        return self.client.post(
            "/api/reset-password",
            json={"email": email, "code": code, "newPassword": new_password},
        )

    def test_forgot_password_unknown_email(self):
        response = self.forgot("ghost@example.com")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.db.password_resets, {})
        self.assertEqual(self.notifier.sent, [])

    def test_forgot_password_missing_email(self):
        response = self.client.post("/api/forgot-password", json={})
        self.assertEqual(response.status_code, 400)

    def test_forgot_password_stores_code(self):
        response = self.forgot()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(set(response.json()), {"message"})

        stored = self.db.password_resets[self.uid]
        self.assertRegex(stored["code"], r"^[1-9]\d{5}$")
        self.assertEqual(stored["email"], SIGNUP["email"])
        self.assertEqual(stored["expiresAt"] - stored["createdAt"], timedelta(minutes=10))
        self.assertEqual(self.notifier.last_code_for(SIGNUP["email"]), stored["code"])

    def test_new_request_overwrites_previous(self):
        self.forgot()
        self.forgot()
        self.assertEqual(len(self.db.password_resets), 1)
        self.assertEqual(
            self.db.password_resets[self.uid]["code"],
            self.notifier.last_code_for(SIGNUP["email"]),
        )

    def test_reset_with_wrong_code(self):
        self.forgot()
        code = self.notifier.last_code_for(SIGNUP["email"])
        wrong = "100000" if code != "100000" else "100001"
        response = self.reset(wrong)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.login().status_code, 200)
        self.assertIn(self.uid, self.db.password_resets)

    def test_reset_with_expired_code(self):
        self.forgot()
        code = self.notifier.last_code_for(SIGNUP["email"])
        self.db.password_resets[self.uid]["expiresAt"] = datetime.now(
            timezone.utc
        ) - timedelta(seconds=1)
        response = self.reset(code)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.login().status_code, 200)
        self.assertEqual(self.login(password="brand-new-pass").status_code, 401)

    def test_reset_without_pending_request(self):
        response = self.reset("123456")
        self.assertEqual(response.status_code, 404)

    def test_reset_missing_fields(self):
        response = self.client.post(
            "/api/reset-password", json={"email": SIGNUP["email"], "code": "123456"}
        )
        self.assertEqual(response.status_code, 400)

    def test_successful_reset_is_single_use(self):
        self.forgot()
        code = self.notifier.last_code_for(SIGNUP["email"])
        response = self.reset(code)
        self.assertEqual(response.status_code, 200)
        self.assertNotIn(self.uid, self.db.password_resets)

        self.assertEqual(self.login().status_code, 401)
        self.assertEqual(self.login(password="brand-new-pass").status_code, 200)

        repeat = self.reset(code, new_password="third-password")
        self.assertEqual(repeat.status_code, 404)
        self.assertEqual(self.login(password="brand-new-pass").status_code, 200)

    def test_numeric_code_is_accepted(self):
        self.forgot()
        code = self.notifier.last_code_for(SIGNUP["email"])
        response = self.reset(int(code))
        self.assertEqual(response.status_code, 200)

    def test_reset_rejects_weak_password(self):
        self.forgot()
        code = self.notifier.last_code_for(SIGNUP["email"])
        response = self.reset(code, new_password="123")
        self.assertEqual(response.status_code, 400)
        self.assertIn(self.uid, self.db.password_resets)


class HealthTests(ApiTestCase):
    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})


if __name__ == "__main__":
    unittest.main()
