"""Customer sign-up/sign-in, phone OTP login, session observers and admin guard."""
from datetime import timedelta

import pytest

import auth
import config
from database import utcnow
from errors import AuthProviderError, describe_auth_error


class TestEmailAuth:

    def test_sign_up_returns_session(self, client, user_session):
        assert user_session["token"]
        assert user_session["role"] == "user"
        assert user_session["user"]["email"] == "asha@example.com"
        assert user_session["user"]["displayName"] == "Asha"

    def test_duplicate_email(self, client, user_session):
        response = client.post("/api/auth/signup", json={"email": "ASHA@example.com", "password": "another1"})
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "auth/email-already-in-use"
        assert body["detail"] == "An account with this email already exists."

    def test_malformed_email(self, client, mock_db):
        response = client.post("/api/auth/signup", json={"email": "not-an-email", "password": "secret123"})
        assert response.status_code == 400
        assert response.json()["code"] == "auth/invalid-email"
        assert mock_db["users"].count_documents({}) == 0

    def test_weak_password(self, client):
        response = client.post("/api/auth/signup", json={"email": "a@example.com", "password": "123"})
        assert response.json()["code"] == "auth/weak-password"

    def test_password_is_hashed(self, user_session, mock_db):
        user = mock_db["users"].find_one({"email": "asha@example.com"})
        assert user["passwordHash"] != "secret123"
        assert user["passwordHash"].startswith("$2")

    def test_sign_in_and_out(self, client, user_session):
        response = client.post("/api/auth/signin", json={"email": "asha@example.com", "password": "secret123"})
        assert response.status_code == 200
        headers = {"X-Auth-Token": response.json()["token"]}

        me = client.get("/api/me", headers=headers).json()
        assert me["uid"] == user_session["userId"]

        assert client.post("/api/auth/signout", headers=headers).json() == {"success": True}
        assert client.get("/api/me", headers=headers).status_code == 401
        assert client.get("/api/auth/session", headers=headers).json() == {"user": None}

    def test_wrong_password(self, client, user_session):
        response = client.post("/api/auth/signin", json={"email": "asha@example.com", "password": "wrong-one"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password."

    def test_expired_session_is_removed(self, client, user_headers, mock_db):
        mock_db["sessions"].update_many({}, {"$set": {"expiresAt": utcnow() - timedelta(minutes=1)}})
        assert client.get("/api/me", headers=user_headers).status_code == 401
        assert mock_db["sessions"].count_documents({"token": user_headers["X-Auth-Token"]}) == 0


class TestAuthObservers:

    def test_sign_in_and_sign_out_are_observed(self, user_session):
        seen = []
        unsubscribe = auth.on_auth_state_change(seen.append)
        try:
            session = auth.sign_in("asha@example.com", "secret123")
            auth.sign_out(session["token"])
        finally:
            unsubscribe()

        assert seen[0].email == "asha@example.com"
        assert seen[1] is None

    def test_admin_sign_out_is_not_observed(self, client, admin_headers):
        seen = []
        unsubscribe = auth.on_auth_state_change(seen.append)
        try:
            response = client.post("/api/auth/signout", headers={"X-Auth-Token": admin_headers["X-Admin-Token"]})
        finally:
            unsubscribe()
        assert response.json() == {"success": True}
        assert seen == []

    def test_unsubscribe_stops_notifications(self, user_session):
        seen = []
        unsubscribe = auth.on_auth_state_change(seen.append)
        unsubscribe()
        auth.sign_in("asha@example.com", "secret123")
        assert seen == []

    def test_failing_observer_does_not_break_sign_in(self, user_session):
        def broken(user):
            raise RuntimeError("observer down")

        unsubscribe = auth.on_auth_state_change(broken)
        try:
            assert auth.sign_in("asha@example.com", "secret123")["token"]
        finally:
            unsubscribe()


class TestPhoneOtp:

    @pytest.mark.parametrize("raw, expected", [
        ("9876543210", "+919876543210"),
        ("98765 43210", "+919876543210"),
        ("919876543210", "+919876543210"),
        ("+91 98765-43210", "+919876543210"),
        ("12345", "12345"),
    ])
    def test_format_phone_number(self, raw, expected):
        assert auth.format_phone_number(raw) == expected

    def test_invalid_number(self, client):
        response = client.post("/api/auth/otp/request", json={"phone": "12345"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid phone number format."

    def test_code_is_hidden_without_echo(self, client):
        body = client.post("/api/auth/otp/request", json={"phone": "9876543210"}).json()
        assert body["phone"] == "+919876543210"
        assert "code" not in body

    def test_login_creates_user(self, client, otp_echo, mock_db):
        code = client.post("/api/auth/otp/request", json={"phone": "9876543210"}).json()["code"]
        response = client.post("/api/auth/otp/verify", json={"phone": "9876543210", "code": code})
        assert response.status_code == 200
        body = response.json()
        assert body["user"]["phone"] == "+919876543210"
        assert body["user"]["displayName"] == "User +919876543210"

        # Second login finds the same user
        code = client.post("/api/auth/otp/request", json={"phone": "9876543210"}).json()["code"]
        again = client.post("/api/auth/otp/verify", json={"phone": "9876543210", "code": code}).json()
        assert again["userId"] == body["userId"]
        assert mock_db["users"].count_documents({}) == 1

    def test_code_is_single_use(self, client, otp_echo):
        code = client.post("/api/auth/otp/request", json={"phone": "9876543210"}).json()["code"]
        client.post("/api/auth/otp/verify", json={"phone": "9876543210", "code": code})
        response = client.post("/api/auth/otp/verify", json={"phone": "9876543210", "code": code})
        assert response.json()["code"] == "auth/code-expired"

    def test_wrong_and_malformed_codes(self, client, otp_echo):
        code = client.post("/api/auth/otp/request", json={"phone": "9876543210"}).json()["code"]
        wrong = "000000" if code != "000000" else "111111"
        response = client.post("/api/auth/otp/verify", json={"phone": "9876543210", "code": wrong})
        assert response.json()["code"] == "auth/invalid-verification-code"
        response = client.post("/api/auth/otp/verify", json={"phone": "9876543210", "code": "12ab"})
        assert response.json()["detail"] == "Invalid verification code."

    def test_code_locked_after_wrong_guesses(self, client, otp_echo, monkeypatch):
        monkeypatch.setattr(config, "OTP_MAX_ATTEMPTS", 2)
        code = client.post("/api/auth/otp/request", json={"phone": "9876543210"}).json()["code"]
        wrong = "000000" if code != "000000" else "111111"

        first = client.post("/api/auth/otp/verify", json={"phone": "9876543210", "code": wrong})
        assert first.json()["code"] == "auth/invalid-verification-code"
        second = client.post("/api/auth/otp/verify", json={"phone": "9876543210", "code": wrong})
        assert second.status_code == 429
        assert second.json()["code"] == "auth/too-many-requests"

        # The right code no longer works once the request is locked
        third = client.post("/api/auth/otp/verify", json={"phone": "9876543210", "code": code})
        assert third.json()["code"] == "auth/code-expired"

    def test_expired_code(self, client, otp_echo, mock_db):
        code = client.post("/api/auth/otp/request", json={"phone": "9876543210"}).json()["code"]
        mock_db["otpRequests"].update_many({}, {"$set": {"expiresAt": utcnow() - timedelta(seconds=1)}})
        response = client.post("/api/auth/otp/verify", json={"phone": "9876543210", "code": code})
        assert response.status_code == 400
        assert response.json()["detail"] == "OTP has expired. Please request a new one."

    def test_rate_limit(self, client, monkeypatch):
        monkeypatch.setattr(config, "OTP_MAX_REQUESTS_PER_HOUR", 2)
        for _ in range(2):
            assert client.post("/api/auth/otp/request", json={"phone": "9876543210"}).status_code == 200
        response = client.post("/api/auth/otp/request", json={"phone": "9876543210"})
        assert response.status_code == 429
        assert response.json()["code"] == "auth/too-many-requests"


class TestAuthErrorMessages:

    def test_known_code(self):
        assert describe_auth_error("auth/captcha-check-failed") == "reCAPTCHA verification failed. Please try again."

    def test_unknown_code_uses_default(self):
        assert describe_auth_error("auth/unknown") == "Failed to send OTP. Please try again."
        assert AuthProviderError("auth/unknown", "Invalid OTP. Please try again.").message == (
            "Invalid OTP. Please try again."
        )


class TestAdminAuth:

    def test_bad_credentials(self, client):
        response = client.post("/api/admin/login", json={"username": "admin", "password": "nope"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"

    def test_user_token_is_not_admin(self, client, user_session):
        response = client.get("/api/admin/dashboard", headers={"X-Admin-Token": user_session["token"]})
        assert response.status_code == 403

    def test_admin_token_is_not_a_user(self, client, admin_headers):
        response = client.get("/api/me", headers={"X-Auth-Token": admin_headers["X-Admin-Token"]})
        assert response.status_code == 401
