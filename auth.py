"""
Identity: customer sign-up/sign-in/sign-out, phone OTP login, admin login,
and the FastAPI dependencies guarding customer and admin routes.

Sessions are opaque tokens stored in the "sessions" collection. Every user has
a profile document in "users" ({uid, email, displayName, phone, role}).
"""
import re
import secrets
from datetime import timedelta
from typing import Callable, Dict, List, Optional
from uuid import uuid4

import bcrypt
from fastapi import Header

import config
from database import (
    create_document,
    get_collection,
    get_document,
    utcnow,
)
from errors import (
    VERIFY_OTP_FAILED,
    AuthenticationError,
    AuthorizationError,
    AuthProviderError,
)
from logger import get_logger
from schemas import UserProfile

logger = get_logger(__name__)

USERS = "users"
SESSIONS = "sessions"
OTP_REQUESTS = "otpRequests"

MIN_PASSWORD_LENGTH = 6
_OTP_RE = re.compile(r"^\d{6}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# -------------------------
# Auth state observers
# -------------------------

AuthCallback = Callable[[Optional[UserProfile]], None]


class AuthStateObservers:
    """Callbacks fired with the signed-in profile, or None on sign-out."""

    def __init__(self):
        self._callbacks: List[AuthCallback] = []

    def subscribe(self, callback: AuthCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def notify(self, user: Optional[UserProfile]):
        for callback in list(self._callbacks):
            try:
                callback(user)
            except Exception:
                logger.exception("Auth state observer failed")

    def clear(self):
        self._callbacks.clear()


auth_state = AuthStateObservers()


def on_auth_state_change(callback: AuthCallback) -> Callable[[], None]:
    """Register `callback`; returns a function that unregisters it."""
    return auth_state.subscribe(callback)


# -------------------------
# Helpers
# -------------------------

def _hash(secret: str) -> str:
    return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def _check(secret: str, hashed: str) -> bool:
    return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("utf-8"))


def _to_profile(doc: dict) -> UserProfile:
    return UserProfile(
        uid=str(doc["_id"]),
        email=doc.get("email") or "",
        display_name=doc.get("displayName") or "",
        phone=doc.get("phone"),
        role=doc.get("role", "user"),
    )


def _create_session(user_id: str, role: str, ttl_hours: int) -> Dict:
    token = uuid4().hex
    now = utcnow()
    expires_at = now + timedelta(hours=ttl_hours)
    get_collection(SESSIONS).insert_one({
        "token": token,
        "userId": user_id,
        "role": role,
        "createdAt": now,
        "expiresAt": expires_at,
    })
    return {"token": token, "userId": user_id, "role": role, "expiresAt": expires_at.isoformat()}


def _live_session(token: Optional[str]) -> Optional[dict]:
    if not token:
        return None
    sessions = get_collection(SESSIONS)
    session = sessions.find_one({"token": token})
    if not session:
        return None
    if session.get("expiresAt") and session["expiresAt"] < utcnow():
        sessions.delete_one({"_id": session["_id"]})
        return None
    return session


# -------------------------
# Email + password
# -------------------------

def sign_up(email: str, password: str, display_name: Optional[str] = None) -> UserProfile:
    email = email.strip().lower()
    if not _EMAIL_RE.match(email):
        raise AuthProviderError("auth/invalid-email")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise AuthProviderError("auth/weak-password")
    users = get_collection(USERS)
    if users.find_one({"email": email}):
        raise AuthProviderError("auth/email-already-in-use")

    user_id = create_document(USERS, {
        "email": email,
        "displayName": (display_name or "").strip(),
        "phone": None,
        "role": "user",
        "passwordHash": _hash(password),
    })
    logger.info(f"User {user_id} signed up")
    return get_user_profile(user_id)


def sign_in(email: str, password: str) -> Dict:
    user = get_collection(USERS).find_one({"email": email.strip().lower()})
    if not user or not user.get("passwordHash") or not _check(password, user["passwordHash"]):
        raise AuthProviderError("auth/invalid-credential")
    return _start_session(user)


def _start_session(user: dict) -> Dict:
    profile = _to_profile(user)
    session = _create_session(profile.uid, profile.role, config.USER_SESSION_TTL_HOURS)
    session["user"] = profile.model_dump(by_alias=True)
    logger.info(f"User {profile.uid} signed in")
    auth_state.notify(profile)
    return session


def sign_out(token: Optional[str]) -> bool:
    """End the session behind `token`. Returns False when there was none."""
    if not token:
        return False
    session = get_collection(SESSIONS).find_one_and_delete({"token": token})
    if not session:
        return False
    logger.info(f"User {session.get('userId')} signed out")
    if session.get("role") == "user":
        auth_state.notify(None)
    return True


def get_user_profile(uid: str) -> Optional[UserProfile]:
    doc = get_document(USERS, uid)
    return _to_profile(doc) if doc else None


def current_user(token: Optional[str]) -> Optional[UserProfile]:
    session = _live_session(token)
    if not session or session.get("role") != "user":
        return None
    return get_user_profile(session["userId"])


# -------------------------
# Phone OTP
# -------------------------

def format_phone_number(phone: str) -> str:
    """Normalize an Indian mobile number to +91XXXXXXXXXX; anything else is returned as given."""
    cleaned = re.sub(r"\D", "", phone or "")
    if len(cleaned) == 10:
        return f"+91{cleaned}"
    if len(cleaned) in (12, 13) and cleaned.startswith("91"):
        return f"+{cleaned}"
    return phone


def _valid_phone(formatted: str) -> bool:
    return bool(re.fullmatch(r"\+91\d{10,11}", formatted or ""))


def request_otp(phone: str) -> Dict:
    """Issue a 6-digit verification code for `phone`."""
    formatted = format_phone_number(phone)
    if not _valid_phone(formatted):
        raise AuthProviderError("auth/invalid-phone-number")

    otp_requests = get_collection(OTP_REQUESTS)
    now = utcnow()
    recent = otp_requests.count_documents({"phone": formatted, "createdAt": {"$gte": now - timedelta(hours=1)}})
    if recent >= config.OTP_MAX_REQUESTS_PER_HOUR:
        raise AuthProviderError("auth/too-many-requests")

    code = f"{secrets.randbelow(1000000):06d}"
    expires_at = now + timedelta(minutes=config.OTP_EXPIRY_MINUTES)
    otp_requests.insert_one({
        "phone": formatted,
        "codeHash": _hash(code),
        "used": False,
        "createdAt": now,
        "expiresAt": expires_at,
    })
    logger.info(f"OTP issued for phone ending {formatted[-4:]}")

    response = {"phone": formatted, "expiresAt": expires_at.isoformat()}
    if config.OTP_ECHO:
        response["code"] = code
    return response


def verify_otp(phone: str, code: str) -> Dict:
    """Check the latest code for `phone`; on success sign the user in, creating them if new."""
    formatted = format_phone_number(phone)
    if not code or not _OTP_RE.match(code):
        raise AuthProviderError("auth/invalid-verification-code", VERIFY_OTP_FAILED)

    otp_requests = get_collection(OTP_REQUESTS)
    pending = otp_requests.find_one({"phone": formatted, "used": False}, sort=[("createdAt", -1)])
    if not pending or pending["expiresAt"] < utcnow():
        raise AuthProviderError("auth/code-expired", VERIFY_OTP_FAILED)
    if not _check(code, pending["codeHash"]):
        attempts = pending.get("attempts", 0) + 1
        if attempts >= config.OTP_MAX_ATTEMPTS:
            otp_requests.update_one({"_id": pending["_id"]}, {"$set": {"attempts": attempts, "used": True}})
            logger.warning(f"OTP for phone ending {formatted[-4:]} locked after {attempts} wrong codes")
            raise AuthProviderError("auth/too-many-requests", VERIFY_OTP_FAILED)
        otp_requests.update_one({"_id": pending["_id"]}, {"$set": {"attempts": attempts}})
        raise AuthProviderError("auth/invalid-verification-code", VERIFY_OTP_FAILED)
    otp_requests.update_one({"_id": pending["_id"]}, {"$set": {"used": True}})

    users = get_collection(USERS)
    user = users.find_one({"phone": formatted})
    if not user:
        user_id = create_document(USERS, {
            "email": "",
            "displayName": f"User {formatted}",
            "phone": formatted,
            "role": "user",
        })
        logger.info(f"User {user_id} created from phone login")
        user = get_document(USERS, user_id)
    return _start_session(user)


# -------------------------
# Admin
# -------------------------

def admin_login(username: str, password: str) -> Dict:
    if username != config.ADMIN_USERNAME or password != config.ADMIN_PASSWORD:
        raise AuthenticationError("Invalid credentials")
    session = _create_session("admin", "admin", config.ADMIN_SESSION_TTL_HOURS)
    logger.info("Admin signed in")
    return session


# -------------------------
# FastAPI dependencies
# -------------------------

def optional_user(x_auth_token: Optional[str] = Header(None)) -> Optional[UserProfile]:
    return current_user(x_auth_token)


def require_user(x_auth_token: Optional[str] = Header(None)) -> UserProfile:
    if not x_auth_token:
        raise AuthenticationError("Missing auth token")
    user = current_user(x_auth_token)
    if not user:
        raise AuthenticationError("Invalid or expired session")
    return user


def require_admin(x_admin_token: Optional[str] = Header(None)) -> bool:
    if not x_admin_token:
        raise AuthenticationError("Missing admin token")
    session = _live_session(x_admin_token)
    if not session:
        raise AuthenticationError("Invalid token")
    if session.get("role") != "admin":
        raise AuthorizationError("Admin access required")
    return True
