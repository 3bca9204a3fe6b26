import os
import secrets
import time
from datetime import datetime, timezone
from typing import List, Optional

from itsdangerous import BadData, URLSafeTimedSerializer
from passlib.context import CryptContext
from pydantic import ValidationError

from db import USERS_TABLE, TableRepository
from exceptions import AuthenticationError, AuthorizationError
from logger import get_logger
from schemas import UserAccount, UserSession

logger = get_logger()

SECRET_KEY = os.getenv("SESSION_SECRET") or secrets.token_hex(32)
serializer = URLSafeTimedSerializer(SECRET_KEY, salt="dms-session")

SESSION_MAX_AGE_SECONDS = 60 * 60 * 8

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@donatehub.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "Admin@123")
ADMIN_SEED_ID = "u_admin_seed"


pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def start_session(user: UserAccount) -> UserSession:
    return UserSession(
        user_id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=user.role,
        login_at=_now(),
    )


def create_session_token(session: UserSession) -> str:
    """
    Store the session in a signed token.
    Example data:
        {"userId": "u_1718000000000", "role": "user", ...}
    """
    return serializer.dumps(session.model_dump(mode="json", by_alias=True))


def verify_session_token(
    token: str, max_age_seconds: int = SESSION_MAX_AGE_SECONDS
) -> Optional[UserSession]:
    """
    Returns the UserSession if the token is valid,
    or None if it is invalid/expired.
    """
    try:
        data = serializer.loads(token, max_age=max_age_seconds)
        return UserSession.model_validate(data)
    except (BadData, ValidationError):
        return None


def require_admin(session: Optional[UserSession]) -> UserSession:
    """Raise AuthorizationError unless the session carries the admin role."""
    if session is None:
        raise AuthorizationError("administrator session required: not logged in")
    if session.role != "admin":
        raise AuthorizationError("administrator session required")
    return session


class AuthService:
    """Accounts in the dms_users table, with register/login/admin seeding."""

    def __init__(self, tables: TableRepository) -> None:
        self.tables = tables

    def _load_users(self) -> List[UserAccount]:
        return [UserAccount.model_validate(r) for r in self.tables.load(USERS_TABLE)]

    def _save_users(self, users: List[UserAccount]) -> None:
        self.tables.replace(USERS_TABLE, [u.to_row() for u in users])

    def get_user_by_email(self, email: str) -> Optional[UserAccount]:
        email_lower = email.strip().lower()
        for user in self._load_users():
            if user.email == email_lower:
                return user
        return None

    def seed_admin(self) -> Optional[UserAccount]:
        """
        Ensure the default administrator exists.
        Skips if any admin account is already present.
        """
        users = self._load_users()
        if any(u.role == "admin" for u in users):
            return None
        admin = UserAccount(
            id=ADMIN_SEED_ID,
            full_name="System Administrator",
            email=ADMIN_EMAIL.strip().lower(),
            password_hash=hash_password(ADMIN_PASSWORD),
            role="admin",
            joined_at=_now(),
        )
        users.append(admin)
        self._save_users(users)
        logger.info("Seeded administrator account %s", admin.email)
        return admin

    def register(self, full_name: str, email: str, password: str) -> UserSession:
        """Create a donor account and return its new session."""
        users = self._load_users()
        email_lower = email.strip().lower()
        if any(u.email == email_lower for u in users):
            raise AuthenticationError("An account with this email already exists.")
        user = UserAccount(
            id=f"u_{int(time.time() * 1000)}_{secrets.token_hex(2)}",
            full_name=full_name.strip(),
            email=email_lower,
            password_hash=hash_password(password),
            role="user",
            joined_at=_now(),
        )
        users.append(user)
        self._save_users(users)
        logger.info("Registered account %s", user.id)
        return start_session(user)

    def login(self, email: str, password: str) -> UserSession:
        user = self.get_user_by_email(email)
        if user is None:
            raise AuthenticationError("No account found with this email.")
        if not verify_password(password, user.password_hash):
            raise AuthenticationError("Incorrect password.")
        return start_session(user)

    def promote_to_admin(self, email: str) -> bool:
        """
        Promote an account to admin. Only one administrator is permitted, so
        this refuses while any admin exists.
        """
        users = self._load_users()
        if any(u.role == "admin" for u in users):
            logger.warning("An administrator account already exists. Only one admin is permitted.")
            return False
        email_lower = (email or "").strip().lower()
        for user in users:
            if user.email == email_lower:
                user.role = "admin"
                self._save_users(users)
                logger.info("%s (%s) promoted to admin", user.full_name, user.email)
                return True
        logger.warning("No account found for: %s", email)
        return False
