"""Staff sign-in: credential check against the identity store, then profile resolution.

An identity that authenticates but has no profile document under its uid is
an error state: the session is signed out and the user sees an error.
"""
from dataclasses import dataclass
from typing import Optional
import logging

from pymongo.errors import PyMongoError

from auth import verify_password
from database import database, IDENTITIES, USERS
from models import UserProfile
from utils import messages

logger = logging.getLogger(__name__)


class IdentityError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


async def authenticate(email: str, password: str) -> str:
    """Return the identity uid for valid credentials."""
    db = database.get_db()
    try:
        identity = await db[IDENTITIES].find_one({"email": email.strip().lower()}, {"_id": 0})
    except PyMongoError as e:
        logger.error(f"Identity lookup failed: {e}")
        raise IdentityError(messages.LOGIN_FAILED)

    if not identity or not identity.get("password_hash") or not verify_password(
        password, identity["password_hash"]
    ):
        logger.warning(f"Failed sign-in for {email}")
        raise IdentityError(messages.INVALID_CREDENTIALS)
    return identity["uid"]


async def fetch_user_profile(uid: str) -> Optional[UserProfile]:
    db = database.get_db()
    try:
        doc = await db[USERS].find_one({"id": uid}, {"_id": 0})
    except PyMongoError as e:
        logger.error(f"Error fetching user profile: {e}")
        return None
    if not doc:
        logger.error(f"No user profile found for UID: {uid}")
        return None
    return UserProfile(**doc)


@dataclass
class AuthSession:
    """Sign-in state of one client session."""
    user: Optional[UserProfile] = None
    uid: Optional[str] = None
    is_authenticated: bool = False
    is_loading: bool = False
    error: Optional[str] = None

    def sign_out(self, error: Optional[str] = None):
        self.user = None
        self.uid = None
        self.is_authenticated = False
        self.is_loading = False
        self.error = error

    async def login(self, email: str, password: str) -> bool:
        self.is_loading = True
        self.error = None
        try:
            uid = await authenticate(email, password)
        except IdentityError as e:
            self.sign_out(e.message)
            return False

        profile = await fetch_user_profile(uid)
        if profile is None:
            # Signed in with no profile: force sign-out
            self.sign_out(messages.PROFILE_LOAD_FAILED)
            return False

        self.user = profile
        self.uid = uid
        self.is_authenticated = True
        self.is_loading = False
        return True

    def logout(self):
        self.sign_out()
