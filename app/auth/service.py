"""Authentication service - JWT handling, password hashing, user operations."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from bson import ObjectId
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError

from app.core.config import get_settings
from app.core.database import Database
from app.core.exceptions import BadRequestException, UnauthorizedException, NotFoundException
from app.auth.models import UserCreate, UserResponse, TokenResponse

settings = get_settings()
logger = logging.getLogger(__name__)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AuthService:
    """Handles authentication and user operations."""

    # ==================== Password & Token ====================

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password using bcrypt."""
        return pwd_context.hash(password)

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verify a password against its hash."""
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def create_access_token(user_id: str, email: str) -> str:
        """Create a JWT access token."""
        issued_at = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "email": email,
            "exp": issued_at + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
            "iat": issued_at,
        }
        return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> Optional[dict]:
        """Decode and validate a JWT token."""
        try:
            payload = jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM]
            )
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None
        if not payload.get("sub") or "email" not in payload:
            return None
        return payload

    # ==================== User Operations ====================

    @classmethod
    def _get_collection(cls):
        return Database.get_collection("users")

    @staticmethod
    def _to_response(user: dict) -> UserResponse:
        return UserResponse(
            id=str(user["_id"]),
            email=user["email"],
            name=user.get("name"),
            created_at=user["created_at"],
        )

    @classmethod
    async def register(cls, user_data: UserCreate) -> TokenResponse:
        """Register a new user."""
        users = cls._get_collection()
        email = user_data.email.lower()

        # Check if email exists
        if await users.find_one({"email": email}):
            raise BadRequestException("Email already registered")

        user_doc = {
            "email": email,
            "password_hash": cls.hash_password(user_data.password),
            "name": user_data.name,
            "created_at": _now(),
        }

        try:
            result = await users.insert_one(user_doc)
        except DuplicateKeyError:
            # Lost a race against a concurrent registration for the same email.
            raise BadRequestException("Email already registered")
        user_doc["_id"] = result.inserted_id
        logger.info(f"Registered user {result.inserted_id}")

        token = cls.create_access_token(str(result.inserted_id), email)
        return TokenResponse(access_token=token, user=cls._to_response(user_doc))

    @classmethod
    async def login(cls, email: str, password: str) -> TokenResponse:
        """Authenticate user and return token."""
        users = cls._get_collection()

        user = await users.find_one({"email": email.lower()})
        if not user or not user.get("password_hash"):
            raise UnauthorizedException("Invalid email or password")

        if not cls.verify_password(password, user["password_hash"]):
            raise UnauthorizedException("Invalid email or password")

        token = cls.create_access_token(str(user["_id"]), user["email"])
        return TokenResponse(access_token=token, user=cls._to_response(user))

    @classmethod
    async def get_user_by_id(cls, user_id: str) -> UserResponse:
        """Get user by ID."""
        if not ObjectId.is_valid(user_id):
            raise NotFoundException("User not found")

        user = await cls._get_collection().find_one({"_id": ObjectId(user_id)})
        if not user:
            raise NotFoundException("User not found")

        return cls._to_response(user)
