"""
Identity store: registration, login and user moderation.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from database import USERS, create_document, serialize_doc, to_object_id
from errors import AuthError, ConflictError, NotFoundError
from schemas import LoginPayload, RegisterPayload, User
from security import get_password_hash, token_for_user, verify_password

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
EMAIL_EXISTS = "Email already registered"


def public_profile(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "role": user.get("role", config.ROLE_VOLUNTEER),
        "createdAt": user.get("createdAt"),
    }


class IdentityStore:
    def __init__(self, db: Database):
        self.db = db
        self.users = db[USERS]

    def register(self, payload: RegisterPayload) -> Tuple[str, Dict[str, Any]]:
        user = User(
            name=payload.name,
            email=payload.email,
            password=get_password_hash(payload.password),
            phone=payload.phone,
            role=payload.role,
        )
        try:
            user_id = create_document(self.db, USERS, user)
        except DuplicateKeyError:
            raise ConflictError(EMAIL_EXISTS)
        doc = self.users.find_one({"_id": user_id})
        logger.info(f"User registered: {user_id} ({payload.role})")
        return token_for_user(doc), public_profile(doc)

    def login(self, payload: LoginPayload) -> Tuple[str, Dict[str, Any]]:
        user = self.users.find_one({"email": payload.email})
        if not user or not verify_password(payload.password, user.get("password", "")):
            logger.warning(f"Failed login for {payload.email}")
            raise AuthError(INVALID_CREDENTIALS, code="INVALID_CREDENTIALS")
        return token_for_user(user), public_profile(user)

    def get(self, user_id: str) -> Dict[str, Any]:
        user = self.users.find_one({"_id": to_object_id(user_id, "User not found")})
        if user is None:
            raise NotFoundError("User not found", resource_id=user_id)
        return user

    def get_profile(self, user_id: str) -> Dict[str, Any]:
        return public_profile(self.get(user_id))

    def list_users(self, role: Optional[str] = None) -> List[Dict[str, Any]]:
        filt = {"role": role} if role else {}
        docs = self.users.find(filt, {"password": 0}).sort("createdAt", -1)
        return [serialize_doc(d) for d in docs]

    def delete_user(self, user_id: str) -> None:
        result = self.users.delete_one({"_id": to_object_id(user_id, "User not found")})
        if result.deleted_count == 0:
            raise NotFoundError("User not found", resource_id=user_id)
        logger.info(f"User deleted: {user_id}")
