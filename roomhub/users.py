"""User registration and credential checks."""
from __future__ import annotations

import logging
from typing import List, Optional

from . import auth
from .errors import Conflict, NotFound, PermissionDenied
from .models import RoleEnum
from .schemas import ActivityCreate, Principal, UserCreate, UserRead, UserRecord
from .store import EntityStore

logger = logging.getLogger(__name__)


def public(user: UserRecord) -> UserRead:
    return UserRead.model_validate(user.model_dump(exclude={"hashed_password"}))


class UserDirectory:
    def __init__(self, store: EntityStore) -> None:
        self.store = store

    def register(self, user_in: UserCreate, principal: Optional[Principal] = None) -> UserRead:
        """Create an account.

        The first account may claim ``admin``; after that only an admin caller
        can hand out the role, anyone else is registered as a regular user.
        """
        if self.store.get_user_by_username(user_in.username) or self.store.get_user_by_email(user_in.email):
            raise Conflict("Username or email already exists")

        role = user_in.role
        if role == RoleEnum.ADMIN and not (principal and principal.is_admin):
            admins_exist = any(u.role == RoleEnum.ADMIN for u in self.store.list_users())
            if admins_exist:
                role = RoleEnum.USER

        user = self.store.create_user(
            {
                "name": user_in.name,
                "username": user_in.username,
                "email": user_in.email,
                "role": role,
                "hashed_password": auth.get_password_hash(user_in.password),
            }
        )
        logger.info("Registered user %s (%s)", user.username, user.role.value)
        try:
            self.store.append_activity(
                ActivityCreate(
                    user_id=user.id,
                    type="user_registered",
                    description=f'User "{user.username}" registered',
                    metadata={"user_id": user.id},
                )
            )
        except Exception:
            logger.exception("Failed to record user_registered activity")
        return public(user)

    def authenticate(self, username: str, password: str) -> Optional[UserRecord]:
        user = self.store.get_user_by_username(username)
        if not user or not auth.verify_password(password, user.hashed_password):
            return None
        return user

    def get(self, user_id: int) -> UserRead:
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return public(user)

    def list_users(self, principal: Principal) -> List[UserRead]:
        if not principal.is_admin:
            raise PermissionDenied("Admins only")
        return [public(u) for u in self.store.list_users()]
