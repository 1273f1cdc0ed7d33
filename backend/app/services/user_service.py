from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from app.lib.api_client import supabase_admin
from app.models.journal import UserRole
from app.models.schemas import User, UserCreate, UserUpdate

logger = logging.getLogger("journalportal.users")

_USER_COLUMNS = "id, email, username, first_name, last_name, role, department, created_at"


class UserNotFound(Exception):
    pass


class UserManagementService:
    """
    Administrative user management (super_admin only).

    - account creation: Supabase Auth user + users row
    - profile edits, password resets, listing by role, deletion
    Role changes are not a workflow concern and are not offered here.
    """

    def __init__(self, client: Any = None) -> None:
        self.client = client if client is not None else supabase_admin

    def list_users(self, role: Optional[UserRole] = None) -> list[User]:
        q = self.client.table("users").select(_USER_COLUMNS)
        if role is not None:
            q = q.eq("role", role.value)
        resp = q.order("created_at", desc=True).execute()
        return [User.model_validate(r) for r in (getattr(resp, "data", None) or [])]

    def get_user(self, user_id: int) -> User:
        resp = self.client.table("users").select(_USER_COLUMNS).eq("id", user_id).limit(1).execute()
        rows = getattr(resp, "data", None) or []
        if not rows:
            raise UserNotFound(f"User {user_id} not found")
        return User.model_validate(rows[0])

    def create_user(self, req: UserCreate, *, created_by: int) -> User:
        """
        Create the auth account first, then the users row; roll the auth account back if the
        row insert fails so no orphan login exists.
        """
        auth_resp = self.client.auth.admin.create_user(
            {
                "email": req.email,
                "password": req.password,
                "email_confirm": True,
                "user_metadata": {"username": req.username},
            }
        )
        auth_user = getattr(auth_resp, "user", None)
        if auth_user is None:
            raise RuntimeError("Auth provider returned no user")

        row = {
            "auth_user_id": str(auth_user.id),
            "username": req.username,
            "email": req.email,
            "first_name": req.first_name,
            "last_name": req.last_name,
            "role": req.role.value,
            "department": req.department,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            resp = self.client.table("users").insert(row).execute()
            rows = getattr(resp, "data", None) or []
            if not rows:
                raise RuntimeError("users insert returned no row")
        except Exception:
            try:
                self.client.auth.admin.delete_user(str(auth_user.id))
            except Exception as cleanup_error:
                logger.error("Orphan auth account %s left behind: %s", auth_user.id, cleanup_error)
            raise

        logger.info("User %s (%s) created by %s", rows[0].get("id"), req.role.value, created_by)
        return User.model_validate(rows[0])

    def update_user(self, user_id: int, changes: UserUpdate, *, updated_by: int) -> User:
        values = changes.model_dump(exclude_none=True)
        current = self.get_user(user_id)
        if not values:
            return current
        resp = self.client.table("users").update(values).eq("id", user_id).execute()
        rows = getattr(resp, "data", None) or []
        if not rows:
            raise UserNotFound(f"User {user_id} not found")
        logger.info("User %s updated by %s (%s)", user_id, updated_by, ", ".join(sorted(values)))
        return User.model_validate(rows[0])

    def reset_password(self, user_id: int, new_password: str, *, reset_by: int) -> None:
        """
        Set a new password on the linked Supabase Auth account.
        """
        resp = self.client.table("users").select("id, auth_user_id").eq("id", user_id).limit(1).execute()
        rows = getattr(resp, "data", None) or []
        if not rows:
            raise UserNotFound(f"User {user_id} not found")
        auth_id = rows[0].get("auth_user_id")
        if not auth_id:
            raise UserNotFound(f"User {user_id} has no login account")
        self.client.auth.admin.update_user_by_id(str(auth_id), {"password": new_password})
        logger.info("Password of user %s reset by %s", user_id, reset_by)

    def delete_user(self, user_id: int, *, deleted_by: int) -> None:
        user = self.get_user(user_id)
        if user.role == UserRole.SUPER_ADMIN:
            raise PermissionError("Super admin accounts cannot be deleted")
        if user.id == deleted_by:
            raise PermissionError("You cannot delete your own account")
        self.client.table("users").delete().eq("id", user_id).execute()
        logger.info("User %s deleted by %s", user_id, deleted_by)


def get_user_management_service() -> UserManagementService:
    return UserManagementService()
