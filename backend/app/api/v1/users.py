import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Query, status
from pydantic import ValidationError as PydanticValidationError

from app.core.role_matrix import can_perform_action
from app.core.roles import get_current_actor, require_user_manager
from app.models.journal import UserRole, normalize_role
from app.models.schemas import PasswordReset, UserCreate, UserUpdate
from app.services.user_service import UserManagementService, UserNotFound, get_user_management_service
from app.services.workflow import Actor

logger = logging.getLogger("journalportal.api.users")

router = APIRouter(prefix="/users", tags=["User Management"])


@router.get("")
async def list_users(
    role: Optional[str] = Query(None),
    actor: Actor = Depends(require_user_manager),
    svc: UserManagementService = Depends(get_user_management_service),
):
    role_filter = None
    if role:
        role_filter = normalize_role(role)
        if role_filter is None:
            raise HTTPException(status_code=422, detail=f"Unknown role: {role}")
    try:
        users = svc.list_users(UserRole(role_filter) if role_filter else None)
    except Exception as e:
        logger.error("list users failed: %s", e)
        raise HTTPException(status_code=502, detail="User directory unavailable")
    return {"users": [u.model_dump(mode="json") for u in users]}


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    actor: Actor = Depends(require_user_manager),
    svc: UserManagementService = Depends(get_user_management_service),
):
    try:
        user = svc.get_user(user_id)
    except UserNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("get user %s failed: %s", user_id, e)
        raise HTTPException(status_code=502, detail="User directory unavailable")
    return {"user": user.model_dump(mode="json")}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    req: UserCreate,
    actor: Actor = Depends(require_user_manager),
    svc: UserManagementService = Depends(get_user_management_service),
):
    """
    Create a login plus its users row. Publishers normally self-register; this is for
    reviewers and admins.
    """
    try:
        user = svc.create_user(req, created_by=actor.id)
    except Exception as e:
        logger.error("create user %s failed: %s", req.email, e)
        raise HTTPException(status_code=502, detail="Failed to create user")
    return {"user": user.model_dump(mode="json"), "message": "User created successfully"}


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    first_name: Optional[str] = Form(None),
    last_name: Optional[str] = Form(None),
    department: Optional[str] = Form(None),
    actor: Actor = Depends(get_current_actor),
    svc: UserManagementService = Depends(get_user_management_service),
):
    """
    Profile edit (multipart form, as the profile page sends it). Users may edit their own
    profile; anyone else's needs user management rights.
    """
    if actor.id != user_id and not can_perform_action(action="user:manage", roles=[actor.role.value]):
        raise HTTPException(status_code=403, detail="You may only edit your own profile")
    try:
        changes = UserUpdate(first_name=first_name, last_name=last_name, department=department)
    except PydanticValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid profile: {e}")

    try:
        user = svc.update_user(user_id, changes, updated_by=actor.id)
    except UserNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("update user %s failed: %s", user_id, e)
        raise HTTPException(status_code=502, detail="Failed to update user")
    return {"user": user.model_dump(mode="json"), "message": "User updated successfully"}


@router.post("/{user_id}/reset-password")
async def reset_password(
    user_id: int,
    req: PasswordReset,
    actor: Actor = Depends(require_user_manager),
    svc: UserManagementService = Depends(get_user_management_service),
):
    try:
        svc.reset_password(user_id, req.new_password, reset_by=actor.id)
    except UserNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("password reset for user %s failed: %s", user_id, e)
        raise HTTPException(status_code=502, detail="Failed to reset password")
    return {"message": "Password reset successfully"}


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    actor: Actor = Depends(require_user_manager),
    svc: UserManagementService = Depends(get_user_management_service),
):
    try:
        svc.delete_user(user_id, deleted_by=actor.id)
    except UserNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except Exception as e:
        logger.error("delete user %s failed: %s", user_id, e)
        raise HTTPException(status_code=502, detail="Failed to delete user")
    return {"message": "User deleted successfully"}
