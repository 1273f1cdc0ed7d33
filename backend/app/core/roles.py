import logging
from typing import Callable

from fastapi import Depends, HTTPException

from app.core.auth_utils import get_current_user
from app.core.config import parse_admin_emails
from app.core.role_matrix import can_perform_action
from app.lib.api_client import supabase_admin
from app.models.journal import UserRole, normalize_role
from app.services.workflow import Actor

logger = logging.getLogger("journalportal.roles")


def _is_admin_email(email: str | None) -> bool:
    if not email:
        return False
    return email.strip().lower() in parse_admin_emails()


def _default_role(email: str | None) -> UserRole:
    return UserRole.SUPER_ADMIN if _is_admin_email(email) else UserRole.PUBLISHER


async def get_current_actor(current_user: dict = Depends(get_current_user)) -> Actor:
    """
    Resolve the authenticated account into a workflow Actor (numeric id + single role).

    中文注释:
    1) users 表以 auth_user_id 关联 Supabase Auth 账号；id 为业务侧整数主键。
    2) 首次登录自动创建 users 记录，默认 role=publisher；ADMIN_EMAILS 中的账号为 super_admin（演示用）。
    3) 查询失败必须拒绝访问：角色未知时不能放行任何工作流动作。
    """
    auth_id = current_user["id"]
    email = current_user.get("email")

    try:
        resp = (
            supabase_admin.table("users")
            .select("id, role, email")
            .eq("auth_user_id", auth_id)
            .limit(1)
            .execute()
        )
        row = (getattr(resp, "data", None) or [None])[0]
        if not row:
            inserted = (
                supabase_admin.table("users")
                .insert(
                    {
                        "auth_user_id": auth_id,
                        "email": email,
                        "role": _default_role(email).value,
                    }
                )
                .execute()
            )
            row = (getattr(inserted, "data", None) or [None])[0]
    except Exception as e:
        logger.error("Failed to resolve user account for %s: %s", auth_id, e)
        raise HTTPException(status_code=503, detail="User directory unavailable") from e

    if not row:
        raise HTTPException(status_code=403, detail="Account is not provisioned")

    role = normalize_role(row.get("role"))
    if role is None:
        logger.warning("User %s has unknown role %r", row.get("id"), row.get("role"))
        raise HTTPException(status_code=403, detail="Account role is not recognised")
    return Actor(id=int(row["id"]), role=UserRole(role))


def require_action(action: str) -> Callable[..., Actor]:
    """
    Dependency factory: the actor's role must hold `action` in the role matrix.
    """

    async def _dep(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not can_perform_action(action=action, roles=[actor.role.value]):
            raise HTTPException(status_code=403, detail="Insufficient role")
        return actor

    return _dep


require_reviewer_directory = require_action("journal:list_reviewers")
require_user_manager = require_action("user:manage")
