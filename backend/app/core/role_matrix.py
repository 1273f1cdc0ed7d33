from __future__ import annotations

from typing import Iterable

from app.models.journal import UserRole

# 中文注释：
# - 这里只集中定义“非工作流”动作（列表范围、审稿人名单、用户管理、删除）。
# - 稿件状态流转的授权统一由 app.services.workflow.authorize 判定，不在此重复。
# - super_admin 的通配符覆盖 journal:delete 与 user:manage。

ROLE_ACTIONS: dict[str, set[str]] = {
    UserRole.PUBLISHER.value: {"journal:view_own"},
    UserRole.REVIEWER.value: {"journal:view_assigned"},
    UserRole.ADMIN.value: {"journal:view_all", "journal:list_reviewers"},
    UserRole.SUPER_ADMIN.value: {"*"},
}


def normalize_roles(roles: Iterable[str | None] | str | None) -> set[str]:
    """
    Lower-case, strip and drop unknown/blank roles.
    """
    if isinstance(roles, str):
        roles = [roles]
    out: set[str] = set()
    for raw in roles or []:
        role = str(raw or "").strip().lower()
        if role in ROLE_ACTIONS:
            out.add(role)
    return out


def can_perform_action(*, action: str, roles: Iterable[str | None] | str | None) -> bool:
    """
    super_admin holds the wildcard; other roles need an explicit entry.
    """
    for role in normalize_roles(roles):
        allowed = ROLE_ACTIONS.get(role) or set()
        if "*" in allowed or action in allowed:
            return True
    return False


def list_allowed_actions(roles: Iterable[str | None] | str | None) -> set[str]:
    """
    Capability list for the frontend.
    """
    normalized = normalize_roles(roles)
    if UserRole.SUPER_ADMIN.value in normalized:
        return {"*"}

    actions: set[str] = set()
    for role in normalized:
        actions.update(ROLE_ACTIONS.get(role) or set())
    return actions
