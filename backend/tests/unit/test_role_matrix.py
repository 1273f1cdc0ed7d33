from app.core.role_matrix import ROLE_ACTIONS, can_perform_action, list_allowed_actions, normalize_roles


def test_normalize_roles_drops_unknown():
    assert normalize_roles([" Reviewer ", "editor", None, ""]) == {"reviewer"}
    assert normalize_roles("ADMIN") == {"admin"}
    assert normalize_roles(None) == set()


def test_listing_scope_per_role():
    assert can_perform_action(action="journal:view_all", roles=["admin"]) is True
    assert can_perform_action(action="journal:view_all", roles=["reviewer"]) is False
    assert can_perform_action(action="journal:view_assigned", roles="reviewer") is True
    assert can_perform_action(action="journal:view_own", roles=["publisher"]) is True
    assert can_perform_action(action="journal:view_own", roles=["reviewer"]) is False


def test_reviewer_directory_is_staff_only():
    assert can_perform_action(action="journal:list_reviewers", roles=["admin"]) is True
    assert can_perform_action(action="journal:list_reviewers", roles=["super_admin"]) is True
    assert can_perform_action(action="journal:list_reviewers", roles=["reviewer", "publisher"]) is False


def test_delete_and_user_management_are_super_admin_only():
    for action in ("journal:delete", "user:manage"):
        assert can_perform_action(action=action, roles=["super_admin"]) is True
        for role in ("admin", "reviewer", "publisher"):
            assert can_perform_action(action=action, roles=[role]) is False


def test_every_role_has_an_entry():
    assert set(ROLE_ACTIONS) == {"publisher", "reviewer", "admin", "super_admin"}


def test_list_allowed_actions():
    assert list_allowed_actions(["super_admin", "admin"]) == {"*"}
    assert list_allowed_actions(["admin"]) == {"journal:view_all", "journal:list_reviewers"}
    assert list_allowed_actions(["unknown"]) == set()
