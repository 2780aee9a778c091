# Unit tests for the moderation policy table.
from __future__ import annotations

import pytest

from campuscrate import policy
from campuscrate.errors import ForbiddenError


@pytest.mark.parametrize("action", policy.USER_ACTIONS)
def test_admins_have_no_powers_over_privileged_accounts(action):
    assert not policy.is_allowed("admin", "admin", action)
    assert not policy.is_allowed("admin", "manager", action)


def test_admins_cannot_change_roles():
    assert policy.is_allowed("admin", "user", policy.BAN)
    assert policy.is_allowed("admin", "user", policy.VERIFY)
    assert not policy.is_allowed("admin", "user", policy.CHANGE_ROLE)


@pytest.mark.parametrize("target", ["user", "admin", "manager"])
def test_managers_may_act_on_everyone(target):
    for action in policy.USER_ACTIONS:
        assert policy.is_allowed("manager", target, action)


@pytest.mark.parametrize("target", ["user", "admin", "manager"])
def test_users_have_no_moderation_powers(target):
    for action in policy.USER_ACTIONS:
        assert not policy.is_allowed("user", target, action)


def test_self_targeted_removal_is_refused_before_the_table():
    with pytest.raises(ForbiddenError) as exc:
        policy.authorize(7, "manager", 7, "manager", policy.DELETE)
    assert exc.value.code == "self_action"

    # Harmless self-actions fall through to the table
    policy.authorize(7, "manager", 7, "manager", policy.VERIFY)


def test_denial_code():
    with pytest.raises(ForbiddenError) as exc:
        policy.authorize(1, "admin", 2, "manager", policy.BAN)
    assert exc.value.code == "policy_denied"
    assert exc.value.status_code == 403


def test_staff_actions():
    policy.authorize_staff("admin", "delete_review")
    policy.authorize_staff("manager", "resolve_report")
    with pytest.raises(ForbiddenError) as exc:
        policy.authorize_staff("user", "list")
    assert exc.value.code == "staff_only"
    assert policy.is_staff("manager") and not policy.is_staff("user")
