# Moderation authorization policy: which actor role may perform which action on which target role.
# Kept as data so the rules can be reviewed and unit-tested without the HTTP layer.
from __future__ import annotations

from typing import Dict, FrozenSet, Tuple

from .errors import ForbiddenError
from .models import ROLE_ADMIN, ROLE_MANAGER, ROLE_USER

# Actions on user accounts
BAN = "ban"
UNBAN = "unban"
DEACTIVATE = "deactivate"
ACTIVATE = "activate"
VERIFY = "verify"
UNVERIFY = "unverify"
DELETE = "delete"
CHANGE_ROLE = "change_role"

USER_ACTIONS = (BAN, UNBAN, DEACTIVATE, ACTIVATE, VERIFY, UNVERIFY, DELETE, CHANGE_ROLE)

# Actions that remove a privileged account from service; subject to last-holder checks
REMOVING_ACTIONS = frozenset({BAN, DEACTIVATE, DELETE})

# Actions an actor may never take against their own account through moderation
NO_SELF_ACTIONS = frozenset({BAN, DEACTIVATE, DELETE, CHANGE_ROLE})

_ACCOUNT_UPKEEP = frozenset({BAN, UNBAN, DEACTIVATE, ACTIVATE, VERIFY, UNVERIFY, DELETE})

# (actor_role, target_role) -> allowed actions
POLICY: Dict[Tuple[str, str], FrozenSet[str]] = {
    (ROLE_ADMIN, ROLE_USER): _ACCOUNT_UPKEEP,
    (ROLE_ADMIN, ROLE_ADMIN): frozenset(),
    (ROLE_ADMIN, ROLE_MANAGER): frozenset(),
    (ROLE_MANAGER, ROLE_USER): _ACCOUNT_UPKEEP | {CHANGE_ROLE},
    (ROLE_MANAGER, ROLE_ADMIN): _ACCOUNT_UPKEEP | {CHANGE_ROLE},
    (ROLE_MANAGER, ROLE_MANAGER): _ACCOUNT_UPKEEP | {CHANGE_ROLE},
}

# Actions that do not target an account; keyed by actor role only
STAFF_ACTIONS: Dict[str, FrozenSet[str]] = {
    ROLE_USER: frozenset(),
    ROLE_ADMIN: frozenset({"deactivate_item", "activate_item", "resolve_report", "delete_review", "list"}),
    ROLE_MANAGER: frozenset({"deactivate_item", "activate_item", "resolve_report", "delete_review", "list"}),
}


def is_allowed(actor_role: str, target_role: str, action: str) -> bool:
    return action in POLICY.get((actor_role, target_role), frozenset())


def is_staff(role: str) -> bool:
    return role in (ROLE_ADMIN, ROLE_MANAGER)


def authorize(actor_id: int, actor_role: str, target_id: int, target_role: str, action: str) -> None:
    """Raise ForbiddenError unless the policy table allows the action.

    Self-targeted removals and role changes are rejected before the table is consulted.
    """
    if action in NO_SELF_ACTIONS and actor_id == target_id:
        raise ForbiddenError(f"Cannot {action.replace('_', ' ')} your own account", code="self_action")
    if not is_allowed(actor_role, target_role, action):
        raise ForbiddenError(
            f"Role '{actor_role}' may not {action.replace('_', ' ')} a '{target_role}' account",
            code="policy_denied",
        )


def authorize_staff(actor_role: str, action: str) -> None:
    if action not in STAFF_ACTIONS.get(actor_role, frozenset()):
        raise ForbiddenError("Admin or manager role required", code="staff_only")
