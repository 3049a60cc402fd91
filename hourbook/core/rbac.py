"""Authorization policy for timesheets.

``TRANSITIONS`` is the single table of who may move a timesheet from which
statuses; routes call ``authorize_transition`` instead of checking roles
inline.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import HTTPException, status

from hourbook.schemas.common import Role, TimesheetStatus


OWNER = "owner"
ADMIN = Role.admin.value
MANAGER = Role.manager.value


def is_admin(user: dict) -> bool:
    return str(user.get("role", "")) == ADMIN or bool(user.get("is_admin"))


def is_manager(user: dict) -> bool:
    return str(user.get("role", "")) == MANAGER


def is_admin_like(user: dict) -> bool:
    return is_admin(user) or is_manager(user)


def is_owner(user: dict, timesheet: dict) -> bool:
    return str(timesheet.get("user_id", "")) == str(user.get("id", ""))


def actor_roles(user: dict, timesheet: Optional[dict] = None) -> set[str]:
    roles: set[str] = set()
    if timesheet is not None and is_owner(user, timesheet):
        roles.add(OWNER)
    if is_admin(user):
        roles.add(ADMIN)
    if is_manager(user):
        roles.add(MANAGER)
    return roles


def require_roles(user: dict, allowed: Iterable[str]) -> None:
    if not actor_roles(user) & set(allowed):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def can_view_user(user: dict, user_id: Optional[str]) -> bool:
    if not user_id or user_id == str(user.get("id")):
        return True
    return is_admin_like(user)


def require_timesheet_access(user: dict, timesheet: dict) -> None:
    if not actor_roles(user, timesheet) & {OWNER, ADMIN, MANAGER}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def require_entry_write(user: dict, timesheet: dict) -> None:
    """Entries may be changed by owner/admin/manager, and only admins touch a locked sheet."""
    require_timesheet_access(user, timesheet)
    if timesheet.get("is_locked") and not is_admin(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Timesheet is locked")


@dataclass(frozen=True)
class Transition:
    actors: frozenset
    forbidden_detail: str
    from_statuses: Optional[frozenset] = None
    invalid_status_detail: str = ""
    blocked_when_locked: bool = False


_ALL_BUT_APPROVED = frozenset({TimesheetStatus.unsubmitted.value, TimesheetStatus.submitted.value, TimesheetStatus.rejected.value})

TRANSITIONS: dict[str, Transition] = {
    "submit": Transition(
        actors=frozenset({OWNER, ADMIN}),
        forbidden_detail="Only owner can submit",
        # Resubmitting while pending just refreshes submitted_at
        from_statuses=_ALL_BUT_APPROVED,
        invalid_status_detail="Cannot submit - invalid status",
    ),
    "approve": Transition(
        actors=frozenset({ADMIN, MANAGER}),
        forbidden_detail="Only admin/manager can approve",
        from_statuses=frozenset({TimesheetStatus.submitted.value}),
        invalid_status_detail="Timesheet not submitted",
    ),
    "reject": Transition(
        actors=frozenset({ADMIN, MANAGER}),
        forbidden_detail="Only admin/manager can reject",
        from_statuses=frozenset({TimesheetStatus.submitted.value}),
        invalid_status_detail="Timesheet not submitted",
    ),
    "unapprove": Transition(
        actors=frozenset({ADMIN}),
        forbidden_detail="Only admin can unapprove",
        from_statuses=frozenset({TimesheetStatus.approved.value}),
        invalid_status_detail="Timesheet not approved",
    ),
    "recalculate": Transition(
        actors=frozenset({OWNER, ADMIN, MANAGER}),
        forbidden_detail="Forbidden",
    ),
    "delete": Transition(
        actors=frozenset({ADMIN}),
        forbidden_detail="Only admin can delete",
        from_statuses=_ALL_BUT_APPROVED,
        invalid_status_detail="Cannot delete approved timesheet",
        blocked_when_locked=True,
    ),
}


def authorize_transition(action: str, user: dict, timesheet: dict) -> Transition:
    rule = TRANSITIONS.get(action)
    if rule is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")
    if not actor_roles(user, timesheet) & rule.actors:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=rule.forbidden_detail)
    current = str(timesheet.get("status", TimesheetStatus.unsubmitted.value))
    if rule.from_statuses is not None and current not in rule.from_statuses:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=rule.invalid_status_detail)
    if rule.blocked_when_locked and timesheet.get("is_locked"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=rule.invalid_status_detail)
    return rule
