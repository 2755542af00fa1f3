"""Authorization policy for repair requests.

One decision point for every repair action: given the actor, the action and
(where the rule needs it) the target request, answer allow or deny with a
denial kind. The policy is pure; it never reads the database or the HTTP
request, and callers translate a denial into a response.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from marina.constants import permissions as P
from marina.errors import DENIAL_ERRORS, NotOwner, RoleNotPermitted, WindowExpired
from marina.models.repair_request import RepairRequest
from marina.services.lifecycle import cancel_window_open, edit_window_open
from marina.utils.clock import utcnow


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role in (P.ROLE_EMPLOYEE, P.ROLE_ADMIN)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    kind: Optional[str] = None
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOWED = Decision(True)


def _deny(kind: str, reason: str) -> Decision:
    return Decision(False, kind, reason)


def _is_owner(actor: Actor, repair: Optional[RepairRequest]) -> bool:
    return repair is not None and repair.customer_id == actor.user_id


def _is_assignee(actor: Actor, repair: Optional[RepairRequest]) -> bool:
    return repair is not None and repair.assigned_technician_id is not None \
        and repair.assigned_technician_id == actor.user_id


def can_perform(actor: Actor, action: str, repair: Optional[RepairRequest] = None,
                now: Optional[datetime] = None, window: Optional[timedelta] = None) -> Decision:
    """Decide whether actor may perform action on repair.

    Owner-scoped rules check ownership before the time window, so a stranger
    is told NotOwner even when the window is also closed. A missing repair
    under an owner-scoped rule is reported as NotOwner as well.
    """
    if action not in P.ROLE_MATRIX:
        raise ValueError(f'unknown action {action!r}')
    rule = P.ROLE_MATRIX[action].get(actor.role, P.DENY)
    if rule == P.ALLOW or rule == P.SELF:
        return ALLOWED
    if rule == P.DENY:
        return _deny(RoleNotPermitted.kind, f'role {actor.role} may not {action}')
    if rule == P.OWNER_OR_ASSIGNEE:
        if _is_owner(actor, repair) or _is_assignee(actor, repair):
            return ALLOWED
        return _deny(NotOwner.kind, 'Not authorized to view this repair request')
    if not _is_owner(actor, repair):
        return _deny(NotOwner.kind, 'Not authorized to modify this repair request')
    now = now or utcnow()
    if rule == P.OWNER_IN_EDIT_WINDOW:
        if edit_window_open(repair, now):
            return ALLOWED
        return _deny(WindowExpired.kind, 'Repair request can no longer be edited')
    if rule == P.OWNER_IN_CANCEL_WINDOW:
        if cancel_window_open(repair, now, window):
            return ALLOWED
        return _deny(WindowExpired.kind, 'Too close to the scheduled appointment to cancel or delete')
    raise ValueError(f'unknown rule {rule!r}')


def assert_can_perform(actor: Actor, action: str, repair: Optional[RepairRequest] = None,
                       now: Optional[datetime] = None, window: Optional[timedelta] = None) -> None:
    decision = can_perform(actor, action, repair, now, window)
    if not decision.allowed:
        raise DENIAL_ERRORS[decision.kind](decision.reason)


__all__ = ['Actor', 'Decision', 'can_perform', 'assert_can_perform']
