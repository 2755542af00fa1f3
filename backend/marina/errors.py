"""Domain error taxonomy for the repair service.

Services and the authorization policy raise these; only the application error
handler turns them into HTTP responses.
"""
from __future__ import annotations
from typing import Any, Dict, Optional


class RepairServiceError(Exception):
    kind = 'RepairServiceError'
    status = 400
    default_message = 'Request could not be processed'

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(RepairServiceError):
    kind = 'ValidationError'
    default_message = 'Invalid input'


class NotFound(RepairServiceError):
    kind = 'NotFound'
    status = 404
    default_message = 'Boat repair request not found'


class RoleNotPermitted(RepairServiceError):
    kind = 'RoleNotPermitted'
    status = 403
    default_message = 'Not authorized to perform this action'


class NotOwner(RepairServiceError):
    kind = 'NotOwner'
    status = 403
    default_message = 'Not authorized to access this repair request'


class WindowExpired(RepairServiceError):
    kind = 'WindowExpired'
    default_message = 'The allowed time window for this action has passed'


class InvalidAssignee(RepairServiceError):
    kind = 'InvalidAssignee'
    default_message = 'Assigned technician must be an employee'


class AlreadyTerminal(RepairServiceError):
    kind = 'AlreadyTerminal'
    default_message = 'Repair request is already completed or cancelled'


class AlreadyPaid(RepairServiceError):
    kind = 'AlreadyPaid'
    default_message = 'Payment already completed for this repair'


class NotCompleted(RepairServiceError):
    kind = 'NotCompleted'
    default_message = 'Repair must be completed before final payment'


class UpstreamFailure(RepairServiceError):
    """External scheduler / notifier failure. Logged and swallowed, never returned."""
    kind = 'UpstreamFailure'
    status = 502
    default_message = 'Upstream service failure'


class InternalError(RepairServiceError):
    kind = 'InternalError'
    status = 500
    default_message = 'Unexpected error'


# Denial kinds reported by the authorization policy
DENIAL_ERRORS = {
    NotOwner.kind: NotOwner,
    RoleNotPermitted.kind: RoleNotPermitted,
    WindowExpired.kind: WindowExpired,
}


def error_payload(kind: str, message: Any, status: int) -> Dict[str, Any]:
    return {
        'success': False,
        'message': message,
        'error': {
            'kind': kind,
            'status': status,
        }
    }


__all__ = [
    'RepairServiceError', 'ValidationError', 'NotFound', 'RoleNotPermitted', 'NotOwner',
    'WindowExpired', 'InvalidAssignee', 'AlreadyTerminal', 'AlreadyPaid', 'NotCompleted',
    'UpstreamFailure', 'InternalError', 'DENIAL_ERRORS', 'error_payload'
]
