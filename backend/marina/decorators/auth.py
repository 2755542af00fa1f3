from functools import wraps
from flask import g
from flask_jwt_extended import verify_jwt_in_request, get_jwt, get_jwt_identity
from marina.constants.permissions import ROLE_MATRIX, DENY
from marina.errors import RoleNotPermitted
from marina.services.policy import Actor


def current_actor() -> Actor:
    ident = get_jwt_identity()
    try:
        user_id = int(ident)
    except (TypeError, ValueError):
        raise RoleNotPermitted('Token identity is not a user id')
    return Actor(user_id=user_id, role=str(get_jwt().get('role', '')))


def require_action(action: str):
    """Authenticate, expose the caller as g.actor and reject roles the matrix denies outright.

    Rules that depend on the target request (ownership, windows) are checked by
    the view once the request is loaded.
    """
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            actor = current_actor()
            if ROLE_MATRIX[action].get(actor.role, DENY) == DENY:
                raise RoleNotPermitted(f'role {actor.role or "unknown"} may not {action}')
            g.actor = actor
            return fn(*args, **kwargs)
        return wrapper
    return outer
