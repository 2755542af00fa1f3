from __future__ import annotations
from typing import Any, Dict, Optional
from flask_jwt_extended import get_jwt_identity
from marina import get_db
from marina.models.audit import AuditLog


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
    """Persist an audit log entry within the current DB session.

    Parameters:
      action: short action code e.g. RPR.REQUEST.CREATE, RPR.PAYMENT.FINAL
      entity: optional entity name (RepairRequest, Payment)
      entity_id: optional primary key or booking id
      meta: additional JSON-safe dictionary (will be shallow copied)
    """
    session = get_db()
    actor = None
    try:
        ident = get_jwt_identity()
        actor = int(ident) if ident is not None else None
    except Exception:
        actor = None  # no JWT context (service calls outside a request)
    log = AuditLog(
        actor_user_id=actor or 0,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log
