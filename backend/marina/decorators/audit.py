from __future__ import annotations
"""Audit logging decorator to reduce repetitive add_audit() calls in route handlers.

Usage examples:

@audit_log('RPR.REQUEST.CREATE', entity='RepairRequest', entity_id_key='bookingId', meta_keys=['status'])
def create_repair():
    ... return {'success': True, 'data': {...}}, 201

@audit_log('RPR.REQUEST.DELETE', entity='RepairRequest', entity_id_arg='repair_id')
def delete_repair(repair_id): ...

Parameters:
  action: required audit action code (e.g. RPR.INVOICE.SEND)
  entity: optional entity label (RepairRequest, Payment)
  entity_id_key: key in the returned data object whose value becomes entity_id.
  entity_id_arg: name of the path parameter to use for entity_id (fallback if entity_id_key absent).
  meta_keys: list of keys to project from returned data into meta dict (shallow copy).
  meta_builder: callable returning a meta dict; receives (data, original_return_value, args, kwargs). If provided it overrides meta_keys.
  diff_keys / pre_fetch: record before/after values of the listed keys.

Return handling:
  Views return the response envelope {'success': ..., 'data': {...}} either bare
  or as (envelope, status). The 'data' object is inspected when present,
  otherwise the envelope itself. Views that raise are not audited.
"""

import logging
from functools import wraps
from typing import Any, Callable, Iterable, Optional, Dict

from marina.services.audit import add_audit
from marina import get_db

logger = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    """Return (data, original_rv) where data is the JSON-able dict for inspection."""
    body = rv[0] if isinstance(rv, tuple) and rv else rv
    if isinstance(body, dict) and isinstance(body.get('data'), dict):
        return body['data'], rv
    return body, rv


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    commit: bool = True,
    # Diff support
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before_snapshot = None
            if diff_keys and pre_fetch:
                try:
                    before_snapshot = pre_fetch(args, kwargs)
                except Exception:
                    before_snapshot = None
            rv = fn(*args, **kwargs)
            try:
                data, original_rv = _extract_payload(rv)
                if not isinstance(data, dict):  # nothing to inspect
                    add_audit(action, entity, None, None)
                    return rv
                entity_id = None
                if entity_id_key and entity_id_key in data:
                    entity_id = data.get(entity_id_key)
                elif entity_id_arg and entity_id_arg in kwargs:
                    entity_id = kwargs.get(entity_id_arg)
                # Build meta
                meta = None
                if meta_builder:
                    try:
                        meta = meta_builder(data, rv, args, kwargs)
                    except Exception:
                        meta = None
                elif meta_keys:
                    meta = {k: data.get(k) for k in meta_keys if k in data}
                # Append diff if requested
                if diff_keys and before_snapshot and isinstance(before_snapshot, dict):
                    changes = {}
                    for k in diff_keys:
                        if k in before_snapshot and k in data:
                            if before_snapshot.get(k) != data.get(k):
                                changes[k] = {
                                    'before': before_snapshot.get(k),
                                    'after': data.get(k)
                                }
                    if changes:
                        if meta is None:
                            meta = {}
                        meta['changes'] = changes
                add_audit(action, entity, entity_id, meta)
                if commit:
                    get_db().commit()
                return rv
            except Exception:
                # The action itself has committed; a lost audit row must not fail the response
                get_db().rollback()
                logger.warning('Audit entry %s could not be written', action, exc_info=True)
                return rv
        return wrapper
    return outer
