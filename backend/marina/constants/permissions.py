"""Central definition of repair actions and the role x action matrix.
Extend cautiously; every action must carry a rule for every role.
"""
from __future__ import annotations
from typing import Dict

ROLE_CUSTOMER = 'customer'
ROLE_EMPLOYEE = 'employee'
ROLE_ADMIN = 'admin'
ROLES = [ROLE_CUSTOMER, ROLE_EMPLOYEE, ROLE_ADMIN]

CREATE = 'create'
VIEW_ALL = 'viewAll'
VIEW_ONE = 'viewOne'
VIEW_MINE = 'viewMine'
UPDATE_STAFF_FIELDS = 'updateStaffFields'
EDIT_OWN_FIELDS = 'editOwnFields'
CANCEL_OWN = 'cancelOwn'
DELETE_OWN = 'deleteOwn'
DELETE_ANY = 'deleteAny'
SEND_INVOICE = 'sendInvoice'
RECORD_PAYMENT = 'recordPayment'
VIEW_COST_OPTIONS = 'viewCostOptions'

ACTIONS = [
    CREATE, VIEW_ALL, VIEW_ONE, VIEW_MINE, UPDATE_STAFF_FIELDS, EDIT_OWN_FIELDS,
    CANCEL_OWN, DELETE_OWN, DELETE_ANY, SEND_INVOICE, RECORD_PAYMENT, VIEW_COST_OPTIONS,
]

# Rules
ALLOW = 'allow'
DENY = 'deny'
SELF = 'self'                                  # acting on one's own behalf only
OWNER_OR_ASSIGNEE = 'owner_or_assignee'
OWNER_IN_EDIT_WINDOW = 'owner_in_edit_window'
OWNER_IN_CANCEL_WINDOW = 'owner_in_cancel_window'
RULES = [ALLOW, DENY, SELF, OWNER_OR_ASSIGNEE, OWNER_IN_EDIT_WINDOW, OWNER_IN_CANCEL_WINDOW]

ROLE_MATRIX: Dict[str, Dict[str, str]] = {
    CREATE:              {ROLE_CUSTOMER: SELF,                   ROLE_EMPLOYEE: DENY,  ROLE_ADMIN: DENY},
    VIEW_ALL:            {ROLE_CUSTOMER: DENY,                   ROLE_EMPLOYEE: ALLOW, ROLE_ADMIN: ALLOW},
    VIEW_ONE:            {ROLE_CUSTOMER: OWNER_OR_ASSIGNEE,      ROLE_EMPLOYEE: ALLOW, ROLE_ADMIN: ALLOW},
    VIEW_MINE:           {ROLE_CUSTOMER: SELF,                   ROLE_EMPLOYEE: DENY,  ROLE_ADMIN: DENY},
    UPDATE_STAFF_FIELDS: {ROLE_CUSTOMER: DENY,                   ROLE_EMPLOYEE: ALLOW, ROLE_ADMIN: ALLOW},
    EDIT_OWN_FIELDS:     {ROLE_CUSTOMER: OWNER_IN_EDIT_WINDOW,   ROLE_EMPLOYEE: DENY,  ROLE_ADMIN: DENY},
    CANCEL_OWN:          {ROLE_CUSTOMER: OWNER_IN_CANCEL_WINDOW, ROLE_EMPLOYEE: DENY,  ROLE_ADMIN: DENY},
    DELETE_OWN:          {ROLE_CUSTOMER: OWNER_IN_CANCEL_WINDOW, ROLE_EMPLOYEE: DENY,  ROLE_ADMIN: DENY},
    DELETE_ANY:          {ROLE_CUSTOMER: DENY,                   ROLE_EMPLOYEE: DENY,  ROLE_ADMIN: ALLOW},
    SEND_INVOICE:        {ROLE_CUSTOMER: DENY,                   ROLE_EMPLOYEE: ALLOW, ROLE_ADMIN: ALLOW},
    RECORD_PAYMENT:      {ROLE_CUSTOMER: DENY,                   ROLE_EMPLOYEE: ALLOW, ROLE_ADMIN: ALLOW},
    VIEW_COST_OPTIONS:   {ROLE_CUSTOMER: DENY,                   ROLE_EMPLOYEE: ALLOW, ROLE_ADMIN: ALLOW},
}
