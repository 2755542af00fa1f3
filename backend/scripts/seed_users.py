#!/usr/bin/env python
"""Idempotent seed script for workshop accounts and the repair price list.

Users normally arrive from the identity service; this script mirrors a
minimal set locally so the repair API can be exercised in development.

Usage:
    python backend/scripts/seed_users.py                 # seed normally
    python backend/scripts/seed_users.py --dry-run       # run logic then rollback (no DB changes)
    python backend/scripts/seed_users.py --token EMAIL   # also print a dev access token for EMAIL
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import select, text

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from flask_jwt_extended import create_access_token
from marina import create_app, get_db
from marina.models.user import Base, User
from marina.models.cost_option import RepairCostOption

DEFAULT_USERS = [
    {'name': 'Workshop Admin', 'email': 'admin@marina.local', 'role': User.ROLE_ADMIN},
    {'name': 'Hull Technician', 'email': 'tech@marina.local', 'role': User.ROLE_EMPLOYEE},
    {'name': 'Demo Customer', 'email': 'customer@marina.local', 'role': User.ROLE_CUSTOMER, 'phone': '+94 77 000 0000'},
]


def ensure_users(session):
    existing = {u.email for u in session.execute(select(User)).scalars().all()}
    created = 0
    for entry in DEFAULT_USERS:
        if entry['email'] not in existing:
            session.add(User(**entry))
            created += 1
    session.flush()
    return created


DEFAULT_COST_OPTIONS = [
    {'service_type': 'engine_repair', 'name': 'Outboard service', 'cost': 15000},
    {'service_type': 'engine_repair', 'name': 'Impeller replacement', 'cost': 8000},
    {'service_type': 'hull_repair', 'name': 'Gelcoat patch', 'cost': 12000},
    {'service_type': 'electrical', 'name': 'Battery and wiring check', 'cost': 6000},
]


def ensure_cost_options(session):
    existing = {(o.service_type, o.name) for o in session.execute(select(RepairCostOption)).scalars().all()}
    created = 0
    for entry in DEFAULT_COST_OPTIONS:
        if (entry['service_type'], entry['name']) not in existing:
            session.add(RepairCostOption(**entry))
            created += 1
    session.flush()
    return created

def parse_args():
    p = argparse.ArgumentParser(
        description='Seed workshop users',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_users.py\n  dry run: seed_users.py --dry-run\n  dev token: seed_users.py --token tech@marina.local\n""")
    )
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--token', metavar='EMAIL', help='Print an access token for this user')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    with app.app_context():
        session = get_db()
        try:
            session.execute(text('SELECT 1 FROM users LIMIT 1'))
        except Exception:
            # Auto-create schema for bootstrap; in real env prefer alembic upgrade
            session.rollback()
            Base.metadata.create_all(session.get_bind())
        finally:
            session.commit()

    with app.app_context():
        session = get_db()
        try:
            created = ensure_users(session)
            options = ensure_cost_options(session)
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) Users would create: {created}, cost options: {options}")
            else:
                session.commit()
                print(f"[DONE] Users created: {created}, cost options: {options}")
            if args.token:
                user = session.execute(select(User).where(User.email == args.token)).scalar_one_or_none()
                if not user:
                    print(f"[WARN] No user with email {args.token}")
                    sys.exit(2)
                token = create_access_token(identity=str(user.id), additional_claims={'role': user.role})
                print(token)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

if __name__ == '__main__':
    main()
