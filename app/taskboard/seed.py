"""
Idempotent seeding of roles and permissions.

Shared by scripts/init_db.py (release phase) and the test fixtures so both
run with the same role → permission map.
"""
from __future__ import annotations

from sqlalchemy.orm import Session

from app.taskboard.constants import PERMISSIONS, ROLE_NAMES, ROLE_PERMISSIONS
from app.taskboard.models import Permission, Role


def ensure_roles(s: Session) -> dict[str, Role]:
    perms: dict[str, Permission] = {}
    for key, name in PERMISSIONS.items():
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        perms[key] = p

    roles: dict[str, Role] = {}
    for role_key, perm_keys in ROLE_PERMISSIONS.items():
        role = s.query(Role).filter(Role.key == role_key).one_or_none()
        if not role:
            role = Role(key=role_key, name=ROLE_NAMES[role_key])
            s.add(role)
        for pk in perm_keys:
            if perms[pk] not in role.permissions:
                role.permissions.append(perms[pk])
        roles[role_key] = role
    s.flush()
    return roles


def get_role(s: Session, role_key: str) -> Role:
    role = s.query(Role).filter(Role.key == role_key.lower()).one_or_none()
    if role is None:
        role = ensure_roles(s).get(role_key.lower())
    if role is None:
        raise ValueError(f"Unknown role: {role_key}")
    return role
