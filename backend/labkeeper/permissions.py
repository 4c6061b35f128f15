"""Permission levels shared by the global and per-lab role scales."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from . import models

# purpose: name the permission thresholds used by every authorization check and seed the reference roles
# status: active

logger = logging.getLogger(__name__)

# global scale (User.role)
GLOBAL_ADMIN = 100
GLOBAL_USER = 0

# lab scale (LabMember.lab_role)
LAB_MANAGER = 70
LAB_MEMBER = 0
FORMER_MEMBER = -1

LAB_ROLE_MIN_ASSIGNABLE = 0
LAB_ROLE_MAX_ASSIGNABLE = 100

FORMER_MEMBER_ROLE_NAME = "Former Member"

_GLOBAL_ROLES: tuple[tuple[str, int], ...] = (
    ("Admin", GLOBAL_ADMIN),
    ("User", GLOBAL_USER),
)

_LAB_ROLES: tuple[tuple[str, int, bool], ...] = (
    ("Lab Manager", LAB_MANAGER, False),
    ("Lab Member", LAB_MEMBER, False),
    (FORMER_MEMBER_ROLE_NAME, FORMER_MEMBER, True),
)


def is_reserved_role_name(name: str) -> bool:
    return name.strip().lower() == FORMER_MEMBER_ROLE_NAME.lower()


def seed_reference_roles(db: Session) -> None:
    """Create the default global and lab roles if they are missing."""

    existing_global = {name for (name,) in db.query(models.Role.name).all()}
    for name, level in _GLOBAL_ROLES:
        if name not in existing_global:
            db.add(models.Role(name=name, permission_level=level))
    existing_lab = {name for (name,) in db.query(models.LabRole.name).all()}
    for name, level, is_system in _LAB_ROLES:
        if name not in existing_lab:
            db.add(models.LabRole(name=name, permission_level=level, is_system=is_system))
    db.commit()
    logger.debug("Reference roles present")


def default_user_role(db: Session) -> models.Role | None:
    return db.query(models.Role).filter(models.Role.name == "User").first()


def former_member_role(db: Session) -> models.LabRole | None:
    return (
        db.query(models.LabRole)
        .filter(models.LabRole.is_system.is_(True), models.LabRole.permission_level == FORMER_MEMBER)
        .first()
    )
