from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from fastapi import Depends
from sqlalchemy.orm import Session

from . import models
from .auth import get_current_user
from .database import get_db
from .errors import Forbidden, Internal, RoleNotFound, Unauthenticated
from .membership import ActiveMembership, membership_state
from .permissions import GLOBAL_ADMIN, LAB_MANAGER

# purpose: single permission evaluator for the global/lab two-tier role model
# status: active
# depends_on: labkeeper.models.Role, labkeeper.models.LabMember

logger = logging.getLogger(__name__)


class InventorySource(str, enum.Enum):
    ADMIN_PANEL = "ADMIN_PANEL"
    LAB_INTERFACE = "LAB_INTERFACE"
    API_DIRECT = "API_DIRECT"
    BULK_IMPORT = "BULK_IMPORT"


class Surface(str, enum.Enum):
    """Where a request entered the system."""

    ADMIN = "admin"
    LAB = "lab"
    BULK_IMPORT = "bulk_import"
    DIRECT = "direct"


@dataclass(frozen=True)
class LabAccess:
    """Everything an allowed caller carries into the write path."""

    user: models.User
    lab_id: int
    member: models.LabMember | None
    source: InventorySource
    is_admin: bool

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def member_id(self) -> int | None:
        return self.member.id if self.member is not None else None


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    reason: str | None = None
    required_level: int | None = None
    actual_level: int | None = None
    access: LabAccess | None = None
    user: models.User | None = None

    def _raise_if_denied(self) -> None:
        if not self.allowed:
            raise Forbidden(
                self.reason or "Insufficient permission",
                required_level=self.required_level,
                actual_level=self.actual_level,
            )

    def require(self) -> LabAccess:
        self._raise_if_denied()
        if self.access is None:
            raise Internal("Permission decision carries no lab access; use require_user()")
        return self.access

    def require_user(self) -> models.User:
        self._raise_if_denied()
        if self.user is None:
            raise Internal("Permission decision carries no user")
        return self.user


def resolve_source(surface: Surface, *, is_member: bool) -> InventorySource:
    if surface is Surface.ADMIN:
        return InventorySource.ADMIN_PANEL
    if surface is Surface.BULK_IMPORT:
        return InventorySource.BULK_IMPORT
    if surface is Surface.LAB and is_member:
        return InventorySource.LAB_INTERFACE
    return InventorySource.API_DIRECT


def _resolve_caller(db: Session, caller_user_id: int | None) -> tuple[models.User, models.Role]:
    if caller_user_id is None:
        raise Unauthenticated("Authentication required")
    user = db.get(models.User, caller_user_id)
    if user is None or user.role is None:
        raise RoleNotFound("User or role not found")
    return user, user.role


def _active_member(db: Session, user_id: int, lab_id: int) -> tuple[models.LabMember | None, ActiveMembership | None]:
    member = (
        db.query(models.LabMember)
        .filter(models.LabMember.user_id == user_id, models.LabMember.lab_id == lab_id)
        .first()
    )
    if member is None:
        return None, None
    state = membership_state(member)
    if isinstance(state, ActiveMembership):
        return member, state
    return member, None


def evaluate(
    db: Session,
    caller_user_id: int | None,
    lab_id: int,
    minimum_lab_level: int = LAB_MANAGER,
    admin_override_level: int = GLOBAL_ADMIN,
    surface: Surface = Surface.DIRECT,
) -> PermissionDecision:
    """Decide whether the caller may act inside ``lab_id``.

    Global admins short-circuit before any membership lookup decides the
    outcome; their membership row (even a former one) is still attached so
    the audit trail can name it.
    """

    user, role = _resolve_caller(db, caller_user_id)

    if role.permission_level >= admin_override_level:
        # any membership row, former included, is kept for attribution
        member, active = _active_member(db, user.id, lab_id)
        access = LabAccess(
            user=user,
            lab_id=lab_id,
            member=member,
            source=resolve_source(surface, is_member=active is not None),
            is_admin=True,
        )
        return PermissionDecision(allowed=True, access=access, user=user)

    member, active = _active_member(db, user.id, lab_id)
    if active is None:
        logger.info("User %s denied in lab %s: not an active member", user.id, lab_id)
        return PermissionDecision(
            allowed=False,
            reason="Access denied: You are not a member of this lab",
            required_level=minimum_lab_level,
            user=user,
        )

    if active.permission_level < minimum_lab_level:
        logger.info(
            "User %s denied in lab %s: level %s below %s",
            user.id,
            lab_id,
            active.permission_level,
            minimum_lab_level,
        )
        return PermissionDecision(
            allowed=False,
            reason=(
                f"Insufficient lab permission. Required: {minimum_lab_level}, "
                f"Your lab role: {active.permission_level}"
            ),
            required_level=minimum_lab_level,
            actual_level=active.permission_level,
            user=user,
        )

    access = LabAccess(
        user=user,
        lab_id=lab_id,
        member=member,
        source=resolve_source(surface, is_member=True),
        is_admin=False,
    )
    return PermissionDecision(allowed=True, access=access, user=user)


def evaluate_global(db: Session, caller_user_id: int | None, minimum_level: int) -> PermissionDecision:
    user, role = _resolve_caller(db, caller_user_id)
    if role.permission_level < minimum_level:
        logger.info("User %s denied: global level %s below %s", user.id, role.permission_level, minimum_level)
        return PermissionDecision(
            allowed=False,
            reason=f"Insufficient permission. Required: {minimum_level}, Your role: {role.permission_level}",
            required_level=minimum_level,
            actual_level=role.permission_level,
            user=user,
        )
    return PermissionDecision(allowed=True, user=user)


class LabPermission:
    """FastAPI dependency enforcing :func:`evaluate` for the ``lab_id`` path parameter."""

    def __init__(
        self,
        surface: Surface,
        minimum_level: int = LAB_MANAGER,
        admin_level: int = GLOBAL_ADMIN,
    ):
        self.surface = surface
        self.minimum_level = minimum_level
        self.admin_level = admin_level

    def __call__(
        self,
        lab_id: int,
        db: Session = Depends(get_db),
        user: models.User = Depends(get_current_user),
    ) -> LabAccess:
        decision = evaluate(
            db,
            user.id,
            lab_id,
            minimum_lab_level=self.minimum_level,
            admin_override_level=self.admin_level,
            surface=self.surface,
        )
        return decision.require()


class GlobalPermission:
    def __init__(self, minimum_level: int = GLOBAL_ADMIN):
        self.minimum_level = minimum_level

    def __call__(
        self,
        db: Session = Depends(get_db),
        user: models.User = Depends(get_current_user),
    ) -> models.User:
        return evaluate_global(db, user.id, self.minimum_level).require_user()
