from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .. import membership, models
from ..errors import Conflict, Internal, InvalidInput, NotFound
from ..permissions import (
    LAB_ROLE_MAX_ASSIGNABLE,
    LAB_ROLE_MIN_ASSIGNABLE,
    former_member_role,
    is_reserved_role_name,
)
from ..rbac import LabAccess

# purpose: manage lab memberships and lab roles through explicit membership transitions
# status: active
# depends_on: labkeeper.membership, labkeeper.models (LabMember, LabRole)

logger = logging.getLogger(__name__)


def list_lab_roles(db: Session) -> list[models.LabRole]:
    return db.query(models.LabRole).order_by(models.LabRole.permission_level.desc(), models.LabRole.name).all()


def create_lab_role(
    db: Session,
    name: str,
    permission_level: int,
    description: str | None = None,
) -> models.LabRole:
    name = (name or "").strip()
    if not name:
        raise InvalidInput("name is required")
    if is_reserved_role_name(name):
        raise InvalidInput('"Former Member" is a reserved system role')
    if not LAB_ROLE_MIN_ASSIGNABLE <= permission_level <= LAB_ROLE_MAX_ASSIGNABLE:
        raise InvalidInput(
            f"permissionLevel must be between {LAB_ROLE_MIN_ASSIGNABLE} and {LAB_ROLE_MAX_ASSIGNABLE}"
        )
    role = models.LabRole(name=name, description=description, permission_level=permission_level)
    db.add(role)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("A lab role with this name already exists")
    db.refresh(role)
    return role


class LabMembers:
    """Membership management for the lab named by an allowed :class:`LabAccess`."""

    def __init__(self, db: Session):
        self.db = db

    def list_members(self, lab_id: int, include_former: bool = False) -> list[models.LabMember]:
        query = (
            self.db.query(models.LabMember)
            .join(models.LabRole, models.LabMember.lab_role_id == models.LabRole.id)
            .options(selectinload(models.LabMember.user), selectinload(models.LabMember.lab_role))
            .filter(models.LabMember.lab_id == lab_id)
        )
        if not include_former:
            query = query.filter(models.LabRole.is_system.is_(False))
        return query.order_by(models.LabMember.id).all()

    def add_member(self, access: LabAccess, user_id: int, lab_role_id: int) -> tuple[models.LabMember, bool]:
        """Add ``user_id`` to the lab, reactivating a former membership when one exists.

        Returns the membership and whether it was reactivated.
        """

        if self.db.get(models.Lab, access.lab_id) is None:
            raise NotFound("Lab not found")
        user = self.db.get(models.User, user_id)
        if user is None:
            raise NotFound("User not found")
        role = self._role(lab_role_id)
        membership.ensure_assignable(role)

        existing = self._membership(access.lab_id, user_id)
        if existing is not None:
            membership.reactivate(existing, role)
            self.db.commit()
            self.db.refresh(existing)
            logger.info("Reactivated user %s in lab %s as %s", user_id, access.lab_id, role.name)
            return existing, True

        member = models.LabMember(user_id=user.id, lab_id=access.lab_id)
        membership.assign_role(member, role)
        self.db.add(member)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("User is already a member of this lab")
        self.db.refresh(member)
        logger.info("Added user %s to lab %s as %s", user_id, access.lab_id, role.name)
        return member, False

    def remove_member(self, access: LabAccess, user_id: int) -> models.LabMember:
        member = self._membership(access.lab_id, user_id)
        if member is None:
            raise NotFound("Lab member not found")
        tombstone = former_member_role(self.db)
        if tombstone is None:
            raise Internal("Former Member role is not configured")
        membership.retire(member, tombstone)
        self.db.commit()
        self.db.refresh(member)
        logger.info("User %s is now a former member of lab %s", user_id, access.lab_id)
        return member

    def update_member_role(self, access: LabAccess, member_id: int, lab_role_id: int) -> models.LabMember:
        member = self._member(access, member_id)
        role = self._role(lab_role_id)
        if member.is_former:
            raise InvalidInput("Former members must be re-added to the lab before their role can change")
        membership.assign_role(member, role)
        self.db.commit()
        self.db.refresh(member)
        return member

    def toggle_induction(self, access: LabAccess, member_id: int) -> models.LabMember:
        member = self._member(access, member_id)
        member.induction_done = not member.induction_done
        self.db.commit()
        self.db.refresh(member)
        return member

    def set_pci(self, access: LabAccess, member_id: int, is_pci: bool) -> models.LabMember:
        member = self._member(access, member_id)
        member.is_pci = bool(is_pci)
        self.db.commit()
        self.db.refresh(member)
        return member

    def _membership(self, lab_id: int, user_id: int) -> models.LabMember | None:
        return (
            self.db.query(models.LabMember)
            .filter(models.LabMember.lab_id == lab_id, models.LabMember.user_id == user_id)
            .first()
        )

    def _member(self, access: LabAccess, member_id: int) -> models.LabMember:
        member = self.db.get(models.LabMember, member_id)
        if member is None or member.lab_id != access.lab_id:
            raise NotFound("Lab member not found")
        return member

    def _role(self, lab_role_id: int) -> models.LabRole:
        role = self.db.get(models.LabRole, lab_role_id)
        if role is None:
            raise NotFound("Lab role not found")
        if role.permission_level < LAB_ROLE_MIN_ASSIGNABLE and not role.is_system:
            raise InvalidInput("Lab roles below 0 cannot be assigned")
        return role
