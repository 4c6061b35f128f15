"""Lab membership lifecycle as an explicit state.

A membership row is either *active* (it carries an assignable lab role) or a
*former* membership (the row points at the reserved tombstone role). Callers
ask for :func:`membership_state` instead of comparing permission levels, and
move between the two states only through :func:`retire` and
:func:`reactivate`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from . import models
from .errors import Conflict, Internal, InvalidInput
from .permissions import is_reserved_role_name


@dataclass(frozen=True)
class ActiveMembership:
    member: models.LabMember
    role: models.LabRole

    @property
    def permission_level(self) -> int:
        return self.role.permission_level


@dataclass(frozen=True)
class FormerMembership:
    member: models.LabMember


MembershipState = Union[ActiveMembership, FormerMembership]


def is_tombstone_role(role: models.LabRole) -> bool:
    return bool(role.is_system)


def membership_state(member: models.LabMember) -> MembershipState:
    if is_tombstone_role(member.lab_role):
        return FormerMembership(member=member)
    return ActiveMembership(member=member, role=member.lab_role)


def is_active(member: models.LabMember | None) -> bool:
    return member is not None and isinstance(membership_state(member), ActiveMembership)


def retire(member: models.LabMember, tombstone: models.LabRole) -> FormerMembership:
    """Move an active membership to the former state."""

    if not is_tombstone_role(tombstone):
        raise Internal("Former Member role is misconfigured")
    if isinstance(membership_state(member), FormerMembership):
        raise Conflict("User is already a former member of this lab")
    member.lab_role = tombstone
    return FormerMembership(member=member)


def reactivate(member: models.LabMember, role: models.LabRole) -> ActiveMembership:
    """Move a former membership back to active with the given role."""

    if isinstance(membership_state(member), ActiveMembership):
        raise Conflict("User is already an active member of this lab")
    assign_role(member, role)
    return ActiveMembership(member=member, role=role)


def ensure_assignable(role: models.LabRole) -> None:
    if is_tombstone_role(role) or is_reserved_role_name(role.name):
        raise InvalidInput(
            'Cannot manually assign "Former Member" role. This role is system-managed '
            "and only assigned during member removal."
        )


def assign_role(member: models.LabMember, role: models.LabRole) -> None:
    ensure_assignable(role)
    member.lab_role = role
