from __future__ import annotations

import enum
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .. import membership, models
from ..errors import Conflict, Forbidden, InvalidInput, NotFound
from ..rbac import LabAccess
from .lab_members import LabMembers

# purpose: lab admission requests and their PENDING -> APPROVED/REJECTED/WITHDRAWN transitions
# status: active
# depends_on: labkeeper.membership, labkeeper.models (LabAdmission, LabMember)

logger = logging.getLogger(__name__)


class AdmissionStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class LabAdmissions:
    """Requests from users to join a lab, decided by the lab's managers."""

    def __init__(self, db: Session):
        self.db = db

    def request(self, user: models.User, lab_id: int, lab_role_id: int) -> models.LabAdmission:
        if self.db.get(models.Lab, lab_id) is None:
            raise NotFound("Lab not found")
        role = LabMembers(self.db)._role(lab_role_id)
        membership.ensure_assignable(role)

        if membership.is_active(self._membership(lab_id, user.id)):
            raise Conflict("User is already an active member of this lab")
        pending = (
            self.db.query(models.LabAdmission.id)
            .filter(
                models.LabAdmission.lab_id == lab_id,
                models.LabAdmission.user_id == user.id,
                models.LabAdmission.status == AdmissionStatus.PENDING.value,
            )
            .first()
        )
        if pending is not None:
            raise Conflict("An admission request for this lab is already pending")

        admission = models.LabAdmission(
            user_id=user.id,
            lab_id=lab_id,
            lab_role_id=role.id,
            status=AdmissionStatus.PENDING.value,
        )
        self.db.add(admission)
        self.db.commit()
        self.db.refresh(admission)
        logger.info("User %s requested admission to lab %s as %s", user.id, lab_id, role.name)
        return admission

    def approve(
        self,
        access: LabAccess,
        admission_id: int,
        lab_role_id: int | None = None,
        is_pci: bool = False,
    ) -> tuple[models.LabAdmission, models.LabMember, bool]:
        """Approve a pending request and admit the user.

        A former membership row is reactivated in place; otherwise a new
        membership is created. Returns the admission, the membership and
        whether it was reactivated.
        """

        admission = self._admission(access, admission_id)
        self._ensure_pending(admission, "approve")
        role = LabMembers(self.db)._role(lab_role_id if lab_role_id is not None else admission.lab_role_id)
        membership.ensure_assignable(role)

        member = self._membership(admission.lab_id, admission.user_id)
        reactivated = member is not None
        if member is not None:
            membership.reactivate(member, role)
        else:
            member = models.LabMember(user_id=admission.user_id, lab_id=admission.lab_id)
            membership.assign_role(member, role)
            self.db.add(member)
        member.is_pci = bool(is_pci)

        admission.status = AdmissionStatus.APPROVED.value
        admission.lab_role_id = role.id
        admission.is_pci = bool(is_pci)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("User is already a member of this lab")
        self.db.refresh(admission)
        self.db.refresh(member)
        logger.info(
            "Approved admission %s: user %s joins lab %s as %s",
            admission.id,
            admission.user_id,
            admission.lab_id,
            role.name,
        )
        return admission, member, reactivated

    def reject(self, access: LabAccess, admission_id: int) -> models.LabAdmission:
        admission = self._admission(access, admission_id)
        self._ensure_pending(admission, "reject")
        admission.status = AdmissionStatus.REJECTED.value
        self.db.commit()
        self.db.refresh(admission)
        logger.info("Rejected admission %s for lab %s", admission.id, admission.lab_id)
        return admission

    def withdraw(self, user: models.User, admission_id: int) -> models.LabAdmission:
        admission = self.db.get(models.LabAdmission, admission_id)
        if admission is None:
            raise NotFound("Admission request not found")
        if admission.user_id != user.id:
            raise Forbidden("Not authorized to withdraw this admission request")
        self._ensure_pending(admission, "withdraw")
        admission.status = AdmissionStatus.WITHDRAWN.value
        self.db.commit()
        self.db.refresh(admission)
        return admission

    def list_for_lab(self, lab_id: int, status: AdmissionStatus | None = None) -> list[models.LabAdmission]:
        query = (
            self.db.query(models.LabAdmission)
            .options(selectinload(models.LabAdmission.user), selectinload(models.LabAdmission.lab_role))
            .filter(models.LabAdmission.lab_id == lab_id)
        )
        if status is not None:
            query = query.filter(models.LabAdmission.status == AdmissionStatus(status).value)
        return query.order_by(models.LabAdmission.created_at.desc(), models.LabAdmission.id.desc()).all()

    def list_for_user(self, user_id: int) -> list[models.LabAdmission]:
        return (
            self.db.query(models.LabAdmission)
            .options(selectinload(models.LabAdmission.lab_role))
            .filter(models.LabAdmission.user_id == user_id)
            .order_by(models.LabAdmission.created_at.desc(), models.LabAdmission.id.desc())
            .all()
        )

    def _membership(self, lab_id: int, user_id: int) -> models.LabMember | None:
        return LabMembers(self.db)._membership(lab_id, user_id)

    def _admission(self, access: LabAccess, admission_id: int) -> models.LabAdmission:
        admission = self.db.get(models.LabAdmission, admission_id)
        if admission is None or admission.lab_id != access.lab_id:
            raise NotFound("Admission request not found")
        return admission

    @staticmethod
    def _ensure_pending(admission: models.LabAdmission, verb: str) -> None:
        if admission.status != AdmissionStatus.PENDING.value:
            raise InvalidInput(f"Cannot {verb} admission request with status: {admission.status}")
