from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..database import get_db
from ..permissions import LAB_MANAGER
from ..rbac import LabAccess, LabPermission, Surface
from ..services.lab_admissions import AdmissionStatus, LabAdmissions

router = APIRouter(tags=["lab-admissions"])
admin_router = APIRouter(prefix="/api/admin/lab", tags=["lab-admissions"])

manage = LabPermission(Surface.ADMIN, LAB_MANAGER)


@router.post("/api/labs/{lab_id}/admissions", response_model=schemas.LabAdmissionOut, status_code=201)
def request_admission(
    lab_id: int,
    data: schemas.LabAdmissionCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return LabAdmissions(db).request(user, lab_id, data.lab_role_id)


@router.get("/api/admissions/me", response_model=List[schemas.LabAdmissionOut])
def my_admissions(db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return LabAdmissions(db).list_for_user(user.id)


@router.put("/api/admissions/{admission_id}/withdraw", response_model=schemas.LabAdmissionOut)
def withdraw_admission(
    admission_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return LabAdmissions(db).withdraw(user, admission_id)


@admin_router.get("/{lab_id}/admissions", response_model=List[schemas.LabAdmissionOut])
def list_admissions(
    status: Optional[AdmissionStatus] = Query(None),
    access: LabAccess = Depends(manage),
    db: Session = Depends(get_db),
):
    return LabAdmissions(db).list_for_lab(access.lab_id, status=status)


@admin_router.put("/{lab_id}/admissions/{admission_id}/approve", response_model=schemas.LabAdmissionApproved)
def approve_admission(
    admission_id: int,
    data: schemas.LabAdmissionDecision,
    access: LabAccess = Depends(manage),
    db: Session = Depends(get_db),
):
    admission, member, reactivated = LabAdmissions(db).approve(
        access, admission_id, lab_role_id=data.lab_role_id, is_pci=data.is_pci
    )
    return schemas.LabAdmissionApproved(
        admission=schemas.LabAdmissionOut.model_validate(admission),
        member=schemas.LabMemberOut.model_validate(member),
        is_reactivated=reactivated,
    )


@admin_router.put("/{lab_id}/admissions/{admission_id}/reject", response_model=schemas.LabAdmissionOut)
def reject_admission(
    admission_id: int,
    access: LabAccess = Depends(manage),
    db: Session = Depends(get_db),
):
    return LabAdmissions(db).reject(access, admission_id)
